"""
Explorer enrichment of indexer records
Address derivation, data output decoding, burned value totals and block miner
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from errors import DataIntegrityError
from lotus_script import NETWORKS, XADDRESS_PREFIX, Script, ScriptError
from rank_decoder import RankPayload, decode_rank

logger = logging.getLogger(__name__)

# Hex of the OP_RETURN opcode
DATA_OUT_PREFIX = "6a"


# ==================== OUTPUT ANNOTATION ====================


class OutputKind(Enum):
    """What an output script was recognized as"""
    PLAIN = "plain"
    ADDRESS = "address"
    SPECIAL_PAYLOAD = "special_payload"


@dataclass(frozen=True)
class OutputAnnotation:
    """Tagged result of classifying an output script"""

    kind: OutputKind
    address: Optional[str] = None
    special_payload: Optional[RankPayload] = None

    @classmethod
    def plain(cls) -> "OutputAnnotation":
        return cls(OutputKind.PLAIN)

    @classmethod
    def for_address(cls, address: str) -> "OutputAnnotation":
        return cls(OutputKind.ADDRESS, address=address)

    @classmethod
    def for_payload(cls, payload: RankPayload) -> "OutputAnnotation":
        return cls(OutputKind.SPECIAL_PAYLOAD, special_payload=payload)

    def fields(self) -> Dict[str, Any]:
        """Fields merged into the output record"""
        if self.kind is OutputKind.ADDRESS:
            return {"address": self.address}
        if self.kind is OutputKind.SPECIAL_PAYLOAD:
            return {"specialPayload": self.special_payload.to_dict()}
        return {}


class Enricher:
    """Turns indexer transactions into explorer transactions"""

    def __init__(self, prefix: str = XADDRESS_PREFIX, network_char: str = NETWORKS["mainnet"]):
        self.prefix = prefix
        self.network_char = network_char

    # ------- Outputs and inputs -------

    def annotate_output(self, output_script: str) -> OutputAnnotation:
        try:
            script = Script.from_hex(output_script)
        except ScriptError as e:
            logger.debug(f"Undecodable output script {output_script!r}: {e}")
            return OutputAnnotation.plain()

        if script.is_data_out():
            payload = decode_rank(script)
            if payload is not None:
                return OutputAnnotation.for_payload(payload)
            return OutputAnnotation.plain()

        if script.is_address_out():
            return OutputAnnotation.for_address(self._address(script))

        return OutputAnnotation.plain()

    def enrich_output(self, output: Dict[str, Any]) -> Dict[str, Any]:
        annotation = self.annotate_output(output.get("outputScript", ""))
        return {**output, **annotation.fields()}

    def enrich_input(self, tx_input: Dict[str, Any]) -> Dict[str, Any]:
        """Attach the address of the spent output, or None when it has none"""
        output_script = tx_input.get("outputScript")
        if not output_script:
            return tx_input

        address = None
        try:
            script = Script.from_hex(output_script)
            if script.is_address_out():
                address = self._address(script)
        except ScriptError as e:
            logger.debug(f"Undecodable input script {output_script!r}: {e}")

        return {**tx_input, "address": address}

    def enrich_transaction(self, tx: Dict[str, Any], chain_height: Optional[int] = None) -> Dict[str, Any]:
        """
        Enrich inputs and outputs and add the burned total.

        Args:
            tx: Indexer transaction
            chain_height: Current block count; adds `confirmations` when given
        """
        outputs = tx.get("outputs", [])
        enriched = {
            **tx,
            "inputs": [self.enrich_input(i) for i in tx.get("inputs", [])],
            "outputs": [self.enrich_output(o) for o in outputs],
        }
        if chain_height is not None:
            enriched["confirmations"] = confirmations(tx, chain_height)
        enriched["sumBurnedSats"] = str(sum_burned_sats(outputs))
        return enriched

    # ------- Blocks -------

    def mined_by(self, block: Dict[str, Any]) -> str:
        """Address paid by the second output of the coinbase transaction"""
        txs = block.get("txs") or []
        if not txs:
            raise DataIntegrityError("block has no coinbase transaction")

        outputs = txs[0].get("outputs") or []
        if len(outputs) < 2:
            raise DataIntegrityError(
                f"coinbase transaction has {len(outputs)} outputs, expected at least 2"
            )

        output_script = outputs[1].get("outputScript", "")
        try:
            script = Script.from_hex(output_script)
            return self._address(script)
        except ScriptError as e:
            raise DataIntegrityError(f"coinbase miner output is not an address: {e}") from e

    def enrich_block(self, block: Dict[str, Any]) -> Dict[str, Any]:
        """Enriched block with `minedBy`; genesis is returned unmodified"""
        if block_height(block) == 0:
            return block

        return {
            **block,
            "txs": [self.enrich_transaction(tx) for tx in block.get("txs", [])],
            "minedBy": self.mined_by(block),
        }

    def _address(self, script: Script) -> str:
        return script.to_address(self.prefix, self.network_char)


# ==================== ACCOUNTING ====================


def sum_burned_sats(outputs: List[Dict[str, Any]]) -> int:
    """Sum of positive values locked in OP_RETURN outputs"""
    total = 0
    for output in outputs:
        if not output.get("outputScript", "").lower().startswith(DATA_OUT_PREFIX):
            continue
        value = int(output.get("value", 0))
        if value > 0:
            total += value
    return total


def with_burned_sats(tx: Dict[str, Any]) -> Dict[str, Any]:
    """Transaction with only the burned total added"""
    return {**tx, "sumBurnedSats": str(sum_burned_sats(tx.get("outputs", [])))}


def confirmations(tx: Dict[str, Any], chain_height: int) -> int:
    """Blocks from the containing block to the tip, inclusive; 0 if unconfirmed"""
    block = tx.get("block")
    if not block:
        return 0
    return chain_height - int(block["height"]) + 1


def block_height(block: Dict[str, Any]) -> int:
    try:
        return int(block["blockInfo"]["height"])
    except (KeyError, TypeError, ValueError) as e:
        raise DataIntegrityError(f"block has no height: {e}") from e
