"""
Explorer query service
Composes node RPC, indexer and enrichment into the explorer views
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from chronik_client import ChronikClient
from enrichment import Enricher, with_burned_sats
from errors import NotFoundError, UpstreamError, ValidationError
from lotus_script import XADDRESS_PREFIX, Script, is_valid_address
from node_rpc_client import NodeRPCClient
from pagination import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    block_height_range,
    parse_page_window,
)
from peers import PeerGeolocator

logger = logging.getLogger(__name__)


class ExplorerService:
    """
    Provides the explorer views served under /api/v1/explorer.
    Each method returns a JSON-serialisable dict or raises an ExplorerError.
    """

    def __init__(
        self,
        rpc: NodeRPCClient,
        indexer: ChronikClient,
        geolocator: PeerGeolocator,
        enricher: Optional[Enricher] = None,
        default_page_size: int = DEFAULT_PAGE_SIZE,
        max_page_size: int = MAX_PAGE_SIZE,
        address_prefix: str = XADDRESS_PREFIX,
    ):
        self.rpc = rpc
        self.indexer = indexer
        self.geolocator = geolocator
        self.enricher = enricher or Enricher()
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size
        self.address_prefix = address_prefix

    # ------- Network -------

    def get_mining_info(self) -> Dict[str, Any]:
        return self.rpc.get_mining_info()

    def get_overview(self) -> Dict[str, Any]:
        """Mining info plus geolocated public peers"""
        peers = self.geolocator.locate(self.rpc.get_peer_info())
        mining_info = self.rpc.get_mining_info()
        return {"miningInfo": mining_info, "peerInfo": peers}

    def get_chain_info(self) -> Dict[str, Any]:
        return self.indexer.blockchain_info()

    # ------- Addresses -------

    def get_address(
        self,
        address: Optional[str],
        page: Any = None,
        page_size: Any = None,
        include_balance: bool = False,
    ) -> Dict[str, Any]:
        """Paginated history for an address, with an optional balance"""
        if not address:
            raise ValidationError("address is required")
        if not is_valid_address(address, self.address_prefix):
            raise ValidationError("invalid address")

        window = parse_page_window(page, page_size, self.default_page_size, self.max_page_size)
        script = Script.from_address(address, self.address_prefix)
        script_type = script.script_type()
        script_payload = script.payload().hex()
        endpoint = self.indexer.script(script_type, script_payload)

        try:
            history = endpoint.history(window.offset, window.page_size)
        except UpstreamError as e:
            raise NotFoundError(e.message) from e

        txs = history.get("txs", [])
        data: Dict[str, Any] = {
            "scriptType": script_type,
            "scriptPayload": script_payload,
            "lastSeen": self._last_seen(txs),
            "history": {
                "txs": [with_burned_sats(tx) for tx in txs],
                "numPages": history.get("numPages", 0),
            },
        }

        if include_balance:
            balance = self._balance(endpoint.utxos())
            if balance is not None:
                data["balance"] = balance

        return data

    @staticmethod
    def _last_seen(txs) -> Optional[Any]:
        """Latest block time of the newest tx, else when it was first seen"""
        if not txs:
            return None
        newest = txs[0]
        block = newest.get("block")
        if block and block.get("timestamp") is not None:
            return block["timestamp"]
        return newest.get("timeFirstSeen")

    @staticmethod
    def _balance(script_utxos) -> Optional[str]:
        # Only the first script entry is summed
        if not script_utxos:
            return None
        utxos = script_utxos[0].get("utxos")
        if utxos is None:
            return None
        return str(sum(int(utxo.get("value", 0)) for utxo in utxos))

    # ------- Blocks -------

    def get_block(self, hash_or_height: Optional[str]) -> Dict[str, Any]:
        if not hash_or_height:
            raise ValidationError("hashOrHeight is required")

        try:
            block = self.indexer.block(hash_or_height)
        except UpstreamError as e:
            raise NotFoundError(e.message) from e
        if not block:
            raise NotFoundError("block not found")

        return self.enricher.enrich_block(block)

    def get_blocks(self, page: Any = None, page_size: Any = None) -> Dict[str, Any]:
        """Page of block infos, newest first"""
        window = parse_page_window(page, page_size, self.default_page_size, self.max_page_size)
        tip_height = int(self.indexer.blockchain_info()["tipHeight"])

        heights = block_height_range(tip_height, window)
        blocks = []
        if not heights.is_empty:
            blocks = self.indexer.blocks(heights.start_height, heights.end_height)

        return {
            "blocks": sorted(blocks, key=lambda b: int(b.get("height", 0)), reverse=True),
            "tipHeight": tip_height,
        }

    # ------- Transactions -------

    def get_raw_transaction(self, txid: str) -> Any:
        try:
            return self.rpc.get_raw_transaction(txid)
        except UpstreamError as e:
            raise NotFoundError(e.message, {"txid": txid}) from e

    def get_transaction(self, txid: str) -> Dict[str, Any]:
        chain_height = self.rpc.get_block_count()
        try:
            tx = self.indexer.tx(txid)
        except UpstreamError as e:
            logger.debug(f"Transaction lookup failed for {txid}: {e.message}")
            raise NotFoundError("transaction not found", {"txid": txid}) from e

        return self.enricher.enrich_transaction(tx, chain_height)
