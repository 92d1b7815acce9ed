"""
Lotus output script parsing and XAddress encoding
Classifies output scripts and converts between scripts and addresses
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import base58

logger = logging.getLogger(__name__)


# ==================== OPCODES ====================

OP_0 = 0x00
OP_PUSHDATA1 = 0x4C
OP_PUSHDATA2 = 0x4D
OP_PUSHDATA4 = 0x4E
OP_1 = 0x51
OP_16 = 0x60
OP_SCRIPTTYPE = 0x62
OP_RETURN = 0x6A
OP_DUP = 0x76
OP_EQUAL = 0x87
OP_EQUALVERIFY = 0x88
OP_HASH160 = 0xA9
OP_CHECKSIG = 0xAC

# Script types as named by the Chronik indexer
SCRIPT_TYPE_P2PKH = "p2pkh"
SCRIPT_TYPE_P2SH = "p2sh"
SCRIPT_TYPE_P2TR = "p2tr-commitment"
SCRIPT_TYPE_OTHER = "other"

XADDRESS_PREFIX = "lotus"
XADDRESS_TYPE_SCRIPT_PUBKEY = 0
NETWORKS = {
    "mainnet": "_",
    "testnet": "T",
    "regtest": "R",
}
CHECKSUM_SIZE = 4


class ScriptError(ValueError):
    """Script bytes cannot be parsed"""


class XAddressError(ValueError):
    """String is not a well-formed XAddress"""


# ==================== SCRIPT PARSING ====================


@dataclass(frozen=True)
class ScriptChunk:
    """Single opcode, with its pushed data for push operations"""

    opcode: int
    data: Optional[bytes] = None


def parse_chunks(raw: bytes) -> List[ScriptChunk]:
    """Split script bytes into opcodes and pushes"""
    chunks: List[ScriptChunk] = []
    pos = 0
    while pos < len(raw):
        opcode = raw[pos]
        pos += 1

        if 0 < opcode < OP_PUSHDATA1:
            size = opcode
        elif opcode == OP_PUSHDATA1:
            size, pos = _read_length(raw, pos, 1)
        elif opcode == OP_PUSHDATA2:
            size, pos = _read_length(raw, pos, 2)
        elif opcode == OP_PUSHDATA4:
            size, pos = _read_length(raw, pos, 4)
        else:
            chunks.append(ScriptChunk(opcode))
            continue

        if pos + size > len(raw):
            raise ScriptError(f"push of {size} bytes overruns script at offset {pos}")
        chunks.append(ScriptChunk(opcode, raw[pos:pos + size]))
        pos += size

    return chunks


def _read_length(raw: bytes, pos: int, width: int) -> Tuple[int, int]:
    if pos + width > len(raw):
        raise ScriptError(f"truncated push length at offset {pos}")
    return int.from_bytes(raw[pos:pos + width], "little"), pos + width


class Script:
    """Output script with classification helpers"""

    def __init__(self, raw: bytes):
        self.raw = bytes(raw)
        self._chunks: Optional[List[ScriptChunk]] = None

    @classmethod
    def from_hex(cls, script_hex: str) -> "Script":
        try:
            return cls(bytes.fromhex(script_hex))
        except ValueError as e:
            raise ScriptError(f"invalid script hex: {e}") from e

    @classmethod
    def from_address(cls, address: str, prefix: str = XADDRESS_PREFIX) -> "Script":
        """Script locked to an XAddress"""
        _, _, script_bytes = decode_xaddress(address, prefix)
        return cls(script_bytes)

    @property
    def chunks(self) -> List[ScriptChunk]:
        if self._chunks is None:
            self._chunks = parse_chunks(self.raw)
        return self._chunks

    def to_hex(self) -> str:
        return self.raw.hex()

    # ------- Classification -------

    def is_data_out(self) -> bool:
        """OP_RETURN output carrying data"""
        return len(self.raw) > 0 and self.raw[0] == OP_RETURN

    def is_public_key_hash_out(self) -> bool:
        # OP_DUP OP_HASH160 <20> OP_EQUALVERIFY OP_CHECKSIG
        raw = self.raw
        return (
            len(raw) == 25
            and raw[0] == OP_DUP
            and raw[1] == OP_HASH160
            and raw[2] == 20
            and raw[23] == OP_EQUALVERIFY
            and raw[24] == OP_CHECKSIG
        )

    def is_script_hash_out(self) -> bool:
        # OP_HASH160 <20> OP_EQUAL
        raw = self.raw
        return len(raw) == 23 and raw[0] == OP_HASH160 and raw[1] == 20 and raw[22] == OP_EQUAL

    def is_taproot_out(self) -> bool:
        # OP_SCRIPTTYPE OP_1 <33-byte commitment> [<32-byte state>]
        raw = self.raw
        if len(raw) < 36 or raw[0] != OP_SCRIPTTYPE or raw[1] != OP_1 or raw[2] != 33:
            return False
        if len(raw) == 36:
            return True
        return len(raw) == 69 and raw[36] == 32

    def is_address_out(self) -> bool:
        return self.is_public_key_hash_out() or self.is_script_hash_out() or self.is_taproot_out()

    def script_type(self) -> str:
        if self.is_public_key_hash_out():
            return SCRIPT_TYPE_P2PKH
        if self.is_script_hash_out():
            return SCRIPT_TYPE_P2SH
        if self.is_taproot_out():
            return SCRIPT_TYPE_P2TR
        return SCRIPT_TYPE_OTHER

    def payload(self) -> bytes:
        """Hash or commitment identifying the script on the indexer"""
        if self.is_public_key_hash_out():
            return self.raw[3:23]
        if self.is_script_hash_out():
            return self.raw[2:22]
        if self.is_taproot_out():
            return self.raw[3:36]
        return self.raw

    def to_address(self, prefix: str = XADDRESS_PREFIX, network_char: str = NETWORKS["mainnet"]) -> str:
        if not self.is_address_out():
            raise ScriptError("script is not an address output")
        return encode_xaddress(self.raw, prefix, network_char)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Script) and other.raw == self.raw

    def __hash__(self) -> int:
        return hash(self.raw)

    def __repr__(self) -> str:
        return f"Script({self.to_hex()!r})"


# ==================== XADDRESS ====================


def _checksum(prefix: str, network_char: str, type_byte: int, payload: bytes) -> bytes:
    digest = hashlib.sha256(
        (prefix + network_char).encode("ascii") + bytes([type_byte]) + payload
    ).digest()
    return digest[:CHECKSUM_SIZE]


def encode_xaddress(
    script_bytes: bytes,
    prefix: str = XADDRESS_PREFIX,
    network_char: str = NETWORKS["mainnet"],
) -> str:
    """Encode an output script as an XAddress"""
    type_byte = XADDRESS_TYPE_SCRIPT_PUBKEY
    body = bytes([type_byte]) + script_bytes + _checksum(prefix, network_char, type_byte, script_bytes)
    return f"{prefix}{network_char}{base58.b58encode(body).decode('ascii')}"


def decode_xaddress(address: str, prefix: str = XADDRESS_PREFIX) -> Tuple[str, int, bytes]:
    """
    Decode an XAddress

    Returns:
        (network_char, type_byte, script_bytes)

    Raises:
        XAddressError: wrong prefix, unknown network, bad encoding or checksum
    """
    if not address or not address.startswith(prefix) or len(address) <= len(prefix) + 1:
        raise XAddressError(f"address must start with {prefix!r}")

    network_char = address[len(prefix)]
    if network_char not in NETWORKS.values():
        raise XAddressError(f"unknown network {network_char!r}")

    try:
        body = base58.b58decode(address[len(prefix) + 1:])
    except ValueError as e:
        raise XAddressError(f"invalid base58 payload: {e}") from e

    if len(body) <= 1 + CHECKSUM_SIZE:
        raise XAddressError("address payload too short")

    type_byte = body[0]
    payload = body[1:-CHECKSUM_SIZE]
    if body[-CHECKSUM_SIZE:] != _checksum(prefix, network_char, type_byte, payload):
        raise XAddressError("checksum mismatch")
    if type_byte != XADDRESS_TYPE_SCRIPT_PUBKEY:
        raise XAddressError(f"unsupported address type {type_byte}")

    return network_char, type_byte, payload


def is_valid_address(address: str, prefix: str = XADDRESS_PREFIX) -> bool:
    """True for a well-formed XAddress locking to a P2PKH, P2SH or P2TR script"""
    try:
        return Script.from_address(address, prefix).is_address_out()
    except XAddressError as e:
        logger.debug(f"Rejected address {address!r}: {e}")
        return False
