"""
Shared fixtures for the explorer gateway tests
"""

import os

os.environ.setdefault("EXPLORER_ENV", "test")

from unittest.mock import Mock

import pytest

from cache import GeoRecord, MemoryGeoCache
from config import TestConfig
from explorer_backend import create_app
from lotus_script import Script


# Output scripts used across test modules
P2PKH_SCRIPT = "76a914" + "11" * 20 + "88ac"
P2SH_SCRIPT = "a914" + "22" * 20 + "87"
P2TR_SCRIPT = "6251" + "21" + "02" + "33" * 32
DATA_SCRIPT = "6a04deadbeef"
NONSTANDARD_SCRIPT = "51"

# OP_RETURN "RANK" OP_1 <0x01 twitter> <16-byte "elonmusk"> <uint64 1234567890>
TWITTER_PROFILE = "00" * 8 + "elonmusk".encode().hex()
RANK_SCRIPT = "6a" + "0452414e4b" + "51" + "0101" + "10" + TWITTER_PROFILE + "08" + "00000000499602d2"


def address_of(script_hex: str) -> str:
    return Script.from_hex(script_hex).to_address()


@pytest.fixture
def rpc():
    """Mocked node RPC client"""
    rpc = Mock()
    rpc.get_mining_info.return_value = {"blocks": 1000, "difficulty": 12.5, "networkhashps": 1e9}
    rpc.get_peer_info.return_value = []
    rpc.get_block_count.return_value = 1000
    return rpc


@pytest.fixture
def script_endpoint():
    endpoint = Mock()
    endpoint.history.return_value = {"txs": [], "numPages": 0}
    endpoint.utxos.return_value = []
    return endpoint


@pytest.fixture
def indexer(script_endpoint):
    """Mocked Chronik client"""
    indexer = Mock()
    indexer.blockchain_info.return_value = {"tipHash": "ab" * 32, "tipHeight": 1000}
    indexer.script.return_value = script_endpoint
    indexer.blocks.return_value = []
    return indexer


@pytest.fixture
def geoip():
    geoip = Mock()
    geoip.lookup.side_effect = lambda ip: GeoRecord(ip=ip, country="Germany", city="Berlin")
    return geoip


@pytest.fixture
def geo_cache():
    return MemoryGeoCache()


@pytest.fixture
def app(rpc, indexer, geoip, geo_cache):
    app = create_app(TestConfig, rpc_client=rpc, indexer=indexer, geoip_client=geoip, geo_cache=geo_cache)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    with app.test_client() as c:
        yield c
