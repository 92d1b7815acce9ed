"""
Explorer API integration tests
Routes exercised through the Flask test client with mocked upstreams
"""

import json

import pytest

from cache import GeoRecord
from chronik_client import ChronikError
from conftest import DATA_SCRIPT, P2PKH_SCRIPT, P2SH_SCRIPT, RANK_SCRIPT, address_of
from node_rpc_client import NodeRPCError

BASE = "/api/v1/explorer"


def body(resp):
    return json.loads(resp.data.decode())


def make_tx(txid="aa" * 32, outputs=None, inputs=None, block_height=None):
    tx = {
        "txid": txid,
        "version": 2,
        "inputs": inputs or [],
        "outputs": outputs or [],
        "lockTime": 0,
        "timeFirstSeen": "1700000000",
        "isCoinbase": False,
    }
    if block_height is not None:
        tx["block"] = {"height": block_height, "hash": "bb" * 32, "timestamp": "1700000500"}
    return tx


def make_block(height, txs):
    return {
        "blockInfo": {"hash": "cc" * 32, "prevHash": "dd" * 32, "height": height, "timestamp": "1700000500"},
        "txs": txs,
    }


class TestConfiguration:
    """Test configuration loading"""

    def test_config_import(self):
        from config import config

        assert config.CHRONIK_URL
        assert config.DEFAULT_PAGE_SIZE == 10
        assert config.MAX_PAGE_SIZE == 40

    def test_config_validation(self):
        from config import TestConfig

        TestConfig.validate()

    def test_invalid_network_rejected(self):
        from config import TestConfig

        class BadConfig(TestConfig):
            XADDRESS_NETWORK = "moonnet"

        with pytest.raises(ValueError, match="XADDRESS_NETWORK"):
            BadConfig.validate()

    def test_invalid_port_rejected(self):
        from config import TestConfig

        class BadConfig(TestConfig):
            API_LISTEN_PORT = 70000

        with pytest.raises(ValueError, match="API_LISTEN_PORT"):
            BadConfig.validate()


class TestNetworkEndpoints:

    def test_mining_info(self, client, rpc):
        resp = client.get(f"{BASE}/")
        assert resp.status_code == 200
        assert body(resp) == rpc.get_mining_info.return_value

    def test_overview_filters_private_peers(self, client, rpc, geoip):
        rpc.get_peer_info.return_value = [
            {"addr": "192.168.1.5:1234", "id": 1},
            {"addr": "::1", "id": 2},
            {"addr": "[fe80::1]:10605", "id": 3},
            {"addr": "8.8.8.8:10605", "id": 4, "subver": "/lotus:4.0.0/"},
        ]

        resp = client.get(f"{BASE}/overview")
        assert resp.status_code == 200
        data = body(resp)

        assert data["miningInfo"] == rpc.get_mining_info.return_value
        assert data["peerInfo"] == [
            {
                "addr": "8.8.8.8",
                "id": 4,
                "subver": "/lotus:4.0.0/",
                "geoip": {"country": "Germany", "city": "Berlin"},
            }
        ]
        geoip.lookup.assert_called_once_with("8.8.8.8")

    def test_overview_filters_private_peers_with_cached_location(self, client, rpc, geoip, geo_cache):
        geo_cache.add(GeoRecord(ip="192.168.1.5", country="Germany", city="Berlin"))
        geo_cache.add(GeoRecord(ip="::1", country="Germany", city="Berlin"))
        rpc.get_peer_info.return_value = [{"addr": "192.168.1.5:1234"}, {"addr": "::1"}]

        resp = client.get(f"{BASE}/overview")
        assert resp.status_code == 200
        assert body(resp)["peerInfo"] == []
        geoip.lookup.assert_not_called()

    def test_overview_uses_geo_cache_on_second_call(self, client, rpc, geoip, geo_cache):
        rpc.get_peer_info.return_value = [{"addr": "1.2.3.4:10605"}]

        client.get(f"{BASE}/overview")
        client.get(f"{BASE}/overview")

        assert geoip.lookup.call_count == 1
        assert "1.2.3.4" in geo_cache

    def test_overview_omits_peer_when_lookup_fails(self, client, rpc, geoip):
        rpc.get_peer_info.return_value = [{"addr": "1.2.3.4:10605"}, {"addr": "5.6.7.8:10605"}]
        geoip.lookup.side_effect = None
        geoip.lookup.return_value = None

        resp = client.get(f"{BASE}/overview")
        assert resp.status_code == 200
        assert body(resp)["peerInfo"] == []

    def test_chain_info(self, client, indexer):
        resp = client.get(f"{BASE}/chain-info")
        assert resp.status_code == 200
        assert body(resp) == {"tipHash": "ab" * 32, "tipHeight": 1000}


class TestAddressEndpoint:

    @pytest.fixture
    def address(self):
        return address_of(P2PKH_SCRIPT)

    def test_history_page(self, client, indexer, script_endpoint, address):
        tx = make_tx(outputs=[
            {"value": "100", "outputScript": DATA_SCRIPT},
            {"value": "500", "outputScript": P2PKH_SCRIPT},
        ], block_height=990)
        script_endpoint.history.return_value = {"txs": [tx], "numPages": 3}

        resp = client.get(f"{BASE}/address/{address}")
        assert resp.status_code == 200
        data = body(resp)

        indexer.script.assert_called_once_with("p2pkh", "11" * 20)
        script_endpoint.history.assert_called_once_with(0, 10)
        assert data["scriptType"] == "p2pkh"
        assert data["scriptPayload"] == "11" * 20
        assert data["lastSeen"] == "1700000500"
        assert data["history"]["numPages"] == 3
        assert data["history"]["txs"][0]["sumBurnedSats"] == "100"
        assert "balance" not in data

    def test_page_translation_and_clamp(self, client, script_endpoint, address):
        client.get(f"{BASE}/address/{address}?page=3&pageSize=100")
        script_endpoint.history.assert_called_once_with(2, 40)

    @pytest.mark.parametrize("page", ["0", "-4", "abc"])
    def test_non_positive_page_offsets_to_zero(self, client, script_endpoint, address, page):
        client.get(f"{BASE}/address/{address}?page={page}")
        script_endpoint.history.assert_called_once_with(0, 10)

    def test_last_seen_falls_back_to_first_seen(self, client, script_endpoint, address):
        script_endpoint.history.return_value = {"txs": [make_tx()], "numPages": 1}

        data = body(client.get(f"{BASE}/address/{address}"))
        assert data["lastSeen"] == "1700000000"

    def test_last_seen_empty_history(self, client, address):
        data = body(client.get(f"{BASE}/address/{address}"))
        assert data["lastSeen"] is None
        assert data["history"] == {"txs": [], "numPages": 0}

    def test_include_balance(self, client, script_endpoint, address):
        script_endpoint.utxos.return_value = [
            {"outputScript": P2PKH_SCRIPT, "utxos": [{"value": "100"}, {"value": "250"}]},
            {"outputScript": P2PKH_SCRIPT, "utxos": [{"value": "999"}]},
        ]

        data = body(client.get(f"{BASE}/address/{address}?includeBalance=1"))
        assert data["balance"] == "350"

    def test_balance_only_when_requested_with_1(self, client, script_endpoint, address):
        client.get(f"{BASE}/address/{address}?includeBalance=true")
        script_endpoint.utxos.assert_not_called()

    def test_p2sh_address(self, client, indexer):
        client.get(f"{BASE}/address/{address_of(P2SH_SCRIPT)}")
        indexer.script.assert_called_once_with("p2sh", "22" * 20)

    def test_invalid_address(self, client, indexer):
        resp = client.get(f"{BASE}/address/not-an-address")
        assert resp.status_code == 400
        assert body(resp) == {"error": "invalid address"}
        indexer.script.assert_not_called()

    def test_missing_address(self, client, indexer):
        resp = client.get(f"{BASE}/address/")
        assert resp.status_code == 400
        assert body(resp) == {"error": "address is required"}
        indexer.script.assert_not_called()

    def test_history_lookup_failure(self, client, script_endpoint, address):
        script_endpoint.history.side_effect = ChronikError("Script not found", 404)

        resp = client.get(f"{BASE}/address/{address}")
        assert resp.status_code == 404
        assert body(resp) == {"error": "Script not found"}


class TestBlockEndpoint:

    def test_genesis_returned_unmodified(self, client, indexer):
        genesis = make_block(0, [make_tx(outputs=[{"value": "0", "outputScript": DATA_SCRIPT}])])
        indexer.block.return_value = genesis

        resp = client.get(f"{BASE}/block/0")
        assert resp.status_code == 200
        data = body(resp)
        assert "minedBy" not in data
        assert data == genesis

    def test_block_enriched_with_miner(self, client, indexer):
        coinbase = make_tx(outputs=[
            {"value": "0", "outputScript": DATA_SCRIPT},
            {"value": "260000000", "outputScript": P2PKH_SCRIPT},
        ])
        spend = make_tx(txid="ee" * 32, outputs=[
            {"value": "1000", "outputScript": RANK_SCRIPT},
            {"value": "5000", "outputScript": P2SH_SCRIPT},
        ], inputs=[{"prevOut": {"txid": "ff" * 32, "outIdx": 0}, "outputScript": P2PKH_SCRIPT, "value": "6500"}])
        indexer.block.return_value = make_block(500, [coinbase, spend])

        resp = client.get(f"{BASE}/block/500")
        assert resp.status_code == 200
        data = body(resp)

        indexer.block.assert_called_once_with("500")
        assert data["minedBy"] == address_of(P2PKH_SCRIPT)
        assert data["txs"][0]["sumBurnedSats"] == "0"
        assert data["txs"][1]["sumBurnedSats"] == "1000"
        assert data["txs"][1]["outputs"][0]["specialPayload"]["sentiment"] == "positive"
        assert data["txs"][1]["outputs"][1]["address"] == address_of(P2SH_SCRIPT)
        assert data["txs"][1]["inputs"][0]["address"] == address_of(P2PKH_SCRIPT)

    def test_block_not_found(self, client, indexer):
        indexer.block.side_effect = ChronikError("Block not found: deadbeef", 404)

        resp = client.get(f"{BASE}/block/deadbeef")
        assert resp.status_code == 404
        assert body(resp) == {"error": "Block not found: deadbeef"}

    def test_empty_block_response(self, client, indexer):
        indexer.block.return_value = None

        resp = client.get(f"{BASE}/block/12")
        assert resp.status_code == 404
        assert body(resp) == {"error": "block not found"}

    def test_missing_param(self, client, indexer):
        resp = client.get(f"{BASE}/block/")
        assert resp.status_code == 400
        assert body(resp) == {"error": "hashOrHeight is required"}
        indexer.block.assert_not_called()

    def test_malformed_coinbase_fails_request(self, client, indexer):
        coinbase = make_tx(outputs=[{"value": "260000000", "outputScript": P2PKH_SCRIPT}])
        indexer.block.return_value = make_block(7, [coinbase])

        resp = client.get(f"{BASE}/block/7")
        assert resp.status_code == 500
        assert "coinbase" in body(resp)["error"]


class TestBlocksEndpoint:

    def test_page_size_clamped(self, client, indexer):
        indexer.blocks.return_value = [{"height": h, "hash": f"{h:064x}"} for h in range(961, 1001)]

        resp = client.get(f"{BASE}/blocks?page=1&pageSize=100")
        assert resp.status_code == 200
        data = body(resp)

        indexer.blocks.assert_called_once_with(961, 1000)
        assert len(data["blocks"]) == 40
        assert data["blocks"][0]["height"] == 1000
        assert data["blocks"][-1]["height"] == 961
        assert data["tipHeight"] == 1000

    def test_defaults(self, client, indexer):
        client.get(f"{BASE}/blocks")
        indexer.blocks.assert_called_once_with(991, 1000)

    def test_last_page_stops_above_genesis(self, client, indexer):
        indexer.blockchain_info.return_value = {"tipHash": "ab" * 32, "tipHeight": 25}

        client.get(f"{BASE}/blocks?page=3&pageSize=10")
        indexer.blocks.assert_called_once_with(1, 5)

    def test_page_past_genesis_is_empty(self, client, indexer):
        resp = client.get(f"{BASE}/blocks?page=30&pageSize=40")
        assert resp.status_code == 200
        assert body(resp) == {"blocks": [], "tipHeight": 1000}
        indexer.blocks.assert_not_called()


class TestTransactionEndpoint:

    def test_raw_transaction(self, client, rpc, indexer):
        rpc.get_raw_transaction.return_value = {"txid": "aa" * 32, "hex": "0200"}

        resp = client.get(f"{BASE}/tx/{'aa' * 32}?raw=1")
        assert resp.status_code == 200
        assert body(resp) == {"txid": "aa" * 32, "hex": "0200"}
        indexer.tx.assert_not_called()

    def test_raw_transaction_not_found(self, client, rpc):
        rpc.get_raw_transaction.side_effect = NodeRPCError(
            "getrawtransaction", "No such mempool or blockchain transaction", -5
        )

        resp = client.get(f"{BASE}/tx/{'aa' * 32}?raw=1")
        assert resp.status_code == 404
        assert body(resp)["txid"] == "aa" * 32

    def test_enriched_transaction(self, client, indexer):
        indexer.tx.return_value = make_tx(outputs=[
            {"value": "100", "outputScript": DATA_SCRIPT},
            {"value": "500", "outputScript": P2PKH_SCRIPT},
        ], inputs=[{"prevOut": {"txid": "ff" * 32, "outIdx": 1}, "outputScript": "51", "value": "700"}],
            block_height=990)

        resp = client.get(f"{BASE}/tx/{'aa' * 32}")
        assert resp.status_code == 200
        data = body(resp)

        assert data["confirmations"] == 11
        assert data["sumBurnedSats"] == "100"
        assert "address" not in data["outputs"][0]
        assert "specialPayload" not in data["outputs"][0]
        assert data["outputs"][1]["address"] == address_of(P2PKH_SCRIPT)
        assert data["inputs"][0]["address"] is None

    def test_unconfirmed_transaction(self, client, indexer):
        indexer.tx.return_value = make_tx()

        data = body(client.get(f"{BASE}/tx/{'aa' * 32}"))
        assert data["confirmations"] == 0
        assert data["sumBurnedSats"] == "0"

    def test_transaction_not_found(self, client, indexer):
        indexer.tx.side_effect = ChronikError("Transaction not found in the index", 404)

        resp = client.get(f"{BASE}/tx/{'aa' * 32}")
        assert resp.status_code == 404
        assert body(resp) == {"error": "transaction not found", "txid": "aa" * 32}


class TestAppErrors:

    def test_health_endpoint(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert body(resp)["status"] == "healthy"

    def test_unknown_route(self, client):
        resp = client.get(f"{BASE}/nothing-here")
        assert resp.status_code == 404
        assert "error" in body(resp)

    def test_upstream_failure_is_json(self, client, rpc):
        rpc.get_mining_info.side_effect = NodeRPCError("getmininginfo", "connection refused")

        resp = client.get(f"{BASE}/")
        assert resp.status_code == 502
        assert body(resp) == {"error": "connection refused"}

    def test_unexpected_failure_is_json(self, client, indexer):
        indexer.blockchain_info.side_effect = RuntimeError("boom")

        resp = client.get(f"{BASE}/chain-info")
        assert resp.status_code == 500
        assert body(resp) == {"error": "boom"}
