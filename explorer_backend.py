"""
Lotus Explorer Gateway - HTTP Backend
Read-only explorer API over a Lotus node and a Chronik indexer
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from flask import Blueprint, Flask, current_app, jsonify, request
from flask_cors import CORS
from flasgger import Swagger
from werkzeug.exceptions import HTTPException

from cache import build_geo_cache
from chronik_client import ChronikClient
from config import config
from enrichment import Enricher
from errors import ExplorerError
from explorer_service import ExplorerService
from geoip_client import GeoIPClient
from node_rpc_client import NodeRPCClient
from peers import PeerGeolocator
from rate_limiting import RateLimiter, create_rate_limit_middleware

# Configure logging
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL),
    format=config.LOG_FORMAT
)
logger = logging.getLogger(__name__)


# ==================== SWAGGER CONFIGURATION ====================

swagger_config = {
    "headers": [],
    "specs": [
        {
            "endpoint": "apispec",
            "route": "/apispec.json",
            "rule_filter": lambda rule: True,
            "model_filter": lambda tag: True,
        }
    ],
    "static_url_path": "/flasgger_static",
    "swagger_ui": True,
    "specs_route": "/api/docs"
}

swagger_template = {
    "info": {
        "title": "Lotus Explorer API",
        "description": "Read-only explorer API for the Lotus blockchain - blocks, transactions, addresses and network",
        "version": "1.0.0",
    },
    "basePath": "/",
    "schemes": ["https", "http"],
    "tags": [
        {"name": "Health", "description": "Health check endpoints"},
        {"name": "Network", "description": "Mining and peer endpoints"},
        {"name": "Blocks", "description": "Block data endpoints"},
        {"name": "Transactions", "description": "Transaction endpoints"},
        {"name": "Addresses", "description": "Address history endpoints"},
    ]
}


# ==================== EXPLORER ROUTES ====================

explorer = Blueprint("explorer", __name__)


def _service() -> ExplorerService:
    return current_app.extensions["explorer_service"]


@explorer.route("/", methods=["GET"], strict_slashes=False)
def mining_info_endpoint():
    """
    Get mining information from the node
    ---
    tags:
      - Network
    responses:
      200:
        description: Node mining info (blocks, difficulty, networkhashps, ...)
    """
    return jsonify(_service().get_mining_info())


@explorer.route("/overview", methods=["GET"])
def overview_endpoint():
    """
    Get network overview with geolocated public peers
    ---
    tags:
      - Network
    responses:
      200:
        description: Mining info and peers
        schema:
          type: object
          properties:
            miningInfo:
              type: object
            peerInfo:
              type: array
              items:
                type: object
                properties:
                  addr:
                    type: string
                    description: Peer IP address without port
                  geoip:
                    type: object
                    properties:
                      country:
                        type: string
                      city:
                        type: string
    """
    return jsonify(_service().get_overview())


@explorer.route("/chain-info", methods=["GET"])
def chain_info_endpoint():
    """
    Get indexer blockchain info
    ---
    tags:
      - Blocks
    responses:
      200:
        description: Tip hash and height
        schema:
          type: object
          properties:
            tipHash:
              type: string
            tipHeight:
              type: integer
    """
    return jsonify(_service().get_chain_info())


@explorer.route("/address/", defaults={"address": None}, methods=["GET"])
@explorer.route("/address/<address>", methods=["GET"])
def address_endpoint(address: Optional[str]):
    """
    Get paginated transaction history for an address
    ---
    tags:
      - Addresses
    parameters:
      - name: address
        in: path
        type: string
        required: true
        description: Lotus XAddress (lotus_...)
      - name: page
        in: query
        type: integer
        default: 1
        description: Page number, 1-indexed
      - name: pageSize
        in: query
        type: integer
        default: 10
        description: Transactions per page (max 40)
      - name: includeBalance
        in: query
        type: string
        description: Set to 1 to include the address balance
    responses:
      200:
        description: Address history page
        schema:
          type: object
          properties:
            scriptType:
              type: string
            scriptPayload:
              type: string
            balance:
              type: string
              description: Sum of unspent output values in sats
            lastSeen:
              type: string
            history:
              type: object
              properties:
                txs:
                  type: array
                  items:
                    type: object
                numPages:
                  type: integer
      400:
        description: Missing or invalid address
      404:
        description: History lookup failed
    """
    return jsonify(_service().get_address(
        address,
        page=request.args.get("page"),
        page_size=request.args.get("pageSize"),
        include_balance=request.args.get("includeBalance") == "1",
    ))


@explorer.route("/block/", defaults={"hash_or_height": None}, methods=["GET"])
@explorer.route("/block/<hash_or_height>", methods=["GET"])
def block_endpoint(hash_or_height: Optional[str]):
    """
    Get block by hash or height
    ---
    tags:
      - Blocks
    parameters:
      - name: hash_or_height
        in: path
        type: string
        required: true
        description: Block hash or height
    responses:
      200:
        description: Block with enriched transactions and miner address
        schema:
          type: object
          properties:
            blockInfo:
              type: object
            txs:
              type: array
              items:
                type: object
            minedBy:
              type: string
              description: Address paid by the coinbase (absent for genesis)
      400:
        description: Missing parameter
      404:
        description: Block not found
    """
    return jsonify(_service().get_block(hash_or_height))


@explorer.route("/blocks", methods=["GET"])
def blocks_endpoint():
    """
    Get a page of blocks, newest first
    ---
    tags:
      - Blocks
    parameters:
      - name: page
        in: query
        type: integer
        default: 1
      - name: pageSize
        in: query
        type: integer
        default: 10
        description: Blocks per page (max 40)
    responses:
      200:
        description: Blocks in descending height order
        schema:
          type: object
          properties:
            blocks:
              type: array
              items:
                type: object
            tipHeight:
              type: integer
    """
    return jsonify(_service().get_blocks(
        page=request.args.get("page"),
        page_size=request.args.get("pageSize"),
    ))


@explorer.route("/tx/<txid>", methods=["GET"])
def transaction_endpoint(txid: str):
    """
    Get transaction by id
    ---
    tags:
      - Transactions
    parameters:
      - name: txid
        in: path
        type: string
        required: true
      - name: raw
        in: query
        type: string
        description: Set to 1 for the node's raw transaction
    responses:
      200:
        description: Enriched transaction, or the raw node transaction
        schema:
          type: object
          properties:
            txid:
              type: string
            inputs:
              type: array
              items:
                type: object
            outputs:
              type: array
              items:
                type: object
            confirmations:
              type: integer
            sumBurnedSats:
              type: string
      404:
        description: Transaction not found
    """
    if request.args.get("raw") == "1":
        return jsonify(_service().get_raw_transaction(txid))
    return jsonify(_service().get_transaction(txid))


# ==================== ERROR HANDLING ====================

def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ExplorerError)
    def handle_explorer_error(e: ExplorerError):
        if e.status_code >= 500:
            logger.error(f"{request.method} {request.path} failed: {e.message}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(e: HTTPException):
        return jsonify({"error": e.description}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(e: Exception):
        logger.exception(f"{request.method} {request.path} failed: {e}")
        return jsonify({"error": str(e)}), 500


# ==================== APP FACTORY ====================

def create_app(
    app_config=None,
    rpc_client: Optional[NodeRPCClient] = None,
    indexer: Optional[ChronikClient] = None,
    geoip_client: Optional[GeoIPClient] = None,
    geo_cache=None,
) -> Flask:
    """Build the explorer app; upstream clients default to the configured ones"""
    app_config = app_config or config

    rpc_client = rpc_client or NodeRPCClient(
        app_config.rpc_url(),
        app_config.JSONRPC_USERNAME,
        app_config.JSONRPC_PASSWORD,
        timeout=app_config.UPSTREAM_TIMEOUT,
        retry_count=app_config.UPSTREAM_RETRY_COUNT,
    )
    indexer = indexer or ChronikClient(
        app_config.CHRONIK_URL,
        timeout=app_config.UPSTREAM_TIMEOUT,
        retry_count=app_config.UPSTREAM_RETRY_COUNT,
    )
    geoip_client = geoip_client or GeoIPClient(app_config.GEOIP_URL, timeout=app_config.UPSTREAM_TIMEOUT)
    if geo_cache is None:
        geo_cache = build_geo_cache(app_config.GEOIP_CACHE_REDIS_URL)

    app = Flask(__name__)
    app.json.sort_keys = False
    CORS(app, origins=app_config.CORS_ORIGINS)
    Swagger(app, config=swagger_config, template=swagger_template)

    app.extensions["geo_cache"] = geo_cache
    app.extensions["explorer_service"] = ExplorerService(
        rpc=rpc_client,
        indexer=indexer,
        geolocator=PeerGeolocator(geoip_client, geo_cache),
        enricher=Enricher(app_config.XADDRESS_PREFIX, app_config.network_char()),
        default_page_size=app_config.DEFAULT_PAGE_SIZE,
        max_page_size=app_config.MAX_PAGE_SIZE,
        address_prefix=app_config.XADDRESS_PREFIX,
    )

    if app_config.RATE_LIMIT_ENABLED:
        create_rate_limit_middleware(
            app,
            RateLimiter(
                max_requests=app_config.RATE_LIMIT_MAX_REQUESTS,
                window_seconds=app_config.RATE_LIMIT_WINDOW_MINUTES * 60,
            ),
        )

    app.register_blueprint(explorer, url_prefix=f"{app_config.API_BASE_PATH}/explorer")
    register_error_handlers(app)

    @app.route("/health", methods=["GET"])
    def health_check():
        """
        Health check
        ---
        tags:
          - Health
        responses:
          200:
            description: Process is serving requests
        """
        return jsonify({"status": "healthy", "timestamp": time.time()})

    return app


app = create_app()


if __name__ == "__main__":
    logger.info("Starting Lotus Explorer Gateway")
    logger.info(f"Node RPC URL: {config.rpc_url()}")
    logger.info(f"Chronik URL: {config.CHRONIK_URL}")
    logger.info(f"Listening on {config.API_LISTEN_ADDRESS}:{config.API_LISTEN_PORT}")

    app.run(
        host=config.API_LISTEN_ADDRESS,
        port=config.API_LISTEN_PORT,
        debug=config.DEBUG,
        threaded=True
    )
