"""
Lotus node JSON-RPC client
Queries live chain and network state from lotusd
"""

from __future__ import annotations

import logging
from itertools import count
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from errors import UpstreamError

logger = logging.getLogger(__name__)


class NodeRPCError(UpstreamError):
    """JSON-RPC call failed or returned an error object"""

    def __init__(self, method: str, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.method = method
        self.code = code


class NodeRPCClient:
    """
    JSON-RPC client for a Lotus node
    Supports the read-only calls the explorer needs
    """

    def __init__(
        self,
        url: str,
        user: str,
        password: str,
        timeout: int = 10,
        retry_count: int = 3,
    ):
        """
        Initialize node RPC client

        Args:
            url: JSON-RPC endpoint (e.g., http://127.0.0.1:10604)
            user: RPC username
            password: RPC password
            timeout: Request timeout in seconds
            retry_count: Number of retries for failed requests
        """
        self.url = url.rstrip("/")
        self.timeout = timeout
        self._ids = count(1)

        # Configure session with retry logic
        self.session = requests.Session()
        self.session.auth = (user, password)
        retry = Retry(
            total=retry_count,
            backoff_factor=0.5,
            status_forcelist=[502, 503, 504],
            allowed_methods=None,
        )
        adapter = HTTPAdapter(max_retries=retry)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def _call(self, method: str, *params: Any) -> Any:
        """Make JSON-RPC call with error handling"""
        payload = {
            "jsonrpc": "1.0",
            "id": next(self._ids),
            "method": method,
            "params": list(params),
        }
        try:
            response = self.session.post(self.url, json=payload, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f"RPC request failed: {method} - {e}")
            raise NodeRPCError(method, str(e)) from e

        # lotusd reports RPC errors with HTTP 404/500 and a JSON body
        try:
            body = response.json()
        except ValueError:
            logger.error(f"RPC returned non-JSON response: {method} - HTTP {response.status_code}")
            raise NodeRPCError(method, f"HTTP {response.status_code}")

        error = body.get("error")
        if error:
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            code = error.get("code") if isinstance(error, dict) else None
            logger.error(f"RPC error: {method} - {message}")
            raise NodeRPCError(method, message, code)

        return body.get("result")

    # ==================== MINING ====================

    def get_mining_info(self) -> Dict[str, Any]:
        """Get mining-related information"""
        return self._call("getmininginfo")

    # ==================== NETWORK ====================

    def get_peer_info(self) -> List[Dict[str, Any]]:
        """Get data about each connected peer"""
        return self._call("getpeerinfo") or []

    # ==================== BLOCKCHAIN ====================

    def get_block_count(self) -> int:
        """Get height of the most-work chain"""
        return int(self._call("getblockcount"))

    def get_raw_transaction(self, txid: str, verbose: bool = True) -> Any:
        """Get raw transaction, decoded when verbose"""
        return self._call("getrawtransaction", txid, verbose)

    def close(self) -> None:
        self.session.close()
