"""
Chronik indexer client
Historical block, transaction and script queries for the explorer
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Union

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from errors import UpstreamError

logger = logging.getLogger(__name__)


class ChronikError(UpstreamError):
    """Indexer request failed; message is the indexer's own"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.http_status = status_code


class ScriptEndpoint:
    """Queries scoped to one output script"""

    def __init__(self, client: "ChronikClient", script_type: str, script_payload: str):
        self.client = client
        self.script_type = script_type
        self.script_payload = script_payload

    @property
    def path(self) -> str:
        return f"script/{self.script_type}/{self.script_payload}"

    def history(self, page: int = 0, page_size: int = 25) -> Dict[str, Any]:
        """
        Get a page of transaction history, newest first

        Args:
            page: 0-indexed page number
            page_size: Transactions per page
        """
        return self.client._get(
            f"{self.path}/history", {"page": str(page), "page_size": str(page_size)}
        )

    def utxos(self) -> List[Dict[str, Any]]:
        """Get unspent outputs grouped by output script"""
        data = self.client._get(f"{self.path}/utxos")
        return data.get("scriptUtxos", [])


class ChronikClient:
    """
    Chronik indexer client
    Uses the JSON rendition of the Chronik REST endpoints
    """

    def __init__(self, url: str, timeout: int = 10, retry_count: int = 3):
        """
        Initialize Chronik client

        Args:
            url: Chronik endpoint (e.g., https://chronik.lotusia.org)
            timeout: Request timeout in seconds
            retry_count: Number of retries for failed requests
        """
        self.url = url.rstrip("/")
        self.timeout = timeout

        self.session = requests.Session()
        self.session.headers.update({"Accept": "application/json"})
        retry = Retry(
            total=retry_count, backoff_factor=0.5, status_forcelist=[502, 503, 504]
        )
        adapter = HTTPAdapter(max_retries=retry)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def _get(self, endpoint: str, params: Optional[Dict] = None) -> Any:
        """Make GET request with error handling"""
        url = f"{self.url}/{endpoint}"
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f"Request failed: {url} - {e}")
            raise ChronikError(str(e)) from e

        if response.status_code >= 400:
            message = self._error_message(response)
            logger.warning(f"Chronik error: {url} - HTTP {response.status_code} {message}")
            raise ChronikError(message, response.status_code)

        try:
            return response.json()
        except ValueError as e:
            logger.error(f"Chronik returned non-JSON response: {url}")
            raise ChronikError(f"invalid response from indexer: {e}") from e

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text.strip() or f"HTTP {response.status_code}"
        if isinstance(body, dict):
            return str(body.get("msg") or body.get("error") or body.get("message") or body)
        return str(body)

    # ==================== BLOCKCHAIN ====================

    def blockchain_info(self) -> Dict[str, Any]:
        """Get tip hash and height"""
        return self._get("blockchain-info")

    def block(self, hash_or_height: Union[str, int]) -> Dict[str, Any]:
        """Get block with its transactions"""
        return self._get(f"block/{hash_or_height}")

    def blocks(self, start_height: int, end_height: int) -> List[Dict[str, Any]]:
        """Get block infos for an inclusive height range, ascending"""
        data = self._get(f"blocks/{start_height}/{end_height}")
        if isinstance(data, dict):
            return data.get("blocks", [])
        return data

    # ==================== TRANSACTIONS ====================

    def tx(self, txid: str) -> Dict[str, Any]:
        """Get transaction by id"""
        return self._get(f"tx/{txid}")

    # ==================== SCRIPTS ====================

    def script(self, script_type: str, script_payload: str) -> ScriptEndpoint:
        return ScriptEndpoint(self, script_type, script_payload)

    def close(self) -> None:
        self.session.close()
