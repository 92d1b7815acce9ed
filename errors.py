"""
Error taxonomy for the explorer gateway
Each error carries the HTTP status it is reported with
"""

from typing import Any, Dict, Optional


class ExplorerError(Exception):
    """Base error; rendered as {"error": message, **payload}"""

    status_code = 500

    def __init__(self, message: str, payload: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.payload = payload or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, **self.payload}


class ValidationError(ExplorerError):
    """Missing or malformed request parameter"""

    status_code = 400


class NotFoundError(ExplorerError):
    """Upstream lookup failed or returned nothing"""

    status_code = 404


class DataIntegrityError(ExplorerError):
    """Upstream data does not have the structure the chain guarantees"""

    status_code = 500


class UpstreamError(ExplorerError):
    """Node RPC or indexer failure that no handler mapped"""

    status_code = 502
