"""
External IP geolocation lookups for network peers
"""

import logging
from typing import Optional

import requests

from cache import GeoRecord

logger = logging.getLogger(__name__)


class GeoIPClient:
    """Client for a `GET {url}/{ip}` geolocation service"""

    def __init__(self, url: str, timeout: int = 10):
        self.url = url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()

    def lookup(self, ip: str) -> Optional[GeoRecord]:
        """
        Geolocate a bare IP address

        Returns None when the service is unreachable or reports failure.
        """
        try:
            response = self.session.get(f"{self.url}/{ip}", timeout=self.timeout)
            body = response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.warning(f"GeoIP lookup failed for {ip}: {e}")
            return None

        if not isinstance(body, dict) or body.get("success") is not True:
            status = body.get("status") if isinstance(body, dict) else None
            logger.warning(f"GeoIP lookup unsuccessful for {ip}: {status}")
            return None

        data = body.get("data") or {}
        if not isinstance(data, dict):
            logger.warning(f"GeoIP lookup returned malformed data for {ip}: {data!r}")
            return None

        return GeoRecord(
            ip=ip,
            country=str(data.get("country", "")),
            city=str(data.get("city", "")),
        )

    def close(self) -> None:
        self.session.close()
