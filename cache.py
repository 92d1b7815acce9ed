"""
Geolocation cache for network peers
Process-lifetime, write-once store with in-memory and Redis backends
"""

import json
import logging
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

import redis

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeoRecord:
    """Geolocation of a bare IP address"""

    ip: str
    country: str
    city: str

    def location(self) -> Dict[str, str]:
        """Location fields exposed on a peer"""
        return {"country": self.country, "city": self.city}

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GeoRecord":
        return cls(
            ip=str(data["ip"]),
            country=str(data.get("country", "")),
            city=str(data.get("city", "")),
        )


class MemoryGeoCache:
    """
    In-memory geolocation cache

    Entries are never evicted or overwritten: the first record stored
    for an IP is kept for the life of the process.
    """

    def __init__(self):
        self.cache: Dict[str, GeoRecord] = {}
        self.stats = {"hits": 0, "misses": 0}

    def get(self, ip: str) -> Optional[GeoRecord]:
        """Get cached record for a bare IP"""
        record = self.cache.get(ip)
        if record is None:
            self.stats["misses"] += 1
        else:
            self.stats["hits"] += 1
        return record

    def add(self, record: GeoRecord) -> GeoRecord:
        """Store record unless one exists; returns the stored record"""
        # setdefault is a single atomic insert under concurrent writers
        return self.cache.setdefault(record.ip, record)

    def __contains__(self, ip: str) -> bool:
        return ip in self.cache

    def __len__(self) -> int:
        return len(self.cache)

    def get_stats(self) -> dict:
        """Get cache statistics"""
        return {
            "mode": "memory",
            "size": len(self.cache),
            "hits": self.stats["hits"],
            "misses": self.stats["misses"],
        }


class RedisGeoCache:
    """Redis-backed geolocation cache shared between worker processes"""

    def __init__(
        self,
        redis_url: str,
        fallback_cache: Optional[MemoryGeoCache] = None,
        key_prefix: str = "explorer:geoip:",
    ):
        """
        Initialize Redis cache with an in-memory fallback

        Args:
            redis_url: Redis connection URL
            fallback_cache: Local copy of stored records; serves alone while
                Redis is unreachable
            key_prefix: Prefix for all cache keys to avoid collisions
        """
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self.fallback_cache = fallback_cache or MemoryGeoCache()
        self.fallback_mode = False
        self.client: Optional[redis.Redis] = None

        try:
            self.client = redis.from_url(
                self.redis_url,
                decode_responses=True,
                socket_connect_timeout=2,
                socket_timeout=2,
            )
            self.client.ping()
            logger.info(f"Redis geo cache initialized: {self.redis_url}")
        except redis.RedisError as e:
            logger.warning(f"Redis connection failed ({e}), using in-memory geo cache")
            self.fallback_mode = True
            self.client = None

    def _get_key(self, ip: str) -> str:
        """Add prefix to cache key"""
        return f"{self.key_prefix}{ip}"

    def _switch_to_fallback(self, error: Exception) -> None:
        if not self.fallback_mode:
            logger.warning(f"Redis geo cache error ({error}), switching to in-memory geo cache")
        self.fallback_mode = True

    def get(self, ip: str) -> Optional[GeoRecord]:
        """Get cached record, from the local copy first and then Redis"""
        record = self.fallback_cache.get(ip)
        if record is not None or self.fallback_mode or self.client is None:
            return record

        key = self._get_key(ip)
        try:
            value = self.client.get(key)
        except redis.RedisError as e:
            self._switch_to_fallback(e)
            return None

        if not value:
            return None

        record = self._decode(ip, value)
        if record is None:
            self._discard(key)
            return None
        return self.fallback_cache.add(record)

    def add(self, record: GeoRecord) -> GeoRecord:
        """Store record unless one exists (SET NX); returns the stored record"""
        if self.fallback_mode or self.client is None:
            return self.fallback_cache.add(record)

        key = self._get_key(record.ip)
        value = json.dumps(record.to_dict())
        try:
            if not self.client.set(key, value, nx=True):
                stored = self._decode(record.ip, self.client.get(key))
                if stored is not None:
                    return self.fallback_cache.add(stored)
                # Unreadable entries are replaced
                self.client.set(key, value)
        except redis.RedisError as e:
            self._switch_to_fallback(e)
        return self.fallback_cache.add(record)

    @staticmethod
    def _decode(ip: str, value: Optional[str]) -> Optional[GeoRecord]:
        if not value:
            return None
        try:
            return GeoRecord.from_dict(json.loads(value))
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Corrupt geo cache entry for {ip}: {e}")
            return None

    def _discard(self, key: str) -> None:
        try:
            self.client.delete(key)
        except redis.RedisError as e:
            self._switch_to_fallback(e)

    def get_stats(self) -> dict:
        """Get cache statistics"""
        if self.fallback_mode or self.client is None:
            stats = self.fallback_cache.get_stats()
            stats["mode"] = "fallback"
            return stats

        try:
            key_count = sum(1 for _ in self.client.scan_iter(match=f"{self.key_prefix}*"))
            return {"mode": "redis", "size": key_count}
        except redis.RedisError as e:
            return {"mode": "redis", "error": str(e)}

    def close(self) -> None:
        """Close Redis connection"""
        if self.client:
            try:
                self.client.close()
                logger.info("Redis connection closed")
            except redis.RedisError as e:
                logger.error(f"Error closing Redis connection: {e}")


def build_geo_cache(redis_url: str = ""):
    """Create the configured geo cache backend"""
    if redis_url:
        return RedisGeoCache(redis_url)
    return MemoryGeoCache()
