"""
Rate limiting middleware for the explorer API
Per-client sliding window, applied to every route except health checks
"""

import logging
import threading
import time
from collections import deque
from typing import Deque, Dict, Optional, Tuple

from flask import Flask, jsonify, request

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "401 Too many requests, please try again later."
EXEMPT_PATHS = {"/health"}


class RateLimiter:
    """Sliding-window request limiter keyed by client id"""

    def __init__(self, max_requests: int, window_seconds: int):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.requests: Dict[str, Deque[float]] = {}
        self.last_sweep = 0.0
        self.lock = threading.Lock()

        # Statistics
        self.stats = {"total_requests": 0, "blocked_requests": 0}

    def check_rate_limit(
        self, client_id: str, now: Optional[float] = None
    ) -> Tuple[bool, Dict]:
        """
        Check if request is within rate limit
        Returns (allowed, info)
        """
        current_time = time.time() if now is None else now
        window_start = current_time - self.window_seconds

        with self.lock:
            self.stats["total_requests"] += 1
            if current_time - self.last_sweep >= self.window_seconds:
                self._evict_idle(window_start)
                self.last_sweep = current_time

            timestamps = self.requests.setdefault(client_id, deque())

            # Remove old requests outside the window
            while timestamps and timestamps[0] <= window_start:
                timestamps.popleft()

            if len(timestamps) >= self.max_requests:
                self.stats["blocked_requests"] += 1
                retry_after = max(int(timestamps[0] + self.window_seconds - current_time), 1)
                return False, {
                    "limit": self.max_requests,
                    "remaining": 0,
                    "reset": retry_after,
                    "retry_after": retry_after,
                }

            timestamps.append(current_time)
            return True, {
                "limit": self.max_requests,
                "remaining": self.max_requests - len(timestamps),
                "reset": max(int(timestamps[0] + self.window_seconds - current_time), 0),
            }

    def _evict_idle(self, window_start: float) -> None:
        """Drop clients with no request inside the window"""
        idle = [cid for cid, ts in self.requests.items() if not ts or ts[-1] <= window_start]
        for cid in idle:
            del self.requests[cid]

    def reset_client(self, client_id: str) -> None:
        """Reset rate limit state for a client"""
        with self.lock:
            self.requests.pop(client_id, None)

    def get_stats(self) -> Dict:
        """Get rate limiter statistics"""
        with self.lock:
            return {
                "total_requests": self.stats["total_requests"],
                "blocked_requests": self.stats["blocked_requests"],
                "active_clients": len(self.requests),
            }


def create_rate_limit_middleware(app: Flask, rate_limiter: RateLimiter) -> None:
    """Register rate limiting hooks on a Flask app"""

    @app.before_request
    def check_rate_limit():
        if request.path in EXEMPT_PATHS:
            return None

        client_id = request.remote_addr or "unknown"
        allowed, info = rate_limiter.check_rate_limit(client_id)
        request.environ["explorer.rate_limit"] = info

        if not allowed:
            logger.warning(f"Rate limit exceeded for {client_id} on {request.path}")
            response = jsonify({"error": RATE_LIMIT_MESSAGE})
            response.status_code = 403
            response.headers["Retry-After"] = str(info["retry_after"])
            return response

        return None

    @app.after_request
    def add_rate_limit_headers(response):
        info = request.environ.get("explorer.rate_limit")
        if info:
            response.headers["RateLimit-Limit"] = str(info["limit"])
            response.headers["RateLimit-Remaining"] = str(info["remaining"])
            response.headers["RateLimit-Reset"] = str(info["reset"])
        return response
