"""
Shared counter store for the rate limiter (Redis when configured, in-memory
otherwise).
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Dict, Optional

import redis

from ecorecicla import config

logger = logging.getLogger(__name__)


class CacheBackend:
    backend: str = "none"

    def incr(self, key: str, ttl_seconds: int = 60) -> int:
        raise NotImplementedError


class MemoryCacheBackend(CacheBackend):
    backend = "memory"

    def __init__(self) -> None:
        self._store: Dict[str, tuple[str, Optional[float]]] = {}
        self._lock = threading.Lock()

    def incr(self, key: str, ttl_seconds: int = 60) -> int:
        now = time.time()
        with self._lock:
            hit = self._store.get(key)
            expires_at: Optional[float] = None
            current = 0
            if hit:
                value, expires_at = hit
                if expires_at is not None and now > expires_at:
                    expires_at = None
                else:
                    current = int(value)
            current += 1
            if expires_at is None:
                expires_at = now + max(1, ttl_seconds)
            self._store[key] = (str(current), expires_at)
            return current


class RedisCacheBackend(CacheBackend):
    backend = "redis"

    def __init__(self, url: str) -> None:
        self._client = redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=1,
            socket_timeout=1,
            retry_on_timeout=False,
        )
        # Fail fast at startup so we can fall back to memory immediately.
        self._client.ping()

    def incr(self, key: str, ttl_seconds: int = 60) -> int:
        value = int(self._client.incr(key))
        if value == 1:
            self._client.expire(key, max(1, int(ttl_seconds)))
        return value


_backend_singleton: Optional[CacheBackend] = None
_backend_lock = threading.Lock()


def get_cache_backend() -> CacheBackend:
    global _backend_singleton
    if _backend_singleton is not None:
        return _backend_singleton

    with _backend_lock:
        if _backend_singleton is not None:
            return _backend_singleton

        if config.REDIS_URL:
            try:
                _backend_singleton = RedisCacheBackend(config.REDIS_URL)
                return _backend_singleton
            except Exception as exc:
                logger.warning("Redis unavailable (%s); using in-memory counters", exc)

        _backend_singleton = MemoryCacheBackend()
        return _backend_singleton


def reset_cache_backend_for_tests() -> None:
    """Test helper to clear singleton cache backend."""
    global _backend_singleton
    with _backend_lock:
        _backend_singleton = None
