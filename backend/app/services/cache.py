"""Key/value cache used for refresh tokens."""

from __future__ import annotations

import logging
import threading
import time
from functools import lru_cache
from typing import Protocol

from redis import Redis
from redis.exceptions import RedisError

from app.config import get_settings

logger = logging.getLogger(__name__)


class CacheBackend(Protocol):
    """Operations the authentication flow relies on."""

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store a value that expires after ``ttl_seconds`` (0 keeps it forever)."""

    def get(self, key: str) -> str | None:
        """Return the value if present and not expired."""

    def delete(self, key: str) -> None:
        """Remove a value, ignoring missing keys."""


class MemoryCache:
    """Process-local cache for single-node deployments and tests."""

    def __init__(self) -> None:
        self._store: dict[str, tuple[str, float | None]] = {}
        self._lock = threading.Lock()

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        expires_at = time.monotonic() + ttl_seconds if ttl_seconds > 0 else None
        with self._lock:
            self._store[key] = (value, expires_at)

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at is not None and expires_at <= time.monotonic():
                del self._store[key]
                return None
            return value

    def delete(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)


class RedisCache:
    """Redis-backed cache shared between API instances."""

    def __init__(self, client: Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisCache":
        return cls(Redis.from_url(url, decode_responses=True))

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        if ttl_seconds > 0:
            self._client.setex(key, ttl_seconds, value)
        else:
            self._client.set(key, value)

    def get(self, key: str) -> str | None:
        return self._client.get(key)

    def delete(self, key: str) -> None:
        self._client.delete(key)


@lru_cache(maxsize=1)
def get_cache() -> CacheBackend:
    """Return Redis when ``AUTH_CACHE_URL`` is configured and reachable, memory otherwise."""

    settings = get_settings()
    if not settings.auth_cache_url:
        return MemoryCache()
    cache = RedisCache.from_url(settings.auth_cache_url)
    try:
        cache._client.ping()
    except RedisError:
        logger.warning(
            "Redis at %s is unreachable; refresh tokens will be kept in memory",
            settings.auth_cache_url,
        )
        return MemoryCache()
    return cache
