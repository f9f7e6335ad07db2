"""Caching helpers with Redis primary and in-memory fallback.

The cache is advisory: every backend error is logged and treated as a miss or
a no-op so that search requests never fail because of it.
"""
from __future__ import annotations

import fnmatch
import hashlib
import json
import logging
import re
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import redis
from unidecode import unidecode

from .config import Settings
from .models import EntityKind, Pagination, SearchFilters

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


class CacheBackend(Protocol):
    def get(self, key: str) -> Optional[Dict[str, Any]]: ...

    def set(self, key: str, value: Dict[str, Any], ttl: int) -> None: ...

    def delete_pattern(self, pattern: str) -> int: ...


@dataclass
class RedisCache:
    client: redis.Redis

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            data = self.client.get(key)
        except redis.RedisError as exc:
            logger.warning("Redis get failed: %s", exc)
            return None
        if not data:
            return None
        try:
            return json.loads(data)
        except json.JSONDecodeError:
            return None

    def set(self, key: str, value: Dict[str, Any], ttl: int) -> None:
        try:
            self.client.setex(key, ttl, json.dumps(value))
        except redis.RedisError as exc:
            logger.warning("Redis set failed: %s", exc)

    def delete_pattern(self, pattern: str) -> int:
        deleted = 0
        try:
            batch = []
            for key in self.client.scan_iter(match=pattern, count=500):
                batch.append(key)
                if len(batch) >= 500:
                    deleted += self.client.delete(*batch)
                    batch = []
            if batch:
                deleted += self.client.delete(*batch)
        except redis.RedisError as exc:
            logger.warning("Redis invalidation of %r failed after %s keys: %s", pattern, deleted, exc)
        return deleted


class InMemoryCache:
    def __init__(self) -> None:
        self._store: Dict[str, tuple[float, Dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            value = self._store.get(key)
            if not value:
                return None
            expires_at, payload = value
            if expires_at < time.time():
                self._store.pop(key, None)
                return None
            return payload

    def set(self, key: str, value: Dict[str, Any], ttl: int) -> None:
        with self._lock:
            self._store[key] = (time.time() + ttl, value)

    def delete_pattern(self, pattern: str) -> int:
        with self._lock:
            matched = [key for key in self._store if fnmatch.fnmatchcase(key, pattern)]
            for key in matched:
                del self._store[key]
            return len(matched)


class NullCache:
    def get(self, key: str) -> Optional[Dict[str, Any]]:
        return None

    def set(self, key: str, value: Dict[str, Any], ttl: int) -> None:
        return None

    def delete_pattern(self, pattern: str) -> int:
        return 0


def build_backend(settings: Settings) -> CacheBackend:
    if not settings.cache_enabled:
        logger.info("Response cache disabled")
        return NullCache()
    try:
        client = redis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            decode_responses=False,
            socket_timeout=2,
            socket_connect_timeout=2,
        )
        client.ping()
        logger.info("Using Redis cache at %s:%s", settings.redis_host, settings.redis_port)
        return RedisCache(client)
    except redis.RedisError:
        logger.warning("Redis not available, using in-memory cache")
        return InMemoryCache()


def normalize_query(query: str | None) -> str:
    """Lowercase, fold diacritics and collapse whitespace."""

    return _WHITESPACE_RE.sub(" ", unidecode(query or "")).strip().lower()


class ResponseCache:
    """Search result cache keyed by kind, query, filters and pagination."""

    def __init__(self, backend: CacheBackend, prefix: str = "search", ttl: int = 300) -> None:
        self.backend = backend
        self.prefix = prefix
        self.ttl = ttl

    def make_key(self, kind: EntityKind, query: str | None, filters: SearchFilters, pagination: Pagination) -> str:
        signature = {
            "q": normalize_query(query),
            "filters": filters.model_dump(exclude_none=True),
            "page": pagination.page,
            "size": pagination.size,
        }
        digest = hashlib.sha256(json.dumps(signature, sort_keys=True).encode("utf-8")).hexdigest()[:32]
        return f"{self.prefix}:{kind.value}:{digest}"

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        return self.backend.get(key)

    def set(self, key: str, value: Dict[str, Any], ttl: int | None = None) -> None:
        self.backend.set(key, value, ttl or self.ttl)

    def invalidate(self, pattern: str = "*") -> int:
        """Drop entries whose key, relative to the prefix, matches ``pattern``."""

        deleted = self.backend.delete_pattern(f"{self.prefix}:{pattern}")
        logger.info("Invalidated %s cache entries matching %r", deleted, pattern)
        return deleted

    def invalidate_kind(self, kind: EntityKind) -> int:
        return self.invalidate(f"{kind.value}:*")

    def clear(self) -> int:
        return self.invalidate("*")
