"""Short-lived cache for autocomplete results.

Redis is used when it answers a ping, so every worker shares hits. Otherwise
each process keeps a small bounded dictionary. Cached values are JSON objects.
"""
from __future__ import annotations

import hashlib
import json
import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Optional, Protocol, Tuple

import redis

logger = logging.getLogger(__name__)

KEY_PREFIX = "market-search:suggest:"
DEFAULT_MAX_ENTRIES = 1024


class CacheBackend(Protocol):
    def get(self, key: str) -> Optional[Dict[str, Any]]: ...

    def set(self, key: str, value: Dict[str, Any], ttl: int) -> None: ...


def hash_query(text: str, limit: int) -> str:
    digest = hashlib.sha1(f"{text}|{limit}".encode("utf-8")).hexdigest()
    return f"{KEY_PREFIX}{digest}"


class RedisCache:
    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            raw = self._client.get(key)
        except redis.RedisError as exc:
            logger.warning("suggest cache read failed for %s: %s", key, exc)
            return None
        if raw is None:
            return None
        try:
            payload = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("dropping undecodable suggest cache entry %s", key)
            return None
        return payload if isinstance(payload, dict) else None

    def set(self, key: str, value: Dict[str, Any], ttl: int) -> None:
        try:
            self._client.set(key, json.dumps(value, ensure_ascii=False), ex=ttl)
        except redis.RedisError as exc:
            logger.warning("suggest cache write failed for %s: %s", key, exc)


class InMemoryCache:
    """Per-process LRU with expiry; the oldest entry is evicted past ``max_entries``."""

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES, clock: Callable[[], float] = time.monotonic) -> None:
        self._entries: "OrderedDict[str, Tuple[float, Dict[str, Any]]]" = OrderedDict()
        self._max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, payload = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return payload

    def set(self, key: str, value: Dict[str, Any], ttl: int) -> None:
        with self._lock:
            self._entries[key] = (self._clock() + ttl, value)
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)


def create_cache(host: str, port: int) -> CacheBackend:
    client = redis.Redis(host=host, port=port, socket_connect_timeout=2)
    try:
        client.ping()
    except redis.RedisError as exc:
        logger.warning("Redis at %s:%s unreachable (%s); caching suggestions in memory", host, port, exc)
        return InMemoryCache()
    logger.info("Caching suggestions in Redis at %s:%s", host, port)
    return RedisCache(client)
