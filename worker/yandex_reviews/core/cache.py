"""Result cache with get-or-compute semantics and per-key TTLs.

Two backends share the `remember(key, ttl, producer)` / `forget(key)`
contract: an in-process store for single-worker deployments and Redis when
`CACHE_URL` is configured. Neither coordinates concurrent misses, so two
callers racing on the same cold key may both hit upstream.
"""

from __future__ import annotations

import copy
import json
import logging
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

import redis

from yandex_reviews.core.config import Settings

logger = logging.getLogger(__name__)

KEY_PREFIX = "yandex_reviews"
Producer = Callable[[], Any]


def cache_key(place_id: str, page: Optional[int] = None) -> str:
    if page is not None:
        return f"{KEY_PREFIX}:{place_id}:page:{page}"
    return f"{KEY_PREFIX}:{place_id}:main"


class MemoryCache:
    """Thread-safe in-process TTL store; expired entries are dropped on read and swept on write."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, Tuple[Any, float]] = {}

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                logger.debug("Cache EXPIRED: key=%s", key)
                return None
        return copy.deepcopy(value)

    def put(self, key: str, value: Any, ttl: int) -> None:
        with self._lock:
            now = self._clock()
            self._sweep(now)
            self._entries[key] = (copy.deepcopy(value), now + ttl)

    def _sweep(self, now: float) -> None:
        # Caller holds the lock.
        expired = [key for key, (_, expires_at) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Cache SWEEP: dropped %d expired entries", len(expired))

    def remember(self, key: str, ttl: int, producer: Producer) -> Any:
        cached = self.get(key)
        if cached is not None:
            logger.debug("Cache HIT: key=%s", key)
            return cached

        logger.debug("Cache MISS: key=%s", key)
        value = producer()
        self.put(key, value, ttl)
        return copy.deepcopy(value)

    def forget(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)


class RedisCache:
    """Redis-backed store holding JSON-serialised values under SETEX."""

    def __init__(self, client: redis.Redis) -> None:
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisCache":
        return cls(redis.Redis.from_url(url, decode_responses=True))

    def get(self, key: str) -> Optional[Any]:
        try:
            raw = self.client.get(key)
        except redis.RedisError as exc:
            logger.warning("Redis GET failed for %s: %s", key, exc)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Discarding undecodable cache entry %s", key)
            return None

    def put(self, key: str, value: Any, ttl: int) -> None:
        try:
            self.client.setex(key, ttl, json.dumps(value, ensure_ascii=False))
        except redis.RedisError as exc:
            logger.warning("Redis SETEX failed for %s: %s", key, exc)

    def remember(self, key: str, ttl: int, producer: Producer) -> Any:
        cached = self.get(key)
        if cached is not None:
            logger.debug("Cache HIT: key=%s", key)
            return cached

        logger.debug("Cache MISS: key=%s", key)
        value = producer()
        self.put(key, value, ttl)
        return value

    def forget(self, key: str) -> None:
        try:
            self.client.delete(key)
        except redis.RedisError as exc:
            logger.warning("Redis DELETE failed for %s: %s", key, exc)


def build_cache(settings: Settings):
    """Redis when CACHE_URL is configured, otherwise the in-process store."""
    if settings.cache_url:
        logger.info("Using Redis cache at %s", settings.cache_url.split("@")[-1])
        return RedisCache.from_url(settings.cache_url)
    return MemoryCache()
