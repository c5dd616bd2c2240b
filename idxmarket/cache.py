"""Per-category response cache: in-process TTL map or Redis.

Values are JSON-safe payloads (``to_dict()`` output). ``get`` never raises:
a miss, an expired entry or a backend error all return :data:`MISSING`.
"""

from __future__ import annotations

import copy
import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Callable, Protocol

import redis.asyncio as aioredis

from idxmarket.config import Settings

logger = logging.getLogger(__name__)


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()

DEFAULT_TTL_SECONDS = 300
_WHITESPACE = re.compile(r"\s+")


@dataclass
class CacheStats:
    hits: int
    misses: int
    keys: int
    hit_rate: float

    def to_dict(self) -> dict[str, Any]:
        return {"hits": self.hits, "misses": self.misses, "keys": self.keys, "hit_rate": self.hit_rate}


def _hit_rate(hits: int, misses: int) -> float:
    total = hits + misses
    return round(hits / total * 100, 2) if total else 0.0


class Cache(Protocol):
    async def get(self, key: str) -> Any: ...

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def clear(self) -> None: ...

    async def stats(self) -> CacheStats: ...

    async def aclose(self) -> None: ...


# ── Keys ──────────────────────────────────────────────────────────────


class CacheKeys:
    @staticmethod
    def market_overview() -> str:
        return "market:overview"

    @staticmethod
    def stock_info(symbol: str) -> str:
        return f"stock:info:{symbol.upper()}"

    @staticmethod
    def historical(symbol: str, period: str) -> str:
        return f"stock:historical:{symbol.upper()}:{period}"

    @staticmethod
    def sector_performance() -> str:
        return "sector:performance"

    @staticmethod
    def search(query: str) -> str:
        return "search:" + _WHITESPACE.sub("_", query.lower())

    @staticmethod
    def static(name: str) -> str:
        return f"static:{name}"


# ── In-process backend ────────────────────────────────────────────────


@dataclass
class CacheEntry:
    key: str
    value: Any
    ttl_seconds: int
    inserted_at: float

    def expired(self, now: float) -> bool:
        return now - self.inserted_at >= self.ttl_seconds


class MemoryCache:
    """TTL map; expired entries are dropped on read and by :meth:`purge_expired`."""

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._clock = clock
        self._hits = 0
        self._misses = 0

    async def get(self, key: str) -> Any:
        entry = self._entries.get(key)
        if entry is not None and entry.expired(self._clock()):
            del self._entries[key]
            logger.debug("Cache EXPIRED: %s", key)
            entry = None
        if entry is None:
            self._misses += 1
            logger.debug("Cache MISS: %s", key)
            return MISSING
        self._hits += 1
        logger.debug("Cache HIT: %s", key)
        return copy.deepcopy(entry.value)

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        ttl = DEFAULT_TTL_SECONDS if ttl is None else ttl
        self._entries[key] = CacheEntry(key, copy.deepcopy(value), ttl, self._clock())
        logger.debug("Cache SET: %s (ttl %ds)", key, ttl)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def clear(self) -> None:
        self._entries.clear()

    def purge_expired(self) -> int:
        now = self._clock()
        stale = [k for k, e in self._entries.items() if e.expired(now)]
        for k in stale:
            del self._entries[k]
        return len(stale)

    async def stats(self) -> CacheStats:
        self.purge_expired()
        return CacheStats(self._hits, self._misses, len(self._entries), _hit_rate(self._hits, self._misses))

    async def aclose(self) -> None:
        return None


# ── Redis backend ─────────────────────────────────────────────────────


class RedisCache:
    """JSON payloads under a key prefix, expiry delegated to ``SETEX``."""

    def __init__(self, client: aioredis.Redis, *, prefix: str = "idxmarket:cache:") -> None:
        self._redis = client
        self._prefix = prefix
        self._hits = 0
        self._misses = 0

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> RedisCache:
        return cls(aioredis.from_url(url, decode_responses=True), **kwargs)

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def get(self, key: str) -> Any:
        try:
            raw = await self._redis.get(self._key(key))
        except Exception as exc:
            logger.warning("Cache get failed for %s: %s", key, exc)
            raw = None
        if raw is None:
            self._misses += 1
            return MISSING
        try:
            value = json.loads(raw)
        except ValueError:
            logger.warning("Discarding undecodable cache entry %s", key)
            self._misses += 1
            return MISSING
        self._hits += 1
        return value

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        ttl = DEFAULT_TTL_SECONDS if ttl is None else ttl
        try:
            await self._redis.setex(self._key(key), ttl, json.dumps(value, default=str))
        except Exception as exc:
            logger.warning("Cache set failed for %s: %s", key, exc)

    async def delete(self, key: str) -> None:
        try:
            await self._redis.delete(self._key(key))
        except Exception as exc:
            logger.warning("Cache delete failed for %s: %s", key, exc)

    async def _prefixed_keys(self) -> list[str]:
        return [k async for k in self._redis.scan_iter(match=f"{self._prefix}*")]

    async def clear(self) -> None:
        try:
            keys = await self._prefixed_keys()
            if keys:
                await self._redis.delete(*keys)
        except Exception as exc:
            logger.warning("Cache clear failed: %s", exc)

    async def stats(self) -> CacheStats:
        try:
            keys = len(await self._prefixed_keys())
        except Exception as exc:
            logger.warning("Cache key count failed: %s", exc)
            keys = 0
        return CacheStats(self._hits, self._misses, keys, _hit_rate(self._hits, self._misses))

    async def aclose(self) -> None:
        try:
            await self._redis.aclose()
        except Exception:
            logger.debug("Redis close failed", exc_info=True)


def build_cache(settings: Settings) -> MemoryCache | RedisCache:
    if settings.cache_type == "redis":
        logger.info("Using Redis cache at %s", settings.redis_url)
        return RedisCache.from_url(settings.redis_url)
    return MemoryCache()
