"""
Market Breadth: Cache Store

Versioned key/value cache for fetched series. Entries are written as
{"timestamp": <written ms>, "data": <payload>} and read back with an
optional TTL, so the same entry can serve as fresh data or as a stale
fallback. Bumping the cache prefix orphans every older entry.

Backed by Redis when reachable, otherwise by an in-process dict.
"""

from __future__ import annotations

import json
from typing import Any, NamedTuple, Optional, Protocol

import structlog

from market_breadth.clock import Clock, SystemClock
from market_breadth.config import get_settings

log = structlog.get_logger(__name__)


class CacheWriteError(Exception):
    """Raised by a backend that could not persist an entry (quota, I/O)."""


class CacheReadError(Exception):
    """An entry exists but cannot be decoded."""


# ──────────────────────────────────────────────
# Default TTLs (seconds)
# ──────────────────────────────────────────────


TTL_INDEX = 4 * 60 * 60        # 4 hours: index, sector and stock series
TTL_BREADTH_FRESH = 5 * 60     # 5 minutes: breadth served without any request
TTL_BREADTH_HISTORY = 24 * 60 * 60  # 24 hours: breadth history refetch


# ──────────────────────────────────────────────
# Backends
# ──────────────────────────────────────────────


class KeyValueBackend(Protocol):
    @property
    def available(self) -> bool: ...

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...


class RedisBackend:
    """Thin Redis wrapper with graceful degradation."""

    def __init__(self, url: Optional[str] = None):
        self._url = url or get_settings().redis_url
        self._client = None
        self._available = False
        self._connect()

    def _connect(self):
        try:
            import redis as redis_lib
            self._client = redis_lib.from_url(
                self._url,
                decode_responses=True,
                socket_timeout=2,
                socket_connect_timeout=2,
            )
            self._client.ping()
            self._available = True
            log.info("cache.connected", url=self._url)
        except Exception as exc:
            log.warning("cache.unavailable", error=str(exc))
            self._available = False

    @property
    def available(self) -> bool:
        return self._available

    def get(self, key: str) -> Optional[str]:
        """Get a raw value. Returns None on miss or error."""
        if not self._available:
            return None
        try:
            return self._client.get(key)
        except Exception as exc:
            log.debug("cache.read_failed", key=key, error=str(exc))
            return None

    def set(self, key: str, value: str) -> None:
        """Persist a raw value without expiry; freshness is judged on read."""
        if not self._available:
            raise CacheWriteError("Redis unavailable")
        try:
            self._client.set(key, value)
        except Exception as exc:
            raise CacheWriteError(str(exc)) from exc

    def stats(self) -> dict:
        """Get basic cache stats."""
        if not self._available:
            return {"backend": "redis", "available": False}
        try:
            info = self._client.info("stats")
            return {
                "backend": "redis",
                "available": True,
                "hits": info.get("keyspace_hits", 0),
                "misses": info.get("keyspace_misses", 0),
                "keys": self._client.dbsize(),
            }
        except Exception:
            return {"backend": "redis", "available": False}


class MemoryBackend:
    """In-process fallback; data is lost on restart.

    ``max_bytes`` bounds the total stored characters, like a browser
    storage quota.
    """

    def __init__(self, max_bytes: Optional[int] = None):
        self._data: dict[str, str] = {}
        self._max_bytes = max_bytes

    @property
    def available(self) -> bool:
        return True

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if self._max_bytes is not None:
            used = sum(len(v) for k, v in self._data.items() if k != key)
            if used + len(value) > self._max_bytes:
                raise CacheWriteError(
                    f"quota exceeded: {used + len(value)} > {self._max_bytes} bytes"
                )
        self._data[key] = value

    def keys(self) -> list[str]:
        return list(self._data)

    def stats(self) -> dict:
        return {"backend": "memory", "available": True, "keys": len(self._data)}


# ──────────────────────────────────────────────
# Cache Store
# ──────────────────────────────────────────────


class CacheHit(NamedTuple):
    data: Any
    age_ms: int


def fingerprint(params: dict) -> str:
    """Deterministic key fragment, independent of key insertion order."""
    return json.dumps(params, sort_keys=True, separators=(",", ":"), default=str)


class CacheStore:
    """Fresh/stale series cache over a key/value backend."""

    def __init__(
        self,
        backend: KeyValueBackend,
        clock: Optional[Clock] = None,
        prefix: Optional[str] = None,
    ):
        self.backend = backend
        self._clock = clock or SystemClock()
        self.prefix = prefix or get_settings().cache_prefix

    def key(self, operation: str, params: dict) -> str:
        return f"{self.prefix}_{operation}_{fingerprint(params)}"

    def save(self, key: str, payload: Any) -> bool:
        """Write an entry stamped with the current time. Never raises."""
        try:
            serialized = json.dumps(
                {"timestamp": self._clock.now_ms(), "data": payload},
                default=str,
            )
            self.backend.set(key, serialized)
            return True
        except (CacheWriteError, TypeError, ValueError) as exc:
            log.warning("cache.write_failed", key=key, error=str(exc))
            return False

    def load(self, key: str, ttl: Optional[float] = None) -> Optional[CacheHit]:
        """Read an entry; with ``ttl`` (seconds) entries older than it are misses.

        An entry aged exactly ``ttl`` is still fresh. ``ttl=None`` returns
        the entry whatever its age.
        """
        raw = self.backend.get(key)
        if raw is None:
            return None
        try:
            data, written_at = self._decode(raw)
        except CacheReadError as exc:
            log.debug("cache.corrupt_entry", key=key, error=str(exc))
            return None
        if data is None:
            return None

        age_ms = self._clock.now_ms() - written_at
        if ttl is not None and age_ms > int(ttl * 1000):
            return None
        return CacheHit(data, age_ms)

    @staticmethod
    def _decode(raw: str) -> tuple[Any, int]:
        try:
            entry = json.loads(raw)
            return entry.get("data"), int(entry["timestamp"])
        except (ValueError, TypeError, KeyError, AttributeError) as exc:
            raise CacheReadError(str(exc)) from exc

    def stats(self) -> dict:
        backend_stats = getattr(self.backend, "stats", None)
        stats = backend_stats() if callable(backend_stats) else {}
        return {"prefix": self.prefix, **stats}


# ──────────────────────────────────────────────
# Singleton
# ──────────────────────────────────────────────

_store: Optional[CacheStore] = None


def get_cache_store() -> CacheStore:
    """Get or create the cache store singleton (Redis, else in-memory)."""
    global _store
    if _store is None:
        settings = get_settings()
        backend: KeyValueBackend = MemoryBackend()
        if settings.cache_backend == "redis":
            redis_backend = RedisBackend(settings.redis_url)
            if redis_backend.available:
                backend = redis_backend
            else:
                log.warning("cache.using_memory_fallback")
        _store = CacheStore(backend)
    return _store
