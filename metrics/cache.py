"""
Cache-aside layer for raw telemetry responses.

Only raw upstream results are cached, never derived recommendations. Any
failure to read, decode or write an entry is logged and treated as a miss,
so the engine behaves the same with caching disabled.
"""
import json
import logging
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

import redis

from config import (
    CACHE_ENABLED,
    CACHE_TTL_METRICS,
    CACHE_TTL_RESOURCES,
    CACHE_TTL_AUTOSCALER,
    CACHE_TTL_CLUSTER_INFO,
    CACHE_WINDOW_ALIGN_SECONDS,
    REDIS_URL,
    REDIS_TIMEOUT_SECONDS,
)
from metrics import prometheus_client as prom

logger = logging.getLogger(__name__)

# Data classes, each with its own TTL
METRICS = "metrics"
RESOURCES = "resources"
AUTOSCALER = "autoscaler"
CLUSTER_INFO = "cluster_info"

DEFAULT_TTLS: Dict[str, int] = {
    METRICS: CACHE_TTL_METRICS,
    RESOURCES: CACHE_TTL_RESOURCES,
    AUTOSCALER: CACHE_TTL_AUTOSCALER,
    CLUSTER_INFO: CACHE_TTL_CLUSTER_INFO,
}

_KIND_DATA_CLASS: Dict[str, str] = {
    prom.CPU_USAGE: METRICS,
    prom.MEMORY_USAGE: METRICS,
    prom.POD_NETWORK: METRICS,
    prom.POD_CPU: METRICS,
    prom.CPU_REQUEST: RESOURCES,
    prom.MEMORY_REQUEST: RESOURCES,
    prom.AUTOSCALER_CPU: AUTOSCALER,
    prom.AUTOSCALER_MEMORY: AUTOSCALER,
    prom.CLUSTER_INFO: CLUSTER_INFO,
}


def data_class_for(kind: str) -> str:
    return _KIND_DATA_CLASS.get(kind, METRICS)


def align(ts: float, seconds: int = CACHE_WINDOW_ALIGN_SECONDS) -> int:
    return int(ts // seconds) * seconds


def cache_key(query: prom.MetricQuery, align_seconds: int = CACHE_WINDOW_ALIGN_SECONDS) -> str:
    """Key built from the full identity of a query."""
    return ":".join([
        data_class_for(query.kind),
        query.project,
        query.cluster,
        query.namespace or "all",
        query.workload or "all",
        query.kind,
        str(align(query.start, align_seconds)),
        str(align(query.end, align_seconds)),
    ])


class InMemoryCacheStore:
    """Thread-safe in-process byte store with per-entry expiry."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._entries: Dict[str, Tuple[float, bytes]] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        with self._lock:
            now = self._clock()
            # keys embed the aligned query window, so most are never read
            # again once it moves on; drop expired ones here
            expired = [k for k, (expires_at, _) in self._entries.items() if expires_at <= now]
            for k in expired:
                del self._entries[k]
            self._entries[key] = (now + ttl_seconds, value)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class RedisCacheStore:
    """Byte store on a shared Redis server; expiry is left to Redis."""

    def __init__(self, client: redis.Redis):
        self.client = client

    @classmethod
    def from_url(cls, url: str, timeout: float = REDIS_TIMEOUT_SECONDS) -> 'RedisCacheStore':
        return cls(redis.Redis.from_url(url, socket_timeout=timeout, socket_connect_timeout=timeout))

    def get(self, key: str) -> Optional[bytes]:
        return self.client.get(key)

    def set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        self.client.setex(key, ttl_seconds, value)

    def ping(self) -> bool:
        return bool(self.client.ping())


def build_store(redis_url: Optional[str] = REDIS_URL, enabled: bool = CACHE_ENABLED) -> Optional[Any]:
    """Store selected by configuration.

    Redis when a URL is configured and reachable, the in-process store when
    no URL is set, and None (caching off) when disabled or Redis is down at
    startup.
    """
    if not enabled:
        logger.info("Telemetry cache disabled")
        return None
    if not redis_url:
        logger.info("Using in-process telemetry cache")
        return InMemoryCacheStore()
    try:
        store = RedisCacheStore.from_url(redis_url)
        store.ping()
    except (redis.RedisError, ValueError) as e:
        logger.warning(f"Redis cache unavailable, continuing without cache: {e}")
        return None
    logger.info("Using Redis telemetry cache")
    return store


class CacheLayer:
    """Cache-aside wrapper around telemetry reads.

    Args:
        store: object with `get(key) -> Optional[bytes]` and
            `set(key, bytes, ttl_seconds)`; None disables caching
        ttls: TTL per data class, defaults from config
    """

    def __init__(self, store: Optional[Any] = None, ttls: Optional[Dict[str, int]] = None,
                 align_seconds: int = CACHE_WINDOW_ALIGN_SECONDS):
        self.store = store
        self.ttls = dict(DEFAULT_TTLS)
        if ttls:
            self.ttls.update(ttls)
        self.align_seconds = align_seconds
        self._stats = {"hits": 0, "misses": 0, "errors": 0}
        self._stats_lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self.store is not None

    def _count(self, name: str) -> None:
        with self._stats_lock:
            self._stats[name] += 1

    def stats(self) -> Dict[str, int]:
        with self._stats_lock:
            return dict(self._stats)

    def ttl_for(self, query: prom.MetricQuery) -> int:
        return self.ttls[data_class_for(query.kind)]

    def _read(self, key: str) -> Optional[Any]:
        try:
            raw = self.store.get(key)
        except Exception as e:
            self._count("errors")
            logger.warning(f"Cache read error for {key}: {e}")
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as e:
            self._count("errors")
            logger.warning(f"Cache entry {key} is not valid JSON, ignoring: {e}")
            return None

    def _write(self, key: str, value: Any, ttl: int) -> None:
        try:
            self.store.set(key, json.dumps(value).encode("utf-8"), ttl)
        except Exception as e:
            self._count("errors")
            logger.warning(f"Cache write error for {key}: {e}")

    def get_or_fetch(self, query: prom.MetricQuery, fetch: Callable[[prom.MetricQuery], Any]) -> Any:
        """Return the cached result for `query`, or call `fetch(query)` and cache it.

        Errors raised by `fetch` propagate; nothing is written in that case.
        """
        if not self.enabled:
            return fetch(query)

        key = cache_key(query, self.align_seconds)
        cached = self._read(key)
        if cached is not None:
            self._count("hits")
            logger.debug(f"cache hit: {key}")
            return cached

        self._count("misses")
        value = fetch(query)
        self._write(key, value, self.ttl_for(query))
        return value
