import json
import logging
import threading
import time
from typing import Any, Callable

from redis import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


def connect_redis(redis_url: str | None, purpose: str) -> Redis | None:
    if not redis_url:
        return None
    try:
        client = Redis.from_url(redis_url, decode_responses=True, socket_timeout=2)
        client.ping()
    except RedisError as exc:
        logger.warning("Redis unavailable for %s, using process memory: %s", purpose, exc)
        return None
    return client


class TimedCache:
    """Expiring key/value store for lookups that rarely change.

    Values must be JSON serializable. When Redis is reachable it is the shared
    source of truth; the process-local copy only answers while Redis is down.
    """

    def __init__(self, redis_url: str | None = None, key_prefix: str = "bookkeeping") -> None:
        self._entries: dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()
        self._namespace = f"{key_prefix}:cache:"
        self._redis = connect_redis(redis_url, "cache")

    def get(self, key: str) -> Any | None:
        if self._redis is not None:
            try:
                raw = self._redis.get(self._namespace + key)
            except RedisError as exc:
                logger.debug("Redis cache read failed for %s: %s", key, exc)
            else:
                return None if raw is None else json.loads(raw)

        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at < time.monotonic():
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl: int) -> None:
        ttl = max(1, int(ttl))
        if self._redis is not None:
            try:
                self._redis.setex(self._namespace + key, ttl, json.dumps(value))
            except RedisError as exc:
                logger.debug("Redis cache write failed for %s: %s", key, exc)

        with self._lock:
            self._entries[key] = (time.monotonic() + ttl, value)

    def invalidate_prefix(self, prefix: str) -> None:
        if self._redis is not None:
            try:
                stale = list(self._redis.scan_iter(match=f"{self._namespace}{prefix}*", count=200))
                if stale:
                    self._redis.delete(*stale)
            except RedisError as exc:
                logger.debug("Redis cache invalidation failed for %s: %s", prefix, exc)

        with self._lock:
            for key in [k for k in self._entries if k.startswith(prefix)]:
                del self._entries[key]

    def remember(self, key: str, ttl: int, loader: Callable[[], Any]) -> Any:
        # Falsy results are not stored so misses are always re-checked.
        cached = self.get(key)
        if cached is not None:
            return cached
        value = loader()
        if value and ttl > 0:
            self.set(key, value, ttl)
        return value
