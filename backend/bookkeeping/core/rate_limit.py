import logging
import secrets
import threading
import time
from collections import deque

from redis.exceptions import RedisError

from bookkeeping.core.cache import connect_redis

logger = logging.getLogger(__name__)

# KEYS[1] sorted set of hit timestamps; ARGV: now_ms, window_ms, limit, member, ttl_seconds.
SLIDING_WINDOW_SCRIPT = """
redis.call("ZREMRANGEBYSCORE", KEYS[1], 0, tonumber(ARGV[1]) - tonumber(ARGV[2]))
local blocked = 0
if redis.call("ZCARD", KEYS[1]) >= tonumber(ARGV[3]) then
  blocked = 1
else
  redis.call("ZADD", KEYS[1], ARGV[1], ARGV[4])
end
redis.call("EXPIRE", KEYS[1], ARGV[5])
return blocked
"""


class RateLimiter:
    """Sliding-window hit counter, shared through Redis when it is reachable."""

    def __init__(self, redis_url: str | None = None, key_prefix: str = "bookkeeping") -> None:
        self._hits: dict[str, deque[float]] = {}
        self._lock = threading.Lock()
        self._namespace = f"{key_prefix}:ratelimit:"
        redis = connect_redis(redis_url, "rate limiting")
        self._script = redis.register_script(SLIDING_WINDOW_SCRIPT) if redis is not None else None

    def _exceeded_shared(self, key: str, limit: int, window_seconds: int) -> bool | None:
        now_ms = int(time.time() * 1000)
        try:
            blocked = self._script(
                keys=[self._namespace + key],
                args=[now_ms, window_seconds * 1000, limit, f"{now_ms}-{secrets.token_hex(6)}", window_seconds + 1],
            )
        except RedisError as exc:
            logger.debug("Redis rate limit check failed for %s: %s", key, exc)
            return None
        return int(blocked or 0) == 1

    def _exceeded_local(self, key: str, limit: int, window_seconds: int) -> bool:
        now = time.monotonic()
        with self._lock:
            hits = self._hits.setdefault(key, deque())
            while hits and hits[0] <= now - window_seconds:
                hits.popleft()
            if len(hits) >= limit:
                return True
            hits.append(now)
            return False

    def exceeded(self, key: str, limit: int, window_seconds: int) -> bool:
        limit = max(1, int(limit))
        window_seconds = max(1, int(window_seconds))
        if self._script is not None:
            shared = self._exceeded_shared(key, limit, window_seconds)
            if shared is not None:
                return shared
        return self._exceeded_local(key, limit, window_seconds)

    def reset(self, key_prefix: str = "") -> None:
        with self._lock:
            for key in [k for k in self._hits if k.startswith(key_prefix)]:
                del self._hits[key]
