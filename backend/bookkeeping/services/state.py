from bookkeeping.core.cache import TimedCache
from bookkeeping.core.config import settings
from bookkeeping.core.rate_limit import RateLimiter

cache = TimedCache(redis_url=settings.redis_url, key_prefix=settings.redis_prefix)
rate_limiter = RateLimiter(redis_url=settings.redis_url, key_prefix=settings.redis_prefix)
