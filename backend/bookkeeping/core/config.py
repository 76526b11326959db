import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    database_url: str
    apply_schema: bool
    db_pool_min: int
    db_pool_max: int
    db_pool_timeout: float
    db_pool_max_waiting: int
    db_connect_timeout: int
    db_statement_timeout_ms: int
    redis_url: str | None
    redis_prefix: str
    currency_cache_ttl: int
    write_rate_limit: int
    write_rate_window: int
    default_limit: int
    max_limit: int
    allow_maintenance: bool
    log_level: str


def _env_str(name: str, default: str) -> str:
    return (os.getenv(name) or "").strip() or default


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    return max(minimum, int(_env_str(name, str(default))))


def _env_flag(name: str) -> bool:
    return _env_str(name, "false").lower() in ("1", "true", "yes", "on")


def load_settings() -> Settings:
    database_url = _env_str("DATABASE_URL", "")
    if not database_url:
        raise RuntimeError("DATABASE_URL is required")

    pool_min = _env_int("DB_POOL_MIN", 1, minimum=1)
    max_limit = _env_int("MAX_LIMIT", 100, minimum=1)

    return Settings(
        database_url=database_url,
        apply_schema=_env_flag("APPLY_SCHEMA"),
        db_pool_min=pool_min,
        db_pool_max=_env_int("DB_POOL_MAX", 10, minimum=pool_min),
        db_pool_timeout=float(_env_str("DB_POOL_TIMEOUT", "10")),
        db_pool_max_waiting=_env_int("DB_POOL_MAX_WAITING", 100),
        db_connect_timeout=_env_int("DB_CONNECT_TIMEOUT", 5, minimum=1),
        db_statement_timeout_ms=_env_int("DB_STATEMENT_TIMEOUT_MS", 15000),
        redis_url=_env_str("REDIS_URL", "") or None,
        redis_prefix=_env_str("REDIS_PREFIX", "bookkeeping"),
        currency_cache_ttl=_env_int("CURRENCY_CACHE_TTL", 300),
        write_rate_limit=_env_int("WRITE_RATE_LIMIT", 120),
        write_rate_window=_env_int("WRITE_RATE_WINDOW", 60, minimum=1),
        default_limit=min(_env_int("DEFAULT_LIMIT", 10, minimum=1), max_limit),
        max_limit=max_limit,
        allow_maintenance=_env_flag("ALLOW_MAINTENANCE"),
        log_level=_env_str("LOG_LEVEL", "INFO").upper(),
    )


settings = load_settings()
