import logging

from fastapi import Request

from bookkeeping.core.config import settings
from bookkeeping.core.errors import ErrorCode, ServiceError
from bookkeeping.services.state import rate_limiter

logger = logging.getLogger(__name__)

TRUE_VALUES = ("1", "true", "t", "yes")
FALSE_VALUES = ("0", "false", "f", "no")


def parse_bool(value: str | None, name: str, default: bool) -> bool:
    if value is None or value == "":
        return default
    lowered = value.strip().lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    raise ServiceError(ErrorCode.QS001, f"Invalid boolean for {name}: {value}")


def parse_int(value: str | None, name: str, default: int, minimum: int = 0) -> int:
    if value is None or value == "":
        return default
    try:
        parsed = int(value.strip())
    except ValueError:
        raise ServiceError(ErrorCode.QS001, f"Invalid integer for {name}: {value}")
    if parsed < minimum:
        raise ServiceError(ErrorCode.QS001, f"{name} must be at least {minimum}")
    return parsed


def parse_page(limit: str | None, offset: str | None) -> tuple[int, int]:
    page_limit = min(parse_int(limit, "limit", settings.default_limit, minimum=1), settings.max_limit)
    return page_limit, parse_int(offset, "offset", 0)


def get_client_ip(req: Request) -> str:
    forwarded = req.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = req.headers.get("x-real-ip", "")
    if real_ip:
        return real_ip.strip()
    if req.client:
        return req.client.host
    return "unknown"


def enforce_write_rate_limit(req: Request) -> None:
    if settings.write_rate_limit <= 0:
        return
    if rate_limiter.exceeded(
        f"write:ip:{get_client_ip(req)}",
        settings.write_rate_limit,
        settings.write_rate_window,
    ):
        logger.warning("Write rate limit exceeded for %s", get_client_ip(req))
        raise ServiceError(ErrorCode.RL001, status_code=429)
