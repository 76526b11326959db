import uuid
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from bookkeeping.core.errors import ErrorCode, ServiceError

CENT = Decimal("0.01")
# Money columns are NUMERIC(14, 2).
MONEY_LIMIT = Decimal("1000000000000")
ZERO_UUID_STR = str(uuid.UUID(int=0))


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def normalize_datetime(value: datetime | None) -> datetime:
    if value is None:
        return now_utc().replace(microsecond=0)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.replace(microsecond=0)


def iso_z(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def to_money(value: Any) -> Decimal:
    try:
        return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError):
        raise ServiceError(ErrorCode.UM001, f"Invalid amount: {value!r}")


def in_money_range(value: Decimal) -> bool:
    return abs(value) < MONEY_LIMIT


def money_out(value: Any) -> float:
    return float(to_money(value or 0))


def parse_uuid_value(value: Any, field_name: str) -> str:
    raw = str(value or "").strip()
    if not raw:
        raise ServiceError(ErrorCode.UI001, f"{field_name} required")
    try:
        return str(uuid.UUID(raw))
    except (TypeError, ValueError, AttributeError):
        raise ServiceError(ErrorCode.UI001, f"Invalid {field_name}: {raw}")


def uuid_or_none(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value)
    if not text or text == ZERO_UUID_STR:
        return None
    return text


def is_zero_uuid(value: Any) -> bool:
    return uuid_or_none(value) is None
