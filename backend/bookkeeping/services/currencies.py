import re

from bookkeeping.core.config import settings
from bookkeeping.core.errors import MESSAGES, ErrorCode, ValidationError
from bookkeeping.services.state import cache

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


def is_valid_currency_code(code: str | None) -> bool:
    return isinstance(code, str) and bool(_CURRENCY_RE.fullmatch(code))


def validate_currency_code(code: str | None) -> None:
    if not is_valid_currency_code(code):
        raise ValidationError(MESSAGES[ErrorCode.CU002])


def is_currency_registered(cur, code: str) -> bool:
    def load() -> bool:
        cur.execute("SELECT currency FROM currencies WHERE currency=%s", (code,))
        return cur.fetchone() is not None

    return bool(cache.remember(f"currency:{code}", settings.currency_cache_ttl, load))


def forget_currencies() -> None:
    cache.invalidate_prefix("currency:")
