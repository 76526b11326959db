import logging

import psycopg
from psycopg import errors as pg_errors

from bookkeeping.core.errors import ErrorCode, ServiceError, StoreError

logger = logging.getLogger(__name__)

# Constraint names are declared in schema.sql.
CONSTRAINT_CODES: dict[str, ErrorCode] = {
    "pending_bills_currency_fkey": ErrorCode.CU005,
    "closed_bills_currency_fkey": ErrorCode.CU005,
    "pending_bills_person_id_fkey": ErrorCode.PE002,
    "closed_bills_person_id_fkey": ErrorCode.PE002,
    "transactions_person_id_fkey": ErrorCode.PE002,
    "transactions_account_id_fkey": ErrorCode.TR012,
    "transactions_person_account_id_fkey": ErrorCode.PA002,
    "money_accounts_balance_check": ErrorCode.TR002,
    "pending_bills_amount_check": ErrorCode.BL002,
}


def _constraint_name(exc: psycopg.Error) -> str | None:
    diag = getattr(exc, "diag", None)
    if diag is None:
        return None
    return diag.constraint_name


def map_db_error(exc: psycopg.Error) -> ServiceError:
    if isinstance(exc, psycopg.IntegrityError):
        code = CONSTRAINT_CODES.get(_constraint_name(exc) or "")
        if code is not None:
            return ServiceError(code)
    if isinstance(exc, pg_errors.NumericValueOutOfRange):
        return ServiceError(ErrorCode.VA001, "Numeric value is out of range")
    if isinstance(exc, pg_errors.QueryCanceled):
        logger.error("Database statement cancelled: %s", exc)
        return StoreError(ErrorCode.DB010, status_code=503)
    if isinstance(exc, psycopg.OperationalError):
        logger.error("Database connection failure: %s", exc)
        return StoreError(ErrorCode.DB002, status_code=503)
    logger.error("Unmapped database error (%s): %s", type(exc).__name__, exc)
    return StoreError(ErrorCode.DB006)
