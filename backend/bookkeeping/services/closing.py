import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from bookkeeping.core.errors import ErrorCode, ServiceError
from bookkeeping.models.bills import BillStatus
from bookkeeping.services.bills import (
    get_closed_bill,
    get_pending_bill,
    insert_closed_bill,
    raise_missing_pending,
    remove_pending_row,
    serialize_bill_row,
)
from bookkeeping.services.common import to_money, uuid_or_none
from bookkeeping.services.directory import get_money_account, get_person_name
from bookkeeping.services.ledger import append_transaction, check_person_account, link_closed_bill, revert_transaction

logger = logging.getLogger(__name__)

FEE_STEP = Decimal("0.0001")


def parse_fee(value: Any) -> Decimal:
    try:
        fee = Decimal(str(value if value is not None else 0))
    except (InvalidOperation, ValueError):
        raise ServiceError(ErrorCode.TR009)
    if not fee.is_finite() or fee < 0 or fee > 1:
        raise ServiceError(ErrorCode.TR009)
    return fee.quantize(FEE_STEP)


def net_amount(amount: Any, fee: Decimal) -> Decimal:
    return to_money(to_money(amount) * (1 - fee))


def close_bill(
    cur,
    bill_id: str,
    account_id: str,
    person_account_id: str | None = None,
    close_date: datetime | None = None,
    fee: Any = 0,
) -> dict[str, Any]:
    # FOR UPDATE serializes concurrent closes; the loser finds the bill closed.
    pending = get_pending_bill(cur, bill_id, for_update=True)
    if pending is None:
        raise_missing_pending(cur, bill_id, ErrorCode.TR013)

    account = get_money_account(cur, account_id)
    if account is None:
        raise ServiceError(ErrorCode.TR012)
    person_account_id = uuid_or_none(person_account_id)
    if person_account_id:
        check_person_account(cur, person_account_id, pending["person_id"], account["currency"])
    if (pending["currency"] or "").strip() != (account["currency"] or "").strip():
        raise ServiceError(ErrorCode.TR011)

    fee = parse_fee(fee)
    amount = net_amount(pending["amount"], fee)

    transaction = append_transaction(
        cur,
        account_id,
        pending["person_id"],
        close_date,
        amount,
        pending["description"],
        fee=fee,
        person_account_id=person_account_id,
    )
    if remove_pending_row(cur, bill_id) is None:
        raise ServiceError(ErrorCode.TR013)
    closed = insert_closed_bill(cur, pending, transaction_id=transaction["id"])
    link_closed_bill(cur, transaction["id"], bill_id)

    logger.info(
        "Bill %s closed by transaction %s on account %s (amount %s, fee %s)",
        bill_id,
        transaction["id"],
        account_id,
        amount,
        fee,
    )
    return serialize_bill_row(closed, BillStatus.closed, get_person_name(cur, pending["person_id"]))


def revert_closed_bill(cur, bill_id: str, date: datetime | None = None) -> dict[str, Any]:
    closed = get_closed_bill(cur, bill_id)
    if closed is None:
        if get_pending_bill(cur, bill_id) is not None:
            raise ServiceError(ErrorCode.DB001, "Only closed bills can be reverted")
        raise ServiceError(ErrorCode.DB001)
    transaction_id = uuid_or_none(closed.get("transaction_id"))
    if not transaction_id:
        raise ServiceError(ErrorCode.DB001, "Bill was not closed by a transaction")
    return revert_transaction(cur, transaction_id, date)
