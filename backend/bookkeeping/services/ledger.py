import logging
from datetime import datetime
from decimal import Decimal
from typing import Any

from bookkeeping.core.errors import ErrorCode, ServiceError
from bookkeeping.models.bills import BillFields
from bookkeeping.models.transactions import TransactionFields
from bookkeeping.services.bills import create_pending_bill, get_closed_bill, reopen_closed_bill
from bookkeeping.services.common import in_money_range, iso_z, money_out, normalize_datetime, to_money, uuid_or_none
from bookkeeping.services.directory import (
    get_money_account,
    get_person_account,
    get_person_name,
    person_exists,
    resolve_person_names,
    set_account_balance,
)
from bookkeeping.services.validators import check_transaction_fields

logger = logging.getLogger(__name__)

TRANSACTION_COLUMNS = """
    id::text AS id,
    account_id::text AS account_id,
    person_id::text AS person_id,
    person_account_id::text AS person_account_id,
    date,
    amount,
    fee,
    description,
    balance,
    pending_bill_id::text AS pending_bill_id,
    closed_bill_id::text AS closed_bill_id,
    reverted_transaction_id::text AS reverted_transaction_id,
    created_at,
    updated_at
"""


def serialize_transaction(row: dict[str, Any], person_name: str = "", currency: str | None = None) -> dict[str, Any]:
    return {
        "id": row["id"],
        "account_id": row["account_id"],
        "person_id": row["person_id"],
        "person_name": person_name or "",
        "person_account_id": uuid_or_none(row.get("person_account_id")),
        "currency": (currency or "").strip() or None,
        "date": iso_z(row["date"]),
        "amount": money_out(row["amount"]),
        "fee": float(row.get("fee") or 0),
        "description": row["description"],
        "balance": money_out(row["balance"]),
        "pending_bill_id": uuid_or_none(row.get("pending_bill_id")),
        "closed_bill_id": uuid_or_none(row.get("closed_bill_id")),
        "reverted_transaction_id": uuid_or_none(row.get("reverted_transaction_id")),
        "created_at": iso_z(row.get("created_at")),
        "updated_at": iso_z(row.get("updated_at")),
    }


def check_person_account(cur, person_account_id: str, person_id: str, currency: str) -> dict[str, Any]:
    person_account = get_person_account(cur, person_account_id)
    if person_account is None:
        raise ServiceError(ErrorCode.PA002)
    if person_account["person_id"] != str(person_id):
        raise ServiceError(ErrorCode.TR010)
    if (person_account["currency"] or "").strip() != (currency or "").strip():
        raise ServiceError(ErrorCode.TR011)
    return person_account


def checked_balance(balance: Decimal) -> Decimal:
    if balance < 0:
        raise ServiceError(ErrorCode.TR002)
    if not in_money_range(balance):
        raise ServiceError(ErrorCode.TR017)
    return balance


def get_transaction_row(cur, transaction_id: str) -> dict[str, Any] | None:
    cur.execute(f"SELECT {TRANSACTION_COLUMNS} FROM transactions WHERE id=%s::uuid", (transaction_id,))
    return cur.fetchone()


def get_last_transaction_row(cur, account_id: str) -> dict[str, Any] | None:
    cur.execute(
        f"""
        SELECT {TRANSACTION_COLUMNS}
        FROM transactions
        WHERE account_id=%s::uuid
        ORDER BY created_at DESC, id DESC
        LIMIT 1
        """,
        (account_id,),
    )
    return cur.fetchone()


def append_transaction(
    cur,
    account_id: str,
    person_id: str,
    date: datetime | None,
    amount: Any,
    description: str,
    *,
    fee: Any = 0,
    person_account_id: str | None = None,
    reverted_transaction_id: str | None = None,
) -> dict[str, Any]:
    amount = to_money(amount)
    if not in_money_range(amount):
        raise ServiceError(ErrorCode.TR017)
    account = get_money_account(cur, account_id, for_update=True)
    if account is None:
        raise ServiceError(ErrorCode.TR012)
    if not person_exists(cur, person_id):
        raise ServiceError(ErrorCode.PE002)
    if person_account_id:
        check_person_account(cur, person_account_id, person_id, account["currency"])

    new_balance = checked_balance(to_money(account["balance"]) + amount)
    set_account_balance(cur, account_id, new_balance)

    cur.execute(
        f"""
        INSERT INTO transactions (
            account_id,
            person_id,
            person_account_id,
            date,
            amount,
            fee,
            description,
            balance,
            reverted_transaction_id
        )
        VALUES (%s::uuid, %s::uuid, %s::uuid, %s, %s, %s, %s, %s, %s::uuid)
        RETURNING {TRANSACTION_COLUMNS}
        """,
        (
            account_id,
            person_id,
            person_account_id,
            normalize_datetime(date),
            amount,
            Decimal(str(fee or 0)),
            description,
            new_balance,
            reverted_transaction_id,
        ),
    )
    row = cur.fetchone()
    logger.info("Transaction %s appended to account %s: %s -> balance %s", row["id"], account_id, amount, new_balance)
    return serialize_transaction(row, get_person_name(cur, person_id), account["currency"])


def create_transaction(cur, fields: TransactionFields) -> dict[str, Any]:
    check_transaction_fields(fields)
    date = normalize_datetime(fields.date)
    transaction = append_transaction(
        cur,
        str(fields.account_id),
        str(fields.person_id),
        date,
        fields.amount,
        fields.description.strip(),
        person_account_id=uuid_or_none(fields.person_account_id),
    )

    # A direct entry leaves a pending bill with the same fields to settle it against.
    bill = create_pending_bill(
        cur,
        BillFields(
            person_id=fields.person_id,
            date=date,
            description=fields.description,
            currency=transaction["currency"] or "",
            amount=to_money(fields.amount),
        ),
        parent_transaction_id=transaction["id"],
    )
    cur.execute(
        f"""
        UPDATE transactions
        SET pending_bill_id=%s::uuid, updated_at=clock_timestamp()
        WHERE id=%s::uuid
        RETURNING {TRANSACTION_COLUMNS}
        """,
        (bill["id"], transaction["id"]),
    )
    row = cur.fetchone()
    if row is None:
        raise ServiceError(ErrorCode.DB001)
    return serialize_transaction(row, transaction["person_name"], transaction["currency"])


def link_closed_bill(cur, transaction_id: str, bill_id: str) -> dict[str, Any]:
    cur.execute(
        f"""
        UPDATE transactions
        SET closed_bill_id=%s::uuid, updated_at=clock_timestamp()
        WHERE id=%s::uuid
        RETURNING {TRANSACTION_COLUMNS}
        """,
        (bill_id, transaction_id),
    )
    row = cur.fetchone()
    if row is None:
        raise ServiceError(ErrorCode.DB001)
    return row


def _with_lookups(cur, row: dict[str, Any]) -> dict[str, Any]:
    account = get_money_account(cur, row["account_id"])
    currency = account["currency"] if account else None
    return serialize_transaction(row, get_person_name(cur, row["person_id"]), currency)


def get_transaction(cur, transaction_id: str) -> dict[str, Any]:
    row = get_transaction_row(cur, transaction_id)
    if row is None:
        raise ServiceError(ErrorCode.DB001)
    return _with_lookups(cur, row)


def get_last_transaction(cur, account_id: str) -> dict[str, Any]:
    row = get_last_transaction_row(cur, account_id)
    if row is None:
        raise ServiceError(ErrorCode.DB001)
    return _with_lookups(cur, row)


def list_transactions(cur, account_id: str, limit: int, offset: int) -> dict[str, Any]:
    account = get_money_account(cur, account_id)
    if account is None:
        raise ServiceError(ErrorCode.TR012)

    cur.execute("SELECT COUNT(*) AS count FROM transactions WHERE account_id=%s::uuid", (account_id,))
    count = int(cur.fetchone()["count"])
    cur.execute(
        f"""
        SELECT {TRANSACTION_COLUMNS}
        FROM transactions
        WHERE account_id=%s::uuid
        ORDER BY created_at DESC, id DESC
        LIMIT %s OFFSET %s
        """,
        (account_id, limit, offset),
    )
    rows = cur.fetchall()
    names = resolve_person_names(cur, [row["person_id"] for row in rows])
    return {
        "transactions": [
            serialize_transaction(row, names.get(row["person_id"], ""), account["currency"]) for row in rows
        ],
        "count": count,
        "account_id": account_id,
        "limit": limit,
        "offset": offset,
    }


def has_closed_descendant(cur, transaction_id: str) -> bool:
    cur.execute(
        "SELECT id::text AS id FROM closed_bills WHERE parent_transaction_id=%s::uuid LIMIT 1",
        (transaction_id,),
    )
    return cur.fetchone() is not None


def remove_spawned_pending_bills(cur, transaction_id: str) -> list[str]:
    cur.execute(
        "DELETE FROM pending_bills WHERE parent_transaction_id=%s::uuid RETURNING id::text AS id",
        (transaction_id,),
    )
    return [row["id"] for row in cur.fetchall()]


def update_last_transaction(cur, transaction_id: str, fields: TransactionFields) -> dict[str, Any]:
    check_transaction_fields(fields)
    current = get_transaction_row(cur, transaction_id)
    if current is None:
        raise ServiceError(ErrorCode.DB001)
    account_id = current["account_id"]
    if str(fields.account_id) != account_id:
        raise ServiceError(ErrorCode.TR018)

    account = get_money_account(cur, account_id, for_update=True)
    if account is None:
        raise ServiceError(ErrorCode.TR012)
    last = get_last_transaction_row(cur, account_id)
    if last is None or last["id"] != current["id"]:
        raise ServiceError(ErrorCode.TR003)
    if uuid_or_none(current.get("closed_bill_id")) or uuid_or_none(current.get("reverted_transaction_id")):
        raise ServiceError(ErrorCode.TR019)
    if has_closed_descendant(cur, current["id"]):
        raise ServiceError(ErrorCode.TR015)

    person_id = str(fields.person_id)
    if not person_exists(cur, person_id):
        raise ServiceError(ErrorCode.PE002)
    person_account_id = uuid_or_none(fields.person_account_id)
    if person_account_id:
        check_person_account(cur, person_account_id, person_id, account["currency"])

    amount = to_money(fields.amount)
    new_balance = checked_balance(to_money(account["balance"]) - to_money(current["amount"]) + amount)
    date = normalize_datetime(fields.date) if fields.date else current["date"]
    description = fields.description.strip()
    set_account_balance(cur, account_id, new_balance)

    cur.execute(
        f"""
        UPDATE transactions
        SET person_id=%s::uuid,
            person_account_id=%s::uuid,
            date=%s,
            amount=%s,
            description=%s,
            balance=%s,
            updated_at=clock_timestamp()
        WHERE id=%s::uuid
        RETURNING {TRANSACTION_COLUMNS}
        """,
        (person_id, person_account_id, date, amount, description, new_balance, current["id"]),
    )
    row = cur.fetchone()
    if row is None:
        raise ServiceError(ErrorCode.DB001)

    # The bill spawned by the entry follows it while still pending.
    cur.execute(
        """
        UPDATE pending_bills
        SET person_id=%s::uuid,
            date=%s,
            description=%s,
            amount=%s,
            updated_at=clock_timestamp()
        WHERE parent_transaction_id=%s::uuid
        """,
        (person_id, date, description, amount, current["id"]),
    )

    logger.info("Transaction %s updated: %s -> balance %s", current["id"], amount, new_balance)
    return serialize_transaction(row, get_person_name(cur, person_id), account["currency"])


def delete_last_transaction(cur, account_id: str, transaction_id: str | None = None) -> dict[str, Any]:
    account = get_money_account(cur, account_id, for_update=True)
    if account is None:
        raise ServiceError(ErrorCode.TR012)
    last = get_last_transaction_row(cur, account_id)
    if last is None:
        raise ServiceError(ErrorCode.DB001)
    if transaction_id and last["id"] != transaction_id:
        raise ServiceError(ErrorCode.TR003)

    restored = checked_balance(to_money(account["balance"]) - to_money(last["amount"]))
    if has_closed_descendant(cur, last["id"]):
        raise ServiceError(ErrorCode.TR015)

    removed_bills = remove_spawned_pending_bills(cur, last["id"])

    reopened_bill_id = None
    closed_bill_id = uuid_or_none(last.get("closed_bill_id"))
    if closed_bill_id:
        reopened = reopen_closed_bill(cur, closed_bill_id)
        reopened_bill_id = reopened["id"] if reopened else None

    cur.execute("DELETE FROM transactions WHERE id=%s::uuid RETURNING id::text AS id", (last["id"],))
    if cur.fetchone() is None:
        raise ServiceError(ErrorCode.DB001)
    set_account_balance(cur, account_id, restored)

    logger.info("Transaction %s deleted from account %s, balance restored to %s", last["id"], account_id, restored)
    return {
        "id": last["id"],
        "account_id": account_id,
        "balance": money_out(restored),
        "reopened_bill_id": reopened_bill_id,
        "removed_pending_bill_ids": removed_bills,
    }


def delete_transaction(cur, transaction_id: str) -> dict[str, Any]:
    row = get_transaction_row(cur, transaction_id)
    if row is None:
        raise ServiceError(ErrorCode.DB001)
    return delete_last_transaction(cur, row["account_id"], transaction_id)


def revert_transaction(cur, transaction_id: str, date: datetime | None = None) -> dict[str, Any]:
    original = get_transaction_row(cur, transaction_id)
    if original is None:
        raise ServiceError(ErrorCode.DB001)
    if uuid_or_none(original.get("reverted_transaction_id")):
        raise ServiceError(ErrorCode.TR016)

    account_id = original["account_id"]
    if get_money_account(cur, account_id, for_update=True) is None:
        raise ServiceError(ErrorCode.TR012)
    last = get_last_transaction_row(cur, account_id)
    if last is None or last["id"] != original["id"]:
        raise ServiceError(ErrorCode.TR003)

    reversal = append_transaction(
        cur,
        account_id,
        original["person_id"],
        date,
        -to_money(original["amount"]),
        f"Revert: {original['description']}",
        person_account_id=uuid_or_none(original.get("person_account_id")),
        reverted_transaction_id=original["id"],
    )
    removed_bills = remove_spawned_pending_bills(cur, original["id"])

    bill = None
    closed_bill_id = uuid_or_none(original.get("closed_bill_id"))
    closed = get_closed_bill(cur, closed_bill_id) if closed_bill_id else None
    if closed is not None:
        # The closed bill stays as the audit record; the debt reappears as a new pending bill.
        bill = create_pending_bill(
            cur,
            BillFields(
                person_id=closed["person_id"],
                date=closed["date"],
                description=closed["description"],
                currency=(closed["currency"] or "").strip(),
                amount=closed["amount"],
            ),
            parent_transaction_id=reversal["id"],
        )

    logger.info("Transaction %s reverted by %s", original["id"], reversal["id"])
    return {"transaction": reversal, "bill": bill, "removed_pending_bill_ids": removed_bills}
