import logging
from typing import Any

from bookkeeping.core.errors import ErrorCode, ServiceError, StoreError
from bookkeeping.models.bills import BillFields, BillStatus
from bookkeeping.services.common import (
    ZERO_UUID_STR,
    iso_z,
    is_zero_uuid,
    money_out,
    normalize_datetime,
    to_money,
    uuid_or_none,
)
from bookkeeping.services.directory import get_person_name, person_exists, resolve_person_names
from bookkeeping.services.validators import check_bill_fields

logger = logging.getLogger(__name__)

PENDING_COLUMNS = """
    id::text AS id,
    person_id::text AS person_id,
    date,
    description,
    currency,
    amount,
    parent_transaction_id::text AS parent_transaction_id,
    parent_bill_cross_id::text AS parent_bill_cross_id,
    created_at,
    updated_at
"""

CLOSED_COLUMNS = (
    PENDING_COLUMNS.rstrip()
    + """,
    transaction_id::text AS transaction_id,
    bill_cross_id::text AS bill_cross_id,
    revert_transaction_id::text AS revert_transaction_id,
    post_notes,
    closed_at
"""
)

CLOSING_LINKS = (
    ("transaction_id", "transaction"),
    ("bill_cross_id", "bill_cross"),
    ("revert_transaction_id", "revert"),
)


def closed_by(row: dict[str, Any]) -> str:
    links = [kind for column, kind in CLOSING_LINKS if uuid_or_none(row.get(column))]
    if len(links) != 1:
        logger.error("Closed bill %s carries %d closing links", row.get("id"), len(links))
        raise StoreError(ErrorCode.DB006, f"Closed bill {row.get('id')} has inconsistent closing links")
    return links[0]


def serialize_bill_row(row: dict[str, Any], status: BillStatus, person_name: str = "") -> dict[str, Any]:
    is_closed = status == BillStatus.closed
    return {
        "id": row["id"],
        "person_id": row["person_id"],
        "person_name": person_name or "",
        "status": status.value,
        "date": iso_z(row["date"]),
        "description": row["description"],
        "currency": (row["currency"] or "").strip(),
        "amount": money_out(row["amount"]),
        "parent_transaction_id": uuid_or_none(row.get("parent_transaction_id")),
        "parent_bill_cross_id": uuid_or_none(row.get("parent_bill_cross_id")),
        "transaction_id": uuid_or_none(row.get("transaction_id")) if is_closed else None,
        "bill_cross_id": uuid_or_none(row.get("bill_cross_id")) if is_closed else None,
        "revert_transaction_id": uuid_or_none(row.get("revert_transaction_id")) if is_closed else None,
        "closed_by": closed_by(row) if is_closed else None,
        "post_notes": (row.get("post_notes") or "") if is_closed else "",
        "created_at": iso_z(row.get("created_at")),
        "updated_at": iso_z(row.get("updated_at")),
        "closed_at": iso_z(row.get("closed_at")) if is_closed else None,
    }


def get_pending_bill(cur, bill_id: str, for_update: bool = False) -> dict[str, Any] | None:
    sql = f"SELECT {PENDING_COLUMNS} FROM pending_bills WHERE id=%s::uuid"
    if for_update:
        sql += " FOR UPDATE"
    cur.execute(sql, (bill_id,))
    return cur.fetchone()


def get_closed_bill(cur, bill_id: str) -> dict[str, Any] | None:
    cur.execute(f"SELECT {CLOSED_COLUMNS} FROM closed_bills WHERE id=%s::uuid", (bill_id,))
    return cur.fetchone()


def raise_missing_pending(cur, bill_id: str, missing_code: ErrorCode = ErrorCode.DB001) -> None:
    if get_closed_bill(cur, bill_id) is not None:
        raise ServiceError(ErrorCode.BL004)
    raise ServiceError(missing_code)


def create_pending_bill(
    cur,
    fields: BillFields,
    parent_transaction_id: str | None = None,
    parent_bill_cross_id: str | None = None,
) -> dict[str, Any]:
    check_bill_fields(cur, fields)
    person_id = str(fields.person_id)
    if not person_exists(cur, person_id):
        raise ServiceError(ErrorCode.PE002)

    cur.execute(
        f"""
        INSERT INTO pending_bills (
            person_id,
            date,
            description,
            currency,
            amount,
            parent_transaction_id,
            parent_bill_cross_id
        )
        VALUES (%s::uuid, %s, %s, %s, %s, %s::uuid, %s::uuid)
        RETURNING {PENDING_COLUMNS}
        """,
        (
            person_id,
            normalize_datetime(fields.date),
            fields.description.strip(),
            fields.currency,
            to_money(fields.amount),
            parent_transaction_id,
            parent_bill_cross_id,
        ),
    )
    row = cur.fetchone()
    logger.info("Pending bill %s created for person %s (%s %s)", row["id"], person_id, row["amount"], row["currency"])
    return serialize_bill_row(row, BillStatus.pending, get_person_name(cur, person_id))


def get_bill(cur, bill_id: str) -> dict[str, Any]:
    row = get_pending_bill(cur, bill_id)
    status = BillStatus.pending
    if row is None:
        row = get_closed_bill(cur, bill_id)
        status = BillStatus.closed
    if row is None:
        raise ServiceError(ErrorCode.DB001)
    return serialize_bill_row(row, status, get_person_name(cur, row["person_id"]))


def update_pending_bill(cur, bill_id: str, fields: BillFields) -> dict[str, Any]:
    check_bill_fields(cur, fields)
    current = get_pending_bill(cur, bill_id, for_update=True)
    if current is None:
        raise_missing_pending(cur, bill_id)
    if fields.currency != (current["currency"] or "").strip():
        raise ServiceError(ErrorCode.BL005)
    person_id = str(fields.person_id)
    if not person_exists(cur, person_id):
        raise ServiceError(ErrorCode.PE002)

    cur.execute(
        f"""
        UPDATE pending_bills
        SET person_id=%s::uuid,
            date=%s,
            description=%s,
            amount=%s,
            updated_at=clock_timestamp()
        WHERE id=%s::uuid
        RETURNING {PENDING_COLUMNS}
        """,
        (
            person_id,
            normalize_datetime(fields.date),
            fields.description.strip(),
            to_money(fields.amount),
            bill_id,
        ),
    )
    row = cur.fetchone()
    if row is None:
        raise ServiceError(ErrorCode.DB001)
    return serialize_bill_row(row, BillStatus.pending, get_person_name(cur, person_id))


def remove_pending_row(cur, bill_id: str) -> dict[str, Any] | None:
    cur.execute(f"DELETE FROM pending_bills WHERE id=%s::uuid RETURNING {PENDING_COLUMNS}", (bill_id,))
    return cur.fetchone()


def delete_pending_bill(cur, bill_id: str) -> dict[str, str]:
    current = get_pending_bill(cur, bill_id, for_update=True)
    if current is None:
        raise_missing_pending(cur, bill_id)
    if uuid_or_none(current.get("parent_transaction_id")):
        raise ServiceError(ErrorCode.BL003)
    row = remove_pending_row(cur, bill_id)
    if row is None:
        raise ServiceError(ErrorCode.DB001)
    logger.info("Pending bill %s deleted", bill_id)
    return {"id": row["id"]}


def list_pending_bills(
    cur,
    person_id: str | None,
    to_pay: bool,
    to_charge: bool,
    limit: int,
    offset: int,
) -> dict[str, Any]:
    if not to_pay and not to_charge:
        raise ServiceError(ErrorCode.BL001)

    filters: list[str] = []
    params: list[Any] = []
    if not is_zero_uuid(person_id):
        filters.append("person_id=%s::uuid")
        params.append(person_id)
    if not to_pay:
        filters.append("amount > 0")
    if not to_charge:
        filters.append("amount < 0")
    where = f"WHERE {' AND '.join(filters)}" if filters else ""

    cur.execute(f"SELECT COUNT(*) AS count FROM pending_bills {where}", params)
    count = int(cur.fetchone()["count"])

    cur.execute(
        f"""
        SELECT {PENDING_COLUMNS}
        FROM pending_bills
        {where}
        ORDER BY created_at DESC, id DESC
        LIMIT %s OFFSET %s
        """,
        [*params, limit, offset],
    )
    rows = cur.fetchall()
    names = resolve_person_names(cur, [row["person_id"] for row in rows])

    return {
        "bills": [serialize_bill_row(row, BillStatus.pending, names.get(row["person_id"], "")) for row in rows],
        "count": count,
        "filter_person_id": uuid_or_none(person_id) or ZERO_UUID_STR,
        "limit": limit,
        "offset": offset,
    }


def insert_closed_bill(
    cur,
    pending_row: dict[str, Any],
    *,
    transaction_id: str | None = None,
    bill_cross_id: str | None = None,
    revert_transaction_id: str | None = None,
) -> dict[str, Any]:
    cur.execute(
        f"""
        INSERT INTO closed_bills (
            id,
            person_id,
            date,
            description,
            currency,
            amount,
            parent_transaction_id,
            parent_bill_cross_id,
            transaction_id,
            bill_cross_id,
            revert_transaction_id,
            post_notes,
            created_at
        )
        VALUES (%s::uuid, %s::uuid, %s, %s, %s, %s, %s::uuid, %s::uuid, %s::uuid, %s::uuid, %s::uuid, '', %s)
        RETURNING {CLOSED_COLUMNS}
        """,
        (
            pending_row["id"],
            pending_row["person_id"],
            pending_row["date"],
            pending_row["description"],
            pending_row["currency"],
            pending_row["amount"],
            uuid_or_none(pending_row.get("parent_transaction_id")),
            uuid_or_none(pending_row.get("parent_bill_cross_id")),
            transaction_id,
            bill_cross_id,
            revert_transaction_id,
            pending_row["created_at"],
        ),
    )
    return cur.fetchone()


def reopen_closed_bill(cur, bill_id: str) -> dict[str, Any] | None:
    cur.execute(f"DELETE FROM closed_bills WHERE id=%s::uuid RETURNING {CLOSED_COLUMNS}", (bill_id,))
    closed = cur.fetchone()
    if closed is None:
        return None
    cur.execute(
        f"""
        INSERT INTO pending_bills (
            id,
            person_id,
            date,
            description,
            currency,
            amount,
            parent_transaction_id,
            parent_bill_cross_id,
            created_at
        )
        VALUES (%s::uuid, %s::uuid, %s, %s, %s, %s, %s::uuid, %s::uuid, %s)
        RETURNING {PENDING_COLUMNS}
        """,
        (
            closed["id"],
            closed["person_id"],
            closed["date"],
            closed["description"],
            closed["currency"],
            closed["amount"],
            uuid_or_none(closed.get("parent_transaction_id")),
            uuid_or_none(closed.get("parent_bill_cross_id")),
            closed["created_at"],
        ),
    )
    logger.info("Closed bill %s moved back to pending", bill_id)
    return cur.fetchone()


def set_post_notes(cur, bill_id: str, notes: str) -> dict[str, Any]:
    cur.execute(
        f"""
        UPDATE closed_bills
        SET post_notes=%s, updated_at=clock_timestamp()
        WHERE id=%s::uuid
        RETURNING {CLOSED_COLUMNS}
        """,
        (notes.strip(), bill_id),
    )
    row = cur.fetchone()
    if row is None:
        if get_pending_bill(cur, bill_id) is not None:
            raise ServiceError(ErrorCode.BL006)
        raise ServiceError(ErrorCode.DB001)
    return serialize_bill_row(row, BillStatus.closed, get_person_name(cur, row["person_id"]))


def empty_bills(cur) -> dict[str, int]:
    cur.execute("DELETE FROM pending_bills")
    pending = max(0, cur.rowcount)
    cur.execute("DELETE FROM closed_bills")
    closed = max(0, cur.rowcount)
    logger.warning("Maintenance: removed %d pending and %d closed bills", pending, closed)
    return {"pending": pending, "closed": closed}
