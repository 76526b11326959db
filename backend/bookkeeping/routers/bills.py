from fastapi import APIRouter, Request

from bookkeeping.core.config import settings
from bookkeeping.core.errors import ErrorCode, ServiceError
from bookkeeping.db.pool import begin_snapshot, db_conn
from bookkeeping.models.bills import BillFields, CloseBillRequest, PostNotesRequest
from bookkeeping.models.transactions import RevertRequest
from bookkeeping.routers.params import enforce_write_rate_limit, parse_bool, parse_page
from bookkeeping.services.bills import (
    create_pending_bill,
    delete_pending_bill,
    empty_bills,
    get_bill,
    list_pending_bills,
    set_post_notes,
    update_pending_bill,
)
from bookkeeping.services.closing import close_bill, revert_closed_bill
from bookkeeping.services.common import parse_uuid_value

router = APIRouter()


@router.get("/pending_bills/{person_id}")
def list_pending_bills_route(
    person_id: str,
    to_pay: str | None = None,
    to_charge: str | None = None,
    limit: str | None = None,
    offset: str | None = None,
):
    person_id = parse_uuid_value(person_id, "person_id")
    include_to_pay = parse_bool(to_pay, "to_pay", True)
    include_to_charge = parse_bool(to_charge, "to_charge", True)
    page_limit, page_offset = parse_page(limit, offset)

    with db_conn() as conn, conn.cursor() as cur:
        begin_snapshot(cur)
        return list_pending_bills(cur, person_id, include_to_pay, include_to_charge, page_limit, page_offset)


@router.post("/pending_bills", status_code=201)
def create_pending_bill_route(req: Request, payload: BillFields):
    enforce_write_rate_limit(req)
    with db_conn() as conn, conn.cursor() as cur:
        bill = create_pending_bill(cur, payload)
        conn.commit()
    return bill


@router.get("/bills/{bill_id}")
def get_bill_route(bill_id: str):
    bill_id = parse_uuid_value(bill_id, "bill_id")
    with db_conn() as conn, conn.cursor() as cur:
        return get_bill(cur, bill_id)


@router.patch("/pending_bills/{bill_id}")
def update_pending_bill_route(req: Request, bill_id: str, payload: BillFields):
    bill_id = parse_uuid_value(bill_id, "bill_id")
    enforce_write_rate_limit(req)
    with db_conn() as conn, conn.cursor() as cur:
        bill = update_pending_bill(cur, bill_id, payload)
        conn.commit()
    return bill


@router.delete("/pending_bills/{bill_id}")
def delete_pending_bill_route(req: Request, bill_id: str):
    bill_id = parse_uuid_value(bill_id, "bill_id")
    enforce_write_rate_limit(req)
    with db_conn() as conn, conn.cursor() as cur:
        result = delete_pending_bill(cur, bill_id)
        conn.commit()
    return result


@router.post("/pending_bills/{bill_id}/close")
def close_bill_route(req: Request, bill_id: str, payload: CloseBillRequest):
    bill_id = parse_uuid_value(bill_id, "bill_id")
    enforce_write_rate_limit(req)
    person_account_id = str(payload.person_account_id) if payload.person_account_id else None
    with db_conn() as conn, conn.cursor() as cur:
        bill = close_bill(cur, bill_id, str(payload.account_id), person_account_id, payload.date, payload.fee)
        conn.commit()
    return bill


@router.post("/closed_bills/{bill_id}/revert", status_code=201)
def revert_closed_bill_route(req: Request, bill_id: str, payload: RevertRequest | None = None):
    bill_id = parse_uuid_value(bill_id, "bill_id")
    enforce_write_rate_limit(req)
    with db_conn() as conn, conn.cursor() as cur:
        result = revert_closed_bill(cur, bill_id, payload.date if payload else None)
        conn.commit()
    return result


@router.patch("/closed_bills/{bill_id}/notes")
def set_post_notes_route(req: Request, bill_id: str, payload: PostNotesRequest):
    bill_id = parse_uuid_value(bill_id, "bill_id")
    enforce_write_rate_limit(req)
    with db_conn() as conn, conn.cursor() as cur:
        bill = set_post_notes(cur, bill_id, payload.post_notes)
        conn.commit()
    return bill


@router.delete("/bills")
def empty_bills_route(req: Request):
    if not settings.allow_maintenance:
        raise ServiceError(ErrorCode.SE002, status_code=403)
    enforce_write_rate_limit(req)
    with db_conn() as conn, conn.cursor() as cur:
        removed = empty_bills(cur)
        conn.commit()
    return {"ok": True, "removed": removed}
