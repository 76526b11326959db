from fastapi import APIRouter, Request

from bookkeeping.db.pool import begin_snapshot, db_conn
from bookkeeping.models.transactions import RevertRequest, TransactionFields
from bookkeeping.routers.params import enforce_write_rate_limit, parse_page
from bookkeeping.services.common import parse_uuid_value
from bookkeeping.services.ledger import (
    create_transaction,
    delete_last_transaction,
    delete_transaction,
    get_last_transaction,
    get_transaction,
    list_transactions,
    revert_transaction,
    update_last_transaction,
)

router = APIRouter()


@router.get("/transactions/{account_id}")
def list_transactions_route(account_id: str, limit: str | None = None, offset: str | None = None):
    account_id = parse_uuid_value(account_id, "account_id")
    page_limit, page_offset = parse_page(limit, offset)
    with db_conn() as conn, conn.cursor() as cur:
        begin_snapshot(cur)
        return list_transactions(cur, account_id, page_limit, page_offset)


@router.get("/transaction/{transaction_id}")
def get_transaction_route(transaction_id: str):
    transaction_id = parse_uuid_value(transaction_id, "transaction_id")
    with db_conn() as conn, conn.cursor() as cur:
        return get_transaction(cur, transaction_id)


@router.post("/transactions", status_code=201)
def create_transaction_route(req: Request, payload: TransactionFields):
    enforce_write_rate_limit(req)
    with db_conn() as conn, conn.cursor() as cur:
        transaction = create_transaction(cur, payload)
        conn.commit()
    return transaction


@router.patch("/transactions/{transaction_id}")
def update_last_transaction_route(req: Request, transaction_id: str, payload: TransactionFields):
    transaction_id = parse_uuid_value(transaction_id, "transaction_id")
    enforce_write_rate_limit(req)
    with db_conn() as conn, conn.cursor() as cur:
        transaction = update_last_transaction(cur, transaction_id, payload)
        conn.commit()
    return transaction


@router.get("/accounts/{account_id}/last_transaction")
def get_last_transaction_route(account_id: str):
    account_id = parse_uuid_value(account_id, "account_id")
    with db_conn() as conn, conn.cursor() as cur:
        return get_last_transaction(cur, account_id)


@router.delete("/accounts/{account_id}/last_transaction")
def delete_last_transaction_route(req: Request, account_id: str):
    account_id = parse_uuid_value(account_id, "account_id")
    enforce_write_rate_limit(req)
    with db_conn() as conn, conn.cursor() as cur:
        result = delete_last_transaction(cur, account_id)
        conn.commit()
    return result


@router.delete("/transactions/{transaction_id}")
def delete_transaction_route(req: Request, transaction_id: str):
    transaction_id = parse_uuid_value(transaction_id, "transaction_id")
    enforce_write_rate_limit(req)
    with db_conn() as conn, conn.cursor() as cur:
        result = delete_transaction(cur, transaction_id)
        conn.commit()
    return result


@router.post("/transactions/{transaction_id}/revert", status_code=201)
def revert_transaction_route(req: Request, transaction_id: str, payload: RevertRequest | None = None):
    transaction_id = parse_uuid_value(transaction_id, "transaction_id")
    enforce_write_rate_limit(req)
    with db_conn() as conn, conn.cursor() as cur:
        result = revert_transaction(cur, transaction_id, payload.date if payload else None)
        conn.commit()
    return result
