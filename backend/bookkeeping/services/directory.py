import logging
from typing import Any, Iterable

import psycopg

logger = logging.getLogger(__name__)


def person_exists(cur, person_id: str) -> bool:
    cur.execute("SELECT 1 AS found FROM persons WHERE id=%s::uuid", (person_id,))
    return cur.fetchone() is not None


def resolve_person_names(cur, person_ids: Iterable[str]) -> dict[str, str]:
    unique_ids = sorted({str(pid) for pid in person_ids if pid})
    if not unique_ids:
        return {}
    try:
        # Savepoint: a failed lookup must not abort the caller's transaction.
        with cur.connection.transaction():
            cur.execute(
                "SELECT id::text AS id, name FROM persons WHERE id = ANY(%s::uuid[])",
                (unique_ids,),
            )
            rows = cur.fetchall()
    except psycopg.Error as exc:
        logger.warning("Could not resolve person names for %d ids: %s", len(unique_ids), exc)
        return {}
    return {row["id"]: row["name"] or "" for row in rows}


def get_person_name(cur, person_id: str) -> str:
    return resolve_person_names(cur, [person_id]).get(str(person_id), "")


def get_money_account(cur, account_id: str, for_update: bool = False) -> dict[str, Any] | None:
    sql = """
        SELECT id::text AS id, name, currency, balance
        FROM money_accounts
        WHERE id=%s::uuid
    """
    if for_update:
        sql += " FOR UPDATE"
    cur.execute(sql, (account_id,))
    return cur.fetchone()


def set_account_balance(cur, account_id: str, balance) -> Any:
    cur.execute(
        """
        UPDATE money_accounts
        SET balance=%s, updated_at=now()
        WHERE id=%s::uuid
        RETURNING balance
        """,
        (balance, account_id),
    )
    row = cur.fetchone()
    return row["balance"] if row else None


def get_person_account(cur, person_account_id: str) -> dict[str, Any] | None:
    cur.execute(
        """
        SELECT id::text AS id, person_id::text AS person_id, name, description, currency
        FROM person_accounts
        WHERE id=%s::uuid
        """,
        (person_account_id,),
    )
    return cur.fetchone()
