import logging
from contextlib import contextmanager
from pathlib import Path

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool, PoolTimeout

from bookkeeping.core.config import settings
from bookkeeping.core.errors import ErrorCode, StoreError
from bookkeeping.db.errors import map_db_error

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).with_name("schema.sql")


def _connection_kwargs() -> dict:
    kwargs: dict = {
        "row_factory": dict_row,
        "connect_timeout": settings.db_connect_timeout,
    }
    if settings.db_statement_timeout_ms:
        kwargs["options"] = f"-c statement_timeout={settings.db_statement_timeout_ms}"
    return kwargs


DB_POOL = ConnectionPool(
    settings.database_url,
    min_size=settings.db_pool_min,
    max_size=settings.db_pool_max,
    timeout=settings.db_pool_timeout,
    max_waiting=settings.db_pool_max_waiting,
    open=False,
    kwargs=_connection_kwargs(),
)


def open_db_pool() -> None:
    DB_POOL.open()


def close_db_pool() -> None:
    DB_POOL.close()


@contextmanager
def db_conn():
    # The pool commits on a clean exit and rolls back when an exception leaves the block.
    try:
        with DB_POOL.connection() as conn:
            yield conn
    except PoolTimeout as exc:
        logger.error("Timed out waiting for a database connection: %s", exc)
        raise StoreError(ErrorCode.DB002, status_code=503) from exc
    except psycopg.Error as exc:
        raise map_db_error(exc) from exc


def apply_schema() -> None:
    sql = SCHEMA_PATH.read_text(encoding="utf-8")
    try:
        with DB_POOL.connection() as conn:
            conn.execute(sql)
            conn.commit()
    except psycopg.Error as exc:
        raise map_db_error(exc) from exc
    logger.info("Database schema applied from %s", SCHEMA_PATH.name)


def begin_snapshot(cur) -> None:
    # Only valid as the first statement of the transaction.
    cur.execute("SET TRANSACTION ISOLATION LEVEL REPEATABLE READ, READ ONLY")
