import unittest

import psycopg
from fake_store import ConstraintViolation, FakeStore
from psycopg import errors as pg_errors

from bookkeeping.core.errors import ErrorCode, ServiceError, StoreError
from bookkeeping.db.errors import CONSTRAINT_CODES, map_db_error


class MapDbErrorTests(unittest.TestCase):
    def test_named_constraints_map_to_domain_codes(self):
        for constraint, code in CONSTRAINT_CODES.items():
            mapped = map_db_error(ConstraintViolation(constraint))
            self.assertEqual(mapped.code, code, constraint)
            self.assertEqual(mapped.status_code, 400, constraint)
            self.assertNotIsInstance(mapped, StoreError)

    def test_unknown_constraint_is_a_store_failure(self):
        with self.assertLogs("bookkeeping.db.errors", level="ERROR"):
            mapped = map_db_error(ConstraintViolation("closed_bills_transaction_id_fkey"))
        self.assertIsInstance(mapped, StoreError)
        self.assertEqual((mapped.code, mapped.status_code), (ErrorCode.DB006, 500))

    def test_integrity_error_without_diagnostics(self):
        with self.assertLogs("bookkeeping.db.errors", level="ERROR"):
            mapped = map_db_error(psycopg.IntegrityError("no constraint reported"))
        self.assertEqual(mapped.code, ErrorCode.DB006)

    def test_numeric_overflow_is_an_input_error(self):
        mapped = map_db_error(pg_errors.NumericValueOutOfRange("numeric field overflow"))
        self.assertEqual((mapped.code, mapped.status_code), (ErrorCode.VA001, 400))

    def test_unavailable_and_cancelled_statements(self):
        with self.assertLogs("bookkeeping.db.errors", level="ERROR"):
            cancelled = map_db_error(pg_errors.QueryCanceled("canceling statement due to statement timeout"))
            unavailable = map_db_error(psycopg.OperationalError("connection refused"))
        self.assertEqual((cancelled.code, cancelled.status_code), (ErrorCode.DB010, 503))
        self.assertEqual((unavailable.code, unavailable.status_code), (ErrorCode.DB002, 503))

    def test_connection_maps_constraint_violations(self):
        store = FakeStore()
        account_id = store.add_account(balance="5")
        with self.assertRaises(ServiceError) as ctx:
            with store.connection() as conn, conn.cursor() as cur:
                cur.execute("UPDATE money_accounts SET balance=%s WHERE id=%s::uuid", ("-1", account_id))
        self.assertEqual(ctx.exception.code, ErrorCode.TR002)
        self.assertEqual(store.balance(account_id), 5)


if __name__ == "__main__":
    unittest.main()
