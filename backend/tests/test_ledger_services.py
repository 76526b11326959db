import unittest
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from fake_store import FakeStore

from bookkeeping.core.errors import ErrorCode, ServiceError
from bookkeeping.models.transactions import TransactionFields
from bookkeeping.services.currencies import forget_currencies
from bookkeeping.services.ledger import (
    append_transaction,
    create_transaction,
    delete_last_transaction,
    delete_transaction,
    get_last_transaction,
    get_transaction,
    list_transactions,
    revert_transaction,
    update_last_transaction,
)

TX_DATE = datetime(2026, 2, 20, 9, 0, tzinfo=timezone.utc)


class LedgerTestCase(unittest.TestCase):
    def setUp(self):
        forget_currencies()
        self.store = FakeStore()
        self.cur = self.store.cursor()
        self.person_id = self.store.add_person("Ana")
        self.account_id = self.store.add_account(balance="100.00")

    def append(self, amount, **kwargs) -> dict:
        return append_transaction(
            self.cur,
            self.account_id,
            self.person_id,
            TX_DATE,
            amount,
            "Fuel",
            **kwargs,
        )


class AppendTransactionTests(LedgerTestCase):
    def test_append_updates_balance_and_snapshot(self):
        first = self.append("-20.50")
        second = self.append("5.25")

        self.assertEqual(first["balance"], 79.50)
        self.assertEqual(second["balance"], 84.75)
        self.assertEqual(self.store.balance(self.account_id), Decimal("84.75"))
        self.assertEqual(second["currency"], "USD")
        self.assertEqual(second["person_name"], "Ana")
        self.assertEqual(second["date"], "2026-02-20T09:00:00Z")

    def test_negative_balance_is_refused(self):
        with self.assertRaises(ServiceError) as ctx:
            self.append("-100.01")
        self.assertEqual(ctx.exception.code, ErrorCode.TR002)
        self.assertEqual(self.store.balance(self.account_id), Decimal("100.00"))
        self.assertEqual(self.store.tables["transactions"], {})

    def test_balance_may_reach_zero(self):
        self.assertEqual(self.append("-100")["balance"], 0.0)

    def test_unknown_account(self):
        with self.assertRaises(ServiceError) as ctx:
            append_transaction(self.cur, str(uuid.uuid4()), self.person_id, TX_DATE, "1", "Fuel")
        self.assertEqual(ctx.exception.code, ErrorCode.TR012)

    def test_unknown_person(self):
        with self.assertRaises(ServiceError) as ctx:
            append_transaction(self.cur, self.account_id, str(uuid.uuid4()), TX_DATE, "1", "Fuel")
        self.assertEqual(ctx.exception.code, ErrorCode.PE002)

    def test_person_account_checks(self):
        other = self.store.add_person("Bruno")
        cases = [
            (str(uuid.uuid4()), ErrorCode.PA002),
            (self.store.add_person_account(other), ErrorCode.TR010),
            (self.store.add_person_account(self.person_id, currency="VED"), ErrorCode.TR011),
        ]
        for person_account_id, code in cases:
            with self.assertRaises(ServiceError) as ctx:
                self.append("1", person_account_id=person_account_id)
            self.assertEqual(ctx.exception.code, code)

        person_account_id = self.store.add_person_account(self.person_id)
        row = self.append("1", person_account_id=person_account_id)
        self.assertEqual(row["person_account_id"], person_account_id)

    def test_balance_must_fit_money_columns(self):
        self.store.tables["money_accounts"][self.account_id]["balance"] = Decimal("999999999999.00")
        with self.assertRaises(ServiceError) as ctx:
            self.append("1")
        self.assertEqual(ctx.exception.code, ErrorCode.TR017)
        self.assertEqual(self.store.tables["transactions"], {})

    def test_create_transaction_validates_fields(self):
        fields = TransactionFields(
            account_id=self.account_id,
            person_id=self.person_id,
            date=TX_DATE,
            amount="0",
            description="Fuel",
        )
        with self.assertRaises(ServiceError) as ctx:
            create_transaction(self.cur, fields)
        self.assertEqual(ctx.exception.code, ErrorCode.TR008)

        created = create_transaction(self.cur, fields.model_copy(update={"amount": Decimal("12.30")}))
        self.assertEqual(created["amount"], 12.30)
        self.assertEqual(created["balance"], 112.30)


class DirectEntryTestCase(LedgerTestCase):
    def fields(self, **overrides) -> TransactionFields:
        data = {
            "account_id": self.account_id,
            "person_id": self.person_id,
            "date": TX_DATE,
            "amount": "10",
            "description": "Tolls",
        }
        data.update(overrides)
        return TransactionFields(**data)

    def spawned_bills(self, transaction_id: str) -> list[dict]:
        return [
            bill for bill in self.store.tables["pending_bills"].values()
            if bill["parent_transaction_id"] == transaction_id
        ]


class DirectEntryTests(DirectEntryTestCase):
    def test_direct_entry_spawns_pending_bill(self):
        created = create_transaction(self.cur, self.fields())

        bills = self.spawned_bills(created["id"])
        self.assertEqual(len(bills), 1)
        self.assertEqual(created["pending_bill_id"], bills[0]["id"])
        self.assertEqual(bills[0]["amount"], Decimal("10.00"))
        self.assertEqual(bills[0]["currency"], "USD")
        self.assertEqual(bills[0]["description"], "Tolls")

    def test_delete_removes_spawned_bill(self):
        created = create_transaction(self.cur, self.fields())
        result = delete_last_transaction(self.cur, self.account_id)

        self.assertEqual(result["removed_pending_bill_ids"], [created["pending_bill_id"]])
        self.assertEqual(self.store.tables["pending_bills"], {})
        self.assertEqual(self.store.balance(self.account_id), Decimal("100.00"))

    def test_revert_removes_spawned_bill(self):
        created = create_transaction(self.cur, self.fields(amount="-25"))
        result = revert_transaction(self.cur, created["id"])

        self.assertEqual(result["removed_pending_bill_ids"], [created["pending_bill_id"]])
        self.assertEqual(self.spawned_bills(created["id"]), [])
        self.assertEqual(self.store.balance(self.account_id), Decimal("100.00"))


class UpdateLastTransactionTests(DirectEntryTestCase):
    def test_update_rewrites_amount_and_balance(self):
        created = create_transaction(self.cur, self.fields())
        updated = update_last_transaction(
            self.cur, created["id"], self.fields(amount="-20", description="Tolls and parking")
        )

        self.assertEqual(updated["id"], created["id"])
        self.assertEqual(updated["amount"], -20.0)
        self.assertEqual(updated["balance"], 80.0)
        self.assertEqual(updated["description"], "Tolls and parking")
        self.assertEqual(self.store.balance(self.account_id), Decimal("80.00"))
        bill = self.spawned_bills(created["id"])[0]
        self.assertEqual(bill["amount"], Decimal("-20.00"))
        self.assertEqual(bill["description"], "Tolls and parking")

    def test_only_last_transaction_can_be_updated(self):
        first = create_transaction(self.cur, self.fields())
        create_transaction(self.cur, self.fields(amount="5"))

        with self.assertRaises(ServiceError) as ctx:
            update_last_transaction(self.cur, first["id"], self.fields(amount="1"))
        self.assertEqual(ctx.exception.code, ErrorCode.TR003)
        self.assertEqual(self.store.balance(self.account_id), Decimal("115.00"))

    def test_update_refuses_negative_balance(self):
        created = create_transaction(self.cur, self.fields())
        with self.assertRaises(ServiceError) as ctx:
            update_last_transaction(self.cur, created["id"], self.fields(amount="-100.01"))
        self.assertEqual(ctx.exception.code, ErrorCode.TR002)
        self.assertEqual(self.store.balance(self.account_id), Decimal("110.00"))

    def test_account_cannot_change(self):
        created = create_transaction(self.cur, self.fields())
        other_account = self.store.add_account(balance="50")
        with self.assertRaises(ServiceError) as ctx:
            update_last_transaction(self.cur, created["id"], self.fields(account_id=other_account))
        self.assertEqual(ctx.exception.code, ErrorCode.TR018)

    def test_reversal_cannot_be_updated(self):
        created = create_transaction(self.cur, self.fields())
        reversal = revert_transaction(self.cur, created["id"])["transaction"]
        with self.assertRaises(ServiceError) as ctx:
            update_last_transaction(self.cur, reversal["id"], self.fields(amount="-1"))
        self.assertEqual(ctx.exception.code, ErrorCode.TR019)

    def test_unknown_transaction(self):
        with self.assertRaises(ServiceError) as ctx:
            update_last_transaction(self.cur, str(uuid.uuid4()), self.fields())
        self.assertEqual(ctx.exception.code, ErrorCode.DB001)


class ReadTransactionTests(LedgerTestCase):
    def test_get_and_last(self):
        first = self.append("1")
        second = self.append("2")

        self.assertEqual(get_transaction(self.cur, first["id"])["id"], first["id"])
        self.assertEqual(get_last_transaction(self.cur, self.account_id)["id"], second["id"])

    def test_get_unknown(self):
        with self.assertRaises(ServiceError) as ctx:
            get_transaction(self.cur, str(uuid.uuid4()))
        self.assertEqual(ctx.exception.code, ErrorCode.DB001)

    def test_last_of_empty_account(self):
        with self.assertRaises(ServiceError) as ctx:
            get_last_transaction(self.cur, self.account_id)
        self.assertEqual(ctx.exception.code, ErrorCode.DB001)

    def test_list_newest_first_with_count(self):
        rows = [self.append(str(i + 1)) for i in range(5)]
        page = list_transactions(self.cur, self.account_id, limit=2, offset=1)

        self.assertEqual(page["count"], 5)
        self.assertEqual([t["id"] for t in page["transactions"]], [rows[3]["id"], rows[2]["id"]])
        self.assertEqual({t["person_name"] for t in page["transactions"]}, {"Ana"})

    def test_list_unknown_account(self):
        with self.assertRaises(ServiceError) as ctx:
            list_transactions(self.cur, str(uuid.uuid4()), limit=10, offset=0)
        self.assertEqual(ctx.exception.code, ErrorCode.TR012)


class DeleteTransactionTests(LedgerTestCase):
    def test_delete_last_restores_balance(self):
        self.append("-30")
        last = self.append("12.34")

        result = delete_last_transaction(self.cur, self.account_id)
        self.assertEqual(result["id"], last["id"])
        self.assertEqual(result["balance"], 70.0)
        self.assertEqual(self.store.balance(self.account_id), Decimal("70.00"))
        self.assertNotIn(last["id"], self.store.tables["transactions"])

    def test_only_last_transaction_can_be_deleted(self):
        first = self.append("-30")
        self.append("12.34")

        with self.assertRaises(ServiceError) as ctx:
            delete_transaction(self.cur, first["id"])
        self.assertEqual(ctx.exception.code, ErrorCode.TR003)
        self.assertEqual(self.store.balance(self.account_id), Decimal("82.34"))

    def test_delete_on_empty_account(self):
        with self.assertRaises(ServiceError) as ctx:
            delete_last_transaction(self.cur, self.account_id)
        self.assertEqual(ctx.exception.code, ErrorCode.DB001)

    def test_delete_refused_when_balance_would_go_negative(self):
        credit = self.append("5")
        self.store.tables["money_accounts"][self.account_id]["balance"] = Decimal("2")

        with self.assertRaises(ServiceError) as ctx:
            delete_transaction(self.cur, credit["id"])
        self.assertEqual(ctx.exception.code, ErrorCode.TR002)
        self.assertIn(credit["id"], self.store.tables["transactions"])


class RevertTransactionTests(LedgerTestCase):
    def test_revert_appends_inverse_transaction(self):
        original = self.append("-40")
        result = revert_transaction(self.cur, original["id"])

        reversal = result["transaction"]
        self.assertIsNone(result["bill"])
        self.assertEqual(reversal["amount"], 40.0)
        self.assertEqual(reversal["reverted_transaction_id"], original["id"])
        self.assertEqual(reversal["balance"], 100.0)
        self.assertIn(original["id"], self.store.tables["transactions"])

    def test_revert_requires_last_transaction(self):
        original = self.append("-40")
        self.append("1")
        with self.assertRaises(ServiceError) as ctx:
            revert_transaction(self.cur, original["id"])
        self.assertEqual(ctx.exception.code, ErrorCode.TR003)

    def test_reversal_cannot_be_reverted(self):
        original = self.append("-40")
        reversal = revert_transaction(self.cur, original["id"])["transaction"]
        with self.assertRaises(ServiceError) as ctx:
            revert_transaction(self.cur, reversal["id"])
        self.assertEqual(ctx.exception.code, ErrorCode.TR016)

    def test_revert_that_would_overdraw_is_refused(self):
        original = self.append("50")
        self.store.tables["money_accounts"][self.account_id]["balance"] = Decimal("10")
        with self.assertRaises(ServiceError) as ctx:
            revert_transaction(self.cur, original["id"])
        self.assertEqual(ctx.exception.code, ErrorCode.TR002)


if __name__ == "__main__":
    unittest.main()
