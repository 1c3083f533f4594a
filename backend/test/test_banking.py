import tempfile
import unittest
from datetime import datetime, timedelta

from fastapi.testclient import TestClient
from sqlmodel import SQLModel, Session, create_engine, select

from moneycoach import crud
from moneycoach.main import app
from moneycoach.models import BankConnection, BankTransaction, utcnow


class CrudDBTestCase(unittest.TestCase):
    def setUp(self):
        self._tmpdir = tempfile.TemporaryDirectory()
        self._engine = create_engine(
            f"sqlite:///{self._tmpdir.name}/unit_test.db",
            echo=False,
            connect_args={"check_same_thread": False},
        )
        SQLModel.metadata.create_all(self._engine)
        self._old_engine = crud.engine
        crud.engine = self._engine
        self.client = TestClient(app)

    def tearDown(self):
        crud.engine = self._old_engine
        self._engine.dispose()
        self._tmpdir.cleanup()


class BankAccountsTests(CrudDBTestCase):
    def setUp(self):
        super().setUp()
        now = utcnow()
        crud.add_records([
            BankConnection(id="c1", user_id="u1", account_name="Everyday", current_balance=120.5,
                           available_balance=100.0, provider="truelayer",
                           last_synced=datetime(2026, 3, 1, 9, 30), created_at=now - timedelta(days=2)),
            BankConnection(id="c2", user_id="u1", account_name="Savings", account_type="savings",
                           created_at=now),
            BankConnection(id="c3", user_id="u2", account_name="Other user", created_at=now),
        ])

    def test_list_accounts_newest_first_with_public_shape(self):
        res = self.client.get("/api/banking/accounts", params={"userId": "u1"})
        self.assertEqual(res.status_code, 200)
        body = res.json()
        self.assertEqual(body["total"], 2)
        self.assertEqual([a["id"] for a in body["accounts"]], ["c2", "c1"])
        everyday = body["accounts"][1]
        self.assertEqual(everyday["lastSynced"], "2026-03-01T09:30:00")
        self.assertEqual(everyday["currentBalance"], 120.5)
        self.assertIsNone(body["accounts"][0]["lastSynced"])
        self.assertNotIn("userId", everyday)

    def test_list_accounts_requires_user_id(self):
        res = self.client.get("/api/banking/accounts")
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.json(), {"error": "User ID is required"})

    def test_disconnect_keeps_row_and_marks_inactive(self):
        res = self.client.delete("/api/banking/accounts", params={"accountId": "c1"})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json(), {"success": True, "message": "Account disconnected"})

        with Session(self._engine) as session:
            row = session.get(BankConnection, "c1")
        self.assertIsNotNone(row)
        self.assertFalse(row.is_active)

        # disconnected accounts are still listed, flagged inactive
        accounts = self.client.get("/api/banking/accounts", params={"userId": "u1"}).json()["accounts"]
        self.assertEqual({a["id"]: a["isActive"] for a in accounts}, {"c1": False, "c2": True})

    def test_disconnect_requires_account_id(self):
        res = self.client.delete("/api/banking/accounts")
        self.assertEqual(res.status_code, 400)

    def test_disconnect_unknown_account_returns_404(self):
        res = self.client.delete("/api/banking/accounts", params={"accountId": "missing"})
        self.assertEqual(res.status_code, 404)


class TransactionImportTests(CrudDBTestCase):
    def test_normalize_maps_keys_and_parses_fields(self):
        normalized = crud._normalize_tx_dict(
            {
                "transactionDate": "2026-02-01",
                "type": "Expense",
                "amount": "1,234.50",
                "merchantName": "Tesco",
                "unknown": "dropped",
            }
        )
        self.assertEqual(normalized["type"], "debit")
        self.assertEqual(normalized["amount"], 1234.5)
        self.assertEqual(normalized["transaction_date"], datetime(2026, 2, 1))
        self.assertEqual(normalized["merchant_name"], "Tesco")
        self.assertNotIn("unknown", normalized)

    def test_normalize_converts_offset_timestamps_to_utc(self):
        normalized = crud._normalize_tx_dict({"transactionDate": "2026-02-01T10:00:00+02:00", "amount": 5})
        self.assertEqual(normalized["transaction_date"], datetime(2026, 2, 1, 8, 0))

    def test_normalize_raises_for_invalid_date(self):
        with self.assertRaisesRegex(ValueError, "Invalid date format"):
            crud._normalize_tx_dict({"transactionDate": "2026-99-99", "amount": "10"})

    def test_import_endpoint_stores_transactions(self):
        res = self.client.post(
            "/api/banking/transactions",
            json={
                "userId": "u1",
                "transactions": [
                    {"amount": 9.99, "merchantName": "Netflix", "transactionDate": "2026-01-05", "type": "debit"},
                    {"amount": "2500", "description": "Salary", "transactionDate": "2026-01-28", "type": "credit"},
                ],
            },
        )
        self.assertEqual(res.status_code, 201)
        self.assertEqual(res.json()["created"], 2)
        with Session(self._engine) as session:
            rows = session.exec(select(BankTransaction).where(BankTransaction.user_id == "u1")).all()
        self.assertEqual(sorted(r.type for r in rows), ["credit", "debit"])

    def test_import_with_bad_amount_returns_400(self):
        res = self.client.post(
            "/api/banking/transactions",
            json={"userId": "u1", "transactions": [{"amount": "lots", "transactionDate": "2026-01-05"}]},
        )
        self.assertEqual(res.status_code, 400)
        self.assertIn("Invalid amount", res.json()["error"])

    def test_normalize_rejects_non_string_date(self):
        with self.assertRaisesRegex(ValueError, "Invalid date format"):
            crud._normalize_tx_dict({"transactionDate": 20260105, "amount": 5})

    def test_normalize_rejects_boolean_and_structured_amounts(self):
        for amount in (True, [5], {"value": 5}):
            with self.assertRaisesRegex(ValueError, "Invalid amount"):
                crud._normalize_tx_dict({"transactionDate": "2026-01-05", "amount": amount})

    def test_import_with_numeric_date_returns_400(self):
        res = self.client.post(
            "/api/banking/transactions",
            json={"userId": "u1", "transactions": [{"amount": 5, "transactionDate": 20260105}]},
        )
        self.assertEqual(res.status_code, 400)
        self.assertIn("Invalid date format", res.json()["error"])

    def test_import_with_non_object_item_returns_400(self):
        res = self.client.post("/api/banking/transactions", json={"userId": "u1", "transactions": ["oops"]})
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.json(), {"error": "each transaction must be an object"})
        with Session(self._engine) as session:
            self.assertEqual(session.exec(select(BankTransaction)).all(), [])


class SubscriptionsApiTests(CrudDBTestCase):
    def _charges(self, merchant, amount, days_apart, count, category="Entertainment"):
        now = utcnow()
        return [
            BankTransaction(user_id="u1", amount=-amount, merchant_name=merchant, category=category,
                            type="debit", transaction_date=now - timedelta(days=1 + i * days_apart))
            for i in range(count)
        ]

    def test_no_history_returns_guidance_message(self):
        res = self.client.post("/api/banking/subscriptions", json={"userId": "u1"})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json(), {"message": "No recurring charges detected. Sync more transaction history."})

    def test_missing_user_id_returns_400(self):
        res = self.client.post("/api/banking/subscriptions", json={})
        self.assertEqual(res.status_code, 400)

    def test_non_object_body_returns_400(self):
        res = self.client.post("/api/banking/subscriptions", json=["u1"])
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.json(), {"error": "Request body must be a JSON object"})

    def test_summary_totals_are_rounded_to_cents(self):
        crud.add_records(
            self._charges("Netflix", 10.99, 30, 3)
            + self._charges("Spotify", 11.99, 30, 3, category="Music")
            + self._charges("Gym", 5.0, 7, 4, category="Health")
        )
        res = self.client.post("/api/banking/subscriptions", json={"userId": "u1"})
        self.assertEqual(res.status_code, 200)
        body = res.json()

        subs = {s["merchant"]: s for s in body["subscriptions"]}
        self.assertEqual(subs["Netflix"]["frequency"], "monthly")
        self.assertEqual(subs["Netflix"]["timesCharged"], 3)
        self.assertEqual(subs["Gym"]["frequency"], "weekly")

        summary = body["summary"]
        self.assertEqual(summary["totalSubscriptions"], 3)
        self.assertEqual(summary["monthlySubscriptions"], 2)
        monthly_total = sum(s["amount"] for s in body["subscriptions"] if s["frequency"] == "monthly")
        self.assertEqual(summary["totalMonthlySubscriptionCost"], round(monthly_total, 2))
        self.assertEqual(summary["totalMonthlySubscriptionCost"], 22.98)
        # 10.99 * 365/30 + 11.99 * 365/30 + 5 * 365/7
        self.assertEqual(summary["estimatedAnnualCost"], 540.3)


if __name__ == "__main__":
    unittest.main()
