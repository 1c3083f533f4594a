import tempfile
import unittest
from datetime import datetime, timedelta

from fastapi.testclient import TestClient
from sqlmodel import SQLModel, Session, create_engine, select

from moneycoach import crud
from moneycoach.main import app
from moneycoach.models import BankTransaction, Notification, SpendingPattern
from moneycoach.services import spending_analyzer as sa

# Friday
NOW = datetime(2026, 3, 20, 12, 0)


def _tx(amount, when, merchant=None, category=None, user_id="u1"):
    return BankTransaction(user_id=user_id, amount=-amount, merchant_name=merchant,
                           category=category, type="debit", transaction_date=when)


class DetectorTests(unittest.TestCase):
    def test_month_start_walks_back_across_years(self):
        self.assertEqual(sa.month_start(NOW), datetime(2026, 3, 1))
        self.assertEqual(sa.month_start(datetime(2026, 1, 15), 1), datetime(2025, 12, 1))
        self.assertEqual(sa.month_start(NOW, -1), datetime(2026, 4, 1))

    def test_unusual_spending(self):
        txs = [_tx(10, NOW - timedelta(days=i)) for i in range(10)]
        txs.append(_tx(500, NOW, merchant="Apple Store", category="Electronics"))
        patterns = sa.detect_unusual_spending(txs)
        self.assertEqual(len(patterns), 1)
        self.assertEqual(patterns[0].type, "unusual_spending")
        self.assertEqual(patterns[0].severity, "medium")
        self.assertIn("£500.00 at Apple Store", patterns[0].description)

    def test_category_spike(self):
        txs = [
            _tx(300, datetime(2026, 3, 5), category="Dining"),
            _tx(100, datetime(2026, 2, 5), category="Dining"),
        ]
        patterns = sa.detect_category_spikes(txs, NOW)
        self.assertEqual(len(patterns), 1)
        self.assertEqual(patterns[0].category, "Dining")
        self.assertEqual(patterns[0].severity, "high")

    def test_recurring_expense(self):
        txs = [_tx(10.99, NOW - timedelta(days=30 * i), merchant="Netflix") for i in range(3)]
        patterns = sa.detect_recurring_expenses(txs)
        self.assertEqual(len(patterns), 1)
        self.assertEqual(patterns[0].frequency, "monthly")
        self.assertEqual(patterns[0].amount, 10.99)

    def test_budget_exceeded(self):
        patterns = sa.detect_budget_exceeded([_tx(1600, datetime(2026, 3, 2))], NOW, 1500)
        self.assertEqual(len(patterns), 1)
        self.assertEqual(patterns[0].severity, "medium")
        self.assertEqual(sa.detect_budget_exceeded([_tx(1400, datetime(2026, 3, 2))], NOW, 1500), [])

    def test_increasing_trend(self):
        txs = [
            _tx(100, datetime(2026, 1, 10)),
            _tx(200, datetime(2026, 2, 10)),
            _tx(300, datetime(2026, 3, 10)),
        ]
        patterns = sa.detect_spending_trends(txs, NOW)
        self.assertEqual([p.type for p in patterns], ["trend_increase"])
        self.assertEqual(patterns[0].severity, "high")

    def test_decreasing_trend(self):
        txs = [
            _tx(300, datetime(2026, 1, 10)),
            _tx(200, datetime(2026, 2, 10)),
            _tx(100, datetime(2026, 3, 10)),
        ]
        self.assertEqual([p.type for p in sa.detect_spending_trends(txs, NOW)], ["trend_decrease"])

    def test_weekend_spending(self):
        # 14 and 15 March 2026 are a weekend
        txs = [_tx(150, datetime(2026, 3, 14)), _tx(150, datetime(2026, 3, 15))]
        txs += [_tx(20, datetime(2026, 3, d)) for d in (16, 17, 18)]
        patterns = sa.detect_weekend_spending(txs)
        self.assertEqual(len(patterns), 1)
        self.assertEqual(patterns[0].amount, 300)

    def test_late_night_spending(self):
        txs = [_tx(30, datetime(2026, 3, d, 23, 30)) for d in range(1, 6)]
        patterns = sa.detect_late_night_spending(txs)
        self.assertEqual(len(patterns), 1)
        self.assertEqual(patterns[0].metadata["count"], 5)
        self.assertEqual(sa.detect_late_night_spending(txs[:4]), [])


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


class RunSpendingAnalysisTests(CrudDBTestCase):
    def setUp(self):
        super().setUp()
        crud.add_records([
            _tx(10.99, datetime(2026, 1, 18, 12), merchant="Netflix", category="Entertainment"),
            _tx(10.99, datetime(2026, 2, 17, 12), merchant="Netflix", category="Entertainment"),
            _tx(10.99, datetime(2026, 3, 19, 12), merchant="Netflix", category="Entertainment"),
            _tx(1600, datetime(2026, 3, 2, 12), merchant="Landlord", category="Housing"),
            # other users and credits are not analyzed
            _tx(5000, datetime(2026, 3, 3, 12), merchant="Landlord", user_id="u2"),
            BankTransaction(user_id="u1", amount=2500, type="credit", description="Salary",
                            transaction_date=datetime(2026, 3, 1, 9)),
        ])

    def test_detects_saves_and_notifies(self):
        count = sa.run_spending_analysis("u1", now=NOW)
        self.assertEqual(count, 2)

        with Session(self._engine) as session:
            patterns = session.exec(select(SpendingPattern)).all()
            notifications = session.exec(select(Notification)).all()
        self.assertEqual(sorted(p.pattern_type for p in patterns), ["budget_exceeded", "recurring_expense"])
        by_type = {p.pattern_type: p for p in patterns}
        self.assertEqual(by_type["budget_exceeded"].confidence, 0.5)
        self.assertEqual(by_type["budget_exceeded"].category, "Other")
        self.assertEqual(by_type["recurring_expense"].confidence, 0.3)
        # only the medium severity budget pattern notifies
        self.assertEqual(len(notifications), 1)
        self.assertEqual(notifications[0].category, "info")

    def test_rerun_within_a_week_does_not_duplicate(self):
        sa.run_spending_analysis("u1", now=NOW)
        count = sa.run_spending_analysis("u1", now=NOW + timedelta(days=1))
        self.assertEqual(count, 2)
        with Session(self._engine) as session:
            self.assertEqual(len(session.exec(select(SpendingPattern)).all()), 2)

    def test_list_endpoint_orders_by_confidence(self):
        sa.run_spending_analysis("u1", now=NOW)
        res = self.client.get("/api/spending-patterns", params={"userId": "u1"})
        self.assertEqual(res.status_code, 200)
        self.assertEqual([p["patternType"] for p in res.json()], ["budget_exceeded", "recurring_expense"])

        dismissed = self.client.get("/api/spending-patterns", params={"userId": "u1", "isActive": "false"})
        self.assertEqual(dismissed.json(), [])


class AnalyzeApiTests(CrudDBTestCase):
    def test_analyze_without_history(self):
        res = self.client.post("/api/spending-patterns/analyze", json={"userId": "u1"})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json(), {
            "success": True,
            "count": 0,
            "message": "Analyzed spending and detected 0 patterns",
        })

    def test_analyze_requires_user_id(self):
        res = self.client.post("/api/spending-patterns/analyze", json={})
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.json(), {"error": "User ID is required"})


if __name__ == "__main__":
    unittest.main()
