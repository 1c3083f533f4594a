"""
Spending pattern analysis.

Each detector takes a user's recent debits (most recent first) and returns
zero or more PatternData. run_spending_analysis detects, persists new
patterns and raises notifications for the serious ones.
"""
import logging
import statistics
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from .. import crud
from ..config import settings
from ..models import Notification, SpendingPattern, BankTransaction, utcnow

logger = logging.getLogger(__name__)

CONFIDENCE_BY_SEVERITY = {
    "critical": 0.9,
    "high": 0.7,
    "medium": 0.5,
    "low": 0.3,
}
NOTIFY_SEVERITIES = ("medium", "high", "critical")
DEDUPE_WINDOW = timedelta(days=7)


@dataclass
class PatternData:
    type: str
    description: str
    severity: str
    category: Optional[str] = None
    amount: Optional[float] = None
    frequency: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


def _money(value: float) -> str:
    return f"{settings.CURRENCY_SYMBOL}{value:.2f}"


def month_start(now: datetime, months_back: int = 0) -> datetime:
    index = now.year * 12 + (now.month - 1) - months_back
    return datetime(index // 12, index % 12 + 1, 1)


def detect_unusual_spending(transactions: List[BankTransaction]) -> List[PatternData]:
    amounts = [abs(tx.amount) for tx in transactions]
    avg = statistics.mean(amounts)
    threshold = avg + 2 * statistics.pstdev(amounts)

    patterns = []
    unusual = [tx for tx in transactions if abs(tx.amount) > threshold]
    for tx in unusual[:3]:
        amount = abs(tx.amount)
        patterns.append(PatternData(
            type="unusual_spending",
            description=f"Unusually large transaction of {_money(amount)} at {tx.merchant_name or 'Unknown'}",
            category=tx.category or "Other",
            amount=amount,
            severity="high" if amount > threshold * 2 else "medium",
            metadata={
                "transactionId": tx.id,
                "merchantName": tx.merchant_name,
                "date": tx.transaction_date.isoformat(),
                "threshold": f"{threshold:.2f}",
            },
        ))
    return patterns


def detect_category_spikes(transactions: List[BankTransaction], now: datetime) -> List[PatternData]:
    this_month = month_start(now)
    last_month = month_start(now, 1)

    spending: Dict[str, Dict[str, float]] = defaultdict(lambda: {"this": 0.0, "last": 0.0})
    for tx in transactions:
        category = tx.category or "Other"
        if tx.transaction_date >= this_month:
            spending[category]["this"] += abs(tx.amount)
        elif tx.transaction_date >= last_month:
            spending[category]["last"] += abs(tx.amount)

    patterns = []
    for category, s in spending.items():
        if s["last"] <= 0:
            continue
        increase = (s["this"] - s["last"]) / s["last"] * 100
        if increase > 50 and s["this"] > 100:
            patterns.append(PatternData(
                type="category_spike",
                description=(f"{category} spending increased by {increase:.0f}% this month "
                             f"({_money(s['this'])} vs {_money(s['last'])})"),
                category=category,
                amount=s["this"],
                severity="high" if increase > 100 else "medium",
                metadata={"thisMonth": s["this"], "lastMonth": s["last"], "increase": f"{increase:.2f}"},
            ))
    return patterns


def detect_recurring_expenses(transactions: List[BankTransaction]) -> List[PatternData]:
    candidates: Dict[tuple, List[BankTransaction]] = defaultdict(list)
    for tx in transactions:
        if tx.merchant_name:
            candidates[(tx.merchant_name, round(abs(tx.amount), 2))].append(tx)

    patterns = []
    for (merchant, amount), txs in candidates.items():
        if len(txs) < 3:
            continue
        dates = sorted(tx.transaction_date for tx in txs)
        avg_interval = statistics.mean((b - a).total_seconds() / 86400 for a, b in zip(dates, dates[1:]))
        if 25 <= avg_interval <= 35:
            frequency = "monthly"
        elif 5 <= avg_interval <= 9:
            frequency = "weekly"
        else:
            continue
        patterns.append(PatternData(
            type="recurring_expense",
            description=f"Recurring {frequency} payment of {_money(amount)} to {merchant}",
            category=txs[0].category or "Other",
            amount=amount,
            frequency=frequency,
            severity="low",
            metadata={"merchant": merchant, "occurrences": len(txs), "avgInterval": f"{avg_interval:.1f}"},
        ))
    return patterns


def detect_budget_exceeded(transactions: List[BankTransaction], now: datetime,
                           monthly_budget: float) -> List[PatternData]:
    this_month = month_start(now)
    spent = sum(abs(tx.amount) for tx in transactions if tx.transaction_date >= this_month)
    if spent <= monthly_budget:
        return []

    excess = spent - monthly_budget
    percentage = f"{spent / monthly_budget * 100:.0f}"
    return [PatternData(
        type="budget_exceeded",
        description=f"You've exceeded your monthly budget by {_money(excess)} ({percentage}% of budget used)",
        amount=spent,
        severity="high" if excess > monthly_budget * 0.2 else "medium",
        metadata={"budget": monthly_budget, "spent": spent, "excess": f"{excess:.2f}", "percentage": percentage},
    )]


def detect_spending_trends(transactions: List[BankTransaction], now: datetime) -> List[PatternData]:
    # oldest first: [two months ago, last month, this month]
    months = []
    for back in (2, 1, 0):
        start, end = month_start(now, back), month_start(now, back - 1)
        months.append(sum(abs(tx.amount) for tx in transactions if start <= tx.transaction_date < end))

    patterns = []
    if months[0] <= 0:
        return patterns
    if months[2] > months[1] > months[0]:
        increase = (months[2] - months[0]) / months[0] * 100
        if increase > 20:
            patterns.append(PatternData(
                type="trend_increase",
                description=f"Your spending has been increasing for 3 months (up {increase:.0f}% overall)",
                severity="high" if increase > 50 else "medium",
                metadata={"months": months, "increase": f"{increase:.2f}"},
            ))
    if months[2] < months[1] < months[0]:
        decrease = (months[0] - months[2]) / months[0] * 100
        if decrease > 10:
            patterns.append(PatternData(
                type="trend_decrease",
                description=f"Great job! Your spending has decreased for 3 months (down {decrease:.0f}% overall)",
                severity="low",
                metadata={"months": months, "decrease": f"{decrease:.2f}"},
            ))
    return patterns


def detect_weekend_spending(transactions: List[BankTransaction]) -> List[PatternData]:
    weekend = [abs(tx.amount) for tx in transactions if tx.transaction_date.weekday() >= 5]
    weekday = [abs(tx.amount) for tx in transactions if tx.transaction_date.weekday() < 5]
    if not weekend or not weekday:
        return []

    avg_weekend = statistics.mean(weekend)
    avg_weekday = statistics.mean(weekday)
    total_weekend = sum(weekend)
    if avg_weekday <= 0 or avg_weekend <= avg_weekday * 1.5 or total_weekend <= 200:
        return []

    difference = (avg_weekend - avg_weekday) / avg_weekday * 100
    return [PatternData(
        type="weekend_spending",
        description=(f"You spend {difference:.0f}% more on weekends "
                     f"(avg {_money(avg_weekend)} vs {_money(avg_weekday)} on weekdays)"),
        amount=total_weekend,
        severity="low",
        metadata={
            "weekendAvg": f"{avg_weekend:.2f}",
            "weekdayAvg": f"{avg_weekday:.2f}",
            "difference": f"{difference:.2f}",
        },
    )]


def detect_late_night_spending(transactions: List[BankTransaction]) -> List[PatternData]:
    # 11pm - 3am
    late = [abs(tx.amount) for tx in transactions
            if tx.transaction_date.hour >= 23 or tx.transaction_date.hour <= 3]
    total = sum(late)
    if len(late) < 5 or total <= 100:
        return []
    return [PatternData(
        type="late_night_spending",
        description=(f"You've made {len(late)} late night transactions (11pm-3am) totaling "
                     f"{_money(total)}. These may be impulse purchases."),
        amount=total,
        severity="low",
        metadata={"count": len(late), "total": f"{total:.2f}", "avgAmount": f"{total / len(late):.2f}"},
    )]


def analyze_spending_patterns(user_id: str, now: Optional[datetime] = None) -> List[PatternData]:
    now = now or utcnow()
    since = now - timedelta(days=settings.ANALYSIS_WINDOW_DAYS)
    transactions = crud.list_transactions(user_id, since=since, tx_type="debit")
    if not transactions:
        return []

    patterns: List[PatternData] = []
    patterns += detect_unusual_spending(transactions)
    patterns += detect_category_spikes(transactions, now)
    patterns += detect_recurring_expenses(transactions)
    patterns += detect_budget_exceeded(transactions, now, settings.MONTHLY_BUDGET)
    patterns += detect_spending_trends(transactions, now)
    patterns += detect_weekend_spending(transactions)
    patterns += detect_late_night_spending(transactions)
    return patterns


def save_spending_patterns(user_id: str, patterns: List[PatternData], now: Optional[datetime] = None) -> int:
    """
    Persist patterns that have no active counterpart (same type and category)
    from the last 7 days. Returns how many were stored.
    """
    now = now or utcnow()
    saved = 0
    for p in patterns:
        if crud.has_recent_pattern(user_id, p.type, p.category, now - DEDUPE_WINDOW):
            continue

        records: List[Any] = [SpendingPattern(
            user_id=user_id,
            pattern_type=p.type,
            category=p.category or "Other",
            description=p.description,
            amount=p.amount,
            frequency=p.frequency,
            confidence=CONFIDENCE_BY_SEVERITY[p.severity],
            potential_savings=0.0,
            detected_at=now,
            first_seen=now,
            last_seen=now,
        )]
        if p.severity in NOTIFY_SEVERITIES:
            critical = p.severity == "critical"
            records.append(Notification(
                user_id=user_id,
                type="spending_pattern",
                title=f"{'🚨' if critical else '⚠️'} Spending Alert",
                message=p.description,
                action_url="/dashboard/spending-patterns",
                category="warning" if critical else "info",
            ))
        crud.add_records(records)
        saved += 1
    return saved


def run_spending_analysis(user_id: str, now: Optional[datetime] = None) -> int:
    """Detect and store spending patterns for a user; returns the number detected."""
    patterns = analyze_spending_patterns(user_id, now)
    saved = save_spending_patterns(user_id, patterns, now)
    logger.info("spending analysis for %s: %d detected, %d new", user_id, len(patterns), saved)
    return len(patterns)
