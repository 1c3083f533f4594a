"""Recurring charge (subscription and bill) detection over a user's debit history."""
import statistics
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from .. import crud
from ..config import settings
from ..models import BankTransaction, utcnow
from ..utils.formatting import round_currency

MIN_OCCURRENCES = 3
# max - min spread allowed, as a fraction of the mean amount
MAX_AMOUNT_SPREAD = 0.2

# (frequency, min days, max days) of the mean gap between charges
FREQUENCY_BANDS = (
    ("monthly", 25, 35),
    ("weekly", 6, 8),
    ("quarterly", 85, 95),
    ("yearly", 360, 370),
)


@dataclass
class RecurringCharge:
    merchant: str
    amount: float
    frequency: str
    count: int
    last_charge: datetime
    estimated_annual_cost: float
    category: Optional[str] = None


def classify_frequency(avg_interval_days: float) -> str:
    for name, low, high in FREQUENCY_BANDS:
        if low <= avg_interval_days <= high:
            return name
    return "unknown"


def _mean_interval_days(txs: List[BankTransaction]) -> float:
    dates = sorted(tx.transaction_date for tx in txs)
    gaps = [(b - a).total_seconds() / 86400 for a, b in zip(dates, dates[1:])]
    return statistics.mean(gaps) if gaps else 0.0


def find_recurring(transactions: List[BankTransaction]) -> List[RecurringCharge]:
    """
    Group debits by merchant (description when there is no merchant name) and
    keep groups of 3+ charges with consistent amounts.
    Transactions are expected most recent first.
    """
    groups: Dict[str, List[BankTransaction]] = defaultdict(list)
    for tx in transactions:
        groups[tx.merchant_name or tx.description].append(tx)

    out: List[RecurringCharge] = []
    for merchant, txs in groups.items():
        if len(txs) < MIN_OCCURRENCES:
            continue
        amounts = [abs(tx.amount) for tx in txs]
        avg_amount = statistics.mean(amounts)
        if max(amounts) - min(amounts) >= avg_amount * MAX_AMOUNT_SPREAD:
            continue

        avg_interval = _mean_interval_days(txs)
        annual = avg_amount * (365 / avg_interval) if avg_interval > 0 else 0.0
        latest = max(txs, key=lambda t: t.transaction_date)
        out.append(RecurringCharge(
            merchant=merchant,
            amount=round_currency(avg_amount),
            frequency=classify_frequency(avg_interval),
            count=len(txs),
            last_charge=latest.transaction_date,
            estimated_annual_cost=annual,
            category=latest.category,
        ))
    return out


def detect_recurring_transactions(user_id: str, now: Optional[datetime] = None) -> List[RecurringCharge]:
    since = (now or utcnow()) - timedelta(days=settings.ANALYSIS_WINDOW_DAYS)
    debits = crud.list_transactions(user_id, since=since, tx_type="debit")
    return find_recurring(debits)
