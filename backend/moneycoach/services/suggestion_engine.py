"""Money-saving suggestions generated from a user's recent transactions."""
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from .. import crud
from ..config import settings
from ..models import BankTransaction, SmartSuggestion, utcnow
from .spending_analyzer import month_start

logger = logging.getLogger(__name__)

PRIORITY_SCORES = {
    "urgent": 100,
    "high": 75,
    "medium": 50,
    "low": 25,
}

DINING_KEYWORDS = ("restaurant", "cafe", "coffee")
SUBSCRIPTION_KEYWORDS = ("netflix", "spotify", "amazon", "apple", "disney", "hbo", "gym", "membership")
GROCERY_MERCHANTS = ("tesco", "sainsbury", "asda", "morrisons", "waitrose", "lidl", "aldi")
ONLINE_MERCHANTS = ("amazon", "ebay", "asos", "boohoo", "very", "argos")
UTILITY_KEYWORDS = {
    "energy": ("british gas", "eon", "edf", "scottish power", "ovo"),
    "broadband": ("bt", "virgin", "sky", "talktalk"),
    "insurance": ("insurance", "aviva", "direct line"),
}


@dataclass
class SuggestionData:
    type: str
    title: str
    description: str
    priority: str
    potential_saving: Optional[float] = None
    action_url: Optional[str] = None
    action_label: Optional[str] = None
    expires_at: Optional[datetime] = None


def _money(value: float) -> str:
    return f"{settings.CURRENCY_SYMBOL}{value:.2f}"


def _debits_with_merchant(transactions: List[BankTransaction]) -> List[BankTransaction]:
    return [tx for tx in transactions if tx.type == "debit" and tx.merchant_name]


def find_two_for_one_deals(transactions: List[BankTransaction]) -> List[SuggestionData]:
    totals: Dict[str, Dict[str, float]] = defaultdict(lambda: {"count": 0, "total": 0.0})
    for tx in _debits_with_merchant(transactions):
        totals[tx.merchant_name]["count"] += 1
        totals[tx.merchant_name]["total"] += abs(tx.amount)

    # visited 5+ times, top 3 by spend
    frequent = sorted(
        ((m, d) for m, d in totals.items() if d["count"] >= 5),
        key=lambda item: item[1]["total"],
        reverse=True,
    )[:3]

    out = []
    for merchant, data in frequent:
        if not any(k in merchant.lower() for k in DINING_KEYWORDS):
            continue
        out.append(SuggestionData(
            type="two_for_one_deal",
            title=f"Look for deals at {merchant}",
            description=(f"You've spent {_money(data['total'])} at {merchant} in the last 90 days. "
                         "Check if they offer loyalty programs or two-for-one deals that could save you money!"),
            potential_saving=data["total"] * 0.15,
            action_label="Find Deals",
            priority="high" if data["total"] > 100 else "medium",
        ))
    return out


def find_subscription_savings(transactions: List[BankTransaction]) -> List[SuggestionData]:
    charges: Dict[tuple, int] = defaultdict(int)
    for tx in _debits_with_merchant(transactions):
        charges[(tx.merchant_name, round(abs(tx.amount), 2))] += 1

    out = []
    for (merchant, amount), count in charges.items():
        if count < 3:
            continue
        annual = amount * 12
        if annual <= 50 or not any(k in merchant.lower() for k in SUBSCRIPTION_KEYWORDS):
            continue
        out.append(SuggestionData(
            type="subscription_savings",
            title=f"Review {merchant} subscription",
            description=(f"You're paying {_money(amount)}/month for {merchant} ({_money(annual)}/year). "
                         "Consider if you're getting value or if there are cheaper alternatives."),
            potential_saving=annual * 0.3,
            priority="high" if annual > 120 else "medium",
        ))
    return out


def find_better_deals(transactions: List[BankTransaction]) -> List[SuggestionData]:
    spend: Dict[str, float] = defaultdict(float)
    for tx in _debits_with_merchant(transactions):
        name = tx.merchant_name.lower()
        for grocer in GROCERY_MERCHANTS:
            if grocer in name:
                spend[grocer] += abs(tx.amount)

    premium = spend["waitrose"] + spend["sainsbury"]
    budget = spend["lidl"] + spend["aldi"]
    if premium > 200 and budget < premium * 0.3:
        return [SuggestionData(
            type="better_deal",
            title="Save on groceries with budget supermarkets",
            description=(f"You spent {_money(premium)} at premium supermarkets. "
                         "Switching some shopping to Lidl or Aldi could save you up to 30%!"),
            potential_saving=premium * 0.3,
            action_label="Learn More",
            priority="high",
        )]
    return []


def find_cashback_opportunities(transactions: List[BankTransaction]) -> List[SuggestionData]:
    online = sum(
        abs(tx.amount) for tx in _debits_with_merchant(transactions)
        if any(m in tx.merchant_name.lower() for m in ONLINE_MERCHANTS)
    )
    if online <= 100:
        return []
    return [SuggestionData(
        type="cashback_opportunity",
        title="Earn cashback on online shopping",
        description=(f"You spent {_money(online)} online. Use cashback sites like TopCashback "
                     "or Quidco to earn 2-10% back on purchases!"),
        potential_saving=online * 0.05,
        action_label="Get Cashback",
        priority="medium",
    )]


def find_switching_savings(transactions: List[BankTransaction], now: datetime) -> List[SuggestionData]:
    utilities: Dict[str, float] = defaultdict(float)
    for tx in _debits_with_merchant(transactions):
        name = tx.merchant_name.lower()
        for category, keywords in UTILITY_KEYWORDS.items():
            if any(k in name for k in keywords):
                utilities[category] += abs(tx.amount)

    out = []
    for category, amount in utilities.items():
        if amount <= 150:
            continue
        out.append(SuggestionData(
            type="switching_savings",
            title=f"Could you save on your {category}?",
            description=(f"You've paid {_money(amount)} for {category} in 90 days. "
                         "Compare providers - switching could save you £200+/year!"),
            potential_saving=200.0,
            action_label="Compare Deals",
            priority="high",
            expires_at=now + timedelta(days=30),
        ))
    return out


def spending_alerts(transactions: List[BankTransaction], now: datetime) -> List[SuggestionData]:
    this_month, last_month = month_start(now), month_start(now, 1)
    debits = [tx for tx in transactions if tx.type == "debit"]
    this_spend = sum(abs(tx.amount) for tx in debits if tx.transaction_date >= this_month)
    last_spend = sum(abs(tx.amount) for tx in debits if last_month <= tx.transaction_date < this_month)
    if last_spend <= 0:
        return []

    increase = (this_spend - last_spend) / last_spend * 100
    if increase <= 20:
        return []
    return [SuggestionData(
        type="spending_alert",
        title="Spending increased this month",
        description=(f"Your spending is up {increase:.0f}% compared to last month. "
                     "Review your transactions to identify any unusual expenses."),
        priority="high",
        action_url="/dashboard/transactions",
        action_label="Review Transactions",
    )]


SEASONAL_TIPS = {
    1: SuggestionData(
        type="seasonal_tip",
        title="January sales are here!",
        description=("Take advantage of January sales for essentials you need. "
                     "But beware of impulse purchases - stick to your list!"),
        priority="low",
    ),
    12: SuggestionData(
        type="seasonal_tip",
        title="Budget for holiday season",
        description=("Set a Christmas budget and stick to it. "
                     "Consider Secret Santa or homemade gifts to reduce costs."),
        priority="medium",
    ),
}


def seasonal_tips(now: datetime) -> List[SuggestionData]:
    tip = SEASONAL_TIPS.get(now.month)
    return [tip] if tip else []


def generate_suggestions_for_user(user_id: str, now: Optional[datetime] = None) -> List[SuggestionData]:
    now = now or utcnow()
    since = now - timedelta(days=settings.ANALYSIS_WINDOW_DAYS)
    transactions = crud.list_transactions(user_id, since=since)

    suggestions: List[SuggestionData] = []
    suggestions += find_two_for_one_deals(transactions)
    suggestions += find_subscription_savings(transactions)
    suggestions += find_better_deals(transactions)
    suggestions += find_cashback_opportunities(transactions)
    suggestions += find_switching_savings(transactions, now)
    suggestions += spending_alerts(transactions, now)
    suggestions += seasonal_tips(now)
    return suggestions


def save_suggestions(user_id: str, suggestions: List[SuggestionData]) -> int:
    """Store suggestions unless the same type and title is already open. Returns how many were stored."""
    new = []
    seen = set()
    for s in suggestions:
        if (s.type, s.title) in seen or crud.has_open_suggestion(user_id, s.type, s.title):
            continue
        seen.add((s.type, s.title))
        new.append(SmartSuggestion(
            user_id=user_id,
            suggestion_type=s.type,
            title=s.title,
            description=s.description,
            potential_savings=s.potential_saving,
            timeframe="annually" if s.potential_saving and s.potential_saving > 100 else "monthly",
            priority=PRIORITY_SCORES[s.priority],
            action_url=s.action_url,
            action_label=s.action_label,
            expires_at=s.expires_at,
        ))
    if new:
        crud.add_records(new)
    return len(new)


def run_suggestion_engine(user_id: str, now: Optional[datetime] = None) -> int:
    """Generate and store suggestions for a user; returns the number generated."""
    suggestions = generate_suggestions_for_user(user_id, now)
    saved = save_suggestions(user_id, suggestions)
    logger.info("suggestion engine for %s: %d generated, %d new", user_id, len(suggestions), saved)
    return len(suggestions)
