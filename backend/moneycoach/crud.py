from sqlmodel import Session, select
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from .models import (
    engine, utcnow, User, Achievement, BankConnection, BankTransaction, UserGoal,
    SuccessStory, SpendingPattern, SmartSuggestion,
)
from .errors import AuthorizationError, NotFoundError, ValidationError
from typing import List, Optional, Dict, Any, Tuple
from datetime import datetime
import logging

logger = logging.getLogger(__name__)


def is_database_available() -> bool:
    """Probe the database with a trivial query."""
    try:
        with engine.connect() as conn:
            conn.exec_driver_sql("SELECT 1")
        return True
    except SQLAlchemyError:
        logger.warning("database probe failed", exc_info=True)
        return False


def add_records(records: List[Any]) -> List[Any]:
    """Persist a batch of model instances in one transaction and return them refreshed."""
    with Session(engine) as session:
        for r in records:
            session.add(r)
        session.commit()
        for r in records:
            session.refresh(r)
    return records


# Achievements

def get_achievement(achievement_id: str) -> Optional[Achievement]:
    with Session(engine) as session:
        return session.get(Achievement, achievement_id)


def share_achievement(achievement_id: str, user_id: str) -> Achievement:
    """
    Mark an achievement as shared with a single conditional UPDATE, so the
    ownership and not-yet-shared checks hold at write time.
    When nothing was updated the row is re-read only to pick the error:
    missing -> NotFoundError, other owner -> AuthorizationError,
    already shared -> ValidationError.
    """
    stmt = (
        update(Achievement)
        .where(Achievement.id == achievement_id)
        .where(Achievement.user_id == user_id)
        .where(Achievement.is_shared == False)
        .values(is_shared=True, shared_at=utcnow())
    )
    with engine.begin() as conn:
        updated = conn.execute(stmt).rowcount

    achievement = get_achievement(achievement_id)
    if updated:
        return achievement
    if achievement is None:
        raise NotFoundError("Achievement not found")
    if achievement.user_id != user_id:
        raise AuthorizationError("Unauthorized")
    raise ValidationError("Achievement already shared")


def list_shared_achievements(limit: int = 10) -> List[Tuple[Achievement, Optional[User]]]:
    """Return (achievement, owner) pairs for shared achievements, most recently shared first."""
    with Session(engine) as session:
        stmt = (
            select(Achievement, User)
            .join(User, User.id == Achievement.user_id, isouter=True)
            .where(Achievement.is_shared == True)
            .order_by(Achievement.shared_at.desc())
            .limit(limit)
        )
        return list(session.exec(stmt).all())


# Bank connections and transactions

def list_bank_connections(user_id: str) -> List[BankConnection]:
    """All connections for a user, active or not, newest first."""
    with Session(engine) as session:
        stmt = (
            select(BankConnection)
            .where(BankConnection.user_id == user_id)
            .order_by(BankConnection.created_at.desc())
        )
        return session.exec(stmt).all()


def deactivate_bank_connection(account_id: str) -> bool:
    """Soft delete: flip is_active off. Returns False if the connection does not exist."""
    with Session(engine) as session:
        conn = session.get(BankConnection, account_id)
        if not conn:
            return False
        conn.is_active = False
        session.add(conn)
        session.commit()
        return True


_TX_KEY_ALIASES = {
    "userId": "user_id",
    "connectionId": "connection_id",
    "merchantName": "merchant_name",
    "transactionDate": "transaction_date",
    "date": "transaction_date",
}

_TX_DATE_FORMATS = ("%Y-%m-%d", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S", "%d/%m/%Y")


def _normalize_tx_dict(tx: Dict[str, Any]) -> Dict[str, Any]:
    """
    Normalize an incoming transaction dict so it can be passed to BankTransaction.
    - Map camelCase keys to model attributes
    - Coerce date strings to datetime
    - Coerce amount strings to float
    - Normalize type to "debit" or "credit"
    - Raise ValueError on invalid date/amount (including non-string dates and
      boolean or structured amounts) so caller can report it
    """
    tx_copy = {_TX_KEY_ALIASES.get(k, k): v for k, v in tx.items()}

    def _canon_type(v: Any) -> Optional[str]:
        if v is None:
            return None
        s = str(v).strip().lower()
        if not s:
            return None
        if "debit" in s or "expense" in s:
            return "debit"
        if "credit" in s or "income" in s:
            return "credit"
        return s

    if "type" in tx_copy:
        canon = _canon_type(tx_copy["type"])
        if canon is None:
            tx_copy.pop("type")
        else:
            tx_copy["type"] = canon

    d = tx_copy.get("transaction_date")
    if isinstance(d, str):
        s = d.strip()
        parsed = None
        for fmt in _TX_DATE_FORMATS:
            try:
                parsed = datetime.strptime(s, fmt)
                break
            except ValueError:
                continue
        if parsed is None:
            try:
                parsed = datetime.fromisoformat(s.replace("Z", "+00:00"))
            except ValueError:
                raise ValueError(f"Invalid date format: '{d}'")
            if parsed.tzinfo is not None:
                parsed = parsed.replace(tzinfo=None) - parsed.utcoffset()
        tx_copy["transaction_date"] = parsed
    elif d is not None and not isinstance(d, datetime):
        raise ValueError(f"Invalid date format: '{d}'")

    amt = tx_copy.get("amount")
    if amt is None:
        raise ValueError("Missing required field: amount")
    if isinstance(amt, bool) or not isinstance(amt, (int, float, str)):
        raise ValueError(f"Invalid amount: '{amt}'")
    if isinstance(amt, str):
        s = amt.strip().replace(",", "")
        try:
            tx_copy["amount"] = float(s)
        except ValueError:
            raise ValueError(f"Invalid amount: '{amt}'")
    elif isinstance(amt, int):
        tx_copy["amount"] = float(amt)

    # drop fields the model doesn't have
    return {k: v for k, v in tx_copy.items() if k in BankTransaction.model_fields}


def create_bank_transactions(user_id: str, transactions: List[Dict[str, Any]]) -> List[BankTransaction]:
    objs = []
    for tx in transactions:
        data = _normalize_tx_dict(tx)
        data["user_id"] = user_id
        objs.append(BankTransaction(**data))
    return add_records(objs)


def list_transactions(user_id: str, since: Optional[datetime] = None,
                      tx_type: Optional[str] = None) -> List[BankTransaction]:
    """Transactions for a user, most recent first, optionally since a date and of one type."""
    with Session(engine) as session:
        stmt = select(BankTransaction).where(BankTransaction.user_id == user_id)
        if since:
            stmt = stmt.where(BankTransaction.transaction_date >= since)
        if tx_type:
            stmt = stmt.where(BankTransaction.type == tx_type)
        stmt = stmt.order_by(BankTransaction.transaction_date.desc())
        return session.exec(stmt).all()


# Goals

def get_goal_for_user(user_id: str) -> Optional[UserGoal]:
    with Session(engine) as session:
        return session.exec(select(UserGoal).where(UserGoal.user_id == user_id)).first()


def find_or_create_user(whop_id: str, email: Optional[str] = None) -> User:
    with Session(engine) as session:
        user = session.exec(select(User).where(User.whop_id == whop_id)).first()
        if user is None:
            user = User(whop_id=whop_id, email=email)
        else:
            if email:
                user.email = email
            user.updated_at = utcnow()
        session.add(user)
        session.commit()
        session.refresh(user)
        return user


def get_user_goal(whop_id: str) -> Optional[UserGoal]:
    """Goal of the user with this platform id, or None if either is missing."""
    with Session(engine) as session:
        stmt = (
            select(UserGoal)
            .join(User, User.id == UserGoal.user_id)
            .where(User.whop_id == whop_id)
        )
        return session.exec(stmt).first()


_REQUIRED_GOAL_FIELDS = ("targetAmount", "timeframe", "region", "currency")


def save_user_goal(whop_id: str, goal: Dict[str, Any]) -> UserGoal:
    """
    Upsert the goal of the user identified by whop_id, creating the user if needed.
    Raises ValidationError when a required goal field is missing or malformed.
    """
    if any(not goal.get(f) for f in _REQUIRED_GOAL_FIELDS):
        raise ValidationError("Missing required goal fields")

    categories = goal.get("spendingCategories") or []
    if isinstance(categories, str):
        categories = [categories]
    if not isinstance(categories, list):
        raise ValidationError("Invalid goal fields")

    try:
        target_amount = float(goal["targetAmount"])
        current_savings = float(goal.get("currentSavings") or 0)
        timeframe = float(goal["timeframe"])
        monthly_budget = goal.get("monthlyBudget")
        monthly_budget = float(monthly_budget) if monthly_budget else None
    except (TypeError, ValueError):
        raise ValidationError("Invalid goal fields")

    fields = {
        "type": goal.get("type") or "custom",
        "custom_goal": goal.get("customGoal") or None,
        "target_amount": target_amount,
        "current_savings": current_savings,
        "timeframe": timeframe,
        "region": goal["region"],
        "currency": goal["currency"],
        "monthly_budget": monthly_budget,
        "spending_categories": list(categories),
        "onboarding_complete": True,
    }

    user = find_or_create_user(whop_id)
    with Session(engine) as session:
        existing = session.exec(select(UserGoal).where(UserGoal.user_id == user.id)).first()
        if existing is None:
            existing = UserGoal(user_id=user.id, **fields)
        else:
            for k, v in fields.items():
                setattr(existing, k, v)
            existing.updated_at = utcnow()
        session.add(existing)
        session.commit()
        session.refresh(existing)
        return existing


# Success stories

def query_stories(goal_type: Optional[str] = None,
                  region: Optional[str] = None,
                  featured_only: bool = False) -> List[SuccessStory]:
    """
    Stories matching every given filter ("all" means no filter),
    featured first, then by inspiration score, then newest.
    """
    with Session(engine) as session:
        stmt = select(SuccessStory)
        if goal_type and goal_type != "all":
            stmt = stmt.where(SuccessStory.goal_type == goal_type)
        if region and region != "all":
            stmt = stmt.where(SuccessStory.region == region)
        if featured_only:
            stmt = stmt.where(SuccessStory.featured == True)
        stmt = stmt.order_by(
            SuccessStory.featured.desc(),
            SuccessStory.inspiration_score.desc(),
            SuccessStory.created_at.desc(),
        )
        return session.exec(stmt).all()


# Spending patterns

def has_recent_pattern(user_id: str, pattern_type: str, category: Optional[str], since: datetime) -> bool:
    with Session(engine) as session:
        stmt = (
            select(SpendingPattern.id)
            .where(SpendingPattern.user_id == user_id)
            .where(SpendingPattern.pattern_type == pattern_type)
            .where(SpendingPattern.status == "active")
            .where(SpendingPattern.detected_at >= since)
        )
        if category:
            stmt = stmt.where(SpendingPattern.category == category)
        return session.exec(stmt).first() is not None


def list_spending_patterns(user_id: str, pattern_type: Optional[str] = None,
                           is_active: Optional[bool] = None) -> List[SpendingPattern]:
    with Session(engine) as session:
        stmt = select(SpendingPattern).where(SpendingPattern.user_id == user_id)
        if pattern_type:
            stmt = stmt.where(SpendingPattern.pattern_type == pattern_type)
        if is_active is not None:
            stmt = stmt.where(SpendingPattern.status == ("active" if is_active else "dismissed"))
        stmt = stmt.order_by(SpendingPattern.confidence.desc(), SpendingPattern.detected_at.desc())
        return session.exec(stmt).all()


# Suggestions

def has_open_suggestion(user_id: str, suggestion_type: str, title: str) -> bool:
    with Session(engine) as session:
        stmt = (
            select(SmartSuggestion.id)
            .where(SmartSuggestion.user_id == user_id)
            .where(SmartSuggestion.suggestion_type == suggestion_type)
            .where(SmartSuggestion.title == title)
            .where(SmartSuggestion.status != "dismissed")
        )
        return session.exec(stmt).first() is not None


def list_suggestions(user_id: str, suggestion_type: Optional[str] = None,
                     limit: int = 20) -> List[SmartSuggestion]:
    with Session(engine) as session:
        stmt = (
            select(SmartSuggestion)
            .where(SmartSuggestion.user_id == user_id)
            .where(SmartSuggestion.status != "dismissed")
        )
        if suggestion_type:
            stmt = stmt.where(SmartSuggestion.suggestion_type == suggestion_type)
        stmt = stmt.order_by(SmartSuggestion.priority.desc(), SmartSuggestion.created_at.desc()).limit(limit)
        return session.exec(stmt).all()
