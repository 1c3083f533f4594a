from sqlmodel import SQLModel, Field, create_engine
from typing import Optional, List
from datetime import datetime, timezone
import os
import uuid
from sqlalchemy import Column, JSON, String
import logging

from .config import settings, DATA_DIR

logger = logging.getLogger(__name__)

# check_same_thread False for SQLite in dev container
_connect_args = {"check_same_thread": False} if settings.is_sqlite else {}
engine = create_engine(settings.DATABASE_URL, echo=False, connect_args=_connect_args)


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    # stored naive (UTC) so values round-trip through SQLite unchanged
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    whop_id: str = Field(sa_column=Column("whop_id", String, unique=True, index=True, nullable=False))
    email: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Achievement(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    type: str = "milestone"
    title: str = ""
    description: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None
    value: Optional[float] = None
    milestone: Optional[int] = None
    is_shared: bool = False
    shared_at: Optional[datetime] = None
    earned_at: datetime = Field(default_factory=utcnow)


class BankConnection(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    provider: str = "mock"
    account_name: str = ""
    # checking / savings / credit_card
    account_type: str = "checking"
    currency: str = "GBP"
    current_balance: float = 0.0
    available_balance: float = 0.0
    last_synced: Optional[datetime] = None
    # soft delete flag; disconnecting never removes the row
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)


class BankTransaction(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    connection_id: Optional[str] = None
    amount: float
    currency: str = "GBP"
    description: str = ""
    merchant_name: Optional[str] = None
    category: Optional[str] = None
    # debit / credit
    type: str = "debit"
    transaction_date: datetime = Field(default_factory=utcnow, index=True)
    created_at: datetime = Field(default_factory=utcnow)


class UserGoal(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(sa_column=Column("user_id", String, unique=True, index=True, nullable=False))
    type: str = "custom"
    custom_goal: Optional[str] = None
    target_amount: float
    current_savings: float = 0.0
    # in years
    timeframe: float
    region: str
    currency: str
    monthly_budget: Optional[float] = None
    spending_categories: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    onboarding_complete: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class SuccessStory(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    title: str
    story: str = ""
    goal_type: str = Field(index=True)
    region: Optional[str] = Field(default=None, index=True)
    amount_saved: Optional[float] = None
    timeframe_months: Optional[int] = None
    featured: bool = False
    inspiration_score: float = 0.0
    created_at: datetime = Field(default_factory=utcnow)


class SpendingPattern(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    pattern_type: str
    category: str = "Other"
    description: str
    amount: Optional[float] = None
    frequency: Optional[str] = None
    confidence: float = 0.5
    potential_savings: float = 0.0
    # active / dismissed
    status: str = "active"
    detected_at: datetime = Field(default_factory=utcnow)
    first_seen: datetime = Field(default_factory=utcnow)
    last_seen: datetime = Field(default_factory=utcnow)


class Notification(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    type: str
    title: str
    message: str
    action_url: Optional[str] = None
    category: str = "info"
    is_read: bool = False
    created_at: datetime = Field(default_factory=utcnow)


class SmartSuggestion(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    suggestion_type: str
    title: str
    description: str
    potential_savings: Optional[float] = None
    # monthly / annually
    timeframe: str = "monthly"
    priority: int = 0
    action_url: Optional[str] = None
    action_label: Optional[str] = None
    # active / dismissed
    status: str = "active"
    expires_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)


def _ensure_data_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def create_db_and_tables() -> None:
    """Ensure the SQLite data directory exists and create DB tables."""
    if settings.is_sqlite:
        _ensure_data_dir(DATA_DIR)
    SQLModel.metadata.create_all(engine)
    logger.info("Database tables ensured at %s", engine.url.render_as_string(hide_password=True))
