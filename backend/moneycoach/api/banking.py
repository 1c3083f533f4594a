from typing import Any, Dict, List, Optional
import logging

from fastapi import APIRouter, Body, Query

from .. import crud
from ..errors import ApiError, NotFoundError, UnexpectedError, ValidationError, require
from ..models import BankConnection
from ..services.recurring import detect_recurring_transactions
from ..utils.formatting import iso_or_none, round_currency

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/banking", tags=["Banking"])

NO_RECURRING_MESSAGE = "No recurring charges detected. Sync more transaction history."


def account_out(conn: BankConnection) -> Dict[str, Any]:
    return {
        "id": conn.id,
        "accountName": conn.account_name,
        "accountType": conn.account_type,
        "currency": conn.currency,
        "currentBalance": conn.current_balance,
        "availableBalance": conn.available_balance,
        "provider": conn.provider,
        "lastSynced": iso_or_none(conn.last_synced),
        "isActive": conn.is_active,
    }


@router.get("/accounts")
def list_accounts(user_id: Optional[str] = Query(None, alias="userId")):
    """Connected bank accounts for a user, newest first. Disconnected accounts are included."""
    require(user_id, "User ID is required")
    try:
        accounts = [account_out(c) for c in crud.list_bank_connections(user_id)]
    except Exception:
        logger.exception("list_accounts failed")
        raise UnexpectedError("Failed to fetch bank accounts")
    return {"accounts": accounts, "total": len(accounts)}


@router.delete("/accounts")
def disconnect_account(account_id: Optional[str] = Query(None, alias="accountId")):
    """Disconnect a bank account. The row is kept and marked inactive."""
    require(account_id, "Account ID is required")
    try:
        found = crud.deactivate_bank_connection(account_id)
    except Exception:
        logger.exception("disconnect_account failed")
        raise UnexpectedError("Failed to disconnect account")
    if not found:
        raise NotFoundError("Account not found")
    return {"success": True, "message": "Account disconnected"}


@router.post("/transactions", status_code=201)
def import_transactions(payload: Dict[str, Any] = Body(...)):
    """
    Store bank transactions for a user.
    Example body: {"userId": "u1", "transactions": [{"amount": 9.99, "merchantName": "Netflix",
    "transactionDate": "2026-01-05", "type": "debit"}]}
    """
    user_id = require(payload.get("userId"), "User ID is required")
    items = payload.get("transactions")
    if isinstance(items, dict):
        items = [items]
    if not isinstance(items, list) or not items:
        raise ValidationError("transactions must be a non-empty list")
    if not all(isinstance(tx, dict) for tx in items):
        raise ValidationError("each transaction must be an object")
    try:
        created = crud.create_bank_transactions(user_id, items)
    except ValueError as e:
        raise ValidationError(str(e))
    except Exception:
        logger.exception("create_bank_transactions failed")
        raise UnexpectedError("Failed to store transactions")
    out = [{"id": t.id, "transactionDate": iso_or_none(t.transaction_date), "amount": t.amount} for t in created]
    return {"created": len(out), "items": out}


@router.post("/subscriptions")
def detect_subscriptions(payload: Dict[str, Any] = Body(...)):
    """Detect recurring subscriptions and bills from transaction history."""
    user_id = require(payload.get("userId"), "User ID is required")
    try:
        recurring = detect_recurring_transactions(user_id)
    except ApiError:
        raise
    except Exception:
        logger.exception("detect_subscriptions failed")
        raise UnexpectedError("Failed to detect subscriptions")

    if not recurring:
        return {"message": NO_RECURRING_MESSAGE}

    monthly = [s for s in recurring if s.frequency == "monthly"]
    subscriptions: List[Dict[str, Any]] = [
        {
            "merchant": s.merchant,
            "amount": round_currency(s.amount),
            "frequency": s.frequency,
            "category": s.category,
            "timesCharged": s.count,
            "lastCharge": iso_or_none(s.last_charge),
            "estimatedAnnualCost": round_currency(s.estimated_annual_cost),
        }
        for s in recurring
    ]
    return {
        "subscriptions": subscriptions,
        "summary": {
            "totalSubscriptions": len(recurring),
            "monthlySubscriptions": len(monthly),
            "totalMonthlySubscriptionCost": round_currency(sum(s.amount for s in monthly)),
            "estimatedAnnualCost": round_currency(sum(s.estimated_annual_cost for s in recurring)),
        },
    }
