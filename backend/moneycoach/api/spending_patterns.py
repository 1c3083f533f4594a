from typing import Any, Dict, Optional
import logging

from fastapi import APIRouter, Body, Query

from .. import crud
from ..errors import UnexpectedError, require
from ..models import SpendingPattern
from ..services.spending_analyzer import run_spending_analysis
from ..utils.formatting import iso_or_none, parse_bool_param

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/spending-patterns", tags=["Spending patterns"])


def pattern_out(p: SpendingPattern) -> Dict[str, Any]:
    return {
        "id": p.id,
        "userId": p.user_id,
        "patternType": p.pattern_type,
        "category": p.category,
        "description": p.description,
        "amount": p.amount,
        "frequency": p.frequency,
        "confidence": p.confidence,
        "potentialSavings": p.potential_savings,
        "status": p.status,
        "detectedAt": iso_or_none(p.detected_at),
        "firstSeen": iso_or_none(p.first_seen),
        "lastSeen": iso_or_none(p.last_seen),
    }


@router.post("/analyze")
def analyze_spending(payload: Dict[str, Any] = Body(...)):
    user_id = require(payload.get("userId"), "User ID is required")
    try:
        count = run_spending_analysis(user_id)
    except Exception:
        logger.exception("run_spending_analysis failed")
        raise UnexpectedError("Failed to analyze spending patterns")
    return {
        "success": True,
        "count": count,
        "message": f"Analyzed spending and detected {count} patterns",
    }


@router.get("")
def list_spending_patterns(user_id: Optional[str] = Query(None, alias="userId"),
                           pattern_type: Optional[str] = Query(None, alias="type"),
                           is_active: Optional[str] = Query(None, alias="isActive")):
    """Stored patterns for a user, most confident first. isActive=false lists dismissed ones."""
    require(user_id, "User ID is required")
    try:
        patterns = crud.list_spending_patterns(user_id, pattern_type, parse_bool_param(is_active))
    except Exception:
        logger.exception("list_spending_patterns failed")
        raise UnexpectedError("Failed to fetch spending patterns")
    return [pattern_out(p) for p in patterns]
