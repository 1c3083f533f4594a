from typing import Any, Dict, Optional
import logging

from fastapi import APIRouter, Body, Query

from .. import crud
from ..errors import UnexpectedError, require
from ..models import SmartSuggestion
from ..services.suggestion_engine import run_suggestion_engine
from ..utils.formatting import iso_or_none

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/suggestions", tags=["Suggestions"])


def suggestion_out(s: SmartSuggestion) -> Dict[str, Any]:
    return {
        "id": s.id,
        "userId": s.user_id,
        "suggestionType": s.suggestion_type,
        "title": s.title,
        "description": s.description,
        "potentialSavings": s.potential_savings,
        "timeframe": s.timeframe,
        "priority": s.priority,
        "actionUrl": s.action_url,
        "actionLabel": s.action_label,
        "status": s.status,
        "expiresAt": iso_or_none(s.expires_at),
        "createdAt": iso_or_none(s.created_at),
    }


@router.post("/generate")
def generate_suggestions(payload: Dict[str, Any] = Body(...)):
    user_id = require(payload.get("userId"), "User ID is required")
    try:
        count = run_suggestion_engine(user_id)
    except Exception:
        logger.exception("run_suggestion_engine failed")
        raise UnexpectedError("Failed to generate suggestions")
    return {
        "success": True,
        "count": count,
        "message": f"Generated {count} new suggestions",
    }


@router.get("")
def list_suggestions(user_id: Optional[str] = Query(None, alias="userId"),
                     suggestion_type: Optional[str] = Query(None, alias="type"),
                     limit: int = Query(20, ge=1, le=100)):
    require(user_id, "User ID is required")
    try:
        suggestions = crud.list_suggestions(user_id, suggestion_type, limit)
    except Exception:
        logger.exception("list_suggestions failed")
        raise UnexpectedError("Failed to fetch suggestions")
    return [suggestion_out(s) for s in suggestions]
