"""
Goal endpoints.

/api/goals is the strict lookup by internal user id. /api/user/goal is keyed by
the platform (whop) id and tags every answer with a source: "database" when the
server holds the goal, "localStorage" when the client should use its own copy.
"""
from typing import Any, Dict, Optional
import logging

from fastapi import APIRouter, Body, Query

from .. import crud
from ..errors import ApiError, NotFoundError, UnexpectedError, ValidationError, require
from ..models import UserGoal
from ..utils.formatting import iso_or_none

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Goals"])

SOURCE_DATABASE = "database"
SOURCE_LOCAL = "localStorage"


def goal_record_out(goal: UserGoal) -> Dict[str, Any]:
    return {
        "id": goal.id,
        "userId": goal.user_id,
        "type": goal.type,
        "customGoal": goal.custom_goal,
        "targetAmount": goal.target_amount,
        "currentSavings": goal.current_savings,
        "timeframe": goal.timeframe,
        "region": goal.region,
        "currency": goal.currency,
        "monthlyBudget": goal.monthly_budget,
        "spendingCategories": goal.spending_categories or [],
        "onboardingComplete": goal.onboarding_complete,
        "createdAt": iso_or_none(goal.created_at),
        "updatedAt": iso_or_none(goal.updated_at),
    }


def goal_app_out(goal: UserGoal) -> Dict[str, Any]:
    """Client-side goal shape, the same one the client keeps in localStorage."""
    return {
        "type": goal.type,
        "customGoal": goal.custom_goal,
        "targetAmount": goal.target_amount,
        "currentSavings": goal.current_savings,
        "timeframe": goal.timeframe,
        "region": goal.region,
        "currency": goal.currency,
        "monthlyBudget": goal.monthly_budget,
        "spendingCategories": goal.spending_categories or [],
    }


@router.get("/goals")
def get_goal(user_id: Optional[str] = Query(None, alias="userId")):
    require(user_id, "User ID is required")
    try:
        goal = crud.get_goal_for_user(user_id)
    except Exception:
        logger.exception("get_goal failed")
        raise UnexpectedError("Failed to fetch goal")
    if goal is None:
        raise NotFoundError("Goal not found")
    return goal_record_out(goal)


@router.get("/user/goal")
def get_user_goal(whop_id: Optional[str] = Query(None, alias="whopId")):
    require(whop_id, "whopId is required")
    try:
        goal = crud.get_user_goal(whop_id) if crud.is_database_available() else None
    except Exception:
        logger.exception("get_user_goal failed")
        raise UnexpectedError("Failed to get goal")
    if goal is None:
        return {"goal": None, "source": SOURCE_LOCAL}
    return {"goal": goal_app_out(goal), "source": SOURCE_DATABASE}


@router.post("/user/goal")
def save_user_goal(payload: Dict[str, Any] = Body(...)):
    message = "whopId and goal are required"
    whop_id = require(payload.get("whopId"), message)
    goal = require(payload.get("goal"), message)
    if not isinstance(goal, dict):
        raise ValidationError("goal must be an object")

    try:
        if not crud.is_database_available():
            return {
                "success": True,
                "source": SOURCE_LOCAL,
                "message": "Database not available, using local storage",
            }
        saved = crud.save_user_goal(whop_id, goal)
    except ApiError:
        raise
    except Exception:
        logger.exception("save_user_goal failed")
        raise UnexpectedError("Failed to save goal")
    return {"success": True, "goal": goal_record_out(saved), "source": SOURCE_DATABASE}
