from typing import Any, Dict, Optional
import logging

from fastapi import APIRouter, Body, Query

from .. import crud
from ..config import settings
from ..errors import ApiError, UnexpectedError, require
from ..models import Achievement, User
from ..utils.formatting import iso_or_none

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/achievements", tags=["Achievements"])


def achievement_out(a: Achievement) -> Dict[str, Any]:
    return {
        "id": a.id,
        "userId": a.user_id,
        "type": a.type,
        "title": a.title,
        "description": a.description,
        "icon": a.icon,
        "color": a.color,
        "value": a.value,
        "milestone": a.milestone,
        "isShared": a.is_shared,
        "sharedAt": iso_or_none(a.shared_at),
        "earnedAt": iso_or_none(a.earned_at),
    }


@router.post("/share")
def share_achievement(payload: Dict[str, Any] = Body(...)):
    """Share an achievement to the community. Only the owner may share, and only once."""
    message = "Achievement ID and User ID are required"
    achievement_id = require(payload.get("achievementId"), message)
    user_id = require(payload.get("userId"), message)
    try:
        updated = crud.share_achievement(achievement_id, user_id)
    except ApiError:
        raise
    except Exception:
        logger.exception("share_achievement failed")
        raise UnexpectedError("Failed to share achievement")
    return achievement_out(updated)


@router.get("/feed")
def achievement_feed(user_id: Optional[str] = Query(None, alias="userId"),
                     limit: int = Query(settings.ACHIEVEMENT_FEED_LIMIT, ge=1, le=100)):
    """Shared achievements from the community, most recently shared first."""
    try:
        out = []
        for achievement, owner in crud.list_shared_achievements(limit):
            item = achievement_out(achievement)
            item["userName"] = _display_name(owner)
            item["isCurrentUser"] = achievement.user_id == user_id
            out.append(item)
    except Exception:
        logger.exception("achievement_feed failed")
        raise UnexpectedError("Failed to fetch achievement feed")
    return out


def _display_name(owner: Optional[User]) -> str:
    if owner is not None and owner.email:
        return owner.email.split("@")[0]
    return "User"
