from typing import Optional
import logging

from fastapi import APIRouter, Query

from .. import crud
from ..errors import UnexpectedError
from ..utils.formatting import iso_or_none

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/stories", tags=["Stories"])


@router.get("")
def list_stories(goal_type: Optional[str] = Query(None, alias="goalType"),
                 region: Optional[str] = Query(None),
                 featured: Optional[str] = Query(None)):
    """
    Success stories, optionally filtered by goalType and region ("all" disables a filter).
    featured=true keeps only featured stories.
    """
    try:
        stories = crud.query_stories(goal_type, region, featured_only=(featured == "true"))
    except Exception:
        logger.exception("list_stories failed")
        raise UnexpectedError("Failed to fetch stories")
    return [
        {
            "id": s.id,
            "title": s.title,
            "story": s.story,
            "goalType": s.goal_type,
            "region": s.region,
            "amountSaved": s.amount_saved,
            "timeframeMonths": s.timeframe_months,
            "featured": s.featured,
            "inspirationScore": s.inspiration_score,
            "createdAt": iso_or_none(s.created_at),
        }
        for s in stories
    ]
