from __future__ import annotations

from fastapi import APIRouter, Depends

from backend.core.auth import get_current_user_id
from backend.core.errors import NotFoundError
from backend.features.groups.service import group_service
from backend.features.streaks.ledger import streak_ledger
from backend.features.streaks.rules import summarize_streaks

router = APIRouter()


@router.get("/v1/groups/{group_id}/streaks")
def get_group_streaks(group_id: str, user_id: str = Depends(get_current_user_id)):
    """Leaderboard for a group plus aggregates computed from it."""
    group_service.require_member(user_id, group_id)
    records = streak_ledger.list_group_streaks(group_id)
    return {
        "group_id": group_id,
        "streaks": [record.to_dict() for record in records],
        "summary": summarize_streaks(records).to_dict(),
    }


@router.get("/v1/groups/{group_id}/streaks/me")
def get_my_streak(group_id: str, user_id: str = Depends(get_current_user_id)):
    group_service.require_member(user_id, group_id)
    record = streak_ledger.get_streak(user_id, group_id)
    if record is None:
        raise NotFoundError("No streak recorded for this group yet")
    return {"streak": record.to_dict()}
