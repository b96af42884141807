from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from backend.core.auth import get_current_user_id
from backend.features.groups.service import group_service

router = APIRouter()


class CreateGroupRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    max_members: Optional[int] = Field(None, ge=1, le=100)


class JoinGroupRequest(BaseModel):
    invite_code: str = Field(..., min_length=1, max_length=16)


@router.post("/v1/groups", status_code=201)
def create_group(body: CreateGroupRequest, user_id: str = Depends(get_current_user_id)):
    group = group_service.create_group(
        user_id,
        body.name,
        description=body.description,
        max_members=body.max_members,
    )
    return {"group": group.to_dict()}


@router.post("/v1/groups/join")
def join_group(body: JoinGroupRequest, user_id: str = Depends(get_current_user_id)):
    group = group_service.join_group(user_id, body.invite_code)
    return {"message": "Successfully joined group", "group": group.to_dict()}


@router.get("/v1/groups")
def list_my_groups(user_id: str = Depends(get_current_user_id)):
    return {"groups": [g.to_dict() for g in group_service.list_user_groups(user_id)]}


@router.get("/v1/groups/{group_id}")
def get_group(group_id: str, user_id: str = Depends(get_current_user_id)):
    group_service.require_member(user_id, group_id)
    return {"group": group_service.get_group(group_id).to_dict()}


@router.delete("/v1/groups/{group_id}/members/me", status_code=204)
def leave_group(group_id: str, user_id: str = Depends(get_current_user_id)):
    group_service.leave_group(user_id, group_id)


@router.delete("/v1/groups/{group_id}", status_code=204)
def delete_group(group_id: str, user_id: str = Depends(get_current_user_id)):
    """Creator or admin only. Removes posts, streaks and memberships with the group."""
    group_service.delete_group(user_id, group_id)
