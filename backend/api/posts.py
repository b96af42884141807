from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from backend.core.auth import get_current_user_id
from backend.features.posts.service import post_service

router = APIRouter()


class CreatePostRequest(BaseModel):
    content: Optional[str] = Field(None, max_length=2000)
    image_url: Optional[str] = Field(None, max_length=2048)
    post_type: Literal["checkin", "motivation", "milestone"] = "checkin"


@router.post("/v1/groups/{group_id}/posts", status_code=201)
def create_post(group_id: str, body: CreatePostRequest, user_id: str = Depends(get_current_user_id)):
    """Store a post. Check-in posts also advance the author's streak (best effort)."""
    result = post_service.create_post(
        user_id=user_id,
        group_id=group_id,
        content=body.content,
        image_url=body.image_url,
        post_type=body.post_type,
    )
    return result.to_dict()


@router.get("/v1/groups/{group_id}/posts")
def list_posts(
    group_id: str,
    limit: int = Query(50, ge=1, le=200),
    user_id: str = Depends(get_current_user_id),
):
    posts = post_service.list_group_posts(user_id, group_id, limit=limit)
    return {"posts": [p.to_dict() for p in posts]}


@router.get("/v1/posts/me")
def list_my_posts(
    limit: int = Query(20, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user_id: str = Depends(get_current_user_id),
):
    """The caller's posts across all groups, newest first."""
    posts = post_service.list_user_posts(user_id, limit=limit, offset=offset)
    return {"posts": [p.to_dict() for p in posts], "limit": limit, "offset": offset}


@router.delete("/v1/posts/{post_id}", status_code=204)
def delete_post(post_id: str, user_id: str = Depends(get_current_user_id)):
    post_service.delete_post(user_id, post_id)
