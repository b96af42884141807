"""
Post creation and check-in ingestion.

A stored check-in post drives the streak ledger. Streak failures are logged and
reported alongside the post; they never undo or fail the post itself.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy import and_, delete, insert, select

from backend.core.dates import ensure_aware, utcnow
from backend.core.database import get_db_session, groups, posts, storage_errors
from backend.core.errors import AppError, NotFoundError, ValidationError
from backend.core.logging import log_event
from backend.features.groups.service import GroupService, group_service
from backend.features.streaks.ledger import StreakLedger, streak_ledger
from backend.models.group import POST_TYPES, Post
from backend.models.streak import CheckInOutcome, StreakRecord

logger = logging.getLogger("gymbro.posts")

MAX_CONTENT_LENGTH = 2000


@dataclass(frozen=True)
class PostResult:
    post: Post
    streak: Optional[StreakRecord] = None
    streak_outcome: Optional[CheckInOutcome] = None
    streak_error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "post": self.post.to_dict(),
            "streak": self.streak.to_dict() if self.streak else None,
            "streak_outcome": self.streak_outcome.value if self.streak_outcome else None,
            "streak_error": self.streak_error,
        }


class PostService:
    def __init__(self, ledger: Optional[StreakLedger] = None, groups_svc: Optional[GroupService] = None):
        self._ledger = ledger or streak_ledger
        self._groups = groups_svc or group_service

    def create_post(
        self,
        *,
        user_id: str,
        group_id: str,
        content: Optional[str] = None,
        image_url: Optional[str] = None,
        post_type: str = "checkin",
        created_at: Optional[datetime] = None,
    ) -> PostResult:
        if post_type not in POST_TYPES:
            raise ValidationError(f"post_type must be one of: {', '.join(POST_TYPES)}")
        text = (content or "").strip()
        if len(text) > MAX_CONTENT_LENGTH:
            raise ValidationError(f"content must be at most {MAX_CONTENT_LENGTH} characters")

        self._groups.require_member(user_id, group_id)

        post = Post(
            post_id=str(uuid.uuid4()),
            group_id=group_id,
            user_id=user_id,
            content=text,
            image_url=image_url,
            post_type=post_type,
            created_at=ensure_aware(created_at) if created_at else utcnow(),
        )
        with storage_errors("create_post"), get_db_session() as session:
            session.execute(
                insert(posts).values(
                    id=post.post_id,
                    group_id=post.group_id,
                    user_id=post.user_id,
                    content=post.content,
                    image_url=post.image_url,
                    post_type=post.post_type,
                    created_at=post.created_at,
                )
            )
        logger.info("post.created", extra={"post_id": post.post_id, "group_id": group_id, "post_type": post_type})

        if post_type != "checkin":
            return PostResult(post=post)
        return self._apply_check_in(post)

    def _apply_check_in(self, post: Post) -> PostResult:
        try:
            result = self._ledger.record_check_in(post.user_id, post.group_id, post.created_at)
        except AppError as exc:
            # Out-of-order, contended or unavailable: the post still stands.
            log_event(
                "warning",
                "post.streak_update_failed",
                request_id=None,
                user_id=post.user_id,
                group_id=post.group_id,
                error_code=exc.code,
                extra={"post_id": post.post_id, "reason": exc.message},
            )
            return PostResult(post=post, streak_error=exc.code)
        return PostResult(post=post, streak=result.record, streak_outcome=result.outcome)

    def list_group_posts(self, user_id: str, group_id: str, limit: int = 50) -> List[Post]:
        self._groups.require_member(user_id, group_id)
        stmt = (
            select(posts)
            .where(posts.c.group_id == group_id)
            .order_by(posts.c.created_at.desc(), posts.c.id)
            .limit(max(1, min(limit, 200)))
        )
        with storage_errors("list_group_posts"), get_db_session() as session:
            rows = session.execute(stmt).all()
        return [Post.from_row(row) for row in rows]

    def list_user_posts(self, user_id: str, limit: int = 20, offset: int = 0) -> List[Post]:
        """The caller's own posts across every group, newest first, with the group name."""
        stmt = (
            select(posts, groups.c.name.label("group_name"))
            .join(groups, groups.c.id == posts.c.group_id)
            .where(posts.c.user_id == user_id)
            .order_by(posts.c.created_at.desc(), posts.c.id)
            .limit(max(1, min(limit, 200)))
            .offset(max(0, offset))
        )
        with storage_errors("list_user_posts"), get_db_session() as session:
            rows = session.execute(stmt).all()
        return [Post.from_row(row) for row in rows]

    def delete_post(self, user_id: str, post_id: str) -> None:
        """Authors only. The streak it may have advanced is left as is."""
        with storage_errors("delete_post"), get_db_session() as session:
            removed = session.execute(
                delete(posts).where(and_(posts.c.id == post_id, posts.c.user_id == user_id))
            ).rowcount
        if not removed:
            raise NotFoundError("Post not found or not authorized")
        logger.info("post.deleted", extra={"post_id": post_id, "user_id": user_id})


post_service = PostService()
