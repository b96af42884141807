"""
Group membership service.

Membership rows are the only invariant here (unique per group and user). Every
membership owns a streak record: joining seeds a zeroed one so leaderboards list
all members, and leaving removes it in the same transaction. The creator cannot
leave; deleting the group removes its posts, streaks and memberships together.
"""
from __future__ import annotations

import logging
import secrets
import string
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import and_, delete, func, insert, literal, select
from sqlalchemy.exc import IntegrityError

from backend.core.config import settings
from backend.core.database import get_db_session, group_members, groups, posts, storage_errors
from backend.core.errors import ConflictError, NotFoundError, PermissionError, ValidationError
from backend.features.streaks.ledger import StreakLedger, streak_ledger
from backend.models.group import Group

logger = logging.getLogger("gymbro.groups")

INVITE_CODE_ALPHABET = string.ascii_uppercase + string.digits
INVITE_CODE_LENGTH = 6
MAX_NAME_LENGTH = 200


def generate_invite_code(length: int = INVITE_CODE_LENGTH) -> str:
    return "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(length))


def _member_count(session, group_id: str) -> int:
    return session.execute(
        select(func.count()).select_from(group_members).where(group_members.c.group_id == group_id)
    ).scalar() or 0


def _insert_member_if_room(session, group_id: str, user_id: str) -> bool:
    """INSERT ... SELECT guarded by the member cap. Returns False when the group filled up."""
    members = (
        select(func.count())
        .select_from(group_members)
        .where(group_members.c.group_id == group_id)
        .correlate(None)
        .scalar_subquery()
    )
    source = select(
        groups.c.id,
        literal(user_id),
        literal(False),
        literal(datetime.now(timezone.utc)),
    ).where(groups.c.id == group_id, members < groups.c.max_members)
    stmt = insert(group_members).from_select(["group_id", "user_id", "is_admin", "joined_at"], source)
    return session.execute(stmt).rowcount == 1


class GroupService:
    def __init__(self, ledger: Optional[StreakLedger] = None):
        self._ledger = ledger or streak_ledger

    def create_group(
        self,
        user_id: str,
        name: str,
        description: Optional[str] = None,
        max_members: Optional[int] = None,
    ) -> Group:
        clean_name = (name or "").strip()
        if not clean_name:
            raise ValidationError("Group name is required")
        if len(clean_name) > MAX_NAME_LENGTH:
            raise ValidationError(f"Group name must be at most {MAX_NAME_LENGTH} characters")
        limit = max_members if max_members is not None else settings.GROUP_MAX_MEMBERS_DEFAULT
        if limit < 1:
            raise ValidationError("max_members must be at least 1")

        # Invite codes are random; retry on the rare unique collision.
        for _ in range(3):
            group_id = str(uuid.uuid4())
            invite_code = generate_invite_code()
            now = datetime.now(timezone.utc)
            try:
                with storage_errors("create_group"), get_db_session() as session:
                    session.execute(
                        insert(groups).values(
                            id=group_id,
                            name=clean_name,
                            description=(description or "").strip(),
                            invite_code=invite_code,
                            max_members=limit,
                            created_by=user_id,
                            created_at=now,
                        )
                    )
                    session.execute(
                        insert(group_members).values(
                            group_id=group_id,
                            user_id=user_id,
                            is_admin=True,
                            joined_at=now,
                        )
                    )
                    self._ledger.seed_streak(user_id, group_id, session=session)
            except IntegrityError:
                logger.warning("group.invite_code_collision", extra={"user_id": user_id})
                continue

            logger.info("group.created", extra={"group_id": group_id, "user_id": user_id})
            return Group(
                group_id=group_id,
                name=clean_name,
                description=(description or "").strip(),
                invite_code=invite_code,
                max_members=limit,
                created_by=user_id,
                created_at=now,
                member_count=1,
            )

        raise ConflictError("Could not allocate a unique invite code")

    def join_group(self, user_id: str, invite_code: str) -> Group:
        code = (invite_code or "").strip().upper()
        if not code:
            raise ValidationError("Invite code is required")

        try:
            with storage_errors("join_group"), get_db_session() as session:
                # Serializes joins on Postgres; the conditional insert below holds the cap everywhere.
                row = session.execute(
                    select(groups).where(groups.c.invite_code == code).with_for_update()
                ).first()
                if row is None:
                    raise NotFoundError("Invalid invite code")

                existing = session.execute(
                    select(group_members.c.id).where(
                        and_(group_members.c.group_id == row.id, group_members.c.user_id == user_id)
                    )
                ).first()
                if existing is not None:
                    raise ConflictError("Already a member of this group")

                if _member_count(session, row.id) >= row.max_members:
                    raise ConflictError("Group is full")

                if not _insert_member_if_room(session, row.id, user_id):
                    raise ConflictError("Group is full")
                self._ledger.seed_streak(user_id, row.id, session=session)
                group = Group.from_row(row, member_count=_member_count(session, row.id))
        except IntegrityError:
            raise ConflictError("Already a member of this group")

        logger.info("group.joined", extra={"group_id": group.group_id, "user_id": user_id})
        return group

    def leave_group(self, user_id: str, group_id: str) -> None:
        with storage_errors("leave_group"), get_db_session() as session:
            owner = session.execute(select(groups.c.created_by).where(groups.c.id == group_id)).scalar()
            if owner is not None and owner == user_id:
                raise ValidationError("Group creator cannot leave group")
            removed = session.execute(
                delete(group_members).where(
                    and_(group_members.c.group_id == group_id, group_members.c.user_id == user_id)
                )
            ).rowcount
            if not removed:
                raise NotFoundError("Not a member of this group")
            self._ledger.delete_streak(user_id, group_id, session=session)
        logger.info("group.left", extra={"group_id": group_id, "user_id": user_id})

    def delete_group(self, user_id: str, group_id: str) -> None:
        """Remove a group with its posts, streaks and memberships. Creator or admin only."""
        with storage_errors("delete_group"), get_db_session() as session:
            row = session.execute(select(groups).where(groups.c.id == group_id)).first()
            if row is None:
                raise NotFoundError("Group not found")
            is_admin = session.execute(
                select(group_members.c.is_admin).where(
                    and_(group_members.c.group_id == group_id, group_members.c.user_id == user_id)
                )
            ).scalar()
            if row.created_by != user_id and not is_admin:
                raise PermissionError("Only group admins can delete groups")

            removed_posts = session.execute(delete(posts).where(posts.c.group_id == group_id)).rowcount
            removed_streaks = self._ledger.delete_group_streaks(group_id, session=session)
            session.execute(delete(group_members).where(group_members.c.group_id == group_id))
            session.execute(delete(groups).where(groups.c.id == group_id))
        logger.info(
            "group.deleted",
            extra={"group_id": group_id, "user_id": user_id, "posts": removed_posts, "streaks": removed_streaks},
        )

    def get_group(self, group_id: str) -> Group:
        with storage_errors("get_group"), get_db_session() as session:
            row = session.execute(select(groups).where(groups.c.id == group_id)).first()
            if row is None:
                raise NotFoundError("Group not found")
            return Group.from_row(row, member_count=_member_count(session, group_id))

    def list_user_groups(self, user_id: str) -> List[Group]:
        counts = (
            select(group_members.c.group_id, func.count().label("member_count"))
            .group_by(group_members.c.group_id)
            .subquery()
        )
        stmt = (
            select(groups, counts.c.member_count)
            .join(group_members, group_members.c.group_id == groups.c.id)
            .join(counts, counts.c.group_id == groups.c.id)
            .where(group_members.c.user_id == user_id)
            .order_by(group_members.c.joined_at.desc())
        )
        with storage_errors("list_user_groups"), get_db_session() as session:
            rows = session.execute(stmt).all()
        return [Group.from_row(row, member_count=row.member_count) for row in rows]

    def is_member(self, user_id: str, group_id: str) -> bool:
        with storage_errors("is_member"), get_db_session() as session:
            row = session.execute(
                select(group_members.c.id).where(
                    and_(group_members.c.group_id == group_id, group_members.c.user_id == user_id)
                )
            ).first()
        return row is not None

    def require_member(self, user_id: str, group_id: str) -> None:
        if not self.is_member(user_id, group_id):
            raise PermissionError("Not a member of this group")


group_service = GroupService()
