"""
User domain service.
- get_or_create_user(user_id, display_name)
- get_user(user_id)
- normalize_display_name()
"""

from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import select, insert
from sqlalchemy.exc import IntegrityError

from backend.core.database import get_db_session, storage_errors, users as app_users
from backend.models.user import User


def normalize_display_name(user_id: str, display_name: Optional[str]) -> str:
    return User.normalized_display_name(user_id, display_name)


def get_user(user_id: str) -> Optional[User]:
    with storage_errors("get_user"), get_db_session() as session:
        row = session.execute(select(app_users).where(app_users.c.user_id == user_id)).first()
        if not row:
            return None
        display = row.display_name or normalize_display_name(row.user_id, None)
        return User(
            user_id=row.user_id,
            created_at=row.created_at,
            display_name=display,
        )


def get_or_create_user(user_id: str, display_name: Optional[str] = None) -> User:
    existing = get_user(user_id)
    if existing:
        return existing

    now = datetime.now(timezone.utc)
    display = normalize_display_name(user_id, display_name)
    try:
        with storage_errors("create_user"), get_db_session() as session:
            session.execute(
                insert(app_users).values(
                    user_id=user_id,
                    display_name=display,
                    created_at=now,
                )
            )
    except IntegrityError:
        # Concurrent first request for the same subject
        return get_user(user_id)

    return User(user_id=user_id, created_at=now, display_name=display)
