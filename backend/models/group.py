from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal, Optional

PostType = Literal["checkin", "motivation", "milestone"]
POST_TYPES = ("checkin", "motivation", "milestone")


@dataclass(frozen=True)
class Group:
    """An accountability group joined by invite code."""

    group_id: str
    name: str
    description: str
    invite_code: str
    max_members: int
    created_by: str
    created_at: Optional[datetime] = None
    member_count: int = 0

    @classmethod
    def from_row(cls, row: Any, member_count: int = 0) -> "Group":
        return cls(
            group_id=row.id,
            name=row.name,
            description=row.description or "",
            invite_code=row.invite_code,
            max_members=row.max_members,
            created_by=row.created_by,
            created_at=row.created_at,
            member_count=member_count,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.group_id,
            "name": self.name,
            "description": self.description,
            "invite_code": self.invite_code,
            "max_members": self.max_members,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "member_count": self.member_count,
        }


@dataclass(frozen=True)
class Post:
    post_id: str
    group_id: str
    user_id: str
    content: str
    image_url: Optional[str]
    post_type: PostType
    created_at: datetime
    group_name: Optional[str] = None

    @classmethod
    def from_row(cls, row: Any) -> "Post":
        return cls(
            post_id=row.id,
            group_id=row.group_id,
            user_id=row.user_id,
            content=row.content or "",
            image_url=row.image_url,
            post_type=row.post_type,
            created_at=row.created_at,
            group_name=getattr(row, "group_name", None),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.post_id,
            "group_id": self.group_id,
            "user_id": self.user_id,
            "content": self.content,
            "image_url": self.image_url,
            "post_type": self.post_type,
            "created_at": self.created_at.isoformat(),
            **({"group_name": self.group_name} if self.group_name is not None else {}),
        }
