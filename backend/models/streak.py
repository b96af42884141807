from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Mapping, Optional


class CheckInOutcome(str, Enum):
    STARTED = "started"      # first counted day of a new streak
    EXTENDED = "extended"    # consecutive day
    RESET = "reset"          # gap of more than one day; streak restarts at 1
    UNCHANGED = "unchanged"  # already checked in on this calendar day


@dataclass(frozen=True)
class StreakRecord:
    """
    Streak state for one (user, group) pair. Dates are calendar days in the
    reference timezone; the record is zeroed on a break, never deleted.
    """

    user_id: str
    group_id: str
    current_streak: int = 0
    longest_streak: int = 0
    last_check_in_date: Optional[date] = None
    streak_start_date: Optional[date] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Any) -> "StreakRecord":
        data: Mapping[str, Any] = row._mapping if hasattr(row, "_mapping") else row
        return cls(
            user_id=data["user_id"],
            group_id=data["group_id"],
            current_streak=data["current_streak"],
            longest_streak=data["longest_streak"],
            last_check_in_date=data["last_check_in_date"],
            streak_start_date=data["streak_start_date"],
            created_at=data["created_at"],
            updated_at=data["updated_at"],
        )

    def with_changes(self, **changes: Any) -> "StreakRecord":
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "group_id": self.group_id,
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "last_check_in_date": self.last_check_in_date.isoformat() if self.last_check_in_date else None,
            "streak_start_date": self.streak_start_date.isoformat() if self.streak_start_date else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass(frozen=True)
class CheckInResult:
    record: StreakRecord
    outcome: CheckInOutcome

    @property
    def changed(self) -> bool:
        return self.outcome is not CheckInOutcome.UNCHANGED


@dataclass(frozen=True)
class GroupStreakSummary:
    member_count: int
    active_count: int
    average_current: float
    max_current: int
    max_longest: int

    def to_dict(self) -> dict:
        return {
            "member_count": self.member_count,
            "active_count": self.active_count,
            "average_current": self.average_current,
            "max_current": self.max_current,
            "max_longest": self.max_longest,
        }


@dataclass(frozen=True)
class SweepReport:
    reference_date: date
    candidates: int
    reset: int
    started_at: datetime
    finished_at: datetime

    def to_dict(self) -> dict:
        return {
            "reference_date": self.reference_date.isoformat(),
            "candidates": self.candidates,
            "reset": self.reset,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
        }
