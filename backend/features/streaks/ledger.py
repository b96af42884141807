"""
StreakLedger: the single authoritative streak value per (user, group).

Each check-in is one atomic read-modify-write of one `streaks` row. The write is
a compare-and-set on the values that were read, so two near-simultaneous
check-ins for the same pair cannot both apply an increment: the loser re-reads
and re-evaluates against the winner's state (a duplicate retry then resolves to
`unchanged`).
"""
from __future__ import annotations

import logging
from datetime import date, datetime, tzinfo
from typing import List, Optional

from sqlalchemy import and_, delete, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.core.config import settings
from backend.core.dates import calendar_day, utcnow
from backend.core.database import get_db_session, storage_errors, streaks
from backend.core.errors import ConflictError, UnknownMembershipError
from backend.core.metrics import streak_checkins_total
from backend.features.streaks.rules import apply_check_in, start_record
from backend.models.streak import CheckInOutcome, CheckInResult, StreakRecord

logger = logging.getLogger("gymbro.streaks")


def _pair(user_id: str, group_id: str):
    return and_(streaks.c.user_id == user_id, streaks.c.group_id == group_id)


def _same_date(value: Optional[date]):
    if value is None:
        return streaks.c.last_check_in_date.is_(None)
    return streaks.c.last_check_in_date == value


class StreakLedger:
    """Check-in driven streak bookkeeping backed by the `streaks` table."""

    def __init__(
        self,
        *,
        require_preseed: Optional[bool] = None,
        zone: Optional[tzinfo] = None,
        max_attempts: int = 3,
    ):
        self._require_preseed = require_preseed
        self._zone = zone
        self._max_attempts = max_attempts

    @property
    def require_preseed(self) -> bool:
        if self._require_preseed is not None:
            return self._require_preseed
        return bool(settings.STREAK_REQUIRE_PRESEED)

    # Writes -----------------------------------------------------------
    def record_check_in(
        self,
        user_id: str,
        group_id: str,
        checked_in_at: Optional[datetime] = None,
    ) -> CheckInResult:
        """
        Apply a check-in at `checked_in_at` (defaults to now) to the pair's streak.

        Raises:
            OutOfOrderCheckInError: the check-in day precedes the stored last check-in day.
            UnknownMembershipError: no record exists and pre-seeding is required.
            StorageUnavailableError: the store could not be reached.
        """
        day = calendar_day(checked_in_at or utcnow(), self._zone)

        for attempt in range(1, self._max_attempts + 1):
            with storage_errors("record_check_in"):
                result = self._attempt_check_in(user_id, group_id, day)
            if result is not None:
                streak_checkins_total.inc(labels={"outcome": result.outcome.value})
                logger.info(
                    "streak.checkin",
                    extra={
                        "user_id": user_id,
                        "group_id": group_id,
                        "day": day.isoformat(),
                        "outcome": result.outcome.value,
                        "current_streak": result.record.current_streak,
                        "attempt": attempt,
                    },
                )
                return result
            logger.info(
                "streak.checkin.contended",
                extra={"user_id": user_id, "group_id": group_id, "attempt": attempt},
            )

        raise ConflictError(f"Streak for user {user_id} in group {group_id} is being updated concurrently")

    def _attempt_check_in(self, user_id: str, group_id: str, day: date) -> Optional[CheckInResult]:
        """One read-modify-write. Returns None when a concurrent writer won the race."""
        creating = False
        try:
            with get_db_session() as session:
                row = session.execute(select(streaks).where(_pair(user_id, group_id))).first()
                now = utcnow()

                if row is None:
                    if self.require_preseed:
                        raise UnknownMembershipError(
                            f"No streak record for user {user_id} in group {group_id}"
                        )
                    record = start_record(user_id, group_id, day).with_changes(created_at=now, updated_at=now)
                    creating = True
                    session.execute(insert(streaks).values(**_row_values(record), created_at=now, updated_at=now))
                    return CheckInResult(record=record, outcome=CheckInOutcome.STARTED)

                prior = StreakRecord.from_row(row)
                updated, outcome = apply_check_in(prior, day)
                if outcome is CheckInOutcome.UNCHANGED:
                    return CheckInResult(record=prior, outcome=outcome)

                updated = updated.with_changes(updated_at=now)
                result = session.execute(
                    update(streaks)
                    .where(
                        _pair(user_id, group_id),
                        _same_date(prior.last_check_in_date),
                        streaks.c.current_streak == prior.current_streak,
                    )
                    .values(**_row_values(updated), updated_at=now)
                )
                if result.rowcount != 1:
                    return None
                return CheckInResult(record=updated, outcome=outcome)
        except IntegrityError:
            # Only a lost create race is retried; the row must exist by now.
            if creating and self._exists(user_id, group_id):
                return None
            raise

    def _exists(self, user_id: str, group_id: str) -> bool:
        with get_db_session() as session:
            return session.execute(select(streaks.c.id).where(_pair(user_id, group_id))).first() is not None

    def seed_streak(self, user_id: str, group_id: str, *, session: Optional[Session] = None) -> StreakRecord:
        """Insert a zeroed record for a new member. Existing records are left alone."""
        if session is not None:
            return self._seed(session, user_id, group_id)
        try:
            with storage_errors("seed_streak"), get_db_session() as own:
                return self._seed(own, user_id, group_id)
        except IntegrityError:
            existing = self.get_streak(user_id, group_id)
            if existing is None:
                raise
            return existing

    def _seed(self, session: Session, user_id: str, group_id: str) -> StreakRecord:
        row = session.execute(select(streaks).where(_pair(user_id, group_id))).first()
        if row is not None:
            return StreakRecord.from_row(row)
        now = utcnow()
        record = StreakRecord(user_id=user_id, group_id=group_id, created_at=now, updated_at=now)
        session.execute(insert(streaks).values(**_row_values(record), created_at=now, updated_at=now))
        logger.info("streak.seeded", extra={"user_id": user_id, "group_id": group_id})
        return record

    def delete_streak(self, user_id: str, group_id: str, *, session: Optional[Session] = None) -> bool:
        """Remove the pair's record (membership removal). Returns whether a row existed."""
        stmt = delete(streaks).where(_pair(user_id, group_id))
        if session is not None:
            return session.execute(stmt).rowcount > 0
        with storage_errors("delete_streak"), get_db_session() as own:
            return own.execute(stmt).rowcount > 0

    def delete_group_streaks(self, group_id: str, *, session: Session) -> int:
        """Remove every record of a group (group deletion). Returns the number removed."""
        return session.execute(delete(streaks).where(streaks.c.group_id == group_id)).rowcount

    # Reads ------------------------------------------------------------
    def get_streak(self, user_id: str, group_id: str) -> Optional[StreakRecord]:
        with storage_errors("get_streak"), get_db_session() as session:
            row = session.execute(select(streaks).where(_pair(user_id, group_id))).first()
        return StreakRecord.from_row(row) if row is not None else None

    def list_group_streaks(self, group_id: str) -> List[StreakRecord]:
        """Leaderboard order: current streak desc, longest streak desc, then user id."""
        stmt = (
            select(streaks)
            .where(streaks.c.group_id == group_id)
            .order_by(
                streaks.c.current_streak.desc(),
                streaks.c.longest_streak.desc(),
                streaks.c.user_id.asc(),
            )
        )
        with storage_errors("list_group_streaks"), get_db_session() as session:
            rows = session.execute(stmt).all()
        return [StreakRecord.from_row(row) for row in rows]


def _row_values(record: StreakRecord) -> dict:
    return {
        "user_id": record.user_id,
        "group_id": record.group_id,
        "current_streak": record.current_streak,
        "longest_streak": record.longest_streak,
        "last_check_in_date": record.last_check_in_date,
        "streak_start_date": record.streak_start_date,
    }


# Singleton ledger used by routes
streak_ledger = StreakLedger()
