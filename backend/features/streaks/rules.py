"""Pure streak transitions. No I/O; the ledger persists what these return."""
from __future__ import annotations

from datetime import date
from typing import Iterable, Tuple

from backend.core.dates import days_between, grace_cutoff
from backend.core.errors import OutOfOrderCheckInError
from backend.models.streak import CheckInOutcome, GroupStreakSummary, StreakRecord


def start_record(user_id: str, group_id: str, day: date) -> StreakRecord:
    return StreakRecord(
        user_id=user_id,
        group_id=group_id,
        current_streak=1,
        longest_streak=1,
        last_check_in_date=day,
        streak_start_date=day,
    )


def apply_check_in(record: StreakRecord, day: date) -> Tuple[StreakRecord, CheckInOutcome]:
    """
    Advance `record` by a check-in on calendar day `day`.

    Raises OutOfOrderCheckInError when `day` is before the stored last check-in date.
    """
    last = record.last_check_in_date

    if last is None:
        # Pre-seeded record that has never seen a check-in.
        return (
            record.with_changes(
                current_streak=1,
                longest_streak=max(record.longest_streak, 1),
                last_check_in_date=day,
                streak_start_date=day,
            ),
            CheckInOutcome.STARTED,
        )

    gap = days_between(last, day)
    if gap == 0:
        return record, CheckInOutcome.UNCHANGED
    if gap < 0:
        raise OutOfOrderCheckInError(
            f"Check-in for {day.isoformat()} precedes last check-in {last.isoformat()}"
        )

    if gap == 1 and record.current_streak > 0:
        current = record.current_streak + 1
        return (
            record.with_changes(
                current_streak=current,
                longest_streak=max(record.longest_streak, current),
                last_check_in_date=day,
            ),
            CheckInOutcome.EXTENDED,
        )

    # Either the gap exceeded the grace window, or the sweep already zeroed the streak.
    return (
        record.with_changes(
            current_streak=1,
            longest_streak=max(record.longest_streak, 1),
            last_check_in_date=day,
            streak_start_date=day,
        ),
        CheckInOutcome.RESET,
    )


def is_stale(record: StreakRecord, reference_date: date) -> bool:
    """True when the sweep should zero this record on `reference_date`."""
    if record.current_streak <= 0 or record.last_check_in_date is None:
        return False
    return record.last_check_in_date < grace_cutoff(reference_date)


def summarize_streaks(records: Iterable[StreakRecord]) -> GroupStreakSummary:
    items = list(records)
    if not items:
        return GroupStreakSummary(member_count=0, active_count=0, average_current=0.0, max_current=0, max_longest=0)
    currents = [r.current_streak for r in items]
    return GroupStreakSummary(
        member_count=len(items),
        active_count=sum(1 for c in currents if c > 0),
        average_current=round(sum(currents) / len(items), 2),
        max_current=max(currents),
        max_longest=max(r.longest_streak for r in items),
    )
