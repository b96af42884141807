"""
Daily streak sweep.

Zeroes every streak whose owner let the grace window pass without a check-in,
independent of the next check-in event. Each row is reset in its own
transaction with a guarded update that re-checks the predicate, so a crash
mid-scan leaves finished rows correct, an overlapping sweep is redundant, and a
check-in landing between the scan and the update is never clobbered.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional

from sqlalchemy import and_, insert, select, update

from backend.core.dates import grace_cutoff, today, utcnow
from backend.core.database import get_db_session, storage_errors, streak_sweep_runs, streaks
from backend.core.metrics import streak_sweep_resets_total, streak_sweep_runs_total
from backend.models.streak import SweepReport

logger = logging.getLogger("gymbro.sweep")


def _stale(cutoff: date):
    return and_(
        streaks.c.current_streak > 0,
        streaks.c.last_check_in_date.is_not(None),
        streaks.c.last_check_in_date < cutoff,
    )


class StreakSweeper:
    """Batch reconciliation of streaks against elapsed time."""

    def __init__(self, *, batch_size: int = 500, record_runs: bool = True):
        self._batch_size = batch_size
        self._record_runs = record_runs

    def sweep(self, reference_date: Optional[date] = None) -> SweepReport:
        """
        Zero `current_streak` for records last checked in before `reference_date - 1`.

        Safe to repeat or skip: the predicate is gap based, so a second run on the
        same day finds nothing and a run after missed days still catches every
        stale record.
        """
        ref = reference_date or today()
        cutoff = grace_cutoff(ref)
        started_at = utcnow()
        candidates = 0
        reset = 0

        logger.info("sweep.start", extra={"reference_date": ref.isoformat(), "cutoff": cutoff.isoformat()})
        try:
            last_id = 0
            while True:
                ids = self._next_batch(cutoff, after_id=last_id)
                if not ids:
                    break
                candidates += len(ids)
                for row_id in ids:
                    if self._reset_one(row_id, cutoff):
                        reset += 1
                last_id = ids[-1]
        except Exception as exc:
            streak_sweep_runs_total.inc(labels={"status": "failed"})
            logger.error(
                "sweep.failed",
                exc_info=True,
                extra={"reference_date": ref.isoformat(), "reset": reset},
            )
            self._record_run(ref, started_at, "failed", {"candidates": candidates, "reset": reset}, error=str(exc))
            raise

        report = SweepReport(
            reference_date=ref,
            candidates=candidates,
            reset=reset,
            started_at=started_at,
            finished_at=utcnow(),
        )
        streak_sweep_resets_total.inc(amount=reset)
        streak_sweep_runs_total.inc(labels={"status": "success"})
        logger.info("sweep.complete", extra={"reference_date": ref.isoformat(), "candidates": candidates, "reset": reset})
        self._record_run(ref, started_at, "success", {"candidates": candidates, "reset": reset})
        return report

    def _next_batch(self, cutoff: date, *, after_id: int) -> List[int]:
        stmt = (
            select(streaks.c.id)
            .where(_stale(cutoff), streaks.c.id > after_id)
            .order_by(streaks.c.id)
            .limit(self._batch_size)
        )
        with storage_errors("sweep.scan"), get_db_session() as session:
            return [row.id for row in session.execute(stmt)]

    def _reset_one(self, row_id: int, cutoff: date) -> bool:
        stmt = (
            update(streaks)
            .where(streaks.c.id == row_id, _stale(cutoff))
            .values(current_streak=0, updated_at=utcnow())
        )
        with storage_errors("sweep.reset"), get_db_session() as session:
            return session.execute(stmt).rowcount == 1

    def _record_run(self, ref: date, started_at, status: str, stats: dict, error: Optional[str] = None) -> None:
        if not self._record_runs:
            return
        try:
            with get_db_session() as session:
                session.execute(
                    insert(streak_sweep_runs).values(
                        reference_date=ref,
                        started_at=started_at,
                        finished_at=utcnow(),
                        status=status,
                        stats_json=stats,
                        error=error,
                    )
                )
        except Exception:
            # The run outcome is already logged; a failed audit row must not mask it.
            logger.warning("sweep.run_record_failed", exc_info=True, extra={"status": status})


# Singleton sweeper used by the cron route and worker
streak_sweeper = StreakSweeper()
