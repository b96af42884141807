"""Scheduler-triggered jobs. The external cron calls these once per day."""
from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from backend.core.auth import require_cron_key
from backend.core.dates import today
from backend.core.errors import ValidationError
from backend.features.streaks.sweeper import streak_sweeper

router = APIRouter(prefix="/v1/cron", dependencies=[Depends(require_cron_key)])


@router.post("/streak-sweep")
def run_streak_sweep(reference_date: Optional[date] = Query(None)):
    """Zero stale streaks. Defaults to today in the reference timezone.

    Past dates are accepted for catch-up runs; a future date would zero live
    streaks, so those are only available through the CLI worker.
    """
    current = today()
    if reference_date is not None and reference_date > current:
        raise ValidationError(f"reference_date must not be after {current.isoformat()}")
    report = streak_sweeper.sweep(reference_date or current)
    return {"ok": True, "report": report.to_dict()}
