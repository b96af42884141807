"""
Daily streak sweep job.

Run once per day from the scheduler:

    python -m backend.workers.streak_sweep [--date YYYY-MM-DD]

Exits non-zero when the sweep fails so the scheduler records a failed run; the
next daily trigger catches anything left over.
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import date
from typing import Optional, Sequence

from backend.core.config import settings
from backend.core.errors import AppError
from backend.core.logging import configure_logging
from backend.features.streaks.sweeper import StreakSweeper

logger = logging.getLogger("gymbro.sweep")


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid date {value!r}, expected YYYY-MM-DD")


def run_sweep(reference_date: Optional[date] = None, sweeper: Optional[StreakSweeper] = None) -> dict:
    report = (sweeper or StreakSweeper()).sweep(reference_date)
    return report.to_dict()


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Zero streaks whose grace window has passed.")
    parser.add_argument("--date", type=_parse_date, default=None, help="reference date (default: today)")
    args = parser.parse_args(argv)

    configure_logging(settings.ENV)
    try:
        result = run_sweep(args.date)
    except AppError as exc:
        logger.error("sweep.job_failed", extra={"error_code": exc.code})
        return 1
    print(json.dumps(result))
    return 0


if __name__ == "__main__":
    sys.exit(main())
