from datetime import date, datetime, timedelta, timezone

from backend.core.dates import calendar_day, days_between, ensure_aware, grace_cutoff, reference_zone


def test_naive_datetimes_are_treated_as_utc():
    naive = datetime(2024, 3, 1, 23, 30)
    assert ensure_aware(naive).tzinfo == timezone.utc
    assert calendar_day(naive, timezone.utc) == date(2024, 3, 1)


def test_calendar_day_uses_reference_zone():
    late_evening_utc = datetime(2024, 3, 1, 23, 30, tzinfo=timezone.utc)
    tokyo = reference_zone("Asia/Tokyo")
    assert calendar_day(late_evening_utc, tokyo) == date(2024, 3, 2)
    assert calendar_day(late_evening_utc, reference_zone("UTC")) == date(2024, 3, 1)


def test_offset_timestamps_resolve_in_reference_zone():
    moment = datetime(2024, 3, 2, 1, 0, tzinfo=timezone(timedelta(hours=5)))
    assert calendar_day(moment, timezone.utc) == date(2024, 3, 1)


def test_days_between_and_grace_cutoff():
    assert days_between(date(2024, 2, 28), date(2024, 3, 1)) == 2
    assert days_between(date(2024, 3, 1), date(2024, 2, 28)) == -2
    assert grace_cutoff(date(2024, 3, 1)) == date(2024, 2, 29)
