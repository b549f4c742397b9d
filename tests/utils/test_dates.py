from datetime import datetime, timedelta, timezone

from watchquota.util.dates import (
    days_ago_utc,
    format_timestamp,
    next_midnight_utc,
    today_utc,
)


def test_today_utc_converts_aware_times():
    eastern = timezone(timedelta(hours=-5))
    late_evening = datetime(2024, 3, 10, 22, 0, tzinfo=eastern)  # 03:00 UTC next day
    assert today_utc(late_evening) == "2024-03-11"


def test_days_ago_crosses_month_boundary():
    now = datetime(2024, 3, 2, 12, 0, tzinfo=timezone.utc)
    assert days_ago_utc(7, now) == "2024-02-24"
    assert days_ago_utc(0, now) == "2024-03-02"


def test_next_midnight_is_strictly_after_now():
    assert next_midnight_utc(datetime(2024, 12, 31, 23, 59, tzinfo=timezone.utc)) == datetime(
        2025, 1, 1, tzinfo=timezone.utc
    )
    assert next_midnight_utc(datetime(2024, 6, 1, 0, 0, tzinfo=timezone.utc)) == datetime(
        2024, 6, 2, tzinfo=timezone.utc
    )


def test_format_timestamp_sorts_chronologically():
    earlier = format_timestamp(datetime(2024, 1, 1, 9, 0, 0, 5, tzinfo=timezone.utc))
    later = format_timestamp(datetime(2024, 1, 1, 9, 0, 0, 60, tzinfo=timezone.utc))
    assert earlier == "2024-01-01 09:00:00.000005"
    assert earlier < later
