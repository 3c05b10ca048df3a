from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from quest_penalty.errors import PolicyInputError
from quest_penalty.time_utils import iter_days_after, to_day, weekday_number


def test_to_day_converts_aware_instant_into_oslo_calendar() -> None:
    # 23:30 UTC on Feb 3 is already Feb 4 in Oslo
    instant = datetime(2026, 2, 3, 23, 30, tzinfo=timezone.utc)
    assert to_day(instant, "Europe/Oslo") == date(2026, 2, 4)


def test_to_day_keeps_naive_wall_time_and_plain_dates() -> None:
    assert to_day(datetime(2026, 2, 4, 23, 59)) == date(2026, 2, 4)
    assert to_day(date(2026, 2, 4)) == date(2026, 2, 4)
    assert to_day("2026-02-04") == date(2026, 2, 4)
    assert to_day("2026-02-04T10:30:00+01:00", "Europe/Oslo") == date(2026, 2, 4)


def test_to_day_rejects_garbage() -> None:
    with pytest.raises(PolicyInputError):
        to_day("next tuesday")
    with pytest.raises(PolicyInputError):
        to_day(12345)  # type: ignore[arg-type]


def test_same_day_instants_normalize_equal() -> None:
    tz = ZoneInfo("Europe/Oslo")
    assert to_day(datetime(2026, 2, 4, 0, 1, tzinfo=tz)) == to_day(datetime(2026, 2, 4, 23, 59, tzinfo=tz))


def test_iter_days_after_is_half_open() -> None:
    days = list(iter_days_after(date(2026, 2, 1), date(2026, 2, 4)))
    assert days == [date(2026, 2, 2), date(2026, 2, 3), date(2026, 2, 4)]
    assert list(iter_days_after(date(2026, 2, 4), date(2026, 2, 4))) == []
    assert list(iter_days_after(date(2026, 2, 5), date(2026, 2, 4))) == []


def test_weekday_number_starts_on_sunday() -> None:
    assert weekday_number(date(2026, 2, 1)) == 1  # Sunday
    assert weekday_number(date(2026, 2, 2)) == 2  # Monday
    assert weekday_number(date(2026, 2, 4)) == 4  # Wednesday
    assert weekday_number(date(2026, 2, 7)) == 7  # Saturday
