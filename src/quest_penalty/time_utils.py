from __future__ import annotations

from collections.abc import Iterator
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from quest_penalty.errors import PolicyInputError


DEFAULT_TZ = "Europe/Oslo"


def now_local(tz_name: str = DEFAULT_TZ) -> datetime:
    return datetime.now(tz=ZoneInfo(tz_name))


def start_of_day(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def to_day(value: date | datetime | str, tz_name: str = DEFAULT_TZ) -> date:
    """Normalize an instant to its calendar day in the configured zone.

    Aware datetimes are converted into ``tz_name`` before truncation, naive
    ones are read as local wall time. ISO strings go through the same rules.
    Anything else raises ``PolicyInputError``.
    """
    if isinstance(value, str):
        raw = value.strip()
        try:
            parsed: date | datetime = datetime.fromisoformat(raw)
        except ValueError:
            try:
                parsed = date.fromisoformat(raw)
            except ValueError as exc:
                raise PolicyInputError(f"unparseable date: {value!r}") from exc
        value = parsed

    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(ZoneInfo(tz_name))
        return start_of_day(value).date()
    if isinstance(value, date):
        return value
    raise PolicyInputError(f"unsupported date value: {value!r}")


def iter_days_after(start: date, end: date) -> Iterator[date]:
    day = start + timedelta(days=1)
    while day <= end:
        yield day
        day += timedelta(days=1)


def weekday_number(day: date) -> int:
    # 1 = Sunday ... 7 = Saturday
    return day.isoweekday() % 7 + 1
