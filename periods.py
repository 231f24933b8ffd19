from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo


@dataclass(frozen=True)
class Period:
    start: Optional[date]
    end: Optional[date]


def resolve_period(start: Optional[date], end: Optional[date]) -> Period:
    if start and end and start > end:
        raise ValueError("Start date must be before end date")
    return Period(start, end)


def as_utc(moment: datetime) -> datetime:
    """Naive datetimes are taken to be UTC already."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def utc_naive(moment: datetime) -> datetime:
    return as_utc(moment).replace(tzinfo=None)


def utc_now() -> datetime:
    return utc_naive(datetime.now(timezone.utc))


def local_day(moment: datetime, tz_name: str) -> date:
    return as_utc(moment).astimezone(ZoneInfo(tz_name)).date()


def local_today(tz_name: str, now: Optional[datetime] = None) -> date:
    return local_day(now or datetime.now(timezone.utc), tz_name)


def previous_day(day: date) -> date:
    return day - timedelta(days=1)
