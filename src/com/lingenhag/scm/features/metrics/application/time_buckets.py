# src/com/lingenhag/scm/features/metrics/application/time_buckets.py
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

from dateutil.relativedelta import relativedelta

from com.lingenhag.scm.domain.models import TimeBucket

YOY_OFFSET = timedelta(weeks=51)


def utc_date(ts: datetime) -> date:
    """Normalisiert auf UTC und gibt Datum zurück."""
    return ts.astimezone(timezone.utc).date()


def week_start(ts: datetime | date) -> date:
    """Montag der (ISO-)Woche, in die ts fällt."""
    d = utc_date(ts) if isinstance(ts, datetime) else ts
    return d - timedelta(days=d.weekday())


def month_key(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).strftime("%Y-%m")


def months_before(d: datetime | date, months: int) -> datetime | date:
    """
    Calendar month subtraction. The day is clamped to the end of the target
    month (2024-03-31 - 1 month == 2024-02-29), same as PostgreSQL/DuckDB
    `interval '1 month'`.
    """
    return d - relativedelta(months=months)


def day_bucket(d: date) -> TimeBucket:
    return TimeBucket.day(d)


def same_day_last_month(reference_day: date) -> TimeBucket:
    return TimeBucket.day(months_before(reference_day, 1))


def same_weekday_last_year(reference_day: date) -> TimeBucket:
    return TimeBucket.day(reference_day - YOY_OFFSET)
