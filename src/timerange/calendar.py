"""
Timezone-aware period-boundary helpers.

Every function takes and returns aware datetimes expressed in the
configured zone. `end_of_*` helpers return the first instant of the
following period (exclusive bound). Month arithmetic clamps the day,
so Jan 31 + 1 month = Feb 28/29.
"""
from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone as _fixed_tz, tzinfo
from functools import lru_cache
from zoneinfo import ZoneInfo

from dateutil.relativedelta import relativedelta

from src.timerange.models import TimeGranularity, WeekStart

_OFFSET_RE = re.compile(r"^(?:UTC|GMT)?([+-])(\d{2}):?(\d{2})$", re.IGNORECASE)


@lru_cache(maxsize=64)
def get_tz(name: str) -> tzinfo:
    """Resolve an IANA zone name or a fixed offset ('+05:30') to a tzinfo."""
    m = _OFFSET_RE.match(name.strip())
    if m:
        sign = 1 if m.group(1) == "+" else -1
        delta = timedelta(hours=int(m.group(2)), minutes=int(m.group(3)))
        return _fixed_tz(sign * delta)
    return ZoneInfo(name)


def to_zone(value: datetime | str, tz: tzinfo) -> datetime:
    """Parse/convert *value* into an aware datetime in *tz* (naive input is taken as local to *tz*)."""
    dt = datetime.fromisoformat(value) if isinstance(value, str) else value
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz)
    return dt.astimezone(tz)


def format_iso(dt: datetime) -> str:
    """ISO-8601 with seconds precision and the explicit zone offset."""
    return dt.replace(microsecond=0).isoformat()


def _midnight(dt: datetime, year: int, month: int, day: int) -> datetime:
    return datetime(year, month, day, tzinfo=dt.tzinfo)


# ── Arithmetic ───────────────────────────────────────────

# granularity -> (relativedelta keyword, multiplier)
_SHIFT_UNITS: dict[str, tuple[str, int]] = {
    "minute": ("minutes", 1),
    "hour": ("hours", 1),
    "day": ("days", 1),
    "week": ("weeks", 1),
    "month": ("months", 1),
    "quarter": ("months", 3),
    "year": ("years", 1),
}


def add_days(dt: datetime, days: int) -> datetime:
    return dt + relativedelta(days=days)


def add_weeks(dt: datetime, weeks: int) -> datetime:
    return dt + relativedelta(weeks=weeks)


def add_months(dt: datetime, months: int) -> datetime:
    return dt + relativedelta(months=months)


def add_quarters(dt: datetime, quarters: int) -> datetime:
    return dt + relativedelta(months=3 * quarters)


def add_years(dt: datetime, years: int) -> datetime:
    return dt + relativedelta(years=years)


def shift(dt: datetime, granularity: TimeGranularity, count: int) -> datetime:
    """Move *dt* by *count* units of *granularity* (negative = backwards).

    Raises ValueError/OverflowError when the result leaves the supported
    date range.
    """
    if granularity not in _SHIFT_UNITS:
        raise ValueError(f"Unsupported granularity: {granularity}")
    unit, factor = _SHIFT_UNITS[granularity]
    return dt + relativedelta(**{unit: count * factor})

def subtract_unit(dt: datetime, granularity: TimeGranularity) -> datetime:
    return shift(dt, granularity, -1)


# ── Period starts ────────────────────────────────────────

def start_of_day(dt: datetime) -> datetime:
    return _midnight(dt, dt.year, dt.month, dt.day)


def start_of_week(dt: datetime, week_start: WeekStart = "monday") -> datetime:
    # datetime.weekday(): Monday = 0 ... Sunday = 6
    first = 0 if week_start == "monday" else 6
    back = (dt.weekday() - first) % 7
    return start_of_day(add_days(dt, -back))


def start_of_month(dt: datetime) -> datetime:
    return _midnight(dt, dt.year, dt.month, 1)


def start_of_quarter(dt: datetime) -> datetime:
    return _midnight(dt, dt.year, (dt.month - 1) // 3 * 3 + 1, 1)


def start_of_year(dt: datetime) -> datetime:
    return _midnight(dt, dt.year, 1, 1)


def start_of_fiscal_year(dt: datetime, fiscal_start_month: int) -> datetime:
    """Before the fiscal start month, the fiscal year began the previous calendar year."""
    year = dt.year if dt.month >= fiscal_start_month else dt.year - 1
    return _midnight(dt, year, fiscal_start_month, 1)


def start_of_period(
    dt: datetime,
    granularity: TimeGranularity,
    week_start: WeekStart = "monday",
    fiscal_start_month: int | None = None,
) -> datetime:
    """Start of the period containing *dt*; years are fiscal when *fiscal_start_month* is given."""
    if granularity == "minute":
        return dt.replace(second=0, microsecond=0)
    if granularity == "hour":
        return dt.replace(minute=0, second=0, microsecond=0)
    if granularity == "day":
        return start_of_day(dt)
    if granularity == "week":
        return start_of_week(dt, week_start)
    if granularity == "month":
        return start_of_month(dt)
    if granularity == "quarter":
        return start_of_quarter(dt)
    if granularity == "year":
        if fiscal_start_month is not None:
            return start_of_fiscal_year(dt, fiscal_start_month)
        return start_of_year(dt)
    raise ValueError(f"Unsupported granularity: {granularity}")


def end_of_period(
    dt: datetime,
    granularity: TimeGranularity,
    week_start: WeekStart = "monday",
    fiscal_start_month: int | None = None,
) -> datetime:
    """First instant of the period after the one containing *dt*."""
    start = start_of_period(dt, granularity, week_start, fiscal_start_month)
    return shift(start, granularity, 1)
