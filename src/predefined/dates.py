"""
Date rewriter for catalog SQL.

Catalog queries were authored against FY 2025-26 and carry its boundary
dates as literals. Each known literal has a role (FY start, period end,
FY end ...) whose value is recomputed from the caller's start/end dates.
Unknown literals are left untouched.

New catalog entries can name the role directly instead: `{{FY_START}}`,
`{{PERIOD_END}}` ... expand to the quoted date. Unknown tags are left as-is.

`NOW()` and `CURRENT_DATE` are pinned to the end date so a month-to-date
query cannot roll into the next IST day when the UTC clock passes 18:30.
"""
from __future__ import annotations

import re
from datetime import date, datetime
from typing import Optional

from dateutil.relativedelta import relativedelta

from src.timerange.calendar import get_tz

IST = "Asia/Kolkata"

# literal in the catalog -> role
FY_DATE_LITERALS: dict[str, str] = {
    "2025-04-01": "fy_start",
    "2025-02-28": "period_end",
    "2025-03-31": "fy_end",
    "2025-03-01": "fy_end_month_start",
    "2024-04-01": "prev_fy_start",
    "2024-02-28": "prev_period_end",
    "2024-03-31": "prev_fy_end",
    "2024-03-01": "prev_fy_end_month_start",
    "2023-04-01": "fy_start_minus_2",
    "2022-04-01": "fy_start_minus_3",
}

_LITERAL_RE = re.compile("'(" + "|".join(re.escape(d) for d in FY_DATE_LITERALS) + ")'")
_ROLE_TAG_RE = re.compile(r"\{\{\s*([A-Z0-9_]+)\s*\}\}")
_NOW_RE = re.compile(r"\bnow\s*\(\s*\)", re.IGNORECASE)
_CURRENT_DATE_RE = re.compile(r"\bcurrent_date\b", re.IGNORECASE)


def _parse(value: str) -> date:
    return date.fromisoformat(value)


def _fy_end(fy_start: date) -> date:
    return date(fy_start.year + 1, 3, 31)


def compute_date_roles(start_date: str, end_date: str) -> dict[str, str]:
    """Role -> replacement date for the given period (year shifts clamp Feb 29)."""
    start, end = _parse(start_date), _parse(end_date)
    prev_start, prev_end = start - relativedelta(years=1), end - relativedelta(years=1)
    fy_end, prev_fy_end = _fy_end(start), _fy_end(prev_start)
    roles = {
        "fy_start": start,
        "period_end": end,
        "fy_end": fy_end,
        "fy_end_month_start": fy_end.replace(day=1),
        "prev_fy_start": prev_start,
        "prev_period_end": prev_end,
        "prev_fy_end": prev_fy_end,
        "prev_fy_end_month_start": prev_fy_end.replace(day=1),
        "fy_start_minus_2": start - relativedelta(years=2),
        "fy_start_minus_3": start - relativedelta(years=3),
    }
    return {role: d.isoformat() for role, d in roles.items()}


def _expand_tag(match: re.Match, roles: dict[str, str]) -> str:
    value = roles.get(match.group(1).lower())
    return f"'{value}'" if value else match.group(0)


def replace_dates_in_sql(sql: str, start_date: str, end_date: str) -> str:
    """
    Rewrite known FY literals and pin NOW()/CURRENT_DATE to *end_date*.

    Literals are substituted in a single pass, so a replacement value that
    happens to equal another known literal is never rewritten twice.
    """
    roles = compute_date_roles(start_date, end_date)
    result = _LITERAL_RE.sub(lambda m: f"'{roles[FY_DATE_LITERALS[m.group(1)]]}'", sql)
    result = _ROLE_TAG_RE.sub(lambda m: _expand_tag(m, roles), result)
    result = _NOW_RE.sub(f"TIMESTAMP '{end_date} 00:00:00'", result)
    result = _CURRENT_DATE_RE.sub(f"DATE '{end_date}'", result)
    return result


def today_ist(now: Optional[datetime] = None) -> date:
    current = now or datetime.now(get_tz(IST))
    if current.tzinfo is not None:
        current = current.astimezone(get_tz(IST))
    return current.date()


def compute_default_dates(today: Optional[date] = None, fiscal_start_month: int = 4) -> tuple[str, str]:
    """(current fiscal-year start, today in IST) as YYYY-MM-DD strings."""
    today = today or today_ist()
    year = today.year if today.month >= fiscal_start_month else today.year - 1
    return date(year, fiscal_start_month, 1).isoformat(), today.isoformat()


def is_historical_range(end_date: str, today: Optional[date] = None) -> bool:
    """True when *end_date* falls before the current IST month."""
    today = today or today_ist()
    return _parse(end_date) < today.replace(day=1)
