"""
Validates tool arguments before any query is built.

Checks performed:
  1. Dates are strict YYYY-MM-DD calendar dates and start <= end
  2. Vertical is a known vertical (aliases accepted)
  3. Locations are a list of non-empty strings
  4. Metric keys belong to the funnel that will run them
  5. Predefined search terms are non-empty; dates come in pairs
"""
from __future__ import annotations

import re
from datetime import date
from typing import Any

from src.core.verticals import ALL_VERTICALS, Vertical, normalize_vertical
from src.funnel.builder import FUNNEL_METRIC_KEYS
from src.funnel.chapter import CHAPTER_METRIC_KEYS

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
MAX_LOCATIONS = 20


def validate_date(name: str, value: Any) -> list[str]:
    if not isinstance(value, str) or not _DATE_RE.match(value):
        return [f"{name} must be YYYY-MM-DD (got {value!r})."]
    try:
        date.fromisoformat(value)
    except ValueError:
        return [f"{name} is not a valid calendar date: {value!r}."]
    return []


def validate_date_range(start_date: Any, end_date: Any) -> list[str]:
    errors = validate_date("start_date", start_date) + validate_date("end_date", end_date)
    if not errors and start_date > end_date:
        errors.append(f"start_date ({start_date}) is after end_date ({end_date}).")
    return errors


def validate_locations(locations: Any) -> list[str]:
    if locations is None:
        return []
    if not isinstance(locations, list):
        return ["locations must be a list of strings."]
    errors: list[str] = []
    if len(locations) > MAX_LOCATIONS:
        errors.append(f"At most {MAX_LOCATIONS} locations may be given ({len(locations)} requested).")
    for loc in locations:
        if not isinstance(loc, str) or not loc.strip():
            errors.append(f"locations has an invalid/empty value: {loc!r}")
    return errors


def validate_funnel_args(args: dict[str, Any]) -> list[str]:
    """Return a list of validation error messages (empty list = valid).

    Parameters
    ----------
    args : dict
        start_date, end_date, vertical, locations, metric, chapter_detail
    """
    errors = validate_date_range(args.get("start_date"), args.get("end_date"))

    vertical = normalize_vertical(args.get("vertical") or ALL_VERTICALS[0].value)
    if vertical is None:
        errors.append(
            f"Unknown vertical '{args.get('vertical')}'. "
            f"Allowed: {', '.join(v.value for v in ALL_VERTICALS)}"
        )

    errors += validate_locations(args.get("locations"))

    if args.get("chapter_detail") and vertical not in (None, Vertical.THE_CHAPTER):
        errors.append(f"chapter_detail is only available for '{Vertical.THE_CHAPTER.value}'.")

    metric = args.get("metric")
    if metric:
        allowed = CHAPTER_METRIC_KEYS if args.get("chapter_detail") else FUNNEL_METRIC_KEYS
        if metric not in allowed:
            errors.append(f"Unknown metric '{metric}'. Allowed: {', '.join(allowed)}")
    return errors


def validate_predefined_args(args: dict[str, Any]) -> list[str]:
    errors: list[str] = []
    query = args.get("query")
    if not isinstance(query, str) or not query.strip():
        errors.append("query search term is required.")

    start_date, end_date = args.get("start_date"), args.get("end_date")
    if (start_date is None) != (end_date is None):
        errors.append("start_date and end_date must be given together.")
    elif start_date is not None:
        errors += validate_date_range(start_date, end_date)

    errors += validate_locations(args.get("locations"))
    return errors
