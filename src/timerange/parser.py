"""
Deterministic resolution of natural-language time expressions.

    normalize("Leads MTD")           -> "leads month to date"
    detect_time_terms("since jan 5") -> [DetectedTimeTerm(type="since", ...)]
    resolve_time_range("L7D", cfg)   -> TimeRange(mode="rolling", ...)

resolve_time_range never raises for unrecognised input: anything it cannot
interpret resolves to month-to-date.
"""
from __future__ import annotations

import re
from datetime import datetime, tzinfo
from typing import Any, Optional, Union

from src.timerange import calendar as cal
from src.timerange.models import (
    ABBREVIATIONS,
    MONTH_NAMES,
    ComparisonRange,
    ComparisonType,
    DetectedTimeTerm,
    TermType,
    TimeGranularity,
    TimeRange,
    TimeRangeConfig,
)

ConfigLike = Union[TimeRangeConfig, dict[str, Any], None]

DEFAULT_EXPRESSION = "month to date"
DEFAULT_ROLLING_DAYS = 30

# ── Normalisation ────────────────────────────────────────

_ABBREVIATION_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = tuple(
    (re.compile(rf"\b{re.escape(abbr.lower())}\b"), full) for abbr, full in ABBREVIATIONS.items()
)

_SYNONYMS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"\bvs\.?(?=\s|$)"), "versus"),
    (re.compile(r"\bcompared to\b"), "versus"),
    (re.compile(r"\bcurrent\b"), "this"),
    (re.compile(r"\b(?:previous|prior|trailing|past)\b"), "last"),
)


def normalize(text: str) -> str:
    """Lowercase, collapse whitespace, expand abbreviations and map synonyms."""
    out = re.sub(r"\s+", " ", text.lower().strip())
    for pattern, full in _ABBREVIATION_PATTERNS:
        out = pattern.sub(full, out)
    out = out.replace("-to-", " to ")
    # letters only, so ISO dates keep their hyphens
    out = re.sub(r"(?<=[a-z])-(?=[a-z])", " ", out)
    for pattern, replacement in _SYNONYMS:
        out = pattern.sub(replacement, out)
    return out


# ── Pattern table ────────────────────────────────────────

_MONTH_ALT = "|".join(sorted(MONTH_NAMES, key=len, reverse=True))
_ORDINAL = r"(?:st|nd|rd|th)?"

DATE_TOKEN = (
    r"(?:\d{4}-\d{2}-\d{2}"
    r"|today|yesterday|tomorrow"
    rf"|(?:{_MONTH_ALT})\s+\d{{4}}\b"
    rf"|(?:{_MONTH_ALT})\s+\d{{1,2}}{_ORDINAL}\b(?:,?\s+\d{{4}}\b)?"
    rf"|\d{{1,2}}{_ORDINAL}\s+(?:{_MONTH_ALT})\b(?:,?\s+\d{{4}}\b)?)"
)

TIME_TERM_PATTERNS: tuple[tuple[TermType, re.Pattern[str], float], ...] = (
    ("to_date", re.compile(r"\b(?:week|month|quarter|fiscal year|year|period) to date\b"), 1.0),
    ("comparison", re.compile(r"\b(day|week|month|quarter|year) over \1\b"), 1.0),
    ("comparison", re.compile(r"\bsame period last (?:week|month|quarter|year)\b"), 1.0),
    ("calendar", re.compile(r"\b(?:this|last|next) (?:fiscal year|week|month|quarter|year)\b"), 1.0),
    ("rolling", re.compile(r"\blast \d+ (?:day|week|month|quarter|year)s?\b"), 1.0),
    ("rolling", re.compile(r"\blast (?:day|week|month|quarter|year)s\b"), 0.6),
    ("explicit", re.compile(rf"\bbetween {DATE_TOKEN} and {DATE_TOKEN}"), 0.9),
    ("explicit", re.compile(rf"\bfrom {DATE_TOKEN} (?:to|through|thru) {DATE_TOKEN}"), 0.9),
    ("since", re.compile(rf"\b(?:since|after) {DATE_TOKEN}"), 0.8),
    ("until", re.compile(rf"\b(?:until|before|up to) {DATE_TOKEN}"), 0.8),
    ("absolute", re.compile(rf"\b(?:{_MONTH_ALT}) \d{{4}}\b"), 0.9),
    ("relative", re.compile(r"\b(?:today|yesterday|tomorrow)\b"), 0.9),
)


def detect_time_terms(text: str) -> list[DetectedTimeTerm]:
    """
    Find every time expression in *text* (positions refer to the normalised
    text). Sorted by position; on overlap the earlier, then more confident,
    then longer match is kept.
    """
    normalized = normalize(text)
    found: list[DetectedTimeTerm] = []
    for term_type, pattern, confidence in TIME_TERM_PATTERNS:
        for m in pattern.finditer(normalized):
            found.append(
                DetectedTimeTerm(
                    token=m.group(0),
                    type=term_type,
                    confidence=confidence,
                    start_pos=m.start(),
                    end_pos=m.end(),
                )
            )

    found.sort(key=lambda t: (t.start_pos, -t.confidence, -(t.end_pos - t.start_pos)))
    kept: list[DetectedTimeTerm] = []
    for term in found:
        if any(term.start_pos < k.end_pos and term.end_pos > k.start_pos for k in kept):
            continue
        kept.append(term)
    return kept


# ── Date tokens ──────────────────────────────────────────

_ISO_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_MONTH_YEAR_RE = re.compile(rf"^({_MONTH_ALT}) (\d{{4}})$")
_MONTH_DAY_RE = re.compile(rf"^({_MONTH_ALT}) (\d{{1,2}}){_ORDINAL}(?:,? (\d{{4}}))?$")
_DAY_MONTH_RE = re.compile(rf"^(\d{{1,2}}){_ORDINAL} ({_MONTH_ALT})(?:,? (\d{{4}}))?$")
_RELATIVE_DAYS = {"yesterday": -1, "today": 0, "tomorrow": 1}


def parse_date_token(token: str, now: datetime) -> datetime:
    """Midnight (in now's zone) of the day named by *token*. Raises ValueError if unrecognised."""
    token = re.sub(r"\s+", " ", token.strip().lower())

    if token in _RELATIVE_DAYS:
        return cal.start_of_day(cal.add_days(now, _RELATIVE_DAYS[token]))

    m = _ISO_RE.match(token)
    if m:
        return datetime(int(m.group(1)), int(m.group(2)), int(m.group(3)), tzinfo=now.tzinfo)

    m = _MONTH_YEAR_RE.match(token)
    if m:
        return datetime(int(m.group(2)), MONTH_NAMES[m.group(1)], 1, tzinfo=now.tzinfo)

    m = _MONTH_DAY_RE.match(token)
    if m:
        year = int(m.group(3)) if m.group(3) else now.year
        return datetime(year, MONTH_NAMES[m.group(1)], int(m.group(2)), tzinfo=now.tzinfo)

    m = _DAY_MONTH_RE.match(token)
    if m:
        year = int(m.group(3)) if m.group(3) else now.year
        return datetime(year, MONTH_NAMES[m.group(2)], int(m.group(1)), tzinfo=now.tzinfo)

    raise ValueError(f"Unable to parse date: {token!r}")


# ── Resolution ───────────────────────────────────────────

_UNITS: tuple[TimeGranularity, ...] = ("week", "month", "quarter", "year")
_COMPARISONS: dict[str, tuple[ComparisonType, TimeGranularity]] = {
    "day over day": ("DoD", "day"),
    "week over week": ("WoW", "week"),
    "month over month": ("MoM", "month"),
    "quarter over quarter": ("QoQ", "quarter"),
    "year over year": ("YoY", "year"),
    "same period last year": ("SPLY", "year"),
    "same period last week": ("same_period_last_week", "week"),
    "same period last month": ("same_period_last_month", "month"),
    "same period last quarter": ("same_period_last_quarter", "quarter"),
}


def resolve_now(config: TimeRangeConfig, tz: tzinfo) -> datetime:
    """The injected clock, or wall-clock time read once."""
    if config.now is None:
        return datetime.now(tz)
    return cal.to_zone(config.now, tz)


def _range(
    mode: str,
    start: Optional[datetime],
    end: Optional[datetime],
    config: TimeRangeConfig,
    granularity: TimeGranularity = "day",
    original_text: Optional[str] = None,
    comparison: Optional[ComparisonRange] = None,
) -> TimeRange:
    return TimeRange(
        mode=mode,
        start=cal.format_iso(start) if start is not None else None,
        end=cal.format_iso(end) if end is not None else None,
        timezone=config.timezone,
        granularity=granularity,
        calendar_week_start=config.week_start,
        fiscal_year_start_month=config.fiscal_config.fiscal_year_start_month,
        comparison=comparison,
        original_text=original_text,
    )


def _unit_in(token: str) -> TimeGranularity:
    for unit in _UNITS:
        if unit in token:
            return unit
    raise ValueError(f"No period unit in {token!r}")


def resolve_to_date(token: str, now: datetime, config: TimeRangeConfig, original_text: str | None = None) -> TimeRange:
    """WTD/MTD/QTD/YTD/FYTD/PTD: start of the current period -> now. PTD uses the month."""
    fiscal = None
    if "fiscal year" in token:
        granularity: TimeGranularity = "year"
        fiscal = config.fiscal_config.fiscal_year_start_month
    elif "period" in token:
        granularity = "month"
    else:
        granularity = _unit_in(token)
    start = cal.start_of_period(now, granularity, config.week_start, fiscal)
    return _range("to_date", start, now, config, granularity, original_text)


def resolve_calendar(token: str, now: datetime, config: TimeRangeConfig, original_text: str | None = None) -> TimeRange:
    """this/last/next <period>: the full period, end exclusive."""
    offset = -1 if token.startswith("last") else 1 if token.startswith("next") else 0
    fiscal = config.fiscal_config.fiscal_year_start_month if "fiscal year" in token else None
    granularity = "year" if fiscal else _unit_in(token)
    anchor = cal.shift(now, granularity, offset)
    start = cal.start_of_period(anchor, granularity, config.week_start, fiscal)
    end = cal.shift(start, granularity, 1)
    return _range("calendar", start, end, config, granularity, original_text)


def resolve_rolling(token: str, now: datetime, config: TimeRangeConfig, original_text: str | None = None) -> TimeRange:
    """last N <unit>s: now - N units -> now, not truncated to day boundaries."""
    m = re.search(r"(\d+) (day|week|month|quarter|year)s?", token)
    if m:
        count, granularity = int(m.group(1)), m.group(2)
    else:
        count, granularity = DEFAULT_ROLLING_DAYS, "day"
    start = cal.shift(now, granularity, -count)
    return _range("rolling", start, now, config, granularity, original_text)


def resolve_explicit(token: str, now: datetime, config: TimeRangeConfig, original_text: str | None = None) -> TimeRange:
    """between X and Y / from X to Y: both dates taken literally at midnight."""
    m = re.match(rf"between ({DATE_TOKEN}) and ({DATE_TOKEN})$", token) or re.match(
        rf"from ({DATE_TOKEN}) (?:to|through|thru) ({DATE_TOKEN})$", token
    )
    if not m:
        raise ValueError(f"Unable to parse explicit range from: {token!r}")
    start = parse_date_token(m.group(1), now)
    end = parse_date_token(m.group(2), now)
    return _range("explicit", start, end, config, "day", original_text)


def resolve_since(token: str, now: datetime, config: TimeRangeConfig, original_text: str | None = None) -> TimeRange:
    date_text = re.sub(r"^(?:since|after) ", "", token)
    return _range("since", parse_date_token(date_text, now), None, config, "day", original_text)


def resolve_until(token: str, now: datetime, config: TimeRangeConfig, original_text: str | None = None) -> TimeRange:
    date_text = re.sub(r"^(?:until|before|up to) ", "", token)
    return _range("until", None, parse_date_token(date_text, now), config, "day", original_text)


def resolve_single_day(token: str, now: datetime, config: TimeRangeConfig, original_text: str | None = None) -> TimeRange:
    """today / yesterday / 2026-01-15: one calendar day, end exclusive."""
    start = parse_date_token(token, now)
    return _range("explicit", start, cal.add_days(start, 1), config, "day", original_text)


def resolve_month(token: str, now: datetime, config: TimeRangeConfig, original_text: str | None = None) -> TimeRange:
    """'jan 2026' -> the full calendar month."""
    start = parse_date_token(token, now)
    return _range("calendar", start, cal.add_months(start, 1), config, "month", original_text)


def resolve_comparison(token: str, now: datetime, config: TimeRangeConfig, original_text: str | None = None) -> TimeRange:
    """
    Base = the current period to date; compare = the same span one unit
    earlier, of equal length. The returned range carries the base bounds.
    """
    if token not in _COMPARISONS:
        raise ValueError(f"Unable to determine comparison type from: {token!r}")
    comparison_type, granularity = _COMPARISONS[token]

    base_start = cal.start_of_period(now, granularity, config.week_start)
    compare_start = cal.subtract_unit(base_start, granularity)
    compare_end = compare_start + (now - base_start)

    base = _range("to_date", base_start, now, config, granularity, original_text)
    compare = _range("explicit", compare_start, compare_end, config, granularity, original_text)
    return _range(
        "comparison",
        base_start,
        now,
        config,
        granularity,
        original_text,
        comparison=ComparisonRange(type=comparison_type, base_range=base, compare_range=compare),
    )


_RESOLVERS = {
    "to_date": resolve_to_date,
    "calendar": resolve_calendar,
    "rolling": resolve_rolling,
    "explicit": resolve_explicit,
    "since": resolve_since,
    "until": resolve_until,
    "comparison": resolve_comparison,
    "relative": resolve_single_day,
    "absolute": resolve_month,
}


def _resolve(text: str, now: datetime, config: TimeRangeConfig) -> TimeRange:
    terms = detect_time_terms(text)
    if terms:
        primary = terms[0]
        return _RESOLVERS[primary.type](primary.token, now, config, text)
    # A bare date such as "2026-01-15" or "jan 5"
    return resolve_single_day(normalize(text), now, config, text)


def resolve_time_range(text: str, config: ConfigLike = None) -> TimeRange:
    """
    Resolve *text* into a TimeRange. Partial *config* overrides are merged
    onto the defaults. Unrecognised or unparseable input yields month-to-date.
    """
    cfg = TimeRangeConfig.merged(config)
    tz = cal.get_tz(cfg.timezone)
    now = resolve_now(cfg, tz)
    try:
        return _resolve(text, now, cfg)
    except (ValueError, OverflowError):
        # unparseable dates and counts that leave the datetime range
        return resolve_to_date(DEFAULT_EXPRESSION, now, cfg, text)
