"""
Unit tests -- time-range normalisation, detection and resolution.

Fixed clock: Monday 2026-02-09 12:00 IST.
"""
import pytest

from src.timerange import calendar as cal
from src.timerange.models import ABBREVIATIONS, TimeRange, TimeRangeConfig
from src.timerange.parser import (
    detect_time_terms,
    normalize,
    resolve_time_range,
)

NOW = "2026-02-09T12:00:00+05:30"


@pytest.fixture(scope="module")
def cfg():
    return TimeRangeConfig(now=NOW)


def _at(now: str) -> dict:
    return {"now": now}


# ── normalize ───────────────────────────────────────────

def test_normalize_expands_abbreviations():
    assert normalize("MTD") == "month to date"
    assert normalize("L7D") == "last 7 days"
    assert normalize("WoW") == "week over week"
    assert normalize("FYTD") == "fiscal year to date"


def test_normalize_synonyms():
    assert normalize("current month") == "this month"
    assert normalize("previous week") == "last week"
    assert normalize("prior quarter") == "last quarter"
    assert normalize("trailing 30 days") == "last 30 days"
    assert normalize("past 90 days") == "last 90 days"
    assert normalize("leads vs last month") == "leads versus last month"


def test_normalize_hyphens_keep_iso_dates():
    assert normalize("week-to-date") == "week to date"
    assert normalize("year-over-year") == "year over year"
    assert normalize("since 2026-01-01") == "since 2026-01-01"


def test_normalize_collapses_whitespace():
    assert normalize("  Leads    MTD ") == "leads month to date"


# ── detect_time_terms ───────────────────────────────────

@pytest.mark.parametrize("text,term_type", [
    ("month to date", "to_date"),
    ("last month", "calendar"),
    ("last 7 days", "rolling"),
    ("year over year", "comparison"),
    ("between 2026-01-01 and 2026-01-31", "explicit"),
    ("since jan 5", "since"),
    ("before tomorrow", "until"),
    ("jan 2026", "absolute"),
    ("yesterday", "relative"),
])
def test_detect_term_types(text, term_type):
    terms = detect_time_terms(text)
    assert len(terms) == 1
    assert terms[0].type == term_type


def test_detect_sply_not_split_into_calendar():
    terms = detect_time_terms("leads same period last year")
    assert [t.type for t in terms] == ["comparison"]
    assert terms[0].token == "same period last year"


def test_detect_sorted_by_position():
    terms = detect_time_terms("last month versus MTD")
    assert [t.token for t in terms] == ["last month", "month to date"]


def test_detect_ignores_stage_words():
    assert detect_time_terms("prospects from account to sale") == []
    assert detect_time_terms("leads after prospects") == []


# ── to-date ─────────────────────────────────────────────

@pytest.mark.parametrize("expr,granularity,start", [
    ("WTD", "week", "2026-02-09T00:00:00+05:30"),
    ("MTD", "month", "2026-02-01T00:00:00+05:30"),
    ("QTD", "quarter", "2026-01-01T00:00:00+05:30"),
    ("YTD", "year", "2026-01-01T00:00:00+05:30"),
    ("FYTD", "year", "2025-04-01T00:00:00+05:30"),
])
def test_to_date(cfg, expr, granularity, start):
    tr = resolve_time_range(expr, cfg)
    assert tr.mode == "to_date"
    assert tr.granularity == granularity
    assert tr.start == start
    assert tr.end == NOW


def test_fytd_after_fiscal_start():
    tr = resolve_time_range("FYTD", _at("2026-05-15T10:00:00+05:30"))
    assert tr.start == "2026-04-01T00:00:00+05:30"


def test_fytd_custom_fiscal_month():
    tr = resolve_time_range("FYTD", {"now": NOW, "fiscal_config": {"fiscal_year_start_month": 7}})
    assert tr.start == "2025-07-01T00:00:00+05:30"
    assert tr.fiscal_year_start_month == 7


def test_wtd_sunday_week_start():
    tr = resolve_time_range("WTD", {"now": NOW, "week_start": "sunday"})
    assert tr.start == "2026-02-08T00:00:00+05:30"
    assert tr.calendar_week_start == "sunday"


def test_mtd_end_of_month():
    tr = resolve_time_range("month to date", _at("2026-01-31T23:59:59+05:30"))
    assert tr.start == "2026-01-01T00:00:00+05:30"
    assert tr.end == "2026-01-31T23:59:59+05:30"


# ── calendar ────────────────────────────────────────────

@pytest.mark.parametrize("expr,start,end", [
    ("this week", "2026-02-09T00:00:00+05:30", "2026-02-16T00:00:00+05:30"),
    ("this month", "2026-02-01T00:00:00+05:30", "2026-03-01T00:00:00+05:30"),
    ("this quarter", "2026-01-01T00:00:00+05:30", "2026-04-01T00:00:00+05:30"),
    ("this year", "2026-01-01T00:00:00+05:30", "2027-01-01T00:00:00+05:30"),
    ("last week", "2026-02-02T00:00:00+05:30", "2026-02-09T00:00:00+05:30"),
    ("last month", "2026-01-01T00:00:00+05:30", "2026-02-01T00:00:00+05:30"),
    ("last quarter", "2025-10-01T00:00:00+05:30", "2026-01-01T00:00:00+05:30"),
    ("last year", "2025-01-01T00:00:00+05:30", "2026-01-01T00:00:00+05:30"),
    ("next week", "2026-02-16T00:00:00+05:30", "2026-02-23T00:00:00+05:30"),
    ("next month", "2026-03-01T00:00:00+05:30", "2026-04-01T00:00:00+05:30"),
    ("last fiscal year", "2024-04-01T00:00:00+05:30", "2025-04-01T00:00:00+05:30"),
])
def test_calendar(cfg, expr, start, end):
    tr = resolve_time_range(expr, cfg)
    assert tr.mode == "calendar"
    assert (tr.start, tr.end) == (start, end)


def test_last_month_from_month_end_clamps():
    tr = resolve_time_range("last month", _at("2026-03-31T09:00:00+05:30"))
    assert tr.start == "2026-02-01T00:00:00+05:30"
    assert tr.end == "2026-03-01T00:00:00+05:30"


def test_this_month_leap_year():
    tr = resolve_time_range("this month", _at("2024-02-29T12:00:00+05:30"))
    assert tr.end == "2024-03-01T00:00:00+05:30"


def test_this_week_on_sunday():
    tr = resolve_time_range("this week", _at("2026-02-08T12:00:00+05:30"))
    assert tr.start == "2026-02-02T00:00:00+05:30"


def test_month_year_is_full_month(cfg):
    tr = resolve_time_range("Jan 2026", cfg)
    assert tr.mode == "calendar"
    assert tr.granularity == "month"
    assert (tr.start, tr.end) == ("2026-01-01T00:00:00+05:30", "2026-02-01T00:00:00+05:30")


# ── rolling ─────────────────────────────────────────────

@pytest.mark.parametrize("expr,granularity,start", [
    ("last 7 days", "day", "2026-02-02T12:00:00+05:30"),
    ("L30D", "day", "2026-01-10T12:00:00+05:30"),
    ("past 90 days", "day", "2025-11-11T12:00:00+05:30"),
    ("last 4 weeks", "week", "2026-01-12T12:00:00+05:30"),
    ("last 3 months", "month", "2025-11-09T12:00:00+05:30"),
    ("L12M", "month", "2025-02-09T12:00:00+05:30"),
    ("trailing 2 quarters", "quarter", "2025-08-09T12:00:00+05:30"),
])
def test_rolling(cfg, expr, granularity, start):
    tr = resolve_time_range(expr, cfg)
    assert tr.mode == "rolling"
    assert tr.granularity == granularity
    assert tr.start == start
    assert tr.end == NOW


def test_rolling_without_count_defaults_to_30_days(cfg):
    tr = resolve_time_range("last days", cfg)
    assert tr.mode == "rolling"
    assert tr.start == "2026-01-10T12:00:00+05:30"


# ── explicit / open-ended ───────────────────────────────

def test_between_iso_dates(cfg):
    tr = resolve_time_range("between 2026-01-01 and 2026-01-31", cfg)
    assert tr.mode == "explicit"
    assert tr.start == "2026-01-01T00:00:00+05:30"
    assert tr.end == "2026-01-31T00:00:00+05:30"


def test_from_to_month_names(cfg):
    tr = resolve_time_range("from Jan 1 to Jan 31", cfg)
    assert tr.start == "2026-01-01T00:00:00+05:30"
    assert tr.end == "2026-01-31T00:00:00+05:30"


def test_between_day_month_with_year(cfg):
    tr = resolve_time_range("between 5 March 2025 and 10th March 2025", cfg)
    assert tr.start == "2025-03-05T00:00:00+05:30"
    assert tr.end == "2025-03-10T00:00:00+05:30"


def test_since(cfg):
    tr = resolve_time_range("since 2026-01-01", cfg)
    assert tr.mode == "since"
    assert tr.start == "2026-01-01T00:00:00+05:30"
    assert tr.end is None


def test_after_yesterday(cfg):
    tr = resolve_time_range("after yesterday", cfg)
    assert tr.mode == "since"
    assert tr.start == "2026-02-08T00:00:00+05:30"


def test_until(cfg):
    tr = resolve_time_range("until 2026-12-31", cfg)
    assert tr.mode == "until"
    assert tr.start is None
    assert tr.end == "2026-12-31T00:00:00+05:30"


def test_before_tomorrow(cfg):
    tr = resolve_time_range("before tomorrow", cfg)
    assert tr.end == "2026-02-10T00:00:00+05:30"


def test_today_is_single_day(cfg):
    tr = resolve_time_range("today", cfg)
    assert tr.mode == "explicit"
    assert (tr.start, tr.end) == ("2026-02-09T00:00:00+05:30", "2026-02-10T00:00:00+05:30")


def test_bare_iso_date(cfg):
    tr = resolve_time_range("2026-01-15", cfg)
    assert (tr.start, tr.end) == ("2026-01-15T00:00:00+05:30", "2026-01-16T00:00:00+05:30")


# ── comparison ──────────────────────────────────────────

@pytest.mark.parametrize("expr,ctype,base_start,compare_start,compare_end", [
    ("DoD", "DoD", "2026-02-09T00:00:00+05:30", "2026-02-08T00:00:00+05:30", "2026-02-08T12:00:00+05:30"),
    ("WoW", "WoW", "2026-02-09T00:00:00+05:30", "2026-02-02T00:00:00+05:30", "2026-02-02T12:00:00+05:30"),
    ("MoM", "MoM", "2026-02-01T00:00:00+05:30", "2026-01-01T00:00:00+05:30", "2026-01-09T12:00:00+05:30"),
    ("QoQ", "QoQ", "2026-01-01T00:00:00+05:30", "2025-10-01T00:00:00+05:30", "2025-11-09T12:00:00+05:30"),
    ("YoY", "YoY", "2026-01-01T00:00:00+05:30", "2025-01-01T00:00:00+05:30", "2025-02-09T12:00:00+05:30"),
    ("SPLY", "SPLY", "2026-01-01T00:00:00+05:30", "2025-01-01T00:00:00+05:30", "2025-02-09T12:00:00+05:30"),
    ("same period last month", "same_period_last_month",
     "2026-02-01T00:00:00+05:30", "2026-01-01T00:00:00+05:30", "2026-01-09T12:00:00+05:30"),
])
def test_comparison(cfg, expr, ctype, base_start, compare_start, compare_end):
    tr = resolve_time_range(expr, cfg)
    assert tr.mode == "comparison"
    assert tr.comparison is not None
    assert tr.comparison.type == ctype
    assert tr.comparison.base_range.start == base_start
    assert tr.comparison.base_range.end == NOW
    assert tr.comparison.compare_range.start == compare_start
    assert tr.comparison.compare_range.end == compare_end
    assert tr.comparison.base_range.mode != "comparison"
    assert tr.comparison.compare_range.mode != "comparison"
    assert (tr.start, tr.end) == (base_start, NOW)


# ── fallback / invariants ───────────────────────────────

@pytest.mark.parametrize("expr", ["", "show me leads", "between 2026-02-30 and 2026-03-01",
                                  "between 2026-03-01 and 2026-01-01"])
def test_unrecognised_falls_back_to_mtd(cfg, expr):
    tr = resolve_time_range(expr, cfg)
    assert tr.mode == "to_date"
    assert tr.start == "2026-02-01T00:00:00+05:30"
    assert tr.end == NOW


def test_determinism(cfg):
    first = resolve_time_range("last 7 days", cfg)
    second = resolve_time_range("last 7 days", cfg)
    assert first == second


@pytest.mark.parametrize("abbr", list(ABBREVIATIONS))
def test_abbreviation_matches_expanded_phrase(cfg, abbr):
    short = resolve_time_range(abbr, cfg)
    long = resolve_time_range(ABBREVIATIONS[abbr], cfg)
    assert (short.mode, short.start, short.end) == (long.mode, long.start, long.end)


def test_fixed_offset_timezone():
    tr = resolve_time_range("MTD", {"now": "2026-02-09T06:30:00+00:00", "timezone": "+05:30"})
    assert tr.start == "2026-02-01T00:00:00+05:30"
    assert tr.end == NOW


def test_now_converted_into_configured_zone():
    # 20:00 UTC on Feb 28 is already March 1 in IST
    tr = resolve_time_range("MTD", {"now": "2026-02-28T20:00:00+00:00"})
    assert tr.start == "2026-03-01T00:00:00+05:30"


def test_start_after_end_rejected():
    with pytest.raises(ValueError):
        TimeRange(mode="explicit", start="2026-02-02T00:00:00+05:30", end="2026-02-01T00:00:00+05:30")


def test_comparison_mode_requires_structure():
    with pytest.raises(ValueError):
        TimeRange(mode="comparison", start=NOW, end=NOW)


def test_config_merge_keeps_defaults():
    merged = TimeRangeConfig.merged({"week_start": "sunday"})
    assert merged.timezone == "Asia/Kolkata"
    assert merged.fiscal_config.fiscal_year_start_month == 4
    assert merged.week_start == "sunday"


def test_config_merge_onto_base():
    base = TimeRangeConfig(timezone="+00:00", week_start="sunday")
    merged = TimeRangeConfig.merged({"fiscal_config": {"fiscal_year_start_month": 1}}, base=base)
    assert merged.timezone == "+00:00"
    assert merged.week_start == "sunday"
    assert merged.fiscal_config.fiscal_year_start_month == 1
    assert merged.fiscal_config.fiscal_year_label == "FY"


def test_config_merge_without_overrides_returns_base():
    base = TimeRangeConfig(week_start="sunday")
    assert TimeRangeConfig.merged(None, base=base) is base


# ── out-of-range counts ─────────────────────────────────

@pytest.mark.parametrize("expr", ["last 9999999 days", "last 99999999999 days", "past 99999 years",
                                  "last 999999999 months"])
def test_huge_rolling_count_falls_back_to_mtd(cfg, expr):
    tr = resolve_time_range(expr, cfg)
    assert tr.mode == "to_date"
    assert tr.start == "2026-02-01T00:00:00+05:30"
    assert tr.end == NOW


# ── comparison window lengths ───────────────────────────

def test_mom_windows_equal_length_at_month_end():
    now = "2026-03-31T12:00:00+05:30"
    tr = resolve_time_range("MoM", _at(now))
    base, compare = tr.comparison.base_range, tr.comparison.compare_range
    assert (base.start, base.end) == ("2026-03-01T00:00:00+05:30", now)
    assert compare.start == "2026-02-01T00:00:00+05:30"
    assert compare.end == "2026-03-03T12:00:00+05:30"


def test_yoy_windows_equal_length_on_leap_day():
    tr = resolve_time_range("YoY", _at("2024-02-29T12:00:00+05:30"))
    compare = tr.comparison.compare_range
    assert compare.start == "2023-01-01T00:00:00+05:30"
    assert compare.end == "2023-03-01T12:00:00+05:30"


# ── calendar arithmetic ─────────────────────────────────

@pytest.mark.parametrize("granularity,count,expected", [
    ("month", 1, "2026-02-28T09:00:00+05:30"),
    ("month", -2, "2025-11-30T09:00:00+05:30"),
    ("quarter", 1, "2026-04-30T09:00:00+05:30"),
    ("year", -2, "2024-01-31T09:00:00+05:30"),
    ("week", 1, "2026-02-07T09:00:00+05:30"),
    ("hour", 15, "2026-02-01T00:00:00+05:30"),
])
def test_shift_clamps_day(granularity, count, expected):
    tz = cal.get_tz("Asia/Kolkata")
    start = cal.to_zone("2026-01-31T09:00:00", tz)
    assert cal.format_iso(cal.shift(start, granularity, count)) == expected


def test_add_years_from_leap_day():
    tz = cal.get_tz("+05:30")
    assert cal.format_iso(cal.add_years(cal.to_zone("2024-02-29T00:00:00", tz), 1)) == "2025-02-28T00:00:00+05:30"
