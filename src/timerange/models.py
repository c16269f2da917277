"""
TimeRange -- the canonical, timezone-aware output of time-expression
resolution, plus the vocabulary tables the parser matches against.

All values are immutable; a fresh TimeRange is built for every request.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

TimeGranularity = Literal["minute", "hour", "day", "week", "month", "quarter", "year"]
WeekStart = Literal["monday", "sunday"]
TimeRangeMode = Literal[
    "calendar",    # this month, last quarter
    "rolling",     # last 7 days, past 30 days
    "explicit",    # between X and Y
    "to_date",     # MTD, YTD, QTD
    "since",       # since X (open end)
    "until",       # until X (open start)
    "comparison",  # WoW, MoM, YoY
]
ComparisonType = Literal[
    "DoD",
    "WoW",
    "MoM",
    "QoQ",
    "YoY",
    "SPLY",
    "same_period_last_week",
    "same_period_last_month",
    "same_period_last_quarter",
    "same_period_last_year",
]
TermType = Literal[
    "calendar", "rolling", "explicit", "to_date", "since", "until", "comparison", "relative", "absolute",
]


# ── Configuration ────────────────────────────────────────

class FiscalConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    fiscal_year_start_month: int = Field(4, ge=1, le=12, description="First month of the fiscal year (4 = April)")
    fiscal_year_label: str = "FY"


class TimeRangeConfig(BaseModel):
    """Resolver configuration. `now` is injectable for deterministic resolution."""

    model_config = ConfigDict(frozen=True)

    timezone: str = Field("Asia/Kolkata", description="IANA name or fixed offset such as '+05:30'")
    fiscal_config: FiscalConfig = Field(default_factory=FiscalConfig)
    week_start: WeekStart = "monday"
    now: Optional[Union[datetime, str]] = None

    @classmethod
    def merged(
        cls,
        partial: Union["TimeRangeConfig", dict[str, Any], None] = None,
        base: Optional["TimeRangeConfig"] = None,
    ) -> "TimeRangeConfig":
        """Merge partial overrides onto *base* (the built-in defaults when omitted)."""
        if isinstance(partial, TimeRangeConfig):
            return partial
        base = base or cls()
        if not partial:
            return base
        data = base.model_dump()
        for key, value in partial.items():
            if value is None:
                continue
            if key == "fiscal_config" and isinstance(value, dict):
                value = {**data["fiscal_config"], **value}
            data[key] = value
        return cls(**data)


DEFAULT_TIME_RANGE_CONFIG = TimeRangeConfig()


# ── TimeRange ────────────────────────────────────────────

class TimeRange(BaseModel):
    """A resolved time window with ISO-8601 bounds carrying the zone offset."""

    model_config = ConfigDict(frozen=True)

    mode: TimeRangeMode
    start: Optional[str] = Field(None, description="Inclusive start; None = open bound")
    end: Optional[str] = Field(None, description="End bound; None = open bound")
    timezone: str = "Asia/Kolkata"
    granularity: TimeGranularity = "day"
    calendar_week_start: WeekStart = "monday"
    fiscal_year_start_month: int = Field(4, ge=1, le=12)
    comparison: Optional["ComparisonRange"] = None
    original_text: Optional[str] = None

    @model_validator(mode="after")
    def _check_invariants(self) -> "TimeRange":
        if self.start is not None and self.end is not None:
            if datetime.fromisoformat(self.start) > datetime.fromisoformat(self.end):
                raise ValueError(f"start {self.start} is after end {self.end}")
        if self.mode == "comparison" and self.comparison is None:
            raise ValueError("comparison ranges require a comparison structure")
        if self.mode != "comparison" and self.comparison is not None:
            raise ValueError(f"mode '{self.mode}' cannot carry a comparison structure")
        return self


class ComparisonRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: ComparisonType
    base_range: TimeRange
    compare_range: TimeRange


TimeRange.model_rebuild()


class DetectedTimeTerm(BaseModel):
    model_config = ConfigDict(frozen=True)

    token: str
    type: TermType
    confidence: float = Field(..., ge=0, le=1)
    start_pos: int
    end_pos: int


# ── Vocabulary ───────────────────────────────────────────

NLQ_VOCABULARY: dict[str, tuple[str, ...]] = {
    "to_date": (
        "WTD", "week to date", "week-to-date",
        "MTD", "month to date", "month-to-date",
        "QTD", "quarter to date", "quarter-to-date",
        "YTD", "year to date", "year-to-date",
        "FYTD", "fiscal year to date", "fiscal-year-to-date",
        "PTD", "period to date", "period-to-date",
    ),
    "calendar": (
        "this week", "current week", "this month", "current month",
        "this quarter", "current quarter", "this year", "current year",
        "last week", "previous week", "past week",
        "last month", "previous month", "past month",
        "last quarter", "previous quarter", "past quarter",
        "last year", "previous year", "past year",
        "next week", "next month", "next quarter", "next year",
    ),
    "rolling": (
        "last N days", "past N days", "trailing N days",
        "last N weeks", "past N weeks", "trailing N weeks",
        "last N months", "past N months", "trailing N months",
        "last N quarters", "past N quarters", "trailing N quarters",
        "last N years", "past N years", "trailing N years",
        "L7D", "L30D", "L90D", "L12M", "L4W",
    ),
    "comparison": (
        "DoD", "day over day", "day-over-day",
        "WoW", "week over week", "week-over-week",
        "MoM", "month over month", "month-over-month",
        "QoQ", "quarter over quarter", "quarter-over-quarter",
        "YoY", "year over year", "year-over-year",
        "SPLY", "same period last year",
        "same period last week", "same period last month",
        "same period last quarter",
    ),
    "explicit": ("between", "from", "to", "..", "through", "thru"),
    "open_ended": ("since", "after", "before", "until", "up to"),
}

ABBREVIATIONS: dict[str, str] = {
    # to-date
    "WTD": "week to date",
    "MTD": "month to date",
    "QTD": "quarter to date",
    "YTD": "year to date",
    "FYTD": "fiscal year to date",
    "PTD": "period to date",
    # rolling
    "L7D": "last 7 days",
    "L30D": "last 30 days",
    "L90D": "last 90 days",
    "L12M": "last 12 months",
    "L4W": "last 4 weeks",
    # comparison
    "DoD": "day over day",
    "WoW": "week over week",
    "MoM": "month over month",
    "QoQ": "quarter over quarter",
    "YoY": "year over year",
    "SPLY": "same period last year",
}

MONTH_NAMES: dict[str, int] = {
    "january": 1, "jan": 1,
    "february": 2, "feb": 2,
    "march": 3, "mar": 3,
    "april": 4, "apr": 4,
    "may": 5,
    "june": 6, "jun": 6,
    "july": 7, "jul": 7,
    "august": 8, "aug": 8,
    "september": 9, "sep": 9, "sept": 9,
    "october": 10, "oct": 10,
    "november": 11, "nov": 11,
    "december": 12, "dec": 12,
}

# Calendar quarter -> first month
QUARTER_MONTHS: dict[int, int] = {1: 1, 2: 4, 3: 7, 4: 10}
