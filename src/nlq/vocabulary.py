"""
Closed vocabularies for NLQ resolution.

Each enum owns a term table; `_validate_tables()` runs at import and refuses
to load if a variant has no terms.
"""
from __future__ import annotations

from enum import Enum


class QueryIntent(str, Enum):
    STAGE_METRIC = "STAGE_METRIC"
    FUNNEL_SNAPSHOT = "FUNNEL_SNAPSHOT"
    TREND = "TREND"
    BREAKDOWN = "BREAKDOWN"
    CONVERSION = "CONVERSION"
    DROPOFF = "DROPOFF"
    VELOCITY = "VELOCITY"
    AGING = "AGING"
    COMPARISON = "COMPARISON"
    RANKING = "RANKING"


class FunnelStage(str, Enum):
    LEAD = "LEAD"
    PROSPECT = "PROSPECT"
    ACCOUNT = "ACCOUNT"
    SALE = "SALE"


class MetricId(str, Enum):
    LEADS_ENTERED = "FUNNEL.LEADS_ENTERED"
    PROSPECTS_ENTERED = "FUNNEL.PROSPECTS_ENTERED"
    ACCOUNTS_ENTERED = "FUNNEL.ACCOUNTS_ENTERED"
    SALES_ENTERED = "FUNNEL.SALES_ENTERED"
    CONVERSION = "FUNNEL.CONVERSION"
    DROPOFF = "FUNNEL.DROPOFF"
    VELOCITY = "FUNNEL.VELOCITY"
    AGING = "FUNNEL.AGING"
    TREND = "FUNNEL.TREND"


class Dimension(str, Enum):
    SOURCE = "source"
    AGENT = "agent"
    LOCATION = "location"
    PROPERTY_TYPE = "property_type"
    STAGE = "stage"


class Aggregation(str, Enum):
    AVG = "avg"
    MEDIAN = "median"
    P90 = "p90"
    P95 = "p95"
    SUM = "sum"
    COUNT = "count"


CANONICAL_STAGE_ORDER: tuple[FunnelStage, ...] = (
    FunnelStage.LEAD,
    FunnelStage.PROSPECT,
    FunnelStage.ACCOUNT,
    FunnelStage.SALE,
)

# ── Term tables ──────────────────────────────────────────

STAGE_TERMS: dict[FunnelStage, tuple[str, ...]] = {
    FunnelStage.LEAD:     ("lead", "leads", "enquiry", "enquiries", "inquiry", "inquiries"),
    FunnelStage.PROSPECT: ("prospect", "prospects", "qualified"),
    FunnelStage.ACCOUNT:  ("account", "accounts", "onboarded"),
    FunnelStage.SALE:     ("sale", "sales", "won", "booking", "bookings", "deal", "deals",
                           "maal_laao", "maal laao"),
}

# STAGE_METRIC is the fallback intent and has no keywords of its own.
INTENT_KEYWORDS: dict[QueryIntent, tuple[str, ...]] = {
    QueryIntent.FUNNEL_SNAPSHOT: ("funnel", "pipeline", "overview", "snapshot"),
    QueryIntent.TREND:           ("daily", "weekly", "monthly", "quarterly", "yearly", "trend",
                                  "over time", "time series"),
    QueryIntent.BREAKDOWN:       ("by", "breakdown", "split", "group", "segmented"),
    QueryIntent.CONVERSION:      ("conversion", "convert", "conversion rate", "converted"),
    QueryIntent.DROPOFF:         ("dropoff", "drop-off", "leakage", "drop", "lost", "attrition"),
    QueryIntent.VELOCITY:        ("velocity", "time", "days", "duration", "speed", "how long",
                                  "avg time", "median time"),
    QueryIntent.AGING:           ("aging", "ageing", "stuck", "older than", "stale", "idle", "waiting"),
    QueryIntent.COMPARISON:      ("vs", "versus", "compared to", "compare", "wow", "mom", "yoy", "dod", "qoq",
                                  "week over week", "month over month", "quarter over quarter",
                                  "year over year", "day over day", "same period last year"),
    QueryIntent.RANKING:         ("top", "bottom", "best", "worst", "highest", "lowest", "rank"),
}

DIMENSION_KEYWORDS: dict[Dimension, tuple[str, ...]] = {
    Dimension.SOURCE:        ("source", "sources", "channel", "channels", "origin"),
    Dimension.AGENT:         ("agent", "agents", "rep", "reps", "sales rep", "salesperson"),
    Dimension.LOCATION:      ("location", "locations", "city", "cities", "region", "regions"),
    Dimension.PROPERTY_TYPE: ("property type", "property types", "type", "types"),
    Dimension.STAGE:         ("stage", "stages", "status"),
}

AGGREGATION_KEYWORDS: dict[Aggregation, tuple[str, ...]] = {
    Aggregation.AVG:    ("avg", "average", "mean"),
    Aggregation.MEDIAN: ("median", "middle", "mid"),
    Aggregation.P90:    ("p90", "90th percentile", "90%"),
    Aggregation.P95:    ("p95", "95th percentile", "95%"),
    Aggregation.SUM:    ("total", "sum"),
    Aggregation.COUNT:  ("count", "number of", "how many"),
}

TREND_GRANULARITY_TERMS: dict[str, tuple[str, ...]] = {
    "day":     ("daily", "day by day"),
    "week":    ("weekly", "week by week"),
    "month":   ("monthly", "month by month"),
    "quarter": ("quarterly", "quarter by quarter"),
    "year":    ("yearly", "year by year"),
}

# Checked in order; the first phrase present in the query wins.
COMPARISON_TYPE_MAP: dict[str, str] = {
    "wow": "WoW",
    "week over week": "WoW",
    "mom": "MoM",
    "month over month": "MoM",
    "yoy": "YoY",
    "year over year": "YoY",
    "dod": "DoD",
    "day over day": "DoD",
    "qoq": "QoQ",
    "quarter over quarter": "QoQ",
    "sply": "SPLY",
    "same period last year": "SPLY",
    "vs last week": "vs_last_week",
    "vs last month": "vs_last_month",
    "vs last quarter": "vs_last_quarter",
    "vs last year": "vs_last_year",
}

# Comparison type -> expression handed back to the time-range resolver
COMPARISON_EXPRESSIONS: dict[str, str] = {
    "WoW": "WoW",
    "MoM": "MoM",
    "YoY": "YoY",
    "DoD": "DoD",
    "QoQ": "QoQ",
    "SPLY": "SPLY",
    "vs_last_week": "last week",
    "vs_last_month": "last month",
    "vs_last_quarter": "last quarter",
    "vs_last_year": "last year",
}

# ── Metric mapping ───────────────────────────────────────

STAGE_METRIC_IDS: dict[FunnelStage, MetricId] = {
    FunnelStage.LEAD: MetricId.LEADS_ENTERED,
    FunnelStage.PROSPECT: MetricId.PROSPECTS_ENTERED,
    FunnelStage.ACCOUNT: MetricId.ACCOUNTS_ENTERED,
    FunnelStage.SALE: MetricId.SALES_ENTERED,
}

SINGLE_METRIC_INTENTS: dict[QueryIntent, MetricId] = {
    QueryIntent.CONVERSION: MetricId.CONVERSION,
    QueryIntent.DROPOFF: MetricId.DROPOFF,
    QueryIntent.VELOCITY: MetricId.VELOCITY,
    QueryIntent.AGING: MetricId.AGING,
    QueryIntent.TREND: MetricId.TREND,
}

PER_STAGE_INTENTS: frozenset[QueryIntent] = frozenset({
    QueryIntent.STAGE_METRIC,
    QueryIntent.BREAKDOWN,
    QueryIntent.RANKING,
    QueryIntent.COMPARISON,
})


def _validate_tables() -> None:
    checks: list[tuple[str, dict, list]] = [
        ("STAGE_TERMS", STAGE_TERMS, list(FunnelStage)),
        ("DIMENSION_KEYWORDS", DIMENSION_KEYWORDS, list(Dimension)),
        ("AGGREGATION_KEYWORDS", AGGREGATION_KEYWORDS, list(Aggregation)),
        ("INTENT_KEYWORDS", INTENT_KEYWORDS, [i for i in QueryIntent if i != QueryIntent.STAGE_METRIC]),
        ("STAGE_METRIC_IDS", STAGE_METRIC_IDS, list(FunnelStage)),
    ]
    for name, table, variants in checks:
        missing = [v.value for v in variants if not table.get(v)]
        if missing:
            raise ValueError(f"{name} has no entry for: {', '.join(missing)}")

    covered = set(SINGLE_METRIC_INTENTS) | PER_STAGE_INTENTS | {QueryIntent.FUNNEL_SNAPSHOT}
    uncovered = [i.value for i in QueryIntent if i not in covered]
    if uncovered:
        raise ValueError(f"No metric mapping for intents: {', '.join(uncovered)}")

    unresolvable = sorted(set(COMPARISON_TYPE_MAP.values()) - set(COMPARISON_EXPRESSIONS))
    if unresolvable:
        raise ValueError(f"No resolver expression for comparison types: {', '.join(unresolvable)}")


_validate_tables()
