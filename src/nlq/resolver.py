"""
Query plan builder -- composes tokenizer, intent classifier and the
time-range resolver into a QueryPlan.

    plan = resolve_nlq("Prospects older than 14 days", {"now": "2026-02-09T12:00:00+05:30"})
    plan.intent   -> QueryIntent.AGING
    plan.aging    -> AgingSpec(stage=PROSPECT, threshold_days=14, operator=">")
"""
from __future__ import annotations

import re
from typing import Optional

from src.nlq.intent import detect_intent
from src.nlq.plan import (
    AgingOperator,
    AgingSpec,
    ComparisonSpec,
    NLQTokens,
    OutputMeta,
    QueryPlan,
    RankingSpec,
    StagePair,
    VelocitySpec,
)
from src.nlq.tokenizer import contains_any, contains_term, first_mention, tokenize
from src.nlq.vocabulary import (
    CANONICAL_STAGE_ORDER,
    COMPARISON_EXPRESSIONS,
    COMPARISON_TYPE_MAP,
    INTENT_KEYWORDS,
    PER_STAGE_INTENTS,
    SINGLE_METRIC_INTENTS,
    STAGE_METRIC_IDS,
    TREND_GRANULARITY_TERMS,
    FunnelStage,
    MetricId,
    QueryIntent,
)
from src.timerange.models import TimeGranularity, TimeRange, TimeRangeConfig
from src.timerange.parser import ConfigLike, resolve_time_range

DEFAULT_TIME_EXPRESSION = "MTD"
DEFAULT_RANKING_LIMIT = 10
ISPRAVA_DISCLAIMER = "Note: Results shown are for Isprava data only."
ISPRAVA_EXPLICIT_SCOPE = "Isprava (explicit in query)"

_CONVERSION_PAIR_RE = re.compile(r"\b(lead|prospect|account|sale)s?\s+to\s+(prospect|account|sale)s?\b")
_THRESHOLD_RE = re.compile(r"(\d+)\s*days?\b")
_LIMIT_RE = re.compile(r"\b(?:top|bottom|first|last)\s+(\d+)\b")

# Checked in order; symbols before their single-character prefixes.
_AGING_OPERATORS: tuple[tuple[AgingOperator, tuple[str, ...]], ...] = (
    (">=", ("at least", ">=")),
    ("<=", ("at most", "<=")),
    ("<", ("less than", "fewer than", "<")),
    (">", ("older than", "more than", ">")),
)


def resolve_metric_ids(intent: QueryIntent, stages: list[FunnelStage]) -> list[MetricId]:
    if intent == QueryIntent.FUNNEL_SNAPSHOT:
        return [STAGE_METRIC_IDS[s] for s in CANONICAL_STAGE_ORDER]
    if intent in SINGLE_METRIC_INTENTS:
        return [SINGLE_METRIC_INTENTS[intent]]
    if intent in PER_STAGE_INTENTS:
        return [STAGE_METRIC_IDS[s] for s in stages]
    return []


def extract_trend_granularity(query: str) -> TimeGranularity:
    text = query.lower()
    for granularity, terms in TREND_GRANULARITY_TERMS.items():
        if contains_any(text, terms):
            return granularity
    return "day"


def extract_conversion_stages(query: str, tokens: NLQTokens) -> Optional[StagePair]:
    """`<stage> to <stage>`, else the first two detected stages in textual order."""
    text = query.lower()
    m = _CONVERSION_PAIR_RE.search(text)
    if m:
        return StagePair(from_stage=FunnelStage(m.group(1).upper()), to_stage=FunnelStage(m.group(2).upper()))

    if len(tokens.stages) < 2:
        return None
    ordered = sorted(tokens.stages, key=lambda s: first_mention(text, s) or 0)
    return StagePair(from_stage=ordered[0], to_stage=ordered[1])


def extract_velocity_spec(query: str, tokens: NLQTokens) -> Optional[VelocitySpec]:
    pair = extract_conversion_stages(query, tokens)
    if pair is None:
        return None
    aggregation = "avg"
    for candidate in ("median", "p90", "p95"):
        if candidate in tokens.aggregation_keywords:
            aggregation = candidate
            break
    return VelocitySpec(from_stage=pair.from_stage, to_stage=pair.to_stage, aggregation=aggregation)


def extract_aging_spec(query: str, tokens: NLQTokens) -> Optional[AgingSpec]:
    """None when no `<N> days` threshold is present."""
    text = query.lower()
    m = _THRESHOLD_RE.search(text)
    if not m:
        return None

    operator: AgingOperator = ">"
    for op, phrases in _AGING_OPERATORS:
        if any(p in text for p in phrases):
            operator = op
            break

    stage = tokens.stages[0] if tokens.stages else FunnelStage.PROSPECT
    return AgingSpec(stage=stage, threshold_days=int(m.group(1)), operator=operator)


def extract_ranking_spec(query: str, tokens: NLQTokens, metric_ids: list[MetricId]) -> RankingSpec:
    text = query.lower()
    m = _LIMIT_RE.search(text)
    if m:
        limit = int(m.group(1))
    elif tokens.numbers:
        limit = tokens.numbers[0]
    else:
        limit = DEFAULT_RANKING_LIMIT

    direction = "asc" if contains_any(text, ("bottom", "worst", "lowest")) else "desc"
    return RankingSpec(
        order_by=metric_ids[0] if metric_ids else None,
        direction=direction,
        limit=max(limit, 1),
    )


def resolve_comparison_spec(
    query: str,
    tokens: NLQTokens,
    base_time_range: TimeRange,
    config: ConfigLike = None,
) -> Optional[ComparisonSpec]:
    """
    Map the first comparison phrase to a type and resolve its periods. Types
    the time-range resolver understands natively (WoW, MoM...) supply both
    ranges; `vs last <period>` compares the plan's own range with that period.
    """
    text = query.lower()
    comparison_type = next(
        (ctype for phrase, ctype in COMPARISON_TYPE_MAP.items() if contains_term(text, phrase)),
        None,
    )
    if comparison_type is None:
        return None

    resolved = resolve_time_range(COMPARISON_EXPRESSIONS[comparison_type], config)
    if resolved.comparison is not None:
        return ComparisonSpec(
            type=comparison_type,
            base_range=resolved.comparison.base_range,
            compare_range=resolved.comparison.compare_range,
        )
    return ComparisonSpec(type=comparison_type, base_range=base_time_range, compare_range=resolved)


def requires_isprava_disclaimer(query: str) -> bool:
    return "isprava" not in query.lower()


def generate_output_meta(query: str) -> OutputMeta:
    if requires_isprava_disclaimer(query):
        return OutputMeta(disclaimer=ISPRAVA_DISCLAIMER)
    return OutputMeta(disclaimer=None, scope=ISPRAVA_EXPLICIT_SCOPE)


def calculate_confidence(tokens: NLQTokens, intent: QueryIntent) -> float:
    confidence = 0.5
    if tokens.stages:
        confidence += 0.2
    if tokens.time_expressions:
        confidence += 0.2
    keywords = INTENT_KEYWORDS.get(intent)
    if keywords and contains_any(" ".join(tokens.tokens), keywords):
        confidence += 0.1
    return min(round(confidence, 2), 1.0)


def resolve_nlq(query: str, config: ConfigLike = None) -> QueryPlan:
    cfg = TimeRangeConfig.merged(config)
    tokens = tokenize(query)
    intent = detect_intent(query, tokens)

    stages = list(tokens.stages)
    if not stages and intent == QueryIntent.FUNNEL_SNAPSHOT:
        stages = list(CANONICAL_STAGE_ORDER)

    time_expression = tokens.time_expressions[0] if tokens.time_expressions else DEFAULT_TIME_EXPRESSION
    time_range = resolve_time_range(time_expression, cfg)
    metric_ids = resolve_metric_ids(intent, stages)

    extras: dict = {}
    if intent == QueryIntent.BREAKDOWN:
        extras["group_by"] = tokens.dimensions
    elif intent == QueryIntent.TREND:
        extras["trend_granularity"] = extract_trend_granularity(query)
    elif intent == QueryIntent.CONVERSION:
        extras["conversion"] = extract_conversion_stages(query, tokens)
    elif intent == QueryIntent.VELOCITY:
        extras["velocity"] = extract_velocity_spec(query, tokens)
    elif intent == QueryIntent.AGING:
        extras["aging"] = extract_aging_spec(query, tokens)
    elif intent == QueryIntent.RANKING:
        extras["ranking"] = extract_ranking_spec(query, tokens, metric_ids)
        extras["group_by"] = tokens.dimensions
    elif intent == QueryIntent.COMPARISON:
        extras["comparison"] = resolve_comparison_spec(query, tokens, time_range, cfg)

    return QueryPlan(
        intent=intent,
        metric_ids=metric_ids,
        stages=stages,
        time_range=time_range,
        original_query=query,
        confidence=calculate_confidence(tokens, intent),
        output_meta=generate_output_meta(query),
        **extras,
    )
