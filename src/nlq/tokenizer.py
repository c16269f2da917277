"""
Tokenizer -- extracts stage, time, dimension, numeric and keyword signals
from a raw question. Pure and deterministic.
"""
from __future__ import annotations

import re
from functools import lru_cache
from typing import Iterable, Optional

from src.nlq.plan import NLQTokens
from src.nlq.vocabulary import (
    AGGREGATION_KEYWORDS,
    DIMENSION_KEYWORDS,
    INTENT_KEYWORDS,
    STAGE_TERMS,
    FunnelStage,
    QueryIntent,
)
from src.timerange.parser import detect_time_terms

_NUMBER_RE = re.compile(r"\b\d+\b")


@lru_cache(maxsize=512)
def _term_re(term: str) -> re.Pattern[str]:
    return re.compile(rf"(?<![a-z0-9_]){re.escape(term.lower())}(?![a-z0-9_])")


def find_term(text: str, term: str) -> Optional[int]:
    """Position of the first whole-word occurrence of *term* in *text*, or None."""
    m = _term_re(term).search(text.lower())
    return m.start() if m else None


def contains_term(text: str, term: str) -> bool:
    return find_term(text, term) is not None


def contains_any(text: str, terms: Iterable[str]) -> bool:
    return any(contains_term(text, t) for t in terms)


def first_mention(text: str, stage: FunnelStage) -> Optional[int]:
    """Earliest position at which any term for *stage* appears."""
    positions = [p for p in (find_term(text, t) for t in STAGE_TERMS[stage]) if p is not None]
    return min(positions) if positions else None


def tokenize(query: str) -> NLQTokens:
    normalized = query.lower().strip()

    stages = [stage for stage, terms in STAGE_TERMS.items() if contains_any(normalized, terms)]
    dimensions = [dim for dim, terms in DIMENSION_KEYWORDS.items() if contains_any(normalized, terms)]
    aggregations = [agg.value for agg, terms in AGGREGATION_KEYWORDS.items() if contains_any(normalized, terms)]
    comparison = [kw for kw in INTENT_KEYWORDS[QueryIntent.COMPARISON] if contains_term(normalized, kw)]

    return NLQTokens(
        stages=stages,
        time_expressions=[term.token for term in detect_time_terms(query)],
        dimensions=dimensions,
        numbers=[int(n) for n in _NUMBER_RE.findall(normalized)],
        comparison_keywords=comparison,
        aggregation_keywords=aggregations,
        tokens=normalized.split(),
    )
