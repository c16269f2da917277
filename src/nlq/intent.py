"""
Intent classification as an ordered rule table.

INTENT_RULES is evaluated top to bottom and the first matching predicate
wins; a question mentioning both "conversion" and "top 10" is a
CONVERSION question. Falls through to STAGE_METRIC.
"""
from __future__ import annotations

import re
from typing import Callable

from src.nlq.plan import NLQTokens
from src.nlq.tokenizer import contains_any
from src.nlq.vocabulary import INTENT_KEYWORDS, QueryIntent

Predicate = Callable[[str, NLQTokens], bool]

STAGE_TRANSITION_RE = re.compile(r"\b(lead|prospect|account)s?\s+to\s+(prospect|account|sale)")
AGING_PHRASE_RE = re.compile(r"\b(older|stuck|idle)\s+(than|for|>)")


def _keywords(intent: QueryIntent) -> Predicate:
    terms = INTENT_KEYWORDS[intent]
    return lambda text, tokens: contains_any(text, terms)


def _is_conversion(text: str, tokens: NLQTokens) -> bool:
    return contains_any(text, INTENT_KEYWORDS[QueryIntent.CONVERSION]) or bool(STAGE_TRANSITION_RE.search(text))


def _is_velocity(text: str, tokens: NLQTokens) -> bool:
    return contains_any(text, INTENT_KEYWORDS[QueryIntent.VELOCITY]) and contains_any(text, ("to", "between"))


def _is_aging(text: str, tokens: NLQTokens) -> bool:
    return contains_any(text, INTENT_KEYWORDS[QueryIntent.AGING]) or bool(AGING_PHRASE_RE.search(text))


def _is_comparison(text: str, tokens: NLQTokens) -> bool:
    return bool(tokens.comparison_keywords)


def _is_breakdown(text: str, tokens: NLQTokens) -> bool:
    return bool(tokens.dimensions) and contains_any(text, INTENT_KEYWORDS[QueryIntent.BREAKDOWN])


INTENT_RULES: tuple[tuple[Predicate, QueryIntent], ...] = (
    (_keywords(QueryIntent.FUNNEL_SNAPSHOT), QueryIntent.FUNNEL_SNAPSHOT),
    (_is_conversion,                         QueryIntent.CONVERSION),
    (_keywords(QueryIntent.DROPOFF),         QueryIntent.DROPOFF),
    (_is_velocity,                           QueryIntent.VELOCITY),
    (_is_aging,                              QueryIntent.AGING),
    (_is_comparison,                         QueryIntent.COMPARISON),
    (_keywords(QueryIntent.RANKING),         QueryIntent.RANKING),
    (_is_breakdown,                          QueryIntent.BREAKDOWN),
    (_keywords(QueryIntent.TREND),           QueryIntent.TREND),
)


def detect_intent(query: str, tokens: NLQTokens) -> QueryIntent:
    text = query.lower()
    for predicate, intent in INTENT_RULES:
        if predicate(text, tokens):
            return intent
    return QueryIntent.STAGE_METRIC
