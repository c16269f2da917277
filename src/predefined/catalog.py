"""
Predefined query catalog -- curated `title,sql` pairs loaded from CSV and
fuzzy-matched by title.

    catalog = PredefinedCatalog()
    matches = match_queries("orderbook actuals", catalog.load())
"""
from __future__ import annotations

import csv
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from src.copilot.cache import QueryCache
from src.core.config import get_settings
from src.core.logging import get_logger

logger = get_logger(__name__)

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_CATALOG_KEY = "catalog"


class CatalogNotFoundError(FileNotFoundError):
    """Predefined query catalog file missing."""


@dataclass(frozen=True)
class QueryEntry:
    title: str
    sql: str
    tokens: tuple[str, ...] = field(default=())


@dataclass(frozen=True)
class MatchResult:
    entry: QueryEntry
    score: float


def tokenize_title(text: str) -> tuple[str, ...]:
    """Lowercase word tokens with punctuation stripped."""
    return tuple(_NON_ALNUM.sub(" ", text.lower()).split())


def parse_catalog(path: str | Path) -> list[QueryEntry]:
    """Rows with an empty title or SQL are skipped."""
    entries: list[QueryEntry] = []
    with open(path, encoding="utf-8", newline="") as f:
        for row in csv.DictReader(f):
            title = (row.get("title") or "").strip()
            sql = (row.get("sql") or "").strip()
            if title and sql:
                entries.append(QueryEntry(title=title, sql=sql, tokens=tokenize_title(title)))
    return entries


def match_queries(search_term: str, catalog: list[QueryEntry]) -> list[MatchResult]:
    """
    Token-overlap score: the fraction of search tokens that are contained in
    (or contain) some title token. Best first; zero scores dropped.
    """
    search_tokens = tokenize_title(search_term)
    if not search_tokens:
        return []

    results: list[MatchResult] = []
    for entry in catalog:
        matched = sum(
            1 for st in search_tokens
            if any(st in tt or tt in st for tt in entry.tokens)
        )
        score = matched / len(search_tokens)
        if score > 0:
            results.append(MatchResult(entry=entry, score=score))

    results.sort(key=lambda r: r.score, reverse=True)
    return results


class PredefinedCatalog:
    """Catalog loader with an explicit TTL cache; construct once and share."""

    def __init__(self, path: Optional[str] = None, ttl: Optional[float] = None):
        settings = get_settings()
        self.path = Path(path or settings.predefined_catalog_path)
        self._cache = QueryCache(
            ttl=settings.catalog_cache_ttl if ttl is None else ttl,
            max_size=1,
            name="catalog",
        )

    def load(self) -> list[QueryEntry]:
        cached = self._cache.get(_CATALOG_KEY)
        if cached is not None:
            return cached
        if not self.path.exists():
            raise CatalogNotFoundError(f"Predefined query catalog not found at {self.path}")
        entries = parse_catalog(self.path)
        self._cache.put(_CATALOG_KEY, entries)
        logger.info("Loaded %d predefined queries from %s", len(entries), self.path)
        return entries

    def invalidate(self) -> None:
        self._cache.invalidate()

    def titles(self) -> list[str]:
        return [e.title for e in self.load()]
