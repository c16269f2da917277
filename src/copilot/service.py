"""
Copilot service -- the tool-level operations behind the API.

  resolve_question  question -> QueryPlan (pure, no DB)
  run_funnel        validate -> build -> safety -> execute -> cache
  run_predefined    validate -> match -> rewrite dates -> locations -> safety -> execute -> cache

When `execute=False` the SQL and its positional params are returned without
touching Postgres. Execution failures are logged and returned as
`execution_errors`; an unknown metric key propagates to the caller.
"""
from __future__ import annotations

import time
from functools import lru_cache
from typing import Any, Callable, Optional, Sequence

from src.copilot.cache import QueryCache, make_key
from src.core.config import Settings, get_settings
from src.core.logging import get_logger
from src.core.verticals import Vertical, get_vertical_or_default
from src.db.executor import execute_positional
from src.funnel.builder import build_sales_funnel_query
from src.funnel.chapter import build_chapter_funnel_query
from src.governance.sql_safety import check_sql_safety
from src.governance.validator import validate_funnel_args, validate_predefined_args
from src.nlq.plan import QueryPlan
from src.nlq.resolver import resolve_nlq
from src.predefined.catalog import PredefinedCatalog, match_queries
from src.predefined.dates import compute_default_dates, is_historical_range, replace_dates_in_sql
from src.predefined.locations import inject_location_filter
from src.timerange.models import TimeRangeConfig
from src.timerange.parser import ConfigLike

logger = get_logger(__name__)

Executor = Callable[[str, Sequence[Any]], list[dict[str, Any]]]


class FunnelResult:
    def __init__(
        self,
        vertical: str,
        start_date: str,
        end_date: str,
        locations: list[str] | None = None,
        metric: str | None = None,
        chapter_detail: bool = False,
        sql: str = "",
        params: list[Any] | None = None,
        rows: list[dict[str, Any]] | None = None,
        validation_errors: list[str] | None = None,
        safety_errors: list[str] | None = None,
        execution_errors: list[str] | None = None,
        latency_ms: int = 0,
        cached: bool = False,
    ):
        self.vertical = vertical
        self.start_date = start_date
        self.end_date = end_date
        self.locations = locations or []
        self.metric = metric
        self.chapter_detail = chapter_detail
        self.sql = sql
        self.params = params or []
        self.rows = rows or []
        self.validation_errors = validation_errors or []
        self.safety_errors = safety_errors or []
        self.execution_errors = execution_errors or []
        self.latency_ms = latency_ms
        self.cached = cached

    @property
    def success(self) -> bool:
        return not (self.validation_errors or self.safety_errors or self.execution_errors)


class PredefinedResult:
    def __init__(
        self,
        query: str,
        query_title: str | None = None,
        match_score: float = 0.0,
        start_date: str | None = None,
        end_date: str | None = None,
        sql: str = "",
        params: list[Any] | None = None,
        rows: list[dict[str, Any]] | None = None,
        candidates: list[str] | None = None,
        available_queries: list[str] | None = None,
        validation_errors: list[str] | None = None,
        safety_errors: list[str] | None = None,
        execution_errors: list[str] | None = None,
        latency_ms: int = 0,
        cached: bool = False,
    ):
        self.query = query
        self.query_title = query_title
        self.match_score = match_score
        self.start_date = start_date
        self.end_date = end_date
        self.sql = sql
        self.params = params or []
        self.rows = rows or []
        self.candidates = candidates or []
        self.available_queries = available_queries or []
        self.validation_errors = validation_errors or []
        self.safety_errors = safety_errors or []
        self.execution_errors = execution_errors or []
        self.latency_ms = latency_ms
        self.cached = cached

    @property
    def success(self) -> bool:
        return not (self.validation_errors or self.safety_errors or self.execution_errors)


def _elapsed_ms(t0: float) -> int:
    return int((time.perf_counter() - t0) * 1000)


class CopilotService:
    """
    Holds the catalog, the result caches and the executor. Construct once
    per process (see `get_service`) and pass it to whatever needs it.
    """

    def __init__(
        self,
        catalog: Optional[PredefinedCatalog] = None,
        funnel_cache: Optional[QueryCache] = None,
        predefined_cache: Optional[QueryCache] = None,
        executor: Optional[Executor] = None,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        self.settings = settings
        self.catalog = catalog or PredefinedCatalog()
        self.funnel_cache = funnel_cache or QueryCache(ttl=settings.funnel_cache_ttl, name="funnel")
        self.predefined_cache = predefined_cache or QueryCache(ttl=settings.funnel_cache_ttl, name="predefined")
        self.executor: Executor = executor or execute_positional

    def _ttl_for(self, end_date: str, cache: QueryCache) -> float:
        return self.settings.historical_cache_ttl if is_historical_range(end_date) else cache.ttl

    # ── NLQ ─────────────────────────────────────────────

    def resolve_question(self, question: str, config: ConfigLike = None) -> QueryPlan:
        cfg = TimeRangeConfig.merged(config, base=self.settings.time_range_config())
        plan = resolve_nlq(question, cfg)
        logger.info(
            "NLQ resolved | intent=%s | metrics=%s | range=%s..%s | confidence=%.2f",
            plan.intent.value, [m.value for m in plan.metric_ids],
            plan.time_range.start, plan.time_range.end, plan.confidence,
        )
        return plan

    # ── Funnel ──────────────────────────────────────────

    def run_funnel(
        self,
        start_date: str,
        end_date: str,
        vertical: str | Vertical | None = None,
        locations: list[str] | None = None,
        metric: str | None = None,
        chapter_detail: bool = False,
        execute: bool = True,
    ) -> FunnelResult:
        t0 = time.perf_counter()
        raw_vertical = vertical.value if isinstance(vertical, Vertical) else vertical
        logger.info(
            "Funnel | vertical=%s | %s..%s | locations=%s | metric=%s | chapter_detail=%s | execute=%s",
            raw_vertical, start_date, end_date, locations, metric, chapter_detail, execute,
        )

        v_errors = validate_funnel_args({
            "start_date": start_date,
            "end_date": end_date,
            "vertical": raw_vertical,
            "locations": locations,
            "metric": metric,
            "chapter_detail": chapter_detail,
        })
        if v_errors:
            return FunnelResult(
                vertical=str(raw_vertical), start_date=start_date, end_date=end_date,
                locations=locations, metric=metric, chapter_detail=chapter_detail,
                validation_errors=v_errors, latency_ms=_elapsed_ms(t0),
            )

        v = get_vertical_or_default(raw_vertical, self.settings.default_vertical)
        if chapter_detail:
            query = build_chapter_funnel_query(locations, metric)
        else:
            query = build_sales_funnel_query(v, locations, metric)
        params = query.bind(start_date, end_date)

        result = FunnelResult(
            vertical=v.value, start_date=start_date, end_date=end_date,
            locations=locations, metric=metric, chapter_detail=chapter_detail,
            sql=query.sql, params=params, safety_errors=check_sql_safety(query.sql),
        )
        if result.safety_errors or not execute:
            result.latency_ms = _elapsed_ms(t0)
            return result

        key = make_key("funnel", v.value, start_date, end_date, locations, metric, chapter_detail)
        cached_rows = self.funnel_cache.get(key)
        if cached_rows is not None:
            logger.info("Funnel cache HIT vertical=%s %s..%s", v.value, start_date, end_date)
            result.rows, result.cached = cached_rows, True
        else:
            try:
                result.rows = self.executor(query.sql, params)
            except Exception as exc:
                logger.exception("Funnel query execution failed")
                result.execution_errors.append(f"Execution error: {exc}")
            else:
                self.funnel_cache.put(key, result.rows, ttl=self._ttl_for(end_date, self.funnel_cache))

        result.latency_ms = _elapsed_ms(t0)
        return result

    # ── Predefined queries ──────────────────────────────

    def run_predefined(
        self,
        query: str,
        start_date: str | None = None,
        end_date: str | None = None,
        locations: list[str] | None = None,
        execute: bool = True,
    ) -> PredefinedResult:
        t0 = time.perf_counter()
        logger.info("Predefined | query=%s | %s..%s | locations=%s | execute=%s",
                    query, start_date, end_date, locations, execute)

        v_errors = validate_predefined_args({
            "query": query, "start_date": start_date, "end_date": end_date, "locations": locations,
        })
        if v_errors:
            return PredefinedResult(query=query, validation_errors=v_errors, latency_ms=_elapsed_ms(t0))

        catalog = self.catalog.load()
        matches = match_queries(query, catalog)
        threshold = self.settings.predefined_match_threshold

        if not matches or matches[0].score < threshold:
            logger.warning("Predefined: no confident match for %r", query)
            return PredefinedResult(
                query=query,
                validation_errors=[f'No confident match found for "{query}".'],
                available_queries=[e.title for e in catalog],
                latency_ms=_elapsed_ms(t0),
            )

        top_score = matches[0].score
        top = [m for m in matches if m.score == top_score]
        if len(top) > 1 and top_score < 1.0:
            return PredefinedResult(
                query=query,
                match_score=top_score,
                validation_errors=[
                    f'Multiple queries matched "{query}" with equal confidence ({top_score * 100:.0f}%).'
                ],
                candidates=[m.entry.title for m in top],
                latency_ms=_elapsed_ms(t0),
            )

        best = matches[0]
        if start_date is None:
            start_date, end_date = compute_default_dates(fiscal_start_month=self.settings.fiscal_year_start_month)
        rewritten = replace_dates_in_sql(best.entry.sql, start_date, end_date)
        located = inject_location_filter(rewritten, locations)

        result = PredefinedResult(
            query=query, query_title=best.entry.title, match_score=best.score,
            start_date=start_date, end_date=end_date,
            sql=located.sql, params=located.params,
            safety_errors=check_sql_safety(located.sql),
        )
        if result.safety_errors or not execute:
            result.latency_ms = _elapsed_ms(t0)
            return result

        key = make_key("predefined", best.entry.title, start_date, end_date, locations)
        cached_rows = self.predefined_cache.get(key)
        if cached_rows is not None:
            logger.info("Predefined cache HIT title=%s", best.entry.title)
            result.rows, result.cached = cached_rows, True
        else:
            try:
                result.rows = self.executor(located.sql, located.params)
            except Exception as exc:
                logger.exception("Predefined query execution failed")
                result.execution_errors.append(f"Execution error: {exc}")
            else:
                self.predefined_cache.put(key, result.rows, ttl=self._ttl_for(end_date, self.predefined_cache))

        result.latency_ms = _elapsed_ms(t0)
        return result


@lru_cache
def get_service() -> CopilotService:
    """The process-wide service instance."""
    return CopilotService()
