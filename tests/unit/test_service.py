"""
Unit tests -- copilot service: funnel and predefined pipelines.
A recording fake executor stands in for Postgres.
"""
import pytest

from src.copilot.cache import QueryCache
from src.copilot.service import CopilotService, FunnelResult, PredefinedResult
from src.core.config import Settings
from src.nlq.vocabulary import QueryIntent
from src.predefined.catalog import PredefinedCatalog


class RecordingExecutor:
    def __init__(self, rows=None, error=None):
        self.calls = []
        self.rows = rows if rows is not None else [{"metric": "Leads", "count": 42}]
        self.error = error

    def __call__(self, sql, params):
        self.calls.append((sql, list(params)))
        if self.error:
            raise self.error
        return self.rows


@pytest.fixture
def executor():
    return RecordingExecutor()


@pytest.fixture
def service(executor):
    return CopilotService(
        catalog=PredefinedCatalog(),
        funnel_cache=QueryCache(ttl=60),
        predefined_cache=QueryCache(ttl=60),
        executor=executor,
    )


# ── resolve_question ────────────────────────────────────

def test_resolve_question(service):
    plan = service.resolve_question("Leads MTD", {"now": "2026-02-09T12:00:00+05:30"})
    assert plan.intent == QueryIntent.STAGE_METRIC
    assert plan.time_range.start == "2026-02-01T00:00:00+05:30"


def test_resolve_question_uses_env_time_settings(monkeypatch, executor):
    monkeypatch.setenv("DEFAULT_TIMEZONE", "+00:00")
    monkeypatch.setenv("WEEK_START", "sunday")
    svc = CopilotService(settings=Settings(), executor=executor)
    plan = svc.resolve_question("Leads WTD", {"now": "2026-02-09T12:00:00+05:30"})
    assert plan.time_range.timezone == "+00:00"
    assert plan.time_range.calendar_week_start == "sunday"
    assert plan.time_range.start == "2026-02-08T00:00:00+00:00"
    assert plan.time_range.end == "2026-02-09T06:30:00+00:00"


def test_request_overrides_beat_env_time_settings(monkeypatch, executor):
    monkeypatch.setenv("WEEK_START", "sunday")
    svc = CopilotService(settings=Settings(), executor=executor)
    plan = svc.resolve_question("Leads WTD", {"now": "2026-02-09T12:00:00+05:30", "week_start": "monday"})
    assert plan.time_range.start == "2026-02-09T00:00:00+05:30"


# ── run_funnel ──────────────────────────────────────────

def test_funnel_dry_run(service, executor):
    result = service.run_funnel("2026-02-01", "2026-02-09", execute=False)
    assert isinstance(result, FunnelResult)
    assert result.success
    assert result.vertical == "isprava"
    assert "WHEN metric = 'Leads' THEN 1" in result.sql
    assert result.params[:2] == ["2026-02-01", "2026-02-09"]
    assert result.rows == []
    assert executor.calls == []


def test_funnel_executes_with_bound_params(service, executor):
    result = service.run_funnel("2026-02-01", "2026-02-09", "isprava", ["Goa"])
    assert result.rows == [{"metric": "Leads", "count": 42}]
    sql, params = executor.calls[0]
    assert sql == result.sql
    assert params == result.params
    assert "%Goa%" in params


def test_funnel_default_vertical_from_env(monkeypatch, executor):
    monkeypatch.setenv("DEFAULT_VERTICAL", "the chapter")
    svc = CopilotService(settings=Settings(), executor=executor)
    result = svc.run_funnel("2026-02-01", "2026-02-09", execute=False)
    assert result.vertical == "the_chapter"
    assert "chapter_opportunities" in result.sql


def test_funnel_result_cached(service, executor):
    service.run_funnel("2026-02-01", "2026-02-09")
    second = service.run_funnel("2026-02-01", "2026-02-09")
    assert second.cached
    assert len(executor.calls) == 1


def test_funnel_cache_key_includes_locations(service, executor):
    service.run_funnel("2026-02-01", "2026-02-09", locations=["Goa"])
    service.run_funnel("2026-02-01", "2026-02-09", locations=["Alibaug"])
    assert len(executor.calls) == 2


def test_funnel_validation_errors_skip_execution(service, executor):
    result = service.run_funnel("2026-02-10", "2026-02-01", vertical="atlantis")
    assert not result.success
    assert len(result.validation_errors) == 2
    assert result.sql == ""
    assert executor.calls == []


def test_funnel_single_metric(service):
    result = service.run_funnel("2026-02-01", "2026-02-09", metric="sale", execute=False)
    assert "'Sales'" in result.sql
    assert "'Leads'" not in result.sql


def test_chapter_detail_funnel(service):
    result = service.run_funnel("2026-02-01", "2026-02-09", vertical="the_chapter", chapter_detail=True, execute=False)
    assert "chapter_funnel_data" in result.sql
    assert result.vertical == "the_chapter"


def test_execution_error_reported(executor):
    failing = RecordingExecutor(error=RuntimeError("connection refused"))
    svc = CopilotService(funnel_cache=QueryCache(ttl=60), executor=failing)
    result = svc.run_funnel("2026-02-01", "2026-02-09")
    assert not result.success
    assert "connection refused" in result.execution_errors[0]
    # failures are not cached
    svc.run_funnel("2026-02-01", "2026-02-09")
    assert len(failing.calls) == 2


# ── run_predefined ──────────────────────────────────────

def test_predefined_match_and_rewrite(service, executor):
    result = service.run_predefined("overdue payments", "2025-04-01", "2026-02-27")
    assert isinstance(result, PredefinedResult)
    assert result.success
    assert result.query_title == "Overdue Payments Ageing"
    assert "DATE '2026-02-27'" in result.sql
    assert "CURRENT_DATE" not in result.sql
    assert executor.calls == [(result.sql, [])]


def test_predefined_fy_dates(service):
    result = service.run_predefined("orderbook actuals fy", "2026-04-01", "2026-10-15", execute=False)
    assert result.query_title == "Orderbook Actuals FY"
    assert "BETWEEN '2026-04-01' AND '2026-10-15'" in result.sql


def test_predefined_default_dates(service):
    result = service.run_predefined("multi year sales trend", execute=False)
    assert result.start_date.endswith("-04-01")
    assert result.end_date is not None


def test_predefined_locations_are_params(service, executor):
    result = service.run_predefined("orderbook actuals fy", "2025-04-01", "2026-02-27", ["Goa"])
    assert "l.city ILIKE $1" in result.sql
    assert executor.calls[0][1] == ["%Goa%"]


def test_predefined_no_match(service, executor):
    result = service.run_predefined("weather forecast")
    assert not result.success
    assert "No confident match" in result.validation_errors[0]
    assert "Orderbook Actuals FY" in result.available_queries
    assert executor.calls == []


def test_predefined_ambiguous(service):
    result = service.run_predefined("scorecard chapter")
    assert "equal confidence (50%)" in result.validation_errors[0]
    assert len(result.candidates) == 3


def test_predefined_cached(service, executor):
    service.run_predefined("overdue payments", "2025-04-01", "2026-02-27")
    again = service.run_predefined("overdue payments", "2025-04-01", "2026-02-27")
    assert again.cached
    assert len(executor.calls) == 1


def test_predefined_validation(service):
    result = service.run_predefined("orderbook", start_date="2025-04-01")
    assert any("together" in e for e in result.validation_errors)
