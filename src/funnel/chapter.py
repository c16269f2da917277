"""
The Chapter funnel -- nine metrics in display order:

  Viewings, Meetings, 12P / P2A / A2S (average days between stages),
  Leads, Prospects, Accounts, Sales.

The four stage counts delegate to the shared builder routed to
`chapter_opportunities`; the activity metrics join the task log.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from src.core.verticals import Vertical
from src.funnel.builder import (
    IST_SHIFT,
    Locations,
    UnknownMetricError,
    build_metric_query,
    location_clause,
    test_record_clause,
)
from src.funnel.query import ParamAllocator, ParameterizedQuery
from src.funnel.rules import FunnelRules, load_funnel_rules


@dataclass(frozen=True)
class ChapterMetric:
    metric_name: str
    sort_order: int


CHAPTER_METRIC_KEYS: tuple[str, ...] = (
    "viewing",
    "meeting",
    "l2p",
    "p2a",
    "a2s",
    "lead",
    "prospect",
    "account",
    "sale",
)

CHAPTER_METRIC_META: dict[str, ChapterMetric] = {
    "viewing": ChapterMetric("Viewings", 1),
    "meeting": ChapterMetric("Meetings", 2),
    "l2p": ChapterMetric("12P", 3),   # business shorthand for L2P
    "p2a": ChapterMetric("P2A", 4),
    "a2s": ChapterMetric("A2S", 5),
    "lead": ChapterMetric("Leads", 6),
    "prospect": ChapterMetric("Prospects", 7),
    "account": ChapterMetric("Accounts", 8),
    "sale": ChapterMetric("Sales", 9),
}

# key -> (from timestamp, to timestamp)
_DURATION_COLUMNS: dict[str, tuple[str, str]] = {
    "l2p": ("enquired_at", "lead_completed_at"),
    "p2a": ("lead_completed_at", "prospect_completed_at"),
    "a2s": ("prospect_completed_at", "maal_laao_at"),
}


def _table(rules: FunnelRules) -> str:
    return rules.tables_for(Vertical.THE_CHAPTER).opportunities_table


def _join_lines(*lines: str) -> str:
    return "\n            ".join(line for line in lines if line)


# ── Activity metrics ─────────────────────────────────────

def _build_activity_query(
    key: str,
    locations: Locations,
    alloc: ParamAllocator,
) -> ParameterizedQuery:
    rules = load_funnel_rules()
    opp = _table(rules)
    chapter = rules.chapter

    if key == "viewing":
        medium_cond = f"AND medium.name IN ({alloc.in_list(chapter.viewing_mediums)})"
        staff_join = f"INNER JOIN staffs\n            ON staffs.id = {opp}.poc_exec_id"
    else:
        medium_cond = f"AND medium.name = {alloc.add(chapter.meeting_medium)}"
        staff_join = ""

    where = _join_lines(
        f"date(tasks.performed_at + {IST_SHIFT}) BETWEEN $1::date AND $2::date",
        f"AND activities.feedable_type = {alloc.add(chapter.feedable_type)}",
        f"AND activities.leadable_type = {alloc.add(chapter.leadable_type)}",
        medium_cond,
        test_record_clause(opp, rules, alloc),
        location_clause(f"{opp}.interested_location", locations, alloc),
    )
    joins = _join_lines(
        "INNER JOIN activities\n            ON tasks.id = activities.feedable_id",
        "INNER JOIN medium\n            ON tasks.medium_id = medium.id",
        f"INNER JOIN {opp}\n            ON {opp}.id = activities.leadable_id",
        staff_join,
    )
    sql = f"""
          SELECT '{CHAPTER_METRIC_META[key].metric_name}' as metric,
                 COUNT(DISTINCT({opp}.slug))::int as count
          FROM tasks
          {joins}
          WHERE {where}
    """
    return alloc.query(sql)


def _build_duration_query(
    key: str,
    locations: Locations,
    alloc: ParamAllocator,
) -> ParameterizedQuery:
    rules = load_funnel_rules()
    opp = _table(rules)
    from_col, to_col = (f"{opp}.{c}" for c in _DURATION_COLUMNS[key])

    where = _join_lines(
        f"date({to_col} + {IST_SHIFT}) BETWEEN $1::date AND $2::date",
        f"AND {from_col} IS NOT NULL",
        f"AND {to_col} IS NOT NULL",
        test_record_clause(opp, rules, alloc),
        location_clause(f"{opp}.interested_location", locations, alloc),
    )
    sql = f"""
          SELECT '{CHAPTER_METRIC_META[key].metric_name}' as metric,
                 AVG(
                   date({to_col} + {IST_SHIFT})
                   - date({from_col} + {IST_SHIFT})
                 )::int as count
          FROM {opp}
          WHERE {where}
    """
    return alloc.query(sql)


def _build_stage_count(key: str, locations: Locations, alloc: ParamAllocator) -> ParameterizedQuery:
    return build_metric_query(key, Vertical.THE_CHAPTER, locations, alloc)


_CHAPTER_BUILDERS: dict[str, Callable[[str, Locations, ParamAllocator], ParameterizedQuery]] = {
    "viewing": _build_activity_query,
    "meeting": _build_activity_query,
    "l2p": _build_duration_query,
    "p2a": _build_duration_query,
    "a2s": _build_duration_query,
    "lead": _build_stage_count,
    "prospect": _build_stage_count,
    "account": _build_stage_count,
    "sale": _build_stage_count,
}


# ── Public entry points ──────────────────────────────────

def build_chapter_metric_query(
    key: str,
    locations: Locations = None,
    allocator: ParamAllocator | None = None,
) -> ParameterizedQuery:
    builder = _CHAPTER_BUILDERS.get(key)
    if builder is None:
        raise UnknownMetricError(key)
    return builder(key, locations, allocator or ParamAllocator())


def build_chapter_funnel_query(
    locations: Locations = None,
    metric_key: str | None = None,
) -> ParameterizedQuery:
    """All nine Chapter metrics ordered 1-9, or just *metric_key*."""
    if metric_key:
        return build_chapter_metric_query(metric_key, locations)

    alloc = ParamAllocator()
    parts = [build_chapter_metric_query(key, locations, alloc).sql for key in CHAPTER_METRIC_KEYS]
    order_cases = "\n          ".join(
        f"WHEN metric = '{CHAPTER_METRIC_META[key].metric_name}' THEN {CHAPTER_METRIC_META[key].sort_order}"
        for key in CHAPTER_METRIC_KEYS
    )
    union = "\n          UNION ALL\n".join(parts)

    sql = f"""
        SELECT * FROM
        (
          {union}
        ) chapter_funnel_data
        ORDER BY CASE
          {order_cases}
          ELSE 999
        END
    """
    return alloc.query(sql)
