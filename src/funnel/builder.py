"""
Funnel SQL builder -- parameterised Leads / Prospects / Accounts / Sales
counts per vertical.

Stored timestamps are naive UTC while the business runs on IST, so every
date comparison shifts by 330 minutes before truncating to a date. All
exclusion and location values are bind parameters.

    q = build_sales_funnel_query(Vertical.ISPRAVA, ["Goa"])
    executor.run(q.sql, q.bind("2025-04-01", "2026-02-09"))
"""
from __future__ import annotations

from typing import Any, Callable, Optional, Sequence

from src.core.verticals import DEFAULT_VERTICAL, Vertical, normalize_vertical
from src.funnel.query import ParamAllocator, ParameterizedQuery
from src.funnel.rules import STAGE_KEYS, FunnelRules, VerticalTables, load_funnel_rules

IST_SHIFT = "interval '330 minutes'"

FUNNEL_METRIC_KEYS: tuple[str, ...] = STAGE_KEYS

Locations = Optional[Sequence[str]]


class UnknownMetricError(ValueError):
    """A metric key outside the closed set of funnel metrics."""

    def __init__(self, key: str):
        super().__init__(f'Unknown funnel metric: "{key}"')
        self.key = key


def coerce_vertical(value: Any) -> Vertical:
    vertical = normalize_vertical(value)
    if vertical is None:
        raise ValueError(f"Unknown vertical: {value!r}")
    return vertical


# ── Clause helpers ───────────────────────────────────────

def clean_locations(locations: Locations) -> list[str]:
    return [loc.strip() for loc in (locations or []) if loc and loc.strip()]


def location_clause(column: str, locations: Locations, alloc: ParamAllocator) -> str:
    locs = clean_locations(locations)
    if not locs:
        return ""
    conditions = " OR ".join(f"{column} ILIKE {alloc.add(f'%{loc}%')}" for loc in locs)
    return f"AND ({conditions})"


def slug_exclusion_clause(column: str, rules: FunnelRules, alloc: ParamAllocator) -> str:
    if not rules.slug_exclusions:
        return ""
    return f"AND {column} NOT IN ({alloc.in_list(rules.slug_exclusions)})"


def test_record_clause(alias: str, rules: FunnelRules, alloc: ParamAllocator) -> str:
    name = f"lower({alias}.name)"
    conditions = [f"{name} NOT LIKE {alloc.add(p)}" for p in rules.test_name_patterns.not_like]
    conditions += [f"{name} != {alloc.add(v)}" for v in rules.test_name_patterns.not_equal]
    if not conditions:
        return ""
    return "AND (" + " AND ".join(conditions) + ")"


def vertical_guard_clause(vertical: Vertical, tables: VerticalTables, alloc: ParamAllocator) -> str:
    # Verticals without their own data share the Isprava table; never true for them.
    if tables.has_data:
        return ""
    return f"AND {alloc.add(vertical.value)} = '{Vertical.ISPRAVA.value}'"


def _where(first: str, *clauses: str) -> str:
    lines = [first] + [c for c in clauses if c]
    return "\n            ".join(lines)


# ── Stage builders ───────────────────────────────────────

def build_leads_query(
    vertical: Vertical | str = DEFAULT_VERTICAL,
    locations: Locations = None,
    allocator: ParamAllocator | None = None,
) -> ParameterizedQuery:
    """Leads = opportunities entered + unlinked enquiries (two intake paths, summed)."""
    v = coerce_vertical(vertical)
    rules = load_funnel_rules()
    tables = rules.tables_for(v)
    alloc = allocator or ParamAllocator()
    opp = tables.opportunities_table
    ts = rules.stage("lead").timestamp_column

    opp_where = _where(
        f"date({opp}.{ts} + {IST_SHIFT}) BETWEEN $1::date AND $2::date",
        vertical_guard_clause(v, tables, alloc),
        f"AND {opp}.source != {alloc.add(rules.source_exclusion)}",
        slug_exclusion_clause(f"{opp}.slug", rules, alloc),
        test_record_clause(opp, rules, alloc) if tables.exclude_test_records else "",
        location_clause(f"{opp}.interested_location", locations, alloc),
    )
    enq_where = _where(
        f"date(enquiries.created_at + {IST_SHIFT}) BETWEEN $1::date AND $2::date",
        vertical_guard_clause(v, tables, alloc),
        f"AND enquiries.vertical = {alloc.add(tables.enquiries_vertical)}",
        "AND enquiries.enquiry_type = 'enquiry'",
        "AND enquiries.leadable_id IS NULL",
        test_record_clause("enquiries", rules, alloc) if tables.exclude_test_records else "",
        location_clause("enquiries.location", locations, alloc),
    )

    sql = f"""
          SELECT '{rules.stage("lead").label}' as metric, SUM(leads)::int as count
          FROM (
            SELECT COUNT(DISTINCT({opp}.slug)) AS leads
            FROM {opp}
            WHERE {opp_where}
            UNION ALL
            SELECT COUNT(enquiries.id) AS leads
            FROM enquiries
            WHERE {enq_where}
          ) leads_data
    """
    return alloc.query(sql)


def _build_stage_query(
    stage_key: str,
    vertical: Vertical | str,
    locations: Locations,
    allocator: ParamAllocator | None,
) -> ParameterizedQuery:
    v = coerce_vertical(vertical)
    rules = load_funnel_rules()
    tables = rules.tables_for(v)
    stage = rules.stage(stage_key)
    alloc = allocator or ParamAllocator()
    opp = tables.opportunities_table
    ts = f"{opp}.{stage.timestamp_column}"

    where = _where(
        f"{ts} >= ($1::date - INTERVAL '330 minutes')",
        f"AND {ts} < ($2::date + INTERVAL '1 day' - INTERVAL '330 minutes')",
        vertical_guard_clause(v, tables, alloc),
        slug_exclusion_clause(f"{opp}.slug", rules, alloc),
        *(f"AND {cond}" for cond in stage.mandatory_conditions),
        test_record_clause(opp, rules, alloc) if tables.exclude_test_records else "",
        location_clause(f"{opp}.interested_location", locations, alloc),
    )
    sql = f"""
          SELECT '{stage.label}' as metric, COUNT(DISTINCT({opp}.slug))::int as count
          FROM {opp}
          WHERE {where}
    """
    return alloc.query(sql)


def build_prospects_query(
    vertical: Vertical | str = DEFAULT_VERTICAL,
    locations: Locations = None,
    allocator: ParamAllocator | None = None,
) -> ParameterizedQuery:
    return _build_stage_query("prospect", vertical, locations, allocator)


def build_accounts_query(
    vertical: Vertical | str = DEFAULT_VERTICAL,
    locations: Locations = None,
    allocator: ParamAllocator | None = None,
) -> ParameterizedQuery:
    return _build_stage_query("account", vertical, locations, allocator)


def build_sales_query(
    vertical: Vertical | str = DEFAULT_VERTICAL,
    locations: Locations = None,
    allocator: ParamAllocator | None = None,
) -> ParameterizedQuery:
    return _build_stage_query("sale", vertical, locations, allocator)


_METRIC_BUILDERS: dict[str, Callable[..., ParameterizedQuery]] = {
    "lead": build_leads_query,
    "prospect": build_prospects_query,
    "account": build_accounts_query,
    "sale": build_sales_query,
}


# ── Public entry points ──────────────────────────────────

def build_metric_query(
    metric_key: str,
    vertical: Vertical | str = DEFAULT_VERTICAL,
    locations: Locations = None,
    allocator: ParamAllocator | None = None,
) -> ParameterizedQuery:
    """One funnel metric. Raises UnknownMetricError for keys outside FUNNEL_METRIC_KEYS."""
    builder = _METRIC_BUILDERS.get(metric_key)
    if builder is None:
        raise UnknownMetricError(metric_key)
    return builder(vertical, locations, allocator)


def build_sales_funnel_query(
    vertical: Vertical | str = DEFAULT_VERTICAL,
    locations: Locations = None,
    metric_key: str | None = None,
) -> ParameterizedQuery:
    """
    All four stages as one UNION ALL, ordered Leads -> Sales; or just
    *metric_key* when given. Sub-queries share one allocator, so the
    combined params cover every sub-query's params.
    """
    if metric_key:
        return build_metric_query(metric_key, vertical, locations)

    rules = load_funnel_rules()
    alloc = ParamAllocator()
    parts = [build_metric_query(key, vertical, locations, alloc).sql for key in FUNNEL_METRIC_KEYS]
    order_cases = "\n          ".join(
        f"WHEN metric = '{rules.stage(key).label}' THEN {rules.stage(key).sort_order}"
        for key in FUNNEL_METRIC_KEYS
    )
    union = "\n          UNION ALL\n".join(parts)

    sql = f"""
        SELECT * FROM
        (
          {union}
        ) query
        ORDER BY CASE
          {order_cases}
          ELSE {len(FUNNEL_METRIC_KEYS) + 1}
        END
    """
    return alloc.query(sql)
