"""
Location filter injection for catalog SQL.

Finds every join onto a location table aliased `l`:

    LEFT JOIN development_locations l ON l.id = p.development_location_id
    INNER JOIN chapter_locations l
        ON l.id = p.chapter_location_id

promotes it to INNER JOIN (rows with no matching city drop out rather
than showing as unclassified) and appends `AND (l.city ILIKE $N OR ...)`.
City patterns are bind parameters numbered from $1.
"""
from __future__ import annotations

import re
from typing import Optional, Sequence

from src.funnel.builder import clean_locations
from src.funnel.query import ParamAllocator, ParameterizedQuery

_LOCATION_JOIN_RE = re.compile(
    r"(?:LEFT|INNER)\s+JOIN\s+((?:development|chapter)_locations)\s+l(\s+)ON\s+(l\.id\s*=\s*p\.\w+_location_id)",
    re.IGNORECASE,
)


def has_location_join(sql: str) -> bool:
    return _LOCATION_JOIN_RE.search(sql) is not None


def inject_location_filter(sql: str, locations: Optional[Sequence[str]] = None) -> ParameterizedQuery:
    """SQL unchanged (no params) when there are no locations or no location join."""
    locs = clean_locations(locations)
    if not locs:
        return ParameterizedQuery(sql=sql)

    alloc = ParamAllocator(offset=0)
    parts = [f"l.city ILIKE {alloc.add(f'%{loc}%')}" for loc in locs]
    condition = parts[0] if len(parts) == 1 else "(" + " OR ".join(parts) + ")"

    rewritten = _LOCATION_JOIN_RE.sub(
        lambda m: f"INNER JOIN {m.group(1)} l{m.group(2)}ON {m.group(3)} AND {condition}",
        sql,
    )
    if rewritten == sql:
        return ParameterizedQuery(sql=sql)
    return alloc.query(rewritten)
