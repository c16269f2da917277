"""
Read-only SQL executor.

Built queries use Postgres positional placeholders (`$1`, `$2::date`).
`execute_positional` converts them to SQLAlchemy named binds and runs
them through `execute_readonly`, which:
  1. Opens a READ ONLY transaction (Postgres-enforced)
  2. Applies the per-query statement_timeout
  3. Binds every value; nothing is formatted into the SQL text
  4. Converts Decimal/date/datetime to JSON-safe Python types
"""
from __future__ import annotations

import datetime
import decimal
import re
from typing import Any, Optional, Sequence

from sqlalchemy import text

from src.core.config import get_settings
from src.core.logging import get_logger
from src.db.connection import readonly_connection

logger = get_logger(__name__)

# `$3::date` must become CAST(...) first: `:p3::date` would not parse as a bind.
_CAST_PLACEHOLDER_RE = re.compile(r"\$(\d+)::(\w+(?:\[\])?)")
_PLACEHOLDER_RE = re.compile(r"\$(\d+)(?!\d)")


def _serialise_value(val: Any) -> Any:
    """Convert DB types to JSON-serialisable Python types."""
    if isinstance(val, decimal.Decimal):
        return float(val)
    if isinstance(val, (datetime.date, datetime.datetime)):
        return val.isoformat()
    if isinstance(val, datetime.timedelta):
        return str(val)
    return val


def convert_placeholders(sql: str, params: Sequence[Any]) -> tuple[str, dict[str, Any]]:
    """`$N` / `$N::type` -> `:pN` / `CAST(:pN AS type)` plus the matching bind dict."""
    converted = _CAST_PLACEHOLDER_RE.sub(lambda m: f"CAST(:p{m.group(1)} AS {m.group(2)})", sql)
    converted = _PLACEHOLDER_RE.sub(lambda m: f":p{m.group(1)}", converted)

    used = {int(n) for n in re.findall(r":p(\d+)\b", converted)}
    missing = sorted(n for n in used if n > len(params))
    if missing:
        raise ValueError(f"No bind value for placeholder(s): {', '.join(f'${n}' for n in missing)}")
    return converted, {f"p{i}": params[i - 1] for i in sorted(used)}


def execute_readonly(
    sql: str,
    params: dict | None = None,
    timeout_ms: Optional[int] = None,
) -> list[dict[str, Any]]:
    """Execute a read-only SQL query and return rows as serialisable dicts.

    Driver errors propagate to the caller.
    """
    timeout = int(timeout_ms if timeout_ms is not None else get_settings().statement_timeout_ms)
    logger.info("Executing SQL (%d chars, %d params)", len(sql), len(params or {}))
    logger.debug("SQL: %s", sql)

    with readonly_connection() as conn:
        conn.execute(text(f"SET LOCAL statement_timeout = {timeout}"))

        result = conn.execute(text(sql), params or {})
        columns = list(result.keys())
        rows = [
            {col: _serialise_value(val) for col, val in zip(columns, row)}
            for row in result.fetchall()
        ]

    logger.info("Returned %d rows", len(rows))
    return rows


def execute_positional(
    sql: str,
    params: Sequence[Any] = (),
    timeout_ms: Optional[int] = None,
) -> list[dict[str, Any]]:
    """Execute SQL written with `$N` placeholders bound positionally from *params*."""
    named_sql, named_params = convert_placeholders(sql, params)
    return execute_readonly(named_sql, named_params, timeout_ms)
