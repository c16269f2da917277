"""
Deterministic SQL safety checks.

The last gate before catalog or generated SQL reaches Postgres. The
executor already runs inside a read-only transaction; these checks
reject anything that is not a single plain query before it gets there.

Checks performed:
  1. SQL must be a single SELECT (or WITH ... SELECT) statement
  2. No dangerous keywords (DROP, ALTER, TRUNCATE, INSERT, UPDATE, DELETE, GRANT ...)
  3. No SQL comments
  4. No blocked schemas (pg_catalog, information_schema)
  5. No server-side file / sleep / remote functions
"""
from __future__ import annotations

import re

from src.core.logging import get_logger

logger = get_logger(__name__)

BLOCKED_SCHEMAS: tuple[str, ...] = ("pg_catalog", "information_schema")

# ── Compiled patterns ────────────────────────────────────

_DANGEROUS_KW = re.compile(
    r"\b(DROP|ALTER|TRUNCATE|INSERT|UPDATE|DELETE|MERGE|GRANT|REVOKE|"
    r"CREATE|EXECUTE|EXEC|CALL|COPY|VACUUM|SET\s+ROLE|RESET\s+ROLE)\b",
    re.IGNORECASE,
)

_MULTI_STMT = re.compile(r";\s*\S")  # semicolon followed by non-whitespace

_COMMENT_INLINE = re.compile(r"--")
_COMMENT_BLOCK = re.compile(r"/\*")

_BLOCKED_FUNCTIONS = re.compile(
    r"\b(pg_sleep|pg_read_file|pg_read_binary_file|pg_ls_dir|lo_import|lo_export|dblink\w*)\s*\(",
    re.IGNORECASE,
)

_STRING_LITERAL = re.compile(r"'(?:[^']|'')*'")


def check_sql_safety(sql: str) -> list[str]:
    """Return a list of safety violations (empty list = safe)."""
    errors: list[str] = []
    sql_stripped = sql.strip().rstrip(";").strip()
    # Keywords inside string literals ('Deleted', 'Update pending') are data.
    code = _STRING_LITERAL.sub("''", sql_stripped)

    # ── 1. Must start with SELECT (or WITH … SELECT for CTEs) ─────
    upper = code.upper()
    if not (upper.startswith("SELECT") or upper.startswith("WITH")):
        errors.append("SQL must be a SELECT statement.")

    if _MULTI_STMT.search(code):
        errors.append("Multi-statement SQL is not allowed (found ';' followed by another statement).")

    # ── 2. No dangerous keywords ─────────────────────
    m = _DANGEROUS_KW.search(code)
    if m:
        errors.append(f"Dangerous keyword detected: '{m.group(1).upper()}'.")

    # ── 3. No SQL comments (injection vector) ────────
    if _COMMENT_INLINE.search(code):
        errors.append("Inline comments (--) are not allowed.")
    if _COMMENT_BLOCK.search(code):
        errors.append("Block comments (/* */) are not allowed.")

    # ── 4. Blocked schemas ───────────────────────────
    code_lower = code.lower()
    for schema in BLOCKED_SCHEMAS:
        if f"{schema}." in code_lower:
            errors.append(f"Blocked schema referenced: '{schema}'.")

    # ── 5. Blocked functions ─────────────────────────
    fn = _BLOCKED_FUNCTIONS.search(code)
    if fn:
        errors.append(f"Blocked function call: '{fn.group(1).lower()}'.")

    if errors:
        logger.warning("SQL safety violations: %s", errors)
    return errors
