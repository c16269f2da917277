"""
Integration tests -- SQL executor against live PostgreSQL.

Automatically skipped when the database is unreachable.
"""
from __future__ import annotations

import pytest

from src.db.connection import is_database_available
from src.db.executor import execute_positional, execute_readonly

# ── Guard: skip all tests if DB is unreachable ───────────
DB_AVAILABLE = is_database_available()

pytestmark = pytest.mark.skipif(not DB_AVAILABLE, reason="Postgres not reachable")


# ── Basic connectivity ───────────────────────────────────

def test_simple_select():
    rows = execute_readonly("SELECT 1 AS n")
    assert rows == [{"n": 1}]


def test_multiple_rows():
    rows = execute_readonly("SELECT generate_series(1,3) AS n")
    assert [r["n"] for r in rows] == [1, 2, 3]


# ── Positional binds ────────────────────────────────────

def test_positional_date_casts():
    rows = execute_positional(
        "SELECT ($2::date - $1::date)::int AS days, $3 AS label",
        ["2026-02-01", "2026-02-09", "Leads"],
    )
    assert rows == [{"days": 8, "label": "Leads"}]


def test_positional_ist_shift():
    rows = execute_positional(
        "SELECT date(TIMESTAMP '2026-02-08 19:00:00' + interval '330 minutes') = $1::date AS same_day",
        ["2026-02-09"],
    )
    assert rows[0]["same_day"] is True


def test_ilike_param():
    rows = execute_positional("SELECT 'North Goa' ILIKE $1 AS hit", ["%goa%"])
    assert rows[0]["hit"] is True


# ── Read-only enforcement ───────────────────────────────

def test_write_blocked():
    """READ ONLY transaction must reject writes."""
    with pytest.raises(Exception):
        execute_readonly("CREATE TABLE _test_no_write (id INT)")


# ── Timeout enforcement ─────────────────────────────────

def test_timeout_fires():
    with pytest.raises(Exception):
        execute_readonly("SELECT pg_sleep(30)", timeout_ms=200)


# ── Decimal / date serialisation ─────────────────────────

def test_decimal_serialised_to_float():
    rows = execute_readonly("SELECT 3.14::numeric AS val")
    assert isinstance(rows[0]["val"], float)
    assert abs(rows[0]["val"] - 3.14) < 0.001


def test_date_serialised_to_iso():
    rows = execute_readonly("SELECT DATE '2024-01-15' AS d")
    assert rows[0]["d"] == "2024-01-15"


def test_timestamp_serialised_to_iso():
    rows = execute_readonly("SELECT TIMESTAMP '2024-01-15 10:30:00' AS ts")
    assert rows[0]["ts"].startswith("2024-01-15T10:30:00")
