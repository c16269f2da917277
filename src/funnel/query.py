"""
ParameterizedQuery and the positional placeholder allocator.

`$1` / `$2` are always the start and end dates, supplied by the caller at
execution time. Every builder-owned value gets `$3` onwards.
"""
from __future__ import annotations

import re
from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict, Field

DATE_PLACEHOLDERS = 2

_PLACEHOLDER_RE = re.compile(r"\$(\d+)")


class ParameterizedQuery(BaseModel):
    """SQL with `$N` placeholders plus the builder-owned values for `$3`..."""

    model_config = ConfigDict(frozen=True)

    sql: str
    params: list[Any] = Field(default_factory=list, description="Values for $3, $4, ... in order")

    def bind(self, start_date: str, end_date: str) -> list[Any]:
        """Full positional list: dates first, then the builder's params."""
        return [start_date, end_date, *self.params]

    def placeholders(self) -> list[int]:
        """Distinct placeholder numbers in order of first appearance."""
        seen: list[int] = []
        for m in _PLACEHOLDER_RE.finditer(self.sql):
            n = int(m.group(1))
            if n not in seen:
                seen.append(n)
        return seen


class ParamAllocator:
    """
    Hands out `$N` placeholders for values. An equal value always maps to
    the same placeholder, so sub-queries sharing one allocator never collide
    and the combined list stays minimal.

    *offset* is the count of leading placeholders the caller binds itself
    (the two dates for funnel queries, none for catalog SQL).
    """

    def __init__(self, offset: int = DATE_PLACEHOLDERS) -> None:
        self._offset = offset
        self._values: list[Any] = []

    def add(self, value: Any) -> str:
        for idx, existing in enumerate(self._values):
            if existing == value and type(existing) is type(value):
                return f"${idx + self._offset + 1}"
        self._values.append(value)
        return f"${len(self._values) + self._offset}"

    def add_many(self, values: Iterable[Any]) -> list[str]:
        return [self.add(v) for v in values]

    def in_list(self, values: Iterable[Any]) -> str:
        """Comma-separated placeholders for an `IN (...)` clause."""
        return ", ".join(self.add_many(values))

    @property
    def params(self) -> list[Any]:
        return list(self._values)

    def query(self, sql: str) -> ParameterizedQuery:
        return ParameterizedQuery(sql=sql, params=self.params)
