"""
Shared test doubles: an in-memory row store, a token verifier, and a
recording connection.
"""

import re
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import pytest

from pishield.db import ALERTS, BLOCKED_IPS, TABLES, AnyOf, RowStoreError, SelectResult
from pishield.realtime import BroadcastService, ClientRegistry
from pishield.security import AuthenticationError, Principal
from pishield.stats import StatAggregator


def _like_regex(pattern: str) -> str:
    """Translate a LIKE pattern (backslash escape) into a regex."""
    out, i = [], 0
    while i < len(pattern):
        ch = pattern[i]
        if ch == "\\" and i + 1 < len(pattern):
            out.append(re.escape(pattern[i + 1]))
            i += 2
            continue
        out.append(".*" if ch == "%" else "." if ch == "_" else re.escape(ch))
        i += 1
    return "".join(out)


def _compare(value: Any, op: str, target: Any) -> bool:
    if op == "eq":
        return value == target
    if op == "neq":
        return value != target
    if op == "in":
        return value in target
    if op == "not_in":
        return value not in target
    if op == "is_null":
        return (value is None) == (target in (None, True))
    if op == "ilike":
        return value is not None and re.fullmatch(_like_regex(target), str(value), re.IGNORECASE | re.DOTALL) is not None
    if value is None:
        return False
    if op == "gt":
        return value > target
    if op == "gte":
        return value >= target
    if op == "lt":
        return value < target
    if op == "lte":
        return value <= target
    raise AssertionError(f"unexpected op {op}")


def matches(row: Dict[str, Any], flt) -> bool:
    if isinstance(flt, AnyOf):
        return any(matches(row, f) for f in flt.filters)
    return _compare(row.get(flt.column), flt.op, flt.value)


class InMemoryRowStore:
    """Row store double with the same call surface as pishield.db.RowStore."""

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {ALERTS: [], BLOCKED_IPS: []}
        self.calls: List[tuple] = []
        self.fail_ops: set = set()

    def _check(self, op: str, table: str) -> None:
        self.calls.append((op, table))
        if op in self.fail_ops or (op, table) in self.fail_ops:
            raise RowStoreError(f"{op} on {table} rejected")

    def _defaults(self, table: str) -> Dict[str, Any]:
        row = {name: None for name in TABLES[table].c.keys()}
        row["id"] = str(uuid.uuid4())
        now = datetime.now(timezone.utc)
        if table == ALERTS:
            row["timestamp"] = now
            row["status"] = "new"
        else:
            row["created_at"] = now
        return row

    def _filtered(self, table: str, filters: Sequence) -> List[Dict[str, Any]]:
        return [r for r in self.tables[table] if all(matches(r, f) for f in filters)]

    def seed(self, table: str, **values) -> Dict[str, Any]:
        row = self._defaults(table)
        row.update(values)
        self.tables[table].append(row)
        return dict(row)

    async def insert(self, table: str, values: Dict[str, Any]) -> Dict[str, Any]:
        self._check("insert", table)
        row = self._defaults(table)
        row.update(values)
        self.tables[table].append(row)
        return dict(row)

    async def update(self, table: str, values: Dict[str, Any], filters: Sequence) -> List[Dict[str, Any]]:
        self._check("update", table)
        rows = self._filtered(table, filters)
        for row in rows:
            row.update(values)
        return [dict(r) for r in rows]

    async def delete(self, table: str, filters: Sequence) -> List[Dict[str, Any]]:
        self._check("delete", table)
        rows = self._filtered(table, filters)
        self.tables[table] = [r for r in self.tables[table] if r not in rows]
        return [dict(r) for r in rows]

    async def select(
        self,
        table: str,
        filters: Sequence = (),
        order_by: Optional[str] = None,
        descending: bool = True,
        offset: int = 0,
        limit: Optional[int] = None,
        columns: Optional[Sequence[str]] = None,
        with_count: bool = False,
    ) -> SelectResult:
        self._check("select", table)
        rows = self._filtered(table, filters)
        if order_by:
            rows = sorted(rows, key=lambda r: r[order_by], reverse=descending)
        total = len(rows) if with_count else None
        rows = rows[offset:]
        if limit is not None:
            rows = rows[:limit]
        if columns:
            rows = [{c: r[c] for c in columns} for r in rows]
        return SelectResult(rows=[dict(r) for r in rows], total=total)

    async def count(self, table: str, filters: Sequence = ()) -> int:
        self._check("count", table)
        return len(self._filtered(table, filters))


class FakeVerifier:
    """Accepts tokens listed in ``tokens`` (token -> principal id)."""

    def __init__(self, tokens: Optional[Dict[str, str]] = None):
        self.tokens = tokens if tokens is not None else {"valid": "user-1", "other": "user-2"}
        self.calls: List[str] = []

    async def verify_token(self, token: str) -> Principal:
        self.calls.append(token)
        if token not in self.tokens:
            raise AuthenticationError()
        principal_id = self.tokens[token]
        return Principal(id=principal_id, email=f"{principal_id}@example.com", user={"id": principal_id})


class FakeConnection:
    """Records outbound frames; can be closed or made to fail."""

    def __init__(self, open_: bool = True, fail: bool = False):
        self.open = open_
        self.fail = fail
        self.sent: List[str] = []

    def is_open(self) -> bool:
        return self.open

    async def send_text(self, text: str) -> None:
        if self.fail:
            raise ConnectionError("socket gone")
        self.sent.append(text)


@pytest.fixture
def store() -> InMemoryRowStore:
    return InMemoryRowStore()


@pytest.fixture
def verifier() -> FakeVerifier:
    return FakeVerifier()


@pytest.fixture
def registry() -> ClientRegistry:
    return ClientRegistry()


@pytest.fixture
def broadcaster(registry) -> BroadcastService:
    return BroadcastService(registry)


@pytest.fixture
def aggregator(store) -> StatAggregator:
    return StatAggregator(store, risk_window_hours=24, device_count=10)
