"""
PiShield v1 - Row Store Adapter

Thin async adapter over the Supabase Postgres tables. Callers describe rows as
plain dicts and narrow them with ``Filter``/``AnyOf``; nothing above this
module touches SQLAlchemy.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from sqlalchemy import DateTime, Integer, String, Table, Text, and_, delete, func, insert, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for ORM models."""
    pass


class Alert(Base):
    """Security alert."""
    __tablename__ = "alerts"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    severity: Mapped[str] = mapped_column(String, nullable=False)  # critical, high, medium, low
    type: Mapped[str] = mapped_column(String, nullable=False)
    source_ip: Mapped[str] = mapped_column(String, nullable=False)
    dest_port: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="new")  # new, investigating, resolved
    details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class BlockedIp(Base):
    """IP address blocked from the dashboard."""
    __tablename__ = "blocked_ips"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    ip_address: Mapped[str] = mapped_column(String, nullable=False, index=True)
    blocked_by_user_id: Mapped[str] = mapped_column(String, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


ALERTS = "alerts"
BLOCKED_IPS = "blocked_ips"

TABLES: Dict[str, Table] = {
    ALERTS: Alert.__table__,
    BLOCKED_IPS: BlockedIp.__table__,
}


class RowStoreError(Exception):
    """Raised when the row store rejects a query or is unreachable."""


# =====================================================
# Filters
# =====================================================

FILTER_OPS = ("eq", "neq", "in", "not_in", "gt", "gte", "lt", "lte", "is_null", "ilike")


@dataclass(frozen=True)
class Filter:
    """Single column predicate, e.g. ``Filter("status", "neq", "resolved")``."""
    column: str
    op: str = "eq"
    value: Any = None

    def __post_init__(self):
        if self.op not in FILTER_OPS:
            raise ValueError(f"Unsupported filter op: {self.op}")


@dataclass(frozen=True)
class AnyOf:
    """Disjunction of filters."""
    filters: Sequence["FilterLike"] = field(default_factory=tuple)


FilterLike = Union[Filter, AnyOf]


@dataclass
class SelectResult:
    rows: List[Dict[str, Any]]
    total: Optional[int] = None


LIKE_ESCAPE = "\\"


def escape_like(text: str) -> str:
    """Make LIKE wildcards in user input match literally."""
    return (
        text.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


def _column(table: Table, name: str):
    if name not in table.c:
        raise RowStoreError(f"Unknown column '{name}' on table '{table.name}'")
    return table.c[name]


def build_clause(table: Table, flt: FilterLike):
    """Translate a filter into a SQLAlchemy boolean expression."""
    if isinstance(flt, AnyOf):
        return or_(*(build_clause(table, f) for f in flt.filters))

    col = _column(table, flt.column)
    op, value = flt.op, flt.value
    if op == "eq":
        return col == value
    if op == "neq":
        return col != value
    if op == "in":
        return col.in_(list(value))
    if op == "not_in":
        return col.not_in(list(value))
    if op == "gt":
        return col > value
    if op == "gte":
        return col >= value
    if op == "lt":
        return col < value
    if op == "lte":
        return col <= value
    if op == "is_null":
        return col.is_(None) if value in (None, True) else col.is_not(None)
    # ilike
    return col.ilike(value, escape=LIKE_ESCAPE)


def _where(table: Table, filters: Iterable[FilterLike]):
    clauses = [build_clause(table, f) for f in filters]
    return and_(*clauses) if clauses else None


# =====================================================
# Row store
# =====================================================

class RowStore:
    """
    Async row store over the alerts/blocked_ips tables.

    Every call opens its own session; write calls commit before returning.
    All database failures surface as ``RowStoreError``.
    """

    def __init__(self, session_factory: async_sessionmaker, engine: Optional[AsyncEngine] = None):
        self._session_factory = session_factory
        self._engine = engine

    @classmethod
    def from_url(cls, database_url: str) -> "RowStore":
        engine = create_async_engine(
            database_url,
            echo=False,
            pool_size=10,
            max_overflow=20,
        )
        session_factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        return cls(session_factory, engine)

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()

    def _table(self, name: str) -> Table:
        try:
            return TABLES[name]
        except KeyError:
            raise RowStoreError(f"Unknown table '{name}'") from None

    async def insert(self, table: str, values: Dict[str, Any]) -> Dict[str, Any]:
        """Insert one row and return it as stored."""
        t = self._table(table)
        stmt = insert(t).values(**values).returning(*t.c)
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                row = dict(result.mappings().one())
                await session.commit()
                return row
        except SQLAlchemyError as e:
            logger.error(f"Insert into {table} failed: {e}")
            raise RowStoreError(str(e)) from e

    async def update(
        self,
        table: str,
        values: Dict[str, Any],
        filters: Sequence[FilterLike],
    ) -> List[Dict[str, Any]]:
        """Update matching rows and return them."""
        t = self._table(table)
        stmt = update(t).values(**values).returning(*t.c)
        where = _where(t, filters)
        if where is not None:
            stmt = stmt.where(where)
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                rows = [dict(r) for r in result.mappings().all()]
                await session.commit()
                return rows
        except SQLAlchemyError as e:
            logger.error(f"Update of {table} failed: {e}")
            raise RowStoreError(str(e)) from e

    async def delete(self, table: str, filters: Sequence[FilterLike]) -> List[Dict[str, Any]]:
        """Delete matching rows and return them. Refuses an unfiltered delete."""
        t = self._table(table)
        where = _where(t, filters)
        if where is None:
            raise RowStoreError("Refusing to delete without a filter")
        stmt = delete(t).where(where).returning(*t.c)
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                rows = [dict(r) for r in result.mappings().all()]
                await session.commit()
                return rows
        except SQLAlchemyError as e:
            logger.error(f"Delete from {table} failed: {e}")
            raise RowStoreError(str(e)) from e

    async def select(
        self,
        table: str,
        filters: Sequence[FilterLike] = (),
        order_by: Optional[str] = None,
        descending: bool = True,
        offset: int = 0,
        limit: Optional[int] = None,
        columns: Optional[Sequence[str]] = None,
        with_count: bool = False,
    ) -> SelectResult:
        """
        Select rows with optional ordering and pagination.
        With ``with_count`` the total number of matching rows (ignoring
        offset/limit) is returned alongside.
        """
        t = self._table(table)
        cols = [_column(t, c) for c in columns] if columns else list(t.c)
        where = _where(t, filters)

        stmt = select(*cols)
        if where is not None:
            stmt = stmt.where(where)
        if order_by:
            col = _column(t, order_by)
            stmt = stmt.order_by(col.desc() if descending else col.asc())
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)

        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                rows = [dict(r) for r in result.mappings().all()]
                total = None
                if with_count:
                    count_stmt = select(func.count()).select_from(t)
                    if where is not None:
                        count_stmt = count_stmt.where(where)
                    total = (await session.execute(count_stmt)).scalar() or 0
                return SelectResult(rows=rows, total=total)
        except SQLAlchemyError as e:
            logger.error(f"Select from {table} failed: {e}")
            raise RowStoreError(str(e)) from e

    async def count(self, table: str, filters: Sequence[FilterLike] = ()) -> int:
        """Count matching rows."""
        t = self._table(table)
        stmt = select(func.count()).select_from(t)
        where = _where(t, filters)
        if where is not None:
            stmt = stmt.where(where)
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return result.scalar() or 0
        except SQLAlchemyError as e:
            logger.error(f"Count on {table} failed: {e}")
            raise RowStoreError(str(e)) from e

