from __future__ import annotations

"""SQLAlchemy async repository implementations.

Usage
-----

- Create an async engine with ``create_engine``.
- Create tables with ``create_all`` (for tests/dev).
- Create a session factory with ``create_sessionmaker``.
- Build repository instances with ``build_sql_repos``.

Transaction model
-----------------

Each repository method opens an ``AsyncSession``, performs its operation, and
commits. Appends check for an existing row first and treat a unique
constraint violation from a concurrent writer the same way: the existing row
wins and the method returns False.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ..economics.budget_state import EconomicAuditRecord
from ..ledger.execution import ExecutionRecord, get_execution_ledger
from ..stewardship.models import StewardshipLogEntry
from ..stewardship.state_machine import get_stewardship_ledger
from .interfaces import EconomicAuditRepository, LedgerRepository
from .models import Base, EconomicAuditRow, LedgerEntryRow

logger = logging.getLogger(__name__)

EXECUTION_KIND = "execution"
STEWARDSHIP_KIND = "stewardship"


def create_engine(db_url: str) -> AsyncEngine:
    """Create an async SQLAlchemy engine.

    Postgres URLs are rewritten to use the asyncpg driver; other URLs (for
    example ``sqlite+aiosqlite://``) are used as given.
    """
    url = re.sub(r"^postgres(?:ql)?(?:\+[a-z0-9_]+)?://", "postgresql+asyncpg://", db_url, count=1)
    if url.startswith("postgresql+asyncpg://"):
        return create_async_engine(url, pool_pre_ping=True)
    return create_async_engine(url)


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


async def create_all(engine: AsyncEngine) -> None:
    """Create all tables for the current ORM metadata."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def _add_unless_exists(session_factory: async_sessionmaker[AsyncSession], row: object, exists_stmt) -> bool:
    async with session_factory() as s:
        if (await s.execute(exists_stmt)).first() is not None:
            return False
        s.add(row)
        try:
            await s.commit()
        except IntegrityError:
            await s.rollback()
            logger.debug("Concurrent insert lost for %s", type(row).__name__)
            return False
    return True


@dataclass(frozen=True)
class SqlLedgerRepository(LedgerRepository):
    """SQL implementation of ``LedgerRepository`` (append-only)."""

    session_factory: async_sessionmaker[AsyncSession]

    def _exists(self, identity_key: str, kind: str, entry_id: str):
        return select(LedgerEntryRow.id).where(
            LedgerEntryRow.identity_key == identity_key,
            LedgerEntryRow.kind == kind,
            LedgerEntryRow.entry_id == entry_id,
        )

    async def _payloads(self, identity_key: str, kind: str) -> list[dict]:
        async with self.session_factory() as s:
            stmt = select(LedgerEntryRow).where(
                LedgerEntryRow.identity_key == identity_key, LedgerEntryRow.kind == kind
            )
            rows = (await s.execute(stmt)).scalars().all()
        return [row.payload for row in rows]

    async def append_execution(self, identity_key: str, record: ExecutionRecord) -> bool:
        row = LedgerEntryRow(
            identity_key=identity_key,
            kind=EXECUTION_KIND,
            entry_id=record.record_id,
            created_at=record.created_at,
            payload=record.model_dump(mode="json"),
        )
        return await _add_unless_exists(
            self.session_factory, row, self._exists(identity_key, EXECUTION_KIND, record.record_id)
        )

    async def list_execution(self, identity_key: str) -> list[ExecutionRecord]:
        payloads = await self._payloads(identity_key, EXECUTION_KIND)
        return get_execution_ledger(ExecutionRecord.model_validate(p) for p in payloads)

    async def append_stewardship(self, identity_key: str, entry: StewardshipLogEntry) -> bool:
        row = LedgerEntryRow(
            identity_key=identity_key,
            kind=STEWARDSHIP_KIND,
            entry_id=entry.entry_id,
            created_at=entry.created_at,
            payload=entry.model_dump(mode="json"),
        )
        return await _add_unless_exists(
            self.session_factory, row, self._exists(identity_key, STEWARDSHIP_KIND, entry.entry_id)
        )

    async def list_stewardship(self, identity_key: str) -> list[StewardshipLogEntry]:
        payloads = await self._payloads(identity_key, STEWARDSHIP_KIND)
        return get_stewardship_ledger(StewardshipLogEntry.model_validate(p) for p in payloads)


@dataclass(frozen=True)
class SqlEconomicAuditRepository(EconomicAuditRepository):
    """SQL implementation of ``EconomicAuditRepository``."""

    session_factory: async_sessionmaker[AsyncSession]

    async def record(self, audit: EconomicAuditRecord) -> bool:
        row = EconomicAuditRow(
            audit_id=audit.audit_id,
            identity_key=audit.identity_key,
            charge_id=audit.charge_id,
            decision=audit.decision.value,
            reason=audit.reason,
            cost_units=audit.cost_units,
            created_at=audit.created_at,
            payload=audit.model_dump(mode="json"),
        )
        exists = select(EconomicAuditRow.audit_id).where(
            EconomicAuditRow.identity_key == audit.identity_key,
            EconomicAuditRow.charge_id == audit.charge_id,
        )
        return await _add_unless_exists(self.session_factory, row, exists)

    async def find_by_charge(self, identity_key: str, charge_id: str) -> Optional[EconomicAuditRecord]:
        async with self.session_factory() as s:
            stmt = select(EconomicAuditRow).where(
                EconomicAuditRow.identity_key == identity_key,
                EconomicAuditRow.charge_id == charge_id,
            )
            row = (await s.execute(stmt)).scalars().first()
        return EconomicAuditRecord.model_validate(row.payload) if row else None

    async def list(self, identity_key: str) -> list[EconomicAuditRecord]:
        async with self.session_factory() as s:
            stmt = (
                select(EconomicAuditRow)
                .where(EconomicAuditRow.identity_key == identity_key)
                .order_by(EconomicAuditRow.created_at.asc())
            )
            rows = (await s.execute(stmt)).scalars().all()
        return [EconomicAuditRecord.model_validate(row.payload) for row in rows]


@dataclass(frozen=True)
class SqlRepoBundle:
    """Convenience bundle of the SQL repositories for dependency injection."""

    ledger: SqlLedgerRepository
    audits: SqlEconomicAuditRepository


def build_sql_repos(*, session_factory: async_sessionmaker[AsyncSession]) -> SqlRepoBundle:
    """Build a ``SqlRepoBundle`` from a session factory."""
    return SqlRepoBundle(
        ledger=SqlLedgerRepository(session_factory=session_factory),
        audits=SqlEconomicAuditRepository(session_factory=session_factory),
    )
