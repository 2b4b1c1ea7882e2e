from __future__ import annotations

"""SQLAlchemy ORM models for governance persistence.

These ORM models define the SQL schema used by ``pilot_governance.repos.sql``.

Design
------

- Ledger entries (execution records and stewardship log entries) share one
  append-only table, discriminated by ``kind``. The full entry is kept in
  ``payload``; ``created_at`` holds the logical clock stamp as written.
- Economic audits are unique per (identity, charge id).

Table names are prefixed with ``pg_`` to avoid collisions in shared databases.
"""

from datetime import datetime
from typing import Any, Dict

from sqlalchemy import JSON, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

JSONPayload = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


class LedgerEntryRow(Base):
    """Row model for ``pg_ledger_entries``.

    Append-only. ``kind`` is ``execution`` or ``stewardship``.
    """

    __tablename__ = "pg_ledger_entries"
    __table_args__ = (UniqueConstraint("identity_key", "kind", "entry_id", name="uq_pg_ledger_entry"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    identity_key: Mapped[str] = mapped_column(String(256), index=True)
    kind: Mapped[str] = mapped_column(String(32))
    entry_id: Mapped[str] = mapped_column(String(128))
    created_at: Mapped[str] = mapped_column(String(64))
    payload: Mapped[Dict[str, Any]] = mapped_column(JSONPayload, default=dict)


class EconomicAuditRow(Base):
    """Row model for ``pg_economic_audits``."""

    __tablename__ = "pg_economic_audits"
    __table_args__ = (UniqueConstraint("identity_key", "charge_id", name="uq_pg_economic_audit_charge"),)

    audit_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    identity_key: Mapped[str] = mapped_column(String(256), index=True)
    charge_id: Mapped[str] = mapped_column(String(256))
    decision: Mapped[str] = mapped_column(String(16))
    reason: Mapped[str] = mapped_column(String(128))
    cost_units: Mapped[int] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    payload: Mapped[Dict[str, Any]] = mapped_column(JSONPayload, default=dict)
