"""Move a gateway's identity-scoped state to and from repositories.

A gateway that restarts must call ``load_identity_state`` for an identity
before appending anything for it, so its ledger clocks continue where the
stored ledgers end and new record ids never collide with persisted ones.
"""

from __future__ import annotations

import logging
from typing import Protocol

from ..economics.budget_state import EconomicStateStore
from ..errors import LedgerValidationError
from ..gateway.gateway import GovernanceGateway
from ..schemas.base import FrozenSchema
from .interfaces import EconomicAuditRepository, LedgerRepository

logger = logging.getLogger(__name__)


class RepoBundle(Protocol):
    ledger: LedgerRepository
    audits: EconomicAuditRepository


class ExportSummary(FrozenSchema):
    identity_key: str
    execution_records: int = 0
    stewardship_entries: int = 0
    economic_audits: int = 0


class LoadSummary(ExportSummary):
    """Counts of persisted entries that were new to the gateway."""


async def export_identity_state(gateway: GovernanceGateway, identity_key: str, repos: RepoBundle) -> ExportSummary:
    """
    Persist one identity's ledgers and economic audits.

    Safe to call repeatedly: entries already stored are skipped, so the
    counts report only what this call wrote.

    Raises:
        LedgerValidationError: A stored ledger entry has the same id as a
            different in-memory one, which happens when a restarted gateway
            appended before ``load_identity_state``.
    """
    stored_records = {r.record_id: r for r in await repos.ledger.list_execution(identity_key)}
    execution = 0
    for record in gateway.execution_ledger(identity_key):
        stored = stored_records.get(record.record_id)
        if stored is not None and stored != record:
            raise LedgerValidationError(
                f"execution record {record.record_id} is already stored with different content", field="record_id"
            )
        if await repos.ledger.append_execution(identity_key, record):
            execution += 1

    stored_entries = {e.entry_id: e for e in await repos.ledger.list_stewardship(identity_key)}
    stewardship = 0
    for entry in gateway.stewardship_ledger(identity_key):
        stored_entry = stored_entries.get(entry.entry_id)
        if stored_entry is not None and stored_entry != entry:
            raise LedgerValidationError(
                f"stewardship entry {entry.entry_id} is already stored with different content", field="entry_id"
            )
        if await repos.ledger.append_stewardship(identity_key, entry):
            stewardship += 1

    audits = 0
    for audit in gateway.economic_audits(identity_key):
        if await repos.audits.record(audit):
            audits += 1

    summary = ExportSummary(
        identity_key=identity_key,
        execution_records=execution,
        stewardship_entries=stewardship,
        economic_audits=audits,
    )
    logger.info(
        "Exported %s: %d execution record(s), %d stewardship entries, %d audit(s)",
        identity_key,
        execution,
        stewardship,
        audits,
    )
    return summary


async def load_economic_audits(store: EconomicStateStore, identity_key: str, repos: RepoBundle) -> int:
    """Seed ``store`` with persisted audits so replays survive a restart; returns how many were new."""
    return store.seed(await repos.audits.list(identity_key))


async def load_identity_state(gateway: GovernanceGateway, identity_key: str, repos: RepoBundle) -> LoadSummary:
    """
    Restore one identity's ledgers, ledger clocks and economic audits into ``gateway``.

    Loading twice is harmless; the counts report only entries that were new.

    Raises:
        LedgerValidationError: A stored entry conflicts with one the gateway
            already appended under the same id.
    """
    execution, stewardship = gateway.restore_identity_ledgers(
        identity_key,
        await repos.ledger.list_execution(identity_key),
        await repos.ledger.list_stewardship(identity_key),
    )
    audits = await load_economic_audits(gateway.economic_store, identity_key, repos)
    logger.info(
        "Loaded %s: %d execution record(s), %d stewardship entries, %d audit(s)",
        identity_key,
        execution,
        stewardship,
        audits,
    )
    return LoadSummary(
        identity_key=identity_key,
        execution_records=execution,
        stewardship_entries=stewardship,
        economic_audits=audits,
    )
