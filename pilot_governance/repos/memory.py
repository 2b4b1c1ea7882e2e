"""In-memory repository implementations, mainly for tests and single-process use."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional

from ..economics.budget_state import EconomicAuditRecord
from ..ledger.execution import ExecutionRecord, get_execution_ledger
from ..stewardship.models import StewardshipLogEntry
from ..stewardship.state_machine import get_stewardship_ledger


@dataclass
class InMemoryLedgerRepository:
    _execution: Dict[str, Dict[str, ExecutionRecord]] = field(default_factory=dict)
    _stewardship: Dict[str, Dict[str, StewardshipLogEntry]] = field(default_factory=dict)

    async def append_execution(self, identity_key: str, record: ExecutionRecord) -> bool:
        records = self._execution.setdefault(identity_key, {})
        if record.record_id in records:
            return False
        records[record.record_id] = record
        return True

    async def list_execution(self, identity_key: str) -> list[ExecutionRecord]:
        return get_execution_ledger(self._execution.get(identity_key, {}).values())

    async def append_stewardship(self, identity_key: str, entry: StewardshipLogEntry) -> bool:
        entries = self._stewardship.setdefault(identity_key, {})
        if entry.entry_id in entries:
            return False
        entries[entry.entry_id] = entry
        return True

    async def list_stewardship(self, identity_key: str) -> list[StewardshipLogEntry]:
        return get_stewardship_ledger(self._stewardship.get(identity_key, {}).values())


@dataclass
class InMemoryEconomicAuditRepository:
    _audits: Dict[str, Dict[str, EconomicAuditRecord]] = field(default_factory=dict)

    async def record(self, audit: EconomicAuditRecord) -> bool:
        audits = self._audits.setdefault(audit.identity_key, {})
        if audit.charge_id in audits:
            return False
        audits[audit.charge_id] = audit
        return True

    async def find_by_charge(self, identity_key: str, charge_id: str) -> Optional[EconomicAuditRecord]:
        return self._audits.get(identity_key, {}).get(charge_id)

    async def list(self, identity_key: str) -> list[EconomicAuditRecord]:
        return sorted(self._audits.get(identity_key, {}).values(), key=lambda a: a.created_at)


@dataclass(frozen=True)
class InMemoryRepoBundle:
    ledger: InMemoryLedgerRepository
    audits: InMemoryEconomicAuditRepository


def build_memory_repos() -> InMemoryRepoBundle:
    return InMemoryRepoBundle(ledger=InMemoryLedgerRepository(), audits=InMemoryEconomicAuditRepository())
