from __future__ import annotations

"""Repository interface contracts.

The gateway keeps identity-scoped state in process; these Protocols are the
boundary through which that state is persisted and reloaded.

Contract guidelines
-------------------

- All methods are async.
- Appends are idempotent by id: appending an entry that already exists is a
  no-op that returns False.
- Ledger listings come back in logical-clock order, the same order
  ``get_execution_ledger`` / ``get_stewardship_ledger`` produce.
- For economic audits the first record per (identity, charge id) wins, so a
  replayed charge always finds the original decision.
"""

from typing import Optional, Protocol

from ..economics.budget_state import EconomicAuditRecord
from ..ledger.execution import ExecutionRecord
from ..stewardship.models import StewardshipLogEntry


class LedgerRepository(Protocol):
    """Persist and query the append-only execution and stewardship ledgers."""

    async def append_execution(self, identity_key: str, record: ExecutionRecord) -> bool:
        """
        Append an execution record.

        Args:
            identity_key: The identity whose ledger receives the record.
            record: The record to persist.

        Returns:
            True if stored, False if a record with the same id already exists.
        """
        ...

    async def list_execution(self, identity_key: str) -> list[ExecutionRecord]:
        """List an identity's execution records in logical-clock order."""
        ...

    async def append_stewardship(self, identity_key: str, entry: StewardshipLogEntry) -> bool:
        """
        Append a stewardship log entry.

        Returns:
            True if stored, False if an entry with the same id already exists.
        """
        ...

    async def list_stewardship(self, identity_key: str) -> list[StewardshipLogEntry]:
        ...


class EconomicAuditRepository(Protocol):
    """Persist economic audit records keyed by (identity, charge id)."""

    async def record(self, audit: EconomicAuditRecord) -> bool:
        """
        Store an audit record unless one exists for its charge id.

        Returns:
            True if stored, False if the charge id was already recorded.
        """
        ...

    async def find_by_charge(self, identity_key: str, charge_id: str) -> Optional[EconomicAuditRecord]:
        ...

    async def list(self, identity_key: str) -> list[EconomicAuditRecord]:
        """List an identity's audit records, oldest first."""
        ...
