"""Repository interfaces plus in-memory and SQL implementations for governance state.

The gateway keeps identity-scoped state in process. Persistence is the
caller's choice: ``export_identity_state`` writes one identity's ledgers and
economic audits through a repository bundle, and ``load_identity_state``
restores them, clocks included, into a fresh gateway.
"""

from .interfaces import EconomicAuditRepository, LedgerRepository
from .memory import (
    InMemoryEconomicAuditRepository,
    InMemoryLedgerRepository,
    InMemoryRepoBundle,
    build_memory_repos,
)
from .sync import ExportSummary, LoadSummary, export_identity_state, load_economic_audits, load_identity_state

__all__ = [
    "EconomicAuditRepository",
    "LedgerRepository",
    "InMemoryEconomicAuditRepository",
    "InMemoryLedgerRepository",
    "InMemoryRepoBundle",
    "build_memory_repos",
    "ExportSummary",
    "export_identity_state",
    "LoadSummary",
    "load_economic_audits",
    "load_identity_state",
]
