"""Rolling economic budget and the economic audit trail.

Each identity has a window budget that refills every ``window_seconds`` and a
session budget that never refills until the state is reset. The store also
keeps one audit record per (identity, charge id); the first record written
for a charge id is the one every replay returns.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional

from pydantic import Field

from ..policy.models import EconomicPolicy
from ..schemas.base import FrozenSchema
from ..schemas.domain import CostCategory, CostSource, new_id, utc_now

logger = logging.getLogger(__name__)

ECONOMIC_BUDGET_OK = "economic_budget_ok"
ECONOMIC_BUDGET_EXCEEDED = "economic_budget_exceeded"
ECONOMIC_SESSION_BUDGET_EXCEEDED = "economic_session_budget_exceeded"


class EconomicDecision(str, Enum):
    allowed = "allowed"
    blocked = "blocked"


class EconomicBudgetState(FrozenSchema):
    identity_key: str
    window_limit: int
    session_limit: int
    window_seconds: float
    window_started_at: datetime
    window_used: int = 0
    session_used: int = 0

    @property
    def remaining_budget(self) -> int:
        return max(0, self.window_limit - self.window_used)

    @property
    def session_remaining(self) -> int:
        return max(0, self.session_limit - self.session_used)

    def rolled(self, now: datetime) -> "EconomicBudgetState":
        """Start a new window if the current one has ended."""
        if now - self.window_started_at < timedelta(seconds=self.window_seconds):
            return self
        return self.model_copy(update={"window_started_at": now, "window_used": 0})


class EconomicAuditRecord(FrozenSchema):
    audit_id: str = Field(default_factory=lambda: new_id("econ"))
    identity_key: str
    role_id: Optional[str] = None
    action_id: Optional[str] = None
    task_id: Optional[str] = None
    task_type: Optional[str] = None
    tool: Optional[str] = None
    cost_units: int
    cost_category: CostCategory
    cost_source: CostSource
    charge_id: str
    decision: EconomicDecision
    reason: str
    remaining_budget: int
    session_remaining: int
    created_at: datetime = Field(default_factory=utc_now)


class BudgetConsumption(FrozenSchema):
    allowed: bool
    reason: str
    budget: EconomicBudgetState


class EconomicStateStore:
    """
    Thread-safe per-identity economic state.

    ``transaction`` holds the store lock for a whole find/consume/record
    sequence so one charge id can never be spent twice.
    """

    def __init__(self, policy: Optional[EconomicPolicy] = None) -> None:
        self._policy = policy or EconomicPolicy()
        self._lock = threading.RLock()
        self._budgets: Dict[str, EconomicBudgetState] = {}
        self._audits: Dict[str, Dict[str, EconomicAuditRecord]] = {}

    @property
    def policy(self) -> EconomicPolicy:
        return self._policy

    def set_policy(self, policy: EconomicPolicy) -> None:
        """Apply new limits; usage counters are kept."""
        with self._lock:
            self._policy = policy
            self._budgets = {
                key: state.model_copy(
                    update={
                        "window_limit": policy.window_limit,
                        "session_limit": policy.session_limit,
                        "window_seconds": policy.window_seconds,
                    }
                )
                for key, state in self._budgets.items()
            }

    @contextmanager
    def transaction(self) -> Iterator["EconomicStateStore"]:
        with self._lock:
            yield self

    def ensure(self, identity_key: str, now: Optional[datetime] = None) -> EconomicBudgetState:
        now = now or utc_now()
        with self._lock:
            state = self._budgets.get(identity_key)
            if state is None:
                state = EconomicBudgetState(
                    identity_key=identity_key,
                    window_limit=self._policy.window_limit,
                    session_limit=self._policy.session_limit,
                    window_seconds=self._policy.window_seconds,
                    window_started_at=now,
                )
            state = state.rolled(now)
            self._budgets[identity_key] = state
            return state

    def consume(self, identity_key: str, units: int, now: Optional[datetime] = None) -> BudgetConsumption:
        """Deduct ``units`` only if both the window and the session have headroom."""
        units = max(0, int(units))
        with self._lock:
            state = self.ensure(identity_key, now)
            if units > state.remaining_budget:
                return BudgetConsumption(allowed=False, reason=ECONOMIC_BUDGET_EXCEEDED, budget=state)
            if units > state.session_remaining:
                return BudgetConsumption(allowed=False, reason=ECONOMIC_SESSION_BUDGET_EXCEEDED, budget=state)
            state = state.model_copy(
                update={"window_used": state.window_used + units, "session_used": state.session_used + units}
            )
            self._budgets[identity_key] = state
            return BudgetConsumption(allowed=True, reason=ECONOMIC_BUDGET_OK, budget=state)

    def find_by_charge(self, identity_key: str, charge_id: str) -> Optional[EconomicAuditRecord]:
        with self._lock:
            return self._audits.get(identity_key, {}).get(charge_id)

    def record(self, audit: EconomicAuditRecord) -> EconomicAuditRecord:
        """Store ``audit`` unless its charge id already has a record; return the stored one."""
        with self._lock:
            per_identity = self._audits.setdefault(audit.identity_key, {})
            existing = per_identity.get(audit.charge_id)
            if existing is not None:
                return existing
            per_identity[audit.charge_id] = audit
            return audit

    def audits(self, identity_key: str) -> List[EconomicAuditRecord]:
        with self._lock:
            return sorted(self._audits.get(identity_key, {}).values(), key=lambda a: a.created_at)

    def seed(self, audits: Iterable[EconomicAuditRecord]) -> int:
        """Load previously persisted audit records; returns how many were new."""
        added = 0
        for audit in audits:
            if self.record(audit) is audit:
                added += 1
        if added:
            logger.debug("Seeded %d economic audit record(s)", added)
        return added

    def reset(self, identity_key: str) -> None:
        with self._lock:
            self._budgets.pop(identity_key, None)
