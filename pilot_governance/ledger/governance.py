"""Governance decision ledger.

Records changes to governance itself (policy swaps, rule changes), not agent
actions. Decisions sharing a ``decision_key`` but disagreeing on intent or
justification are conflicts and put governance into SAFE_HOLD until a human
resolves them.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from pydantic import Field

from ..errors import LedgerValidationError
from ..irreversibility.constitution import find_forbidden_targets, invariant_ids
from ..schemas.base import BaseSchema, FrozenSchema
from ..schemas.domain import ExecutionScope
from . import clock

logger = logging.getLogger(__name__)

GOVERNANCE_CLOCK_PREFIX = "g"


class GovernanceInitiator(str, Enum):
    human = "human"
    pod = "pod"
    system = "system"


class GovernanceMode(str, Enum):
    clear = "CLEAR"
    safe_hold = "SAFE_HOLD"


class GovernanceDecisionRecord(FrozenSchema):
    governance_id: str
    scope: ExecutionScope
    initiator: GovernanceInitiator
    justification: str
    affected_invariants: tuple[str, ...] = ()
    requires_human_approval: bool = False
    intent_id: str
    pod_id: Optional[str] = None
    target_pod_ids: tuple[str, ...] = ()
    decision_key: str
    created_at: str
    payload: Dict[str, Any] = Field(default_factory=dict)


class GovernanceDecisionInput(BaseSchema):
    governance_id: Optional[str] = None
    created_at: Optional[str] = None
    scope: Optional[str] = None
    initiator: Optional[str] = None
    justification: Optional[str] = None
    affected_invariants: List[str] = Field(default_factory=list)
    requires_human_approval: bool = False
    intent_id: Optional[str] = None
    pod_id: Optional[str] = None
    target_pod_ids: List[str] = Field(default_factory=list)
    decision_key: Optional[str] = None
    declared_optimization_targets: List[str] = Field(default_factory=list)
    payload: Dict[str, Any] = Field(default_factory=dict)


class GovernanceLedgerState(FrozenSchema):
    decisions: tuple[GovernanceDecisionRecord, ...] = ()
    logical_clock: int = 0


class GovernanceAppendResult(FrozenSchema):
    state: GovernanceLedgerState
    decision: GovernanceDecisionRecord


class GovernanceConflict(FrozenSchema):
    decision_key: str
    governance_ids: tuple[str, ...]
    reasons: tuple[str, ...]


class GovernanceStateEvaluation(FrozenSchema):
    mode: GovernanceMode
    requires_human_approval: bool
    conflicts: tuple[GovernanceConflict, ...] = ()
    terminal_outcome: str


class ExecutionCheck(FrozenSchema):
    ok: bool
    reason: str


def _clean(values: Iterable[Any]) -> List[str]:
    return [v.strip() for v in values if isinstance(v, str) and v.strip()]


def _scope(value: Optional[str]) -> ExecutionScope:
    try:
        return ExecutionScope((value or "").strip())
    except ValueError:
        raise LedgerValidationError(f"Invalid governance scope: {value}", field="scope") from None


def _initiator(value: Optional[str]) -> GovernanceInitiator:
    try:
        return GovernanceInitiator((value or "").strip())
    except ValueError:
        raise LedgerValidationError(f"Invalid governance initiator: {value}", field="initiator") from None


def _invariants(values: Iterable[Any]) -> tuple[str, ...]:
    normalized = sorted(set(_clean(values)))
    known = set(invariant_ids())
    invalid = [i for i in normalized if i not in known]
    if invalid:
        raise LedgerValidationError(f"Unknown invariant id(s): {', '.join(invalid)}", field="affected_invariants")
    return tuple(normalized)


def append_governance_decision(
    state: Optional[GovernanceLedgerState],
    decision_input: Union[GovernanceDecisionInput, Mapping[str, Any]],
) -> GovernanceAppendResult:
    """
    Append a governance decision.

    Raises:
        LedgerValidationError: Missing intent or justification, unknown scope,
            initiator or invariant, a non-local decision without human
            approval, missing pod ids for the scope, or a forbidden
            optimisation target.
    """
    current = state or GovernanceLedgerState()
    data = (
        decision_input
        if isinstance(decision_input, GovernanceDecisionInput)
        else GovernanceDecisionInput.model_validate(dict(decision_input))
    )

    intent_id = (data.intent_id or "").strip()
    if not intent_id:
        raise LedgerValidationError("intent_id is required for governance decisions.", field="intent_id")
    justification = (data.justification or "").strip()
    if not justification:
        raise LedgerValidationError("justification is required for governance decisions.", field="justification")

    scope = _scope(data.scope)
    initiator = _initiator(data.initiator)
    if scope != ExecutionScope.local_pod and not data.requires_human_approval:
        raise LedgerValidationError(
            "requires_human_approval must be true when scope is not local_pod.", field="requires_human_approval"
        )

    pod_id = (data.pod_id or "").strip() or None
    target_pod_ids = tuple(_clean(data.target_pod_ids))
    if scope == ExecutionScope.local_pod and not pod_id:
        raise LedgerValidationError("pod_id is required for local_pod decisions.", field="pod_id")
    if scope == ExecutionScope.cross_pod and not target_pod_ids:
        raise LedgerValidationError("target_pod_ids is required for cross_pod decisions.", field="target_pod_ids")

    affected = _invariants(data.affected_invariants)
    forbidden = find_forbidden_targets(data.declared_optimization_targets)
    if forbidden:
        raise LedgerValidationError(
            f"Forbidden optimization target(s): {', '.join(forbidden)}", field="declared_optimization_targets"
        )

    next_clock, created_at = clock.stamp_entry(current.logical_clock, GOVERNANCE_CLOCK_PREFIX, data.created_at)
    governance_id = (data.governance_id or "").strip() or f"gov-{created_at}"
    decision = GovernanceDecisionRecord(
        governance_id=governance_id,
        scope=scope,
        initiator=initiator,
        justification=justification,
        affected_invariants=affected,
        requires_human_approval=data.requires_human_approval,
        intent_id=intent_id,
        pod_id=pod_id,
        target_pod_ids=target_pod_ids,
        decision_key=(data.decision_key or "").strip() or governance_id,
        created_at=created_at,
        payload=dict(data.payload),
    )
    logger.info("Governance decision %s recorded (scope=%s, initiator=%s)", governance_id, scope.value, initiator.value)
    return GovernanceAppendResult(
        state=GovernanceLedgerState(decisions=current.decisions + (decision,), logical_clock=next_clock),
        decision=decision,
    )


def can_execute_decision(
    decision: GovernanceDecisionRecord,
    *,
    approval_granted: bool = False,
    initiator: Optional[str] = None,
    pod_id: Optional[str] = None,
) -> ExecutionCheck:
    """Check whether an executor may carry out a recorded governance decision."""
    if decision.scope != ExecutionScope.local_pod:
        if not approval_granted:
            return ExecutionCheck(ok=False, reason="human_approval_required")
        executor = _initiator(initiator) if initiator else None
        if executor != GovernanceInitiator.human:
            return ExecutionCheck(ok=False, reason="human_executor_required")
        return ExecutionCheck(ok=True, reason="approved")
    executor_pod = (pod_id or "").strip() or None
    if decision.pod_id and executor_pod != decision.pod_id:
        return ExecutionCheck(ok=False, reason="pod_scope_mismatch")
    return ExecutionCheck(ok=True, reason="local_pod_scope")


def detect_governance_conflicts(decisions: Iterable[GovernanceDecisionRecord]) -> tuple[GovernanceConflict, ...]:
    groups: Dict[str, List[GovernanceDecisionRecord]] = {}
    for decision in decisions:
        groups.setdefault(decision.decision_key or decision.governance_id, []).append(decision)

    conflicts: List[GovernanceConflict] = []
    for key, members in groups.items():
        if len(members) < 2:
            continue
        reasons = []
        if len({m.intent_id for m in members}) > 1:
            reasons.append("intent_conflict")
        if len({m.justification for m in members}) > 1:
            reasons.append("justification_conflict")
        if reasons:
            conflicts.append(
                GovernanceConflict(
                    decision_key=key,
                    governance_ids=tuple(m.governance_id for m in members),
                    reasons=tuple(reasons),
                )
            )
    return tuple(conflicts)


def evaluate_governance_state(decisions: Iterable[GovernanceDecisionRecord]) -> GovernanceStateEvaluation:
    conflicts = detect_governance_conflicts(decisions)
    if conflicts:
        return GovernanceStateEvaluation(
            mode=GovernanceMode.safe_hold,
            requires_human_approval=True,
            conflicts=conflicts,
            terminal_outcome="halted",
        )
    return GovernanceStateEvaluation(mode=GovernanceMode.clear, requires_human_approval=False, terminal_outcome="executed")


def get_governance_ledger(decisions: Iterable[GovernanceDecisionRecord]) -> List[GovernanceDecisionRecord]:
    return clock.sort_by_logical_time(decisions, GOVERNANCE_CLOCK_PREFIX, key=lambda d: d.created_at)
