"""Data model for execution classification.

Release gates are coarse authorization tiers:

- ``GATE_A``: reversible (or difficult) action confined to the local scope.
- ``GATE_B``: any non-irreversible action crossing scope boundaries.
- ``GATE_C``: any irreversible action.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator

from ..schemas.base import FrozenSchema
from ..schemas.domain import ActionImpact, ExecutionScope, normalize_impact


class ReleaseGate(str, Enum):
    gate_a = "GATE_A"
    gate_b = "GATE_B"
    gate_c = "GATE_C"


class DecisionStatus(str, Enum):
    allow = "ALLOW"
    safe_hold = "SAFE_HOLD"


class TerminalOutcome(str, Enum):
    executed = "executed"
    halted = "halted"


class IrreversibilityScope(str, Enum):
    user = "user"
    pod = "pod"
    ecosystem = "ecosystem"


class Reversibility(str, Enum):
    none = "none"
    partial = "partial"
    delayed = "delayed"


class RequiredApproval(str, Enum):
    human = "human"
    multi_human = "multi-human"
    governance = "governance"
    time_lock = "time-lock"


class FallbackBehavior(str, Enum):
    safe_hold = "SAFE_HOLD"
    rollback = "ROLLBACK"
    freeze = "FREEZE"


class IrreversibilityPoint(FrozenSchema):
    """Catalogue entry describing a known point of no return."""

    point_id: str
    description: str
    affected_scope: IrreversibilityScope
    reversibility: Reversibility
    required_approvals: RequiredApproval
    fallback_behavior: FallbackBehavior


def normalize_scope(scope: Any) -> ExecutionScope:
    """Coerce a scope value; anything unknown is treated as the local scope."""
    if isinstance(scope, ExecutionScope):
        return scope
    if isinstance(scope, str):
        try:
            return ExecutionScope(scope.strip())
        except ValueError:
            return ExecutionScope.local_pod
    return ExecutionScope.local_pod


def get_release_gate(scope: Any, impact: Optional[ActionImpact]) -> ReleaseGate:
    """Compute the release gate for an impact level and execution scope."""
    if impact == ActionImpact.irreversible:
        return ReleaseGate.gate_c
    if normalize_scope(scope) != ExecutionScope.local_pod:
        return ReleaseGate.gate_b
    return ReleaseGate.gate_a


class ExecutionDecisionInput(FrozenSchema):
    """
    Everything the execution classifier looks at.

    ``action_impact`` is kept loosely typed so a missing or unknown impact is
    reported as a reason instead of failing validation.
    """

    action_key: str = ""
    action_impact: Optional[Any] = None
    scope: ExecutionScope = ExecutionScope.local_pod
    invariants_passed: bool = False
    constitution_passed: Optional[bool] = None
    auto_execute_requested: bool = False
    evidence: List[str] = Field(default_factory=list)
    staged_rollout: bool = False
    human_approval: bool = False
    rationale: str = ""
    cooling_off_window: str = ""
    time_delay: str = ""
    time_delay_elapsed: bool = False
    drift_score: Optional[float] = None
    drift_score_threshold: float = 0.8
    mock_mode: bool = False
    declared_optimization_targets: List[str] = Field(default_factory=list)
    irreversibility_map: Optional[Dict[str, Any]] = None

    @field_validator("scope", mode="before")
    @classmethod
    def _normalize_scope(cls, value: Any) -> ExecutionScope:
        return normalize_scope(value)

    @field_validator("action_impact", mode="before")
    @classmethod
    def _normalize_action_impact(cls, value: Any) -> Optional[ActionImpact]:
        return normalize_impact(value)


class ExecutionDecision(FrozenSchema):
    """Outcome of ``evaluate_execution_decision``."""

    status: DecisionStatus
    gate: ReleaseGate
    action_impact: Optional[ActionImpact]
    required_impact: Optional[ActionImpact]
    allow_auto_execute: bool
    reasons: tuple[str, ...] = ()
    terminal_outcome: TerminalOutcome

    @property
    def allowed(self) -> bool:
        return self.status == DecisionStatus.allow
