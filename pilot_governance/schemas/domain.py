from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import Field, field_validator

from .base import BaseSchema, FrozenSchema


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    """Return a short random identifier such as ``tool-3f2a9c01b7d4``."""
    return f"{prefix}-{uuid4().hex[:12]}"


class PermissionTier(str, Enum):
    draft = "draft"
    suggest = "suggest"
    execute = "execute"


_TIER_ORDER = {PermissionTier.draft: 0, PermissionTier.suggest: 1, PermissionTier.execute: 2}


def tier_at_least(tier: PermissionTier, minimum: PermissionTier) -> bool:
    """Check if permission tier ``tier`` is greater than or equal to ``minimum``."""
    return _TIER_ORDER[tier] >= _TIER_ORDER[minimum]


class ActionImpact(str, Enum):
    reversible = "reversible"
    difficult_to_reverse = "difficult_to_reverse"
    irreversible = "irreversible"


_IMPACT_ALIASES = {
    "reversible": ActionImpact.reversible,
    "difficult": ActionImpact.difficult_to_reverse,
    "difficult_to_reverse": ActionImpact.difficult_to_reverse,
    "irreversible": ActionImpact.irreversible,
}

_IMPACT_ORDER = {
    ActionImpact.reversible: 0,
    ActionImpact.difficult_to_reverse: 1,
    ActionImpact.irreversible: 2,
}


def normalize_impact(value: Any) -> Optional[ActionImpact]:
    """
    Coerce an impact value into ``ActionImpact``.

    Accepts enum members and strings in any casing, including the short alias
    ``difficult``. Returns ``None`` for anything unrecognised.
    """
    if isinstance(value, ActionImpact):
        return value
    if not isinstance(value, str):
        return None
    return _IMPACT_ALIASES.get(value.strip().lower())


def impact_at_least(declared: ActionImpact, required: ActionImpact) -> bool:
    return _IMPACT_ORDER[declared] >= _IMPACT_ORDER[required]


class RiskLevel(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


class TaskClass(str, Enum):
    routine = "routine"
    novel = "novel"
    high_risk = "high_risk"


class CostCategory(str, Enum):
    compute = "compute"
    io = "io"
    reasoning = "reasoning"
    human_attention = "human_attention"
    risk = "risk"


class CostSource(str, Enum):
    action = "action"
    tool = "tool"
    context = "context"


class Initiator(str, Enum):
    agent = "agent"
    human = "human"
    system = "system"


class ExecutionScope(str, Enum):
    local_pod = "local_pod"
    cross_pod = "cross_pod"
    system = "system"


def _coerce_impact(value: Any) -> Any:
    if value is None:
        return None
    normalized = normalize_impact(value)
    return normalized if normalized is not None else value


class ApprovalGate(FrozenSchema):
    """Human approval attached to a proposed action."""

    approved: bool = False
    approver_id: Optional[str] = None
    approver_role: Optional[str] = None
    approved_at: Optional[datetime] = None


class ActionSpec(FrozenSchema):
    """
    A proposed unit of work.

    The irreversibility level is a 0-4 scale: 0-1 reversible, 2 difficult to
    reverse, 3-4 irreversible.
    """

    action_id: str = Field(default_factory=lambda: new_id("act"))
    action_type: str
    parameters: Dict[str, Any] = Field(default_factory=dict)
    irreversibility_level: int = Field(default=0, ge=0, le=4)
    requires_confirmation: bool = False
    cooldown_seconds: float = Field(default=0.0, ge=0.0)
    risk_level: RiskLevel = RiskLevel.low
    cost_units: Optional[int] = Field(default=None, ge=0)
    cost_category: Optional[CostCategory] = None

    @property
    def impact(self) -> ActionImpact:
        if self.irreversibility_level >= 3:
            return ActionImpact.irreversible
        if self.irreversibility_level == 2:
            return ActionImpact.difficult_to_reverse
        return ActionImpact.reversible

    @property
    def irreversible(self) -> bool:
        return self.impact == ActionImpact.irreversible

    @property
    def requires_human_approval(self) -> bool:
        return self.requires_confirmation or self.irreversible


class IrreversibilityEvidence(FrozenSchema):
    """
    Evidence supplied with an action so the irreversibility gate can classify it.

    ``invariants_passed`` and ``constitution_passed`` are caller attestations;
    they default to ``True`` here because the gateway runs the constitution
    checks it owns (forbidden optimisation targets) itself.
    """

    action_key: Optional[str] = None
    scope: ExecutionScope = ExecutionScope.local_pod
    human_approval: bool = False
    actor_role: Optional[str] = None
    rationale: str = ""
    cooling_off_window: str = ""
    time_delay: str = ""
    time_delay_elapsed: bool = False
    drift_score: Optional[float] = None
    auto_execute_requested: bool = False
    evidence: List[str] = Field(default_factory=list)
    staged_rollout: bool = False
    invariants_passed: bool = True
    constitution_passed: bool = True
    declared_optimization_targets: List[str] = Field(default_factory=list)
    intent_id: Optional[str] = None


class AgentRuntimeContext(FrozenSchema):
    """
    Per-decision context describing who wants to do what.

    Constructed fresh for every governance decision and never mutated: gates
    that enrich the context (for example with cost attribution) return a copy.
    """

    agent_id: str
    action_domain: str = ""
    decision_type: str = ""
    permission_tier: PermissionTier = PermissionTier.suggest
    impact: Optional[ActionImpact] = None

    tool: Optional[str] = None
    goal_id: Optional[str] = None
    task_id: Optional[str] = None
    task_description: Optional[str] = None
    task_type: Optional[str] = None
    task_class: Optional[TaskClass] = None

    estimated_cost_cents: int = Field(default=0, ge=0)
    estimated_tokens: int = Field(default=0, ge=0)
    side_effect_count: int = Field(default=0, ge=0)
    novelty_score: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    exploration_mode: bool = False

    approval: Optional[ApprovalGate] = None

    cost_units: Optional[int] = Field(default=None, ge=0)
    cost_category: Optional[CostCategory] = None
    cost_charge_id: Optional[str] = None
    cost_source: Optional[CostSource] = None

    irreversibility: Optional[IrreversibilityEvidence] = None

    @field_validator("impact", mode="before")
    @classmethod
    def _normalize_impact(cls, value: Any) -> Any:
        return _coerce_impact(value)

    @property
    def resolved_impact(self) -> ActionImpact:
        return self.impact or ActionImpact.reversible
