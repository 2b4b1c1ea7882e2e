"""Aggregate decision and policy-change outcome models returned by the gateway."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import Field

from ..economics.gate import EconomicGateDecision
from ..evaluation.models import EvaluationSummary, RegressionGuard
from ..irreversibility.models import ExecutionDecision
from ..ledger.decisions import DecisionLogEntry
from ..ledger.execution import ExecutionRecord
from ..ledger.governance import GovernanceDecisionRecord
from ..safety.gate import SafetyDecision
from ..schemas.base import FrozenSchema
from ..schemas.domain import AgentRuntimeContext
from ..stewardship.models import StewardshipGuardDecision

GOVERNANCE_OK = "governance_ok"
GOVERNANCE_CONTEXT_REQUIRED = "governance_context_required"
POLICY_ADOPTED = "policy_adopted"


class GovernanceStage(str, Enum):
    context = "context"
    safety = "safety"
    economic = "economic"
    irreversibility = "irreversibility"
    stewardship = "stewardship"
    complete = "complete"


class GovernanceDetails(FrozenSchema):
    """Per-gate outcomes; a gate that never ran is None."""

    safety: Optional[SafetyDecision] = None
    economic: Optional[EconomicGateDecision] = None
    execution: Optional[ExecutionDecision] = None
    stewardship_guard: Optional[StewardshipGuardDecision] = None


class GovernanceDecision(FrozenSchema):
    """
    Result of ``GovernanceGateway.enforce_runtime_governance``.

    ``allowed=False`` is final for the call. ``stage`` names the gate that
    refused, and ``reasons`` lists every reason that gate produced.
    """

    allowed: bool
    reason: str
    stage: GovernanceStage
    requires_human_review: bool = False
    reasons: tuple[str, ...] = ()
    details: GovernanceDetails = Field(default_factory=GovernanceDetails)
    context: Optional[AgentRuntimeContext] = None
    decision_entry: Optional[DecisionLogEntry] = None
    execution_record: Optional[ExecutionRecord] = None


class PolicyChangeOutcome(FrozenSchema):
    adopted: bool
    reason: str
    policy_version: str
    guard: Optional[RegressionGuard] = None
    baseline: Optional[EvaluationSummary] = None
    candidate: Optional[EvaluationSummary] = None
    governance_record: Optional[GovernanceDecisionRecord] = None
