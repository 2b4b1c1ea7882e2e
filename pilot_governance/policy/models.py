from __future__ import annotations

"""Governance policy configuration.

``GovernancePolicy`` is the root object the gateway runs under. It is swapped
as a whole by ``GovernanceGateway.propose_policy_change`` and only after the
regression harness has run every scenario against the candidate.
"""

from typing import Dict, List, Optional

from pydantic import Field

from ..cache.models import CachePolicy
from ..safety.budget import BudgetLimits
from ..schemas.base import BaseSchema
from ..schemas.domain import ActionImpact, CostCategory


class SafetyPolicy(BaseSchema):
    """
    Configuration for the safety gate.

    Holds the static budget limits every identity's tracker is created with.
    """

    limits: BudgetLimits = Field(default_factory=BudgetLimits)
    require_approval_for_irreversible: bool = True


class RolePolicy(BaseSchema):
    """Which cost categories an agent role may spend budget on."""

    role_id: str
    allowed_cost_categories: set[CostCategory] = Field(default_factory=set)


class EconomicPolicy(BaseSchema):
    """
    Configuration for the economic gate.

    Limits are in cost units. ``window_limit`` applies to a rolling window of
    ``window_seconds``; ``session_limit`` applies for the lifetime of the
    identity's budget state.
    """

    window_limit: int = Field(default=100, ge=0)
    session_limit: int = Field(default=1000, ge=0)
    window_seconds: float = Field(default=3600.0, gt=0.0)
    role_policies: List[RolePolicy] = Field(
        default_factory=list,
        description="Default role policies for identities that have none of their own.",
    )


class IrreversibilityPolicy(BaseSchema):
    """Configuration for execution classification."""

    drift_score_threshold: float = Field(default=0.8, ge=0.0)
    mock_mode: bool = False
    irreversibility_map: Optional[Dict[str, ActionImpact]] = Field(
        default=None,
        description="Overrides the built-in action key -> required impact table when set.",
    )


class StewardshipPolicy(BaseSchema):
    drift_warning_threshold: float = Field(default=80.0, ge=0.0)


class GovernancePolicy(BaseSchema):
    """
    Aggregate configuration for every gate.

    This is the root object used to instantiate a ``GovernanceGateway``.
    """

    version: str = Field(default="governance-v1")

    safety: SafetyPolicy = Field(default_factory=SafetyPolicy)
    economics: EconomicPolicy = Field(default_factory=EconomicPolicy)
    irreversibility: IrreversibilityPolicy = Field(default_factory=IrreversibilityPolicy)
    stewardship: StewardshipPolicy = Field(default_factory=StewardshipPolicy)
    cache: CachePolicy = Field(default_factory=CachePolicy)
    tool_timeout_seconds: float = Field(default=30.0, gt=0.0)
