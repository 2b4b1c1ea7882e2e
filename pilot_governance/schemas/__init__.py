"""Shared schemas for the governance core.

``BaseSchema``/``FrozenSchema`` configure pydantic behaviour for every model;
``domain`` holds the data model consumed by all gates.
"""

from .base import BaseSchema, FrozenSchema
from .domain import (
    ActionImpact,
    ActionSpec,
    AgentRuntimeContext,
    ApprovalGate,
    CostCategory,
    CostSource,
    ExecutionScope,
    Initiator,
    IrreversibilityEvidence,
    PermissionTier,
    RiskLevel,
    TaskClass,
    impact_at_least,
    normalize_impact,
    tier_at_least,
)

__all__ = [
    "BaseSchema",
    "FrozenSchema",
    "ActionImpact",
    "ActionSpec",
    "AgentRuntimeContext",
    "ApprovalGate",
    "CostCategory",
    "CostSource",
    "ExecutionScope",
    "Initiator",
    "IrreversibilityEvidence",
    "PermissionTier",
    "RiskLevel",
    "TaskClass",
    "impact_at_least",
    "normalize_impact",
    "tier_at_least",
]
