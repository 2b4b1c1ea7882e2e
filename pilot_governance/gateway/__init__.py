"""Governance gateway and its injected registries."""

from .gateway import TOOL_NOT_REGISTERED, GovernanceGateway, build_gateway_from_settings
from .models import (
    GOVERNANCE_CONTEXT_REQUIRED,
    GOVERNANCE_OK,
    POLICY_ADOPTED,
    GovernanceDecision,
    GovernanceDetails,
    GovernanceStage,
    PolicyChangeOutcome,
)
from .registry import AgentProfile, AgentRegistry, RolePolicyRegistry

__all__ = [
    "TOOL_NOT_REGISTERED",
    "GovernanceGateway",
    "build_gateway_from_settings",
    "GOVERNANCE_CONTEXT_REQUIRED",
    "GOVERNANCE_OK",
    "POLICY_ADOPTED",
    "GovernanceDecision",
    "GovernanceDetails",
    "GovernanceStage",
    "PolicyChangeOutcome",
    "AgentProfile",
    "AgentRegistry",
    "RolePolicyRegistry",
]
