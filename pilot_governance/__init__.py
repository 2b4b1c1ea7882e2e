"""Agent-action governance pipeline.

Decides, for every autonomous action or tool invocation an agent wants to
perform, whether it may run now, needs human approval, or is blocked, and
records the outcome in append-only, logically-clocked ledgers.

Start with ``GovernanceGateway`` (or ``build_gateway_from_settings``).
"""

from .errors import GovernanceError, LedgerValidationError, PolicyConfigurationError, ToolGuardError
from .gateway import (
    AgentProfile,
    AgentRegistry,
    GovernanceDecision,
    GovernanceGateway,
    RolePolicyRegistry,
    build_gateway_from_settings,
)
from .policy import GovernancePolicy
from .schemas import ActionImpact, AgentRuntimeContext, ApprovalGate, Initiator, PermissionTier
from .tooling import ToolCall, ToolDefinition, ToolRegistry, ToolResult, create_governed_tool

__all__ = [
    "GovernanceError",
    "LedgerValidationError",
    "PolicyConfigurationError",
    "ToolGuardError",
    "AgentProfile",
    "AgentRegistry",
    "GovernanceDecision",
    "GovernanceGateway",
    "RolePolicyRegistry",
    "build_gateway_from_settings",
    "GovernancePolicy",
    "ActionImpact",
    "AgentRuntimeContext",
    "ApprovalGate",
    "Initiator",
    "PermissionTier",
    "ToolCall",
    "ToolDefinition",
    "ToolRegistry",
    "ToolResult",
    "create_governed_tool",
]
