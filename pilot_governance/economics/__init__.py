"""Cost model, rolling economic budget and the economic gate."""

from .budget_state import (
    ECONOMIC_BUDGET_EXCEEDED,
    ECONOMIC_BUDGET_OK,
    ECONOMIC_SESSION_BUDGET_EXCEEDED,
    BudgetConsumption,
    EconomicAuditRecord,
    EconomicBudgetState,
    EconomicDecision,
    EconomicStateStore,
)
from .cost_model import (
    CostAttribution,
    derive_action_cost,
    derive_context_cost,
    derive_tool_call_cost,
    ensure_action_economics,
    ensure_context_economics,
    ensure_tool_call_economics,
)
from .gate import (
    ECONOMIC_CATEGORY_DENIED,
    ECONOMIC_ROLE_POLICY_MISSING,
    AgentDirectory,
    EconomicGateDecision,
    RolePolicySource,
    enforce_economic_gate,
    resolve_charge_id,
)

__all__ = [
    "ECONOMIC_BUDGET_EXCEEDED",
    "ECONOMIC_BUDGET_OK",
    "ECONOMIC_SESSION_BUDGET_EXCEEDED",
    "BudgetConsumption",
    "EconomicAuditRecord",
    "EconomicBudgetState",
    "EconomicDecision",
    "EconomicStateStore",
    "CostAttribution",
    "derive_action_cost",
    "derive_context_cost",
    "derive_tool_call_cost",
    "ensure_action_economics",
    "ensure_context_economics",
    "ensure_tool_call_economics",
    "ECONOMIC_CATEGORY_DENIED",
    "ECONOMIC_ROLE_POLICY_MISSING",
    "AgentDirectory",
    "EconomicGateDecision",
    "RolePolicySource",
    "enforce_economic_gate",
    "resolve_charge_id",
]
