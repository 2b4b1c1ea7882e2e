"""Safety budget tracking and the per-action safety gate."""

from .budget import BudgetLimits, BudgetState, BudgetTracker, exceeded_limit
from .gate import SafetyDecision, evaluate_safety_gate

__all__ = [
    "BudgetLimits",
    "BudgetState",
    "BudgetTracker",
    "exceeded_limit",
    "SafetyDecision",
    "evaluate_safety_gate",
]
