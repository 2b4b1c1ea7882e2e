"""Irreversibility classification, release gates and the constitution."""

from .classification import (
    IRREVERSIBILITY_MAP,
    IRREVERSIBILITY_POINTS,
    evaluate_execution_decision,
    get_required_impact,
)
from .constitution import (
    CONSTITUTION,
    REQUIRED_INVARIANTS,
    Constitution,
    Invariant,
    find_forbidden_targets,
    forbidden_targets,
    invariant_ids,
)
from .models import (
    DecisionStatus,
    ExecutionDecision,
    ExecutionDecisionInput,
    IrreversibilityPoint,
    ReleaseGate,
    TerminalOutcome,
    get_release_gate,
    normalize_scope,
)

__all__ = [
    "IRREVERSIBILITY_MAP",
    "IRREVERSIBILITY_POINTS",
    "evaluate_execution_decision",
    "get_required_impact",
    "CONSTITUTION",
    "REQUIRED_INVARIANTS",
    "Constitution",
    "Invariant",
    "find_forbidden_targets",
    "forbidden_targets",
    "invariant_ids",
    "DecisionStatus",
    "ExecutionDecision",
    "ExecutionDecisionInput",
    "IrreversibilityPoint",
    "ReleaseGate",
    "TerminalOutcome",
    "get_release_gate",
    "normalize_scope",
]
