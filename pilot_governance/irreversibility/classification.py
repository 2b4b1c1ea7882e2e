"""Execution classification for potentially irreversible actions.

``evaluate_execution_decision`` never raises: every failed precondition adds a
reason code, and the action is allowed only when the reason list is empty.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Union

from ..schemas.domain import ActionImpact, ExecutionScope, impact_at_least, normalize_impact
from .constitution import find_forbidden_targets
from .models import (
    DecisionStatus,
    ExecutionDecision,
    ExecutionDecisionInput,
    FallbackBehavior,
    IrreversibilityPoint,
    IrreversibilityScope,
    ReleaseGate,
    RequiredApproval,
    Reversibility,
    TerminalOutcome,
    get_release_gate,
)

logger = logging.getLogger(__name__)

IRREVERSIBILITY_MAP: Dict[str, ActionImpact] = {
    "data_delete": ActionImpact.irreversible,
    "policy_override": ActionImpact.irreversible,
    "billing_migration": ActionImpact.difficult_to_reverse,
    "asset_ownership_transfer": ActionImpact.irreversible,
    "pod_merge": ActionImpact.irreversible,
    "pod_split": ActionImpact.irreversible,
    "governance_rule_change": ActionImpact.irreversible,
    "data_permanence_promotion": ActionImpact.irreversible,
    "automation_escalation": ActionImpact.irreversible,
}

IRREVERSIBILITY_POINTS: tuple[IrreversibilityPoint, ...] = (
    IrreversibilityPoint(
        point_id="asset_ownership_transfer",
        description="Transfer ownership of assets or equity.",
        affected_scope=IrreversibilityScope.ecosystem,
        reversibility=Reversibility.none,
        required_approvals=RequiredApproval.multi_human,
        fallback_behavior=FallbackBehavior.freeze,
    ),
    IrreversibilityPoint(
        point_id="pod_merge_split",
        description="Merge or split pods, changing shared responsibility boundaries.",
        affected_scope=IrreversibilityScope.pod,
        reversibility=Reversibility.partial,
        required_approvals=RequiredApproval.governance,
        fallback_behavior=FallbackBehavior.safe_hold,
    ),
    IrreversibilityPoint(
        point_id="governance_rule_change",
        description="Change governance rules or approval requirements.",
        affected_scope=IrreversibilityScope.ecosystem,
        reversibility=Reversibility.delayed,
        required_approvals=RequiredApproval.governance,
        fallback_behavior=FallbackBehavior.safe_hold,
    ),
    IrreversibilityPoint(
        point_id="data_permanence_promotion",
        description="Promote data to append-only permanence.",
        affected_scope=IrreversibilityScope.ecosystem,
        reversibility=Reversibility.delayed,
        required_approvals=RequiredApproval.time_lock,
        fallback_behavior=FallbackBehavior.safe_hold,
    ),
    IrreversibilityPoint(
        point_id="automation_escalation",
        description="Escalate automation to replace human roles or approvals.",
        affected_scope=IrreversibilityScope.ecosystem,
        reversibility=Reversibility.none,
        required_approvals=RequiredApproval.multi_human,
        fallback_behavior=FallbackBehavior.safe_hold,
    ),
)


def get_required_impact(
    action_key: Optional[str],
    irreversibility_map: Optional[Mapping[str, Any]] = None,
) -> Optional[ActionImpact]:
    """Look up the minimum impact an action key must be declared with."""
    if not action_key or not isinstance(action_key, str):
        return None
    table = irreversibility_map if irreversibility_map is not None else IRREVERSIBILITY_MAP
    return normalize_impact(table.get(action_key.strip()))


def evaluate_execution_decision(
    decision_input: Union[ExecutionDecisionInput, Mapping[str, Any]],
) -> ExecutionDecision:
    """
    Classify an action and decide whether it may execute.

    Args:
        decision_input: The action and the evidence gathered for it.

    Returns:
        An ``ExecutionDecision``; ``SAFE_HOLD`` whenever any reason applies.
    """
    data = (
        decision_input
        if isinstance(decision_input, ExecutionDecisionInput)
        else ExecutionDecisionInput.model_validate(dict(decision_input))
    )
    action_key = data.action_key.strip()
    impact: Optional[ActionImpact] = data.action_impact
    constitution_passed = data.invariants_passed if data.constitution_passed is None else data.constitution_passed
    evidence = [item for item in data.evidence if isinstance(item, str) and item.strip()]
    rationale = data.rationale.strip()
    cooling_off = data.cooling_off_window.strip()
    time_delay = data.time_delay.strip()

    reasons: List[str] = []
    if impact is None:
        reasons.append("missing_action_impact")
    if not data.invariants_passed:
        reasons.append("invariants_failed")
    if not constitution_passed:
        reasons.append("constitution_check_failed")
    if find_forbidden_targets(data.declared_optimization_targets):
        reasons.append("forbidden_optimization_target")

    required = get_required_impact(action_key, data.irreversibility_map) if action_key else None
    if required is not None and impact is not None and not impact_at_least(impact, required):
        reasons.append("impact_misclassified")

    gate = get_release_gate(data.scope, impact) if impact is not None else ReleaseGate.gate_a

    if impact == ActionImpact.difficult_to_reverse and not data.staged_rollout and not evidence:
        reasons.append("evidence_or_staged_rollout_required")

    if impact == ActionImpact.reversible and gate == ReleaseGate.gate_b and not data.staged_rollout and not evidence:
        reasons.append("cross_pod_extra_checks_required")

    if impact == ActionImpact.irreversible:
        if data.mock_mode:
            reasons.append("mock_mode_irreversible_blocked")
        if data.auto_execute_requested:
            reasons.append("auto_execute_forbidden_for_irreversible")
        if not data.human_approval:
            reasons.append("human_approval_required")
        if not rationale:
            reasons.append("rationale_required")
        if not cooling_off:
            reasons.append("cooling_off_window_required")
        if data.scope != ExecutionScope.local_pod:
            if not time_delay and not cooling_off:
                reasons.append("time_delay_required")
            elif not data.time_delay_elapsed:
                reasons.append("time_delay_not_elapsed")
        if data.drift_score is None:
            reasons.append("drift_score_missing")
        elif data.drift_score < data.drift_score_threshold:
            reasons.append("drift_score_below_threshold")

    status = DecisionStatus.safe_hold if reasons else DecisionStatus.allow
    if reasons:
        logger.info("Execution of %r held: %s", action_key or "<unknown>", ", ".join(reasons))
    else:
        logger.debug("Execution of %r allowed at %s", action_key, gate.value)
    return ExecutionDecision(
        status=status,
        gate=gate,
        action_impact=impact,
        required_impact=required,
        allow_auto_execute=status == DecisionStatus.allow and impact != ActionImpact.irreversible,
        reasons=tuple(reasons),
        terminal_outcome=TerminalOutcome.executed if status == DecisionStatus.allow else TerminalOutcome.halted,
    )
