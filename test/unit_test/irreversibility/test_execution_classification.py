from __future__ import annotations

import pytest

from pilot_governance.irreversibility import (
    IRREVERSIBILITY_MAP,
    DecisionStatus,
    ReleaseGate,
    TerminalOutcome,
    evaluate_execution_decision,
    find_forbidden_targets,
    get_release_gate,
    get_required_impact,
)
from pilot_governance.schemas import ActionImpact, ExecutionScope

APPROVED_IRREVERSIBLE = {
    "action_key": "data_delete",
    "action_impact": "irreversible",
    "invariants_passed": True,
    "human_approval": True,
    "rationale": "retention period elapsed",
    "cooling_off_window": "24h",
    "drift_score": 0.95,
}


def _decide(**fields):
    data = {"action_key": "note", "action_impact": "reversible", "invariants_passed": True}
    data.update(fields)
    return evaluate_execution_decision(data)


def test_reversible_local_action_is_allowed_at_gate_a() -> None:
    decision = _decide()
    assert decision.status == DecisionStatus.allow
    assert decision.gate == ReleaseGate.gate_a
    assert decision.allow_auto_execute is True
    assert decision.terminal_outcome == TerminalOutcome.executed
    assert decision.reasons == ()


def test_missing_impact_and_unattested_invariants_are_held() -> None:
    decision = evaluate_execution_decision({"action_key": "note"})
    assert decision.status == DecisionStatus.safe_hold
    assert decision.terminal_outcome == TerminalOutcome.halted
    assert {"missing_action_impact", "invariants_failed", "constitution_check_failed"} <= set(decision.reasons)


def test_unknown_impact_string_counts_as_missing() -> None:
    assert "missing_action_impact" in _decide(action_impact="catastrophic").reasons


def test_understated_impact_is_misclassified() -> None:
    decision = _decide(action_key="data_delete", action_impact="reversible")
    assert "impact_misclassified" in decision.reasons
    assert decision.required_impact == ActionImpact.irreversible


def test_overstated_impact_is_not_misclassified() -> None:
    decision = _decide(action_key="billing_migration", action_impact="irreversible")
    assert "impact_misclassified" not in decision.reasons


def test_difficult_alias_needs_evidence_or_staged_rollout() -> None:
    held = _decide(action_impact="difficult")
    assert held.action_impact == ActionImpact.difficult_to_reverse
    assert held.reasons == ("evidence_or_staged_rollout_required",)

    assert _decide(action_impact="difficult", staged_rollout=True).allowed is True
    assert _decide(action_impact="difficult", evidence=["dry run diff"]).allowed is True
    assert _decide(action_impact="difficult", evidence=["   "]).allowed is False


def test_cross_pod_reversible_action_needs_extra_checks() -> None:
    held = _decide(scope="cross_pod")
    assert held.gate == ReleaseGate.gate_b
    assert held.reasons == ("cross_pod_extra_checks_required",)
    assert _decide(scope="cross_pod", staged_rollout=True).allowed is True


def test_fully_evidenced_irreversible_action_is_allowed_but_never_auto_executed() -> None:
    decision = evaluate_execution_decision(APPROVED_IRREVERSIBLE)
    assert decision.allowed is True
    assert decision.gate == ReleaseGate.gate_c
    assert decision.allow_auto_execute is False


def test_irreversible_lockout_lists_every_missing_precondition() -> None:
    decision = _decide(action_key="data_delete", action_impact="irreversible")
    assert decision.status == DecisionStatus.safe_hold
    assert set(decision.reasons) == {
        "human_approval_required",
        "rationale_required",
        "cooling_off_window_required",
        "drift_score_missing",
    }


@pytest.mark.parametrize(
    "overrides,reason",
    [
        ({"drift_score": 0.5}, "drift_score_below_threshold"),
        ({"mock_mode": True}, "mock_mode_irreversible_blocked"),
        ({"auto_execute_requested": True}, "auto_execute_forbidden_for_irreversible"),
        ({"scope": "cross_pod", "time_delay_elapsed": False}, "time_delay_not_elapsed"),
        ({"declared_optimization_targets": ["Maximize engagement!"]}, "forbidden_optimization_target"),
        ({"constitution_passed": False}, "constitution_check_failed"),
    ],
)
def test_irreversible_preconditions(overrides: dict, reason: str) -> None:
    decision = evaluate_execution_decision({**APPROVED_IRREVERSIBLE, **overrides})
    assert decision.allowed is False
    assert reason in decision.reasons


def test_cross_pod_irreversible_action_after_time_delay_is_allowed() -> None:
    decision = evaluate_execution_decision(
        {**APPROVED_IRREVERSIBLE, "scope": "cross_pod", "time_delay": "72h", "time_delay_elapsed": True}
    )
    assert decision.allowed is True
    assert decision.gate == ReleaseGate.gate_c


def test_drift_threshold_is_configurable() -> None:
    decision = evaluate_execution_decision({**APPROVED_IRREVERSIBLE, "drift_score": 0.5, "drift_score_threshold": 0.4})
    assert decision.allowed is True


def test_irreversibility_map_override() -> None:
    decision = _decide(action_key="note", irreversibility_map={"note": "irreversible"})
    assert "impact_misclassified" in decision.reasons
    assert get_required_impact("data_delete", {}) is None


@pytest.mark.parametrize(
    "scope,impact,gate",
    [
        (ExecutionScope.local_pod, ActionImpact.reversible, ReleaseGate.gate_a),
        (ExecutionScope.local_pod, ActionImpact.difficult_to_reverse, ReleaseGate.gate_a),
        (ExecutionScope.cross_pod, ActionImpact.reversible, ReleaseGate.gate_b),
        (ExecutionScope.system, ActionImpact.difficult_to_reverse, ReleaseGate.gate_b),
        (ExecutionScope.local_pod, ActionImpact.irreversible, ReleaseGate.gate_c),
        ("unknown-scope", ActionImpact.reversible, ReleaseGate.gate_a),
    ],
)
def test_release_gate(scope, impact, gate) -> None:
    assert get_release_gate(scope, impact) == gate


def test_built_in_map_covers_points_of_no_return() -> None:
    assert IRREVERSIBILITY_MAP["pod_merge"] == ActionImpact.irreversible
    assert get_required_impact(" billing_migration ") == ActionImpact.difficult_to_reverse
    assert get_required_impact(None) is None


def test_forbidden_targets_match_normalised_substrings() -> None:
    assert find_forbidden_targets(["We should centralize power quickly", "growth", 42]) == [
        "We should centralize power quickly"
    ]
    assert find_forbidden_targets(["Single-owner capture"]) == ["Single-owner capture"]
