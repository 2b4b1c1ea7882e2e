"""Evaluation / regression harness.

Runs the scenario battery against a ``GovernancePolicy`` and compares runs.
``check_regression_guard`` is what lets the gateway veto a policy change that
makes any previously passing scenario fail or lowers the pass rate.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, ValidationError

from ..cache.models import evaluate_cache_policy
from ..economics.budget_state import EconomicStateStore
from ..economics.gate import enforce_economic_gate
from ..irreversibility.classification import evaluate_execution_decision
from ..irreversibility.models import ExecutionDecisionInput
from ..ledger.clock import parse_logical_time
from ..ledger.execution import EXECUTION_CLOCK_PREFIX, append_execution_record, get_execution_ledger
from ..policy.models import EconomicPolicy, GovernancePolicy, RolePolicy
from ..safety.budget import BudgetLimits, BudgetTracker
from ..safety.gate import evaluate_safety_gate
from ..schemas.domain import (
    ActionImpact,
    AgentRuntimeContext,
    ApprovalGate,
    CostCategory,
    Initiator,
    PermissionTier,
    TaskClass,
    utc_now,
)
from ..tooling.adaptation import ToolUsageStore, recommend_tool
from ..tooling.definition import create_governed_tool
from ..tooling.models import FailureType, ToolCall, ToolStatus, ToolUsageEvent
from ..tooling.runtime import GovernanceEnforcer, ToolInvokeContext, invoke_tool
from .memory import MemoryRecord, MemoryScope, MemoryStore
from .models import (
    EvaluationCoverage,
    EvaluationDiff,
    EvaluationDomain,
    EvaluationPriority,
    EvaluationResult,
    EvaluationRun,
    EvaluationSummary,
    EvaluationTask,
    EvaluationTaskType,
    FailureClass,
    FailureDebtPolicy,
    FailureDebtReport,
    RegressionGuard,
    TaskRotationIssue,
    TaskRotationReport,
    TaskStatus,
    empty_failure_class_counts,
)
from .tasks import CONTRACTS, EVALUATION_TASKS, FIXED_NOW

logger = logging.getLogger(__name__)

EVALUATION_AGENT_ID = "agent:evaluation"
EVALUATION_ROLE_ID = "evaluation"
EVALUATION_IDENTITY = "eval:system"


class _EchoInput(BaseModel):
    model_config = ConfigDict(extra="forbid", strict=True)

    name: str


class _EchoOutput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    ok: bool


def _fixed_now() -> datetime:
    return datetime.fromisoformat(FIXED_NOW)


def _evaluation_registries() -> tuple[Any, Any]:
    # Imported here: the gateway package imports this module.
    from ..gateway.registry import AgentProfile, AgentRegistry, RolePolicyRegistry

    agents = AgentRegistry()
    agents.register(AgentProfile(agent_id=EVALUATION_AGENT_ID, role=EVALUATION_ROLE_ID))
    role_policies = RolePolicyRegistry(
        defaults=[
            RolePolicy(
                role_id=EVALUATION_ROLE_ID,
                allowed_cost_categories={CostCategory.io, CostCategory.compute},
            )
        ]
    )
    return agents, role_policies


def _result(task: EvaluationTask, passed: bool, mismatch: str, **artifacts: Any) -> EvaluationResult:
    return EvaluationResult(task_id=task.task_id, passed=passed, details="ok" if passed else mismatch, artifacts=artifacts)


def _run_safety_gate(task: EvaluationTask, policy: GovernancePolicy) -> EvaluationResult:
    data = task.input
    decision = evaluate_safety_gate(
        permission_tier=PermissionTier(data["permission_tier"]),
        impact=ActionImpact(data["impact"]),
        estimated_cost_cents=data["estimated_cost_cents"],
        estimated_tokens=data["estimated_tokens"],
        side_effect_count=data["side_effect_count"],
        budget=BudgetTracker(BudgetLimits(**data["limits"]), scope="evaluation"),
        approval=ApprovalGate(**data["approval"]) if data.get("approval") else None,
        require_approval_for_irreversible=policy.safety.require_approval_for_irreversible,
    )
    expected = task.expected
    passed = decision.allowed == expected["allowed"] and decision.required_approval == expected["required_approval"]
    return _result(task, passed, "safety_gate_mismatch", decision=decision.model_dump(mode="json"))


def _run_memory_scope(task: EvaluationTask, policy: GovernancePolicy) -> EvaluationResult:
    store = MemoryStore()
    store.write(
        MemoryRecord(
            subject="tenant-specific knowledge",
            data={"note": "scoped"},
            confidence=0.8,
            scope=MemoryScope(**task.input["record_scope"]),
            created_at=_fixed_now(),
            tags=("scope",),
        ),
        permission_tier=PermissionTier.execute,
        verified=True,
    )
    results = store.retrieve(MemoryScope(**task.input["query_scope"]), now=_fixed_now())
    passed = len(results) == task.expected["count"]
    return _result(task, passed, "memory_scope_mismatch", results_count=len(results))


async def _run_tool_validation(
    task: EvaluationTask,
    policy: GovernancePolicy,
    enforce_governance: Optional[GovernanceEnforcer],
) -> EvaluationResult:
    agents, _ = _evaluation_registries()
    tool = create_governed_tool(
        name="echo",
        input_schema=_EchoInput,
        output_schema=_EchoOutput,
        impact=ActionImpact.reversible,
        permission_tiers=[PermissionTier.suggest, PermissionTier.execute],
        handler=lambda payload, ctx: {"ok": True},
    )
    call = ToolCall(
        request_id="req-1",
        tool="echo",
        permission_tier=PermissionTier.suggest,
        input=task.input["invalid_input"],
        cost_units=1,
        cost_category=CostCategory.compute,
        impact=ActionImpact.reversible,
    )
    agent_context = AgentRuntimeContext(
        agent_id=EVALUATION_AGENT_ID,
        action_domain="system",
        decision_type="tool_validation",
        tool="echo",
        task_id="task-tool-validation",
        task_description="Evaluate tool schema validation behavior.",
        task_type="tool:echo",
        task_class=TaskClass.routine,
        estimated_cost_cents=1,
        exploration_mode=True,
        permission_tier=PermissionTier.suggest,
        impact=ActionImpact.reversible,
    )
    result = await invoke_tool(
        tool,
        call,
        ToolInvokeContext(
            identity_key=EVALUATION_IDENTITY,
            agent_context=agent_context,
            budget=BudgetTracker(BudgetLimits(max_cost_cents=10, max_tokens=100, max_side_effects=0)),
            agents=agents,
            initiator=Initiator.system,
            enforce_governance=enforce_governance,
            timeout_seconds=policy.tool_timeout_seconds,
        ),
    )
    failure_type = result.failure.type.value if result.failure else None
    passed = failure_type == task.expected["failure_type"]
    return _result(task, passed, "tool_validation_mismatch", failure_type=failure_type)


def _run_tool_adaptation(task: EvaluationTask, policy: GovernancePolicy) -> EvaluationResult:
    store = ToolUsageStore()
    for _ in range(task.input["failure_count"]):
        store.record(
            ToolUsageEvent(
                tool="tool-a",
                status=ToolStatus.failure,
                failure_type=FailureType(task.input["failure_type"]),
                latency_ms=12,
                timestamp=_fixed_now(),
            )
        )
    recommendation = recommend_tool("tool-a", store)
    passed = recommendation.status.value == task.expected["status"]
    return _result(task, passed, "tool_adaptation_mismatch", recommendation=recommendation.model_dump(mode="json"))


def _run_contract_validation(task: EvaluationTask, policy: GovernancePolicy) -> EvaluationResult:
    contract = CONTRACTS.get(task.input["contract"])
    valid = False
    if contract is not None:
        try:
            contract.model_validate(task.input["payload"])
            valid = True
        except ValidationError:
            valid = False
    passed = valid == task.expected["valid"]
    return _result(task, passed, "contract_validation_mismatch", contract=task.input["contract"], success=valid)


def _run_economic_idempotency(task: EvaluationTask, policy: GovernancePolicy) -> EvaluationResult:
    agents, role_policies = _evaluation_registries()
    window_limit = task.input["window_limit"]
    store = EconomicStateStore(
        EconomicPolicy(
            window_limit=window_limit,
            session_limit=max(window_limit, policy.economics.session_limit),
            window_seconds=policy.economics.window_seconds,
        )
    )
    context = AgentRuntimeContext(
        agent_id=EVALUATION_AGENT_ID,
        action_domain="system",
        decision_type="send_message",
        task_id="task-economic-idempotency",
        cost_units=task.input["cost_units"],
        cost_category=CostCategory(task.input["cost_category"]),
        cost_charge_id="eval:charge-1",
    )
    decisions = [
        enforce_economic_gate(
            EVALUATION_IDENTITY,
            context,
            Initiator.system,
            store=store,
            agents=agents,
            role_policies=role_policies,
            now=_fixed_now(),
        )
        for _ in range(task.input["attempts"])
    ]
    used = store.ensure(EVALUATION_IDENTITY, _fixed_now()).window_used
    passed = all(d.allowed == task.expected["allowed"] for d in decisions) and used == task.expected["window_used"]
    return _result(task, passed, "economic_idempotency_mismatch", window_used=used)


def _run_execution_lockout(task: EvaluationTask, policy: GovernancePolicy) -> EvaluationResult:
    rules = policy.irreversibility
    decision = evaluate_execution_decision(
        ExecutionDecisionInput(
            **task.input,
            drift_score_threshold=rules.drift_score_threshold,
            mock_mode=rules.mock_mode,
            irreversibility_map=rules.irreversibility_map,
        )
    )
    passed = decision.status.value == task.expected["status"]
    return _result(task, passed, "execution_lockout_mismatch", reasons=list(decision.reasons))


def _run_cache_eligibility(task: EvaluationTask, policy: GovernancePolicy) -> EvaluationResult:
    decision = evaluate_cache_policy(policy.cache, **task.input)
    passed = decision.allowed == task.expected["allowed"]
    return _result(task, passed, "cache_eligibility_mismatch", reason=decision.reason)


def _run_ledger_monotonicity(task: EvaluationTask, policy: GovernancePolicy) -> EvaluationResult:
    state = None
    for idx, created_at in enumerate(task.input["created_at"]):
        appended = append_execution_record(
            state,
            {
                "action_key": f"eval-action-{idx}",
                "intent_id": "intent-eval",
                "action_impact": "reversible",
                "created_at": created_at,
            },
        )
        state = appended.state
    clocks = [parse_logical_time(r.created_at, EXECUTION_CLOCK_PREFIX) for r in get_execution_ledger(state.records)]
    increasing = all(c is not None for c in clocks) and all(a < b for a, b in zip(clocks, clocks[1:]))
    passed = increasing == task.expected["strictly_increasing"]
    return _result(task, passed, "ledger_monotonicity_mismatch", clocks=clocks)


_SYNC_RUNNERS = {
    EvaluationTaskType.safety_gate: _run_safety_gate,
    EvaluationTaskType.memory_scope: _run_memory_scope,
    EvaluationTaskType.tool_adaptation: _run_tool_adaptation,
    EvaluationTaskType.contract_validation: _run_contract_validation,
    EvaluationTaskType.economic_idempotency: _run_economic_idempotency,
    EvaluationTaskType.execution_lockout: _run_execution_lockout,
    EvaluationTaskType.cache_eligibility: _run_cache_eligibility,
    EvaluationTaskType.ledger_monotonicity: _run_ledger_monotonicity,
}


async def run_evaluation_task(
    task: Union[EvaluationTask, Mapping[str, Any]],
    policy: Optional[GovernancePolicy] = None,
    *,
    enforce_governance: Optional[GovernanceEnforcer] = None,
) -> EvaluationResult:
    """
    Run one scenario under ``policy``.

    A malformed task or a runner that raises yields a failed result rather
    than an exception.
    """
    if not isinstance(task, EvaluationTask):
        try:
            task = EvaluationTask.model_validate(dict(task))
        except ValidationError:
            task_id = task.get("task_id") if isinstance(task, Mapping) else None
            return EvaluationResult(task_id=str(task_id or "unknown"), passed=False, details="evaluation_task_schema_invalid")

    policy = policy or GovernancePolicy()
    try:
        if task.type == EvaluationTaskType.tool_validation:
            return await _run_tool_validation(task, policy, enforce_governance)
        return _SYNC_RUNNERS[task.type](task, policy)
    except Exception as exc:
        logger.exception("Evaluation task %s raised", task.task_id)
        return EvaluationResult(task_id=task.task_id, passed=False, details=f"evaluation_runner_error:{type(exc).__name__}")


def build_coverage_report(tasks: Iterable[EvaluationTask]) -> EvaluationCoverage:
    domains: Dict[EvaluationDomain, int] = {d: 0 for d in EvaluationDomain}
    failure_classes = empty_failure_class_counts()
    for task in tasks:
        domains[task.domain] += 1
        failure_classes[task.failure_class] += 1
    return EvaluationCoverage(domains=domains, failure_classes=failure_classes)


def _version_number(value: str) -> int:
    digits = "".join(ch if ch.isdigit() else " " for ch in value).split()
    return int(digits[0]) if digits else 0


def validate_task_rotation(tasks: Sequence[EvaluationTask]) -> TaskRotationReport:
    """Deprecated tasks must point at an active, newer replacement; ids must be unique."""
    issues: List[TaskRotationIssue] = []
    by_id = {task.task_id: task for task in tasks}
    seen: set[str] = set()
    for task in tasks:
        if task.task_id in seen:
            issues.append(TaskRotationIssue(task_id=task.task_id, issue="duplicate_task_id"))
        seen.add(task.task_id)
        if task.status != TaskStatus.deprecated:
            continue
        if not task.replaced_by:
            issues.append(TaskRotationIssue(task_id=task.task_id, issue="deprecated_without_replacement"))
            continue
        replacement = by_id.get(task.replaced_by)
        if replacement is None:
            issues.append(TaskRotationIssue(task_id=task.task_id, issue="replacement_missing"))
            continue
        if replacement.status != TaskStatus.active:
            issues.append(TaskRotationIssue(task_id=task.task_id, issue="replacement_not_active"))
        if _version_number(replacement.version) <= _version_number(task.version):
            issues.append(TaskRotationIssue(task_id=task.task_id, issue="replacement_version_not_newer"))
    return TaskRotationReport(ok=not issues, issues=tuple(issues))


async def run_evaluation_suite(
    tasks: Sequence[EvaluationTask] = EVALUATION_TASKS,
    policy: Optional[GovernancePolicy] = None,
    *,
    enforce_governance: Optional[GovernanceEnforcer] = None,
) -> EvaluationSummary:
    """Run every task in order and summarise the results."""
    policy = policy or GovernancePolicy()
    started_at = utc_now()
    results = [await run_evaluation_task(task, policy, enforce_governance=enforce_governance) for task in tasks]
    passed = sum(1 for r in results if r.passed)
    summary = EvaluationSummary(
        policy_version=policy.version,
        total=len(results),
        passed=passed,
        failed=len(results) - passed,
        pass_rate=passed / len(results) if results else 0.0,
        results=tuple(results),
        started_at=started_at,
        completed_at=utc_now(),
        coverage=build_coverage_report(tasks),
        rotation=validate_task_rotation(tasks),
    )
    logger.info("Evaluation suite %s: %d/%d passed (policy %s)", summary.run_id, passed, len(results), policy.version)
    return summary


class EvaluationLedger:
    """Append-only history of evaluation runs."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._history: List[EvaluationRun] = []

    def record(self, summary: EvaluationSummary) -> EvaluationRun:
        run = EvaluationRun(run_id=summary.run_id, summary=summary)
        with self._lock:
            self._history.append(run)
        return run

    def list(self) -> List[EvaluationRun]:
        with self._lock:
            return list(self._history)

    def latest(self) -> Optional[EvaluationRun]:
        with self._lock:
            return self._history[-1] if self._history else None


def compare_evaluation_runs(baseline: EvaluationSummary, current: EvaluationSummary) -> EvaluationDiff:
    before = {r.task_id: r.passed for r in baseline.results}
    after = {r.task_id: r.passed for r in current.results}
    improved: List[str] = []
    regressed: List[str] = []
    unchanged: List[str] = []
    for task_id in list(dict.fromkeys([*before, *after])):
        if task_id not in before or task_id not in after:
            unchanged.append(task_id)
        elif not before[task_id] and after[task_id]:
            improved.append(task_id)
        elif before[task_id] and not after[task_id]:
            regressed.append(task_id)
        else:
            unchanged.append(task_id)
    return EvaluationDiff(improved=tuple(improved), regressed=tuple(regressed), unchanged=tuple(unchanged))


def check_regression_guard(baseline: EvaluationSummary, current: EvaluationSummary) -> RegressionGuard:
    """Refuse when any task regressed, then when the pass rate dropped."""
    diff = compare_evaluation_runs(baseline, current)
    delta = current.pass_rate - baseline.pass_rate
    if diff.regressed:
        return RegressionGuard(allowed=False, reason="task_regression", pass_rate_delta=delta, diff=diff)
    if delta < 0:
        return RegressionGuard(allowed=False, reason="pass_rate_regression", pass_rate_delta=delta, diff=diff)
    return RegressionGuard(allowed=True, reason="no_regression", pass_rate_delta=delta, diff=diff)


def accumulate_failure_debt(
    tasks: Sequence[EvaluationTask],
    history: Sequence[EvaluationRun],
    policy: Optional[FailureDebtPolicy] = None,
) -> FailureDebtReport:
    policy = policy or FailureDebtPolicy()
    window = list(history)[-policy.window_runs :]
    priority = {t.task_id: t.priority for t in tasks}
    failure_class = {t.task_id: t.failure_class for t in tasks}

    by_task: Dict[str, int] = {}
    by_class = empty_failure_class_counts()
    for run in window:
        for result in run.summary.results:
            if result.passed:
                continue
            by_task[result.task_id] = by_task.get(result.task_id, 0) + 1
            by_class[failure_class.get(result.task_id, FailureClass.unknown)] += 1

    critical = tuple(t for t in by_task if priority.get(t) == EvaluationPriority.critical)
    total = sum(by_task.values())
    blocked = policy.block_on_critical_failures and bool(critical)
    escalated = total >= policy.escalation_failure_count
    reasons = []
    if blocked:
        reasons.append("critical_failures_block_autonomy")
    if escalated:
        reasons.append("failure_debt_escalation")
    return FailureDebtReport(
        total_failures=total,
        by_task=by_task,
        by_failure_class=by_class,
        critical_failures=critical,
        blocked=blocked,
        escalated=escalated,
        reasons=tuple(reasons),
    )
