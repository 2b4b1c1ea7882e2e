from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from pilot_governance.evaluation import (
    EVALUATION_TASKS,
    EvaluationDomain,
    EvaluationLedger,
    FailureClass,
    FailureDebtPolicy,
    MemoryRecord,
    MemoryScope,
    MemoryStore,
    TaskStatus,
    accumulate_failure_debt,
    build_coverage_report,
    check_regression_guard,
    compare_evaluation_runs,
    failed_task_ids,
    run_evaluation_suite,
    run_evaluation_task,
    validate_task_rotation,
)
from pilot_governance.policy import GovernancePolicy, SafetyPolicy
from pilot_governance.schemas import PermissionTier

SAFETY_TASK = EVALUATION_TASKS[0]


def _lenient_policy() -> GovernancePolicy:
    return GovernancePolicy(version="lenient", safety=SafetyPolicy(require_approval_for_irreversible=False))


class TestSuite:
    async def test_default_policy_passes_every_scenario(self) -> None:
        summary = await run_evaluation_suite()
        assert summary.total == len(EVALUATION_TASKS) == 9
        assert failed_task_ids(summary) == []
        assert summary.pass_rate == 1.0
        assert summary.policy_version == "governance-v1"
        assert summary.rotation.ok is True

    async def test_weakened_policy_fails_the_safety_scenario(self) -> None:
        summary = await run_evaluation_suite(policy=_lenient_policy())
        assert failed_task_ids(summary) == [SAFETY_TASK.task_id]
        assert summary.result_for(SAFETY_TASK.task_id).details == "safety_gate_mismatch"

    async def test_malformed_task_is_a_failed_result(self) -> None:
        result = await run_evaluation_task({"task_id": "broken", "type": "safety_gate"})
        assert result.passed is False
        assert result.task_id == "broken"
        assert result.details == "evaluation_task_schema_invalid"

    async def test_runner_error_is_a_failed_result(self) -> None:
        task = SAFETY_TASK.model_copy(update={"task_id": "no-input", "input": {}})
        result = await run_evaluation_task(task)
        assert result.passed is False
        assert result.details == "evaluation_runner_error:KeyError"

    async def test_governance_callback_reaches_the_tool_scenario(self) -> None:
        seen = []

        def _observe(identity_key, agent_context, initiator):
            seen.append(identity_key)
            raise AssertionError("input validation must fail before governance")

        tool_task = next(t for t in EVALUATION_TASKS if t.task_id == "tool-input-validation")
        result = await run_evaluation_task(tool_task, enforce_governance=_observe)
        assert result.passed is True
        assert seen == []


class TestRegressionGuard:
    async def test_task_regression_is_refused(self) -> None:
        baseline = await run_evaluation_suite()
        current = await run_evaluation_suite(policy=_lenient_policy())

        guard = check_regression_guard(baseline, current)
        assert guard.allowed is False
        assert guard.reason == "task_regression"
        assert guard.diff.regressed == (SAFETY_TASK.task_id,)
        assert guard.pass_rate_delta < 0

    async def test_pass_rate_drop_from_new_failing_task_is_refused(self) -> None:
        baseline = await run_evaluation_suite(EVALUATION_TASKS[:2])
        failing = SAFETY_TASK.model_copy(update={"task_id": "new-scenario", "expected": {"allowed": True}})
        current = await run_evaluation_suite(EVALUATION_TASKS[:2] + (failing,))

        guard = check_regression_guard(baseline, current)
        assert guard.reason == "pass_rate_regression"
        assert guard.diff.regressed == ()

    async def test_identical_runs_are_allowed(self) -> None:
        baseline = await run_evaluation_suite()
        guard = check_regression_guard(baseline, await run_evaluation_suite())
        assert (guard.allowed, guard.reason) == (True, "no_regression")

    async def test_compare_reports_improvements(self) -> None:
        worse = await run_evaluation_suite(policy=_lenient_policy())
        better = await run_evaluation_suite()
        diff = compare_evaluation_runs(worse, better)
        assert diff.improved == (SAFETY_TASK.task_id,)
        assert len(diff.unchanged) == 8


class TestRotation:
    def _task(self, task_id: str, **overrides):
        return SAFETY_TASK.model_copy(update={"task_id": task_id, **overrides})

    @pytest.mark.parametrize(
        "tasks,issue",
        [
            (lambda t: [t("a", status=TaskStatus.deprecated)], "deprecated_without_replacement"),
            (lambda t: [t("a", status=TaskStatus.deprecated, replaced_by="b")], "replacement_missing"),
            (
                lambda t: [
                    t("a", status=TaskStatus.deprecated, replaced_by="b"),
                    t("b", status=TaskStatus.deprecated, replaced_by="a", version="v2"),
                ],
                "replacement_not_active",
            ),
            (
                lambda t: [t("a", status=TaskStatus.deprecated, replaced_by="b", version="v2"), t("b")],
                "replacement_version_not_newer",
            ),
            (lambda t: [t("a"), t("a")], "duplicate_task_id"),
        ],
    )
    def test_rotation_issues(self, tasks, issue: str) -> None:
        report = validate_task_rotation(tasks(self._task))
        assert report.ok is False
        assert issue in [i.issue for i in report.issues]

    def test_valid_rotation(self) -> None:
        report = validate_task_rotation(
            [self._task("a", status=TaskStatus.deprecated, replaced_by="b"), self._task("b", version="v2")]
        )
        assert report.ok is True


def test_coverage_counts_domains_and_failure_classes() -> None:
    coverage = build_coverage_report(EVALUATION_TASKS)
    assert coverage.domains[EvaluationDomain.tooling] == 2
    assert coverage.domains[EvaluationDomain.trust] == 0
    assert coverage.failure_classes[FailureClass.policy] == 3


class TestFailureDebt:
    async def test_critical_failures_block_and_escalate(self) -> None:
        ledger = EvaluationLedger()
        for _ in range(3):
            ledger.record(await run_evaluation_suite(policy=_lenient_policy()))

        report = accumulate_failure_debt(EVALUATION_TASKS, ledger.list())
        assert report.total_failures == 3
        assert report.by_task == {SAFETY_TASK.task_id: 3}
        assert report.by_failure_class[FailureClass.policy] == 3
        assert report.critical_failures == (SAFETY_TASK.task_id,)
        assert report.reasons == ("critical_failures_block_autonomy", "failure_debt_escalation")

    async def test_only_the_recent_window_counts(self) -> None:
        ledger = EvaluationLedger()
        ledger.record(await run_evaluation_suite(policy=_lenient_policy()))
        ledger.record(await run_evaluation_suite())

        report = accumulate_failure_debt(EVALUATION_TASKS, ledger.list(), FailureDebtPolicy(window_runs=1))
        assert report.total_failures == 0
        assert report.blocked is False

    async def test_ledger_keeps_history_in_order(self) -> None:
        ledger = EvaluationLedger()
        assert ledger.latest() is None
        first = ledger.record(await run_evaluation_suite())
        second = ledger.record(await run_evaluation_suite())
        assert [r.run_id for r in ledger.list()] == [first.run_id, second.run_id]
        assert ledger.latest() == second


class TestMemoryStore:
    NOW = datetime(2025, 1, 1, tzinfo=timezone.utc)

    def _record(self, **overrides) -> MemoryRecord:
        fields = {"subject": "s", "scope": MemoryScope(tenant_id="t-1", user_id="u-1"), "created_at": self.NOW}
        fields.update(overrides)
        return MemoryRecord(**fields)

    def test_writes_need_execute_tier_and_verification(self) -> None:
        store = MemoryStore()
        assert store.write(self._record(), permission_tier=PermissionTier.suggest, verified=True).reason == (
            "memory_write_requires_execute"
        )
        assert store.write(self._record(), permission_tier=PermissionTier.execute, verified=False).reason == (
            "memory_write_unverified"
        )
        assert store.write(self._record(), permission_tier=PermissionTier.execute, verified=True).stored is True

    def test_retrieval_is_tenant_and_user_scoped(self) -> None:
        store = MemoryStore()
        store.write(self._record(), permission_tier=PermissionTier.execute, verified=True)
        store.write(
            self._record(scope=MemoryScope(tenant_id="t-1")), permission_tier=PermissionTier.execute, verified=True
        )
        assert len(store.retrieve(MemoryScope(tenant_id="t-1", user_id="u-1"), now=self.NOW)) == 2
        assert len(store.retrieve(MemoryScope(tenant_id="t-1", user_id="u-2"), now=self.NOW)) == 1
        assert store.retrieve(MemoryScope(tenant_id="t-2", user_id="u-1"), now=self.NOW) == []

    def test_expired_records_are_hidden(self) -> None:
        store = MemoryStore()
        store.write(
            self._record(expires_at=self.NOW + timedelta(seconds=1)),
            permission_tier=PermissionTier.execute,
            verified=True,
        )
        assert store.retrieve(MemoryScope(tenant_id="t-1", user_id="u-1"), now=self.NOW + timedelta(seconds=1)) == []
