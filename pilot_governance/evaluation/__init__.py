"""Scenario battery and regression harness."""

from .harness import (
    EvaluationLedger,
    accumulate_failure_debt,
    build_coverage_report,
    check_regression_guard,
    compare_evaluation_runs,
    run_evaluation_suite,
    run_evaluation_task,
    validate_task_rotation,
)
from .memory import MemoryRecord, MemoryScope, MemoryStore, MemoryWriteResult
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
    failed_task_ids,
)
from .tasks import CONTRACTS, EVALUATION_TASKS, ExecutionPlan, PlanTask

__all__ = [
    "EvaluationLedger",
    "accumulate_failure_debt",
    "build_coverage_report",
    "check_regression_guard",
    "compare_evaluation_runs",
    "run_evaluation_suite",
    "run_evaluation_task",
    "validate_task_rotation",
    "MemoryRecord",
    "MemoryScope",
    "MemoryStore",
    "MemoryWriteResult",
    "EvaluationCoverage",
    "EvaluationDiff",
    "EvaluationDomain",
    "EvaluationPriority",
    "EvaluationResult",
    "EvaluationRun",
    "EvaluationSummary",
    "EvaluationTask",
    "EvaluationTaskType",
    "FailureClass",
    "FailureDebtPolicy",
    "FailureDebtReport",
    "RegressionGuard",
    "TaskRotationIssue",
    "TaskRotationReport",
    "TaskStatus",
    "failed_task_ids",
    "CONTRACTS",
    "EVALUATION_TASKS",
    "ExecutionPlan",
    "PlanTask",
]
