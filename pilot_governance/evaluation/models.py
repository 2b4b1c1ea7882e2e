"""Evaluation task, result and report models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import Field

from ..schemas.base import FrozenSchema
from ..schemas.domain import new_id, utc_now


class EvaluationDomain(str, Enum):
    safety = "safety"
    memory = "memory"
    tooling = "tooling"
    coordination = "coordination"
    trust = "trust"
    contract = "contract"
    system = "system"
    economics = "economics"
    irreversibility = "irreversibility"
    cache = "cache"
    ledger = "ledger"


class FailureClass(str, Enum):
    schema = "schema"
    policy = "policy"
    budget = "budget"
    scope = "scope"
    regression = "regression"
    stability = "stability"
    unknown = "unknown"


class EvaluationPriority(str, Enum):
    critical = "critical"
    high = "high"
    medium = "medium"
    low = "low"


class TaskStatus(str, Enum):
    active = "active"
    deprecated = "deprecated"


class EvaluationTaskType(str, Enum):
    safety_gate = "safety_gate"
    memory_scope = "memory_scope"
    tool_validation = "tool_validation"
    tool_adaptation = "tool_adaptation"
    contract_validation = "contract_validation"
    economic_idempotency = "economic_idempotency"
    execution_lockout = "execution_lockout"
    cache_eligibility = "cache_eligibility"
    ledger_monotonicity = "ledger_monotonicity"


class EvaluationTask(FrozenSchema):
    task_id: str = Field(min_length=1)
    version: str = "v1"
    status: TaskStatus = TaskStatus.active
    domain: EvaluationDomain
    failure_class: FailureClass
    priority: EvaluationPriority
    type: EvaluationTaskType
    description: str
    input: Dict[str, Any] = Field(default_factory=dict)
    expected: Dict[str, Any] = Field(default_factory=dict)
    tags: tuple[str, ...] = ()
    replaced_by: Optional[str] = None


class EvaluationResult(FrozenSchema):
    task_id: str
    passed: bool
    details: str
    artifacts: Dict[str, Any] = Field(default_factory=dict)


class EvaluationCoverage(FrozenSchema):
    domains: Dict[EvaluationDomain, int]
    failure_classes: Dict[FailureClass, int]


class TaskRotationIssue(FrozenSchema):
    task_id: str
    issue: str


class TaskRotationReport(FrozenSchema):
    ok: bool
    issues: tuple[TaskRotationIssue, ...] = ()


class EvaluationSummary(FrozenSchema):
    run_id: str = Field(default_factory=lambda: new_id("eval"))
    policy_version: Optional[str] = None
    total: int
    passed: int
    failed: int
    pass_rate: float
    results: tuple[EvaluationResult, ...]
    started_at: datetime
    completed_at: datetime
    coverage: EvaluationCoverage
    rotation: TaskRotationReport

    def result_for(self, task_id: str) -> Optional[EvaluationResult]:
        return next((r for r in self.results if r.task_id == task_id), None)


class EvaluationRun(FrozenSchema):
    run_id: str
    summary: EvaluationSummary
    recorded_at: datetime = Field(default_factory=utc_now)


class EvaluationDiff(FrozenSchema):
    improved: tuple[str, ...] = ()
    regressed: tuple[str, ...] = ()
    unchanged: tuple[str, ...] = ()


class RegressionGuard(FrozenSchema):
    allowed: bool
    reason: str
    pass_rate_delta: float
    diff: EvaluationDiff


class FailureDebtPolicy(FrozenSchema):
    window_runs: int = Field(default=5, ge=1)
    block_on_critical_failures: bool = True
    escalation_failure_count: int = Field(default=3, ge=1)


class FailureDebtReport(FrozenSchema):
    total_failures: int
    by_task: Dict[str, int]
    by_failure_class: Dict[FailureClass, int]
    critical_failures: tuple[str, ...]
    blocked: bool
    escalated: bool
    reasons: tuple[str, ...] = ()


def empty_failure_class_counts() -> Dict[FailureClass, int]:
    return {fc: 0 for fc in FailureClass}


def failed_task_ids(summary: EvaluationSummary) -> List[str]:
    return [r.task_id for r in summary.results if not r.passed]
