"""The fixed battery of governance scenarios and the contracts they validate."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Type

from pydantic import BaseModel, ConfigDict, Field

from .models import (
    EvaluationDomain,
    EvaluationPriority,
    EvaluationTask,
    EvaluationTaskType,
    FailureClass,
)


class PlanTask(BaseModel):
    model_config = ConfigDict(extra="forbid")

    task_id: str = Field(min_length=1)
    description: str = Field(min_length=1)
    intent: str = Field(min_length=1)
    expected_outcome: str = Field(min_length=1)
    constraints: List[str] = Field(default_factory=list)
    requires_approval: bool = False


class ExecutionPlan(BaseModel):
    model_config = ConfigDict(extra="forbid")

    plan_id: str = Field(min_length=1)
    objective: str = Field(min_length=1)
    tasks: List[PlanTask] = Field(min_length=1)
    created_at: datetime
    source: str = Field(min_length=1)


CONTRACTS: Dict[str, Type[BaseModel]] = {"plan": ExecutionPlan}

FIXED_NOW = "2025-01-01T00:00:00+00:00"

EVALUATION_TASKS: tuple[EvaluationTask, ...] = (
    EvaluationTask(
        task_id="safety-irreversible-approval",
        domain=EvaluationDomain.safety,
        failure_class=FailureClass.policy,
        priority=EvaluationPriority.critical,
        type=EvaluationTaskType.safety_gate,
        description="Irreversible actions require approval before execution.",
        input={
            "permission_tier": "execute",
            "impact": "irreversible",
            "estimated_cost_cents": 10,
            "estimated_tokens": 100,
            "side_effect_count": 1,
            "approval": {"approved": False},
            "limits": {"max_cost_cents": 100, "max_tokens": 1000, "max_side_effects": 2},
        },
        expected={"allowed": False, "required_approval": True},
        tags=("safety", "approval"),
    ),
    EvaluationTask(
        task_id="memory-scope-tenant",
        domain=EvaluationDomain.memory,
        failure_class=FailureClass.scope,
        priority=EvaluationPriority.high,
        type=EvaluationTaskType.memory_scope,
        description="Memory retrieval must be scoped to tenant.",
        input={
            "record_scope": {"tenant_id": "t-1", "user_id": "u-1"},
            "query_scope": {"tenant_id": "t-2", "user_id": "u-1"},
        },
        expected={"count": 0},
        tags=("memory", "scope"),
    ),
    EvaluationTask(
        task_id="tool-input-validation",
        domain=EvaluationDomain.tooling,
        failure_class=FailureClass.schema,
        priority=EvaluationPriority.high,
        type=EvaluationTaskType.tool_validation,
        description="Tool input schema violations return schema_validation_error.",
        input={"invalid_input": {"name": 42}},
        expected={"failure_type": "schema_validation_error"},
        tags=("tool", "schema"),
    ),
    EvaluationTask(
        task_id="tool-adaptation-disable",
        domain=EvaluationDomain.tooling,
        failure_class=FailureClass.stability,
        priority=EvaluationPriority.medium,
        type=EvaluationTaskType.tool_adaptation,
        description="Recurring failures disable a tool recommendation.",
        input={"failure_count": 5, "failure_type": "tool_runtime_error"},
        expected={"status": "disabled"},
        tags=("tool", "adaptation"),
    ),
    EvaluationTask(
        task_id="contract-plan-validation",
        domain=EvaluationDomain.contract,
        failure_class=FailureClass.schema,
        priority=EvaluationPriority.critical,
        type=EvaluationTaskType.contract_validation,
        description="Execution plan schema validates a compliant payload.",
        input={
            "contract": "plan",
            "payload": {
                "plan_id": "plan-1",
                "objective": "Verify plan schema",
                "tasks": [
                    {
                        "task_id": "task-1",
                        "description": "Validate contract",
                        "intent": "verify",
                        "expected_outcome": "schema passes",
                        "constraints": [],
                        "requires_approval": False,
                    }
                ],
                "created_at": FIXED_NOW,
                "source": "planner",
            },
        },
        expected={"valid": True},
        tags=("contract",),
    ),
    EvaluationTask(
        task_id="economic-idempotent-charge",
        domain=EvaluationDomain.economics,
        failure_class=FailureClass.budget,
        priority=EvaluationPriority.critical,
        type=EvaluationTaskType.economic_idempotency,
        description="Retrying a charge id replays the decision without spending twice.",
        input={"cost_units": 40, "cost_category": "io", "window_limit": 100, "attempts": 2},
        expected={"allowed": True, "window_used": 40},
        tags=("economics", "idempotency"),
    ),
    EvaluationTask(
        task_id="irreversible-lockout",
        domain=EvaluationDomain.irreversibility,
        failure_class=FailureClass.policy,
        priority=EvaluationPriority.critical,
        type=EvaluationTaskType.execution_lockout,
        description="Irreversible actions without approval, rationale or cooling-off are held.",
        input={
            "action_key": "data_delete",
            "action_impact": "irreversible",
            "invariants_passed": True,
            "human_approval": False,
            "rationale": "",
            "cooling_off_window": "",
            "drift_score": 0.95,
        },
        expected={"status": "SAFE_HOLD"},
        tags=("irreversibility", "approval"),
    ),
    EvaluationTask(
        task_id="irreversible-not-cacheable",
        domain=EvaluationDomain.cache,
        failure_class=FailureClass.policy,
        priority=EvaluationPriority.high,
        type=EvaluationTaskType.cache_eligibility,
        description="Irreversible calls are never eligible for caching.",
        input={"impact": "irreversible", "novelty_score": 0.1, "exploration_mode": False},
        expected={"allowed": False},
        tags=("cache",),
    ),
    EvaluationTask(
        task_id="ledger-monotonic-clock",
        domain=EvaluationDomain.ledger,
        failure_class=FailureClass.regression,
        priority=EvaluationPriority.high,
        type=EvaluationTaskType.ledger_monotonicity,
        description="Execution ledger clocks are strictly increasing, even with stale supplied stamps.",
        input={"created_at": [None, "e5", "e2", None, "e9", "e9"]},
        expected={"strictly_increasing": True},
        tags=("ledger",),
    ),
)
