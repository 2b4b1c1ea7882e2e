"""Tool call and tool result contracts."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import Field, field_validator, model_validator

from ..schemas.base import FrozenSchema
from ..schemas.domain import ActionImpact, CostCategory, PermissionTier, new_id, normalize_impact, utc_now


class FailureType(str, Enum):
    schema_validation_error = "schema_validation_error"
    permission_denied = "permission_denied"
    policy_blocked = "policy_blocked"
    budget_exceeded = "budget_exceeded"
    timeout = "timeout"
    tool_runtime_error = "tool_runtime_error"


RETRYABLE_FAILURES = frozenset({FailureType.timeout, FailureType.tool_runtime_error})


class ToolStatus(str, Enum):
    success = "success"
    failure = "failure"


class ToolCall(FrozenSchema):
    """A typed request to run a named tool."""

    request_id: str = Field(default_factory=lambda: new_id("req"), min_length=1)
    tool: str = Field(min_length=1)
    input: Dict[str, Any] = Field(default_factory=dict)
    permission_tier: PermissionTier
    impact: ActionImpact
    estimated_cost_cents: int = Field(default=0, ge=0)
    estimated_tokens: int = Field(default=0, ge=0)
    side_effect_count: int = Field(default=0, ge=0)
    cost_units: Optional[int] = Field(default=None, ge=0)
    cost_category: Optional[CostCategory] = None
    requested_at: datetime = Field(default_factory=utc_now)

    @field_validator("impact", mode="before")
    @classmethod
    def _normalize_impact(cls, value: Any) -> Any:
        normalized = normalize_impact(value)
        return normalized if normalized is not None else value


class ToolFailure(FrozenSchema):
    type: FailureType
    message: str
    retryable: bool


class ToolMetrics(FrozenSchema):
    latency_ms: int = 0
    cost_cents: int = 0
    tokens: int = 0
    side_effects: int = 0


class ToolResult(FrozenSchema):
    """
    Terminal outcome of one ``invoke_tool`` call.

    Exactly one of ``output`` (success) and ``failure`` (failure) is set.
    """

    request_id: str
    tool: str
    status: ToolStatus
    output: Optional[Dict[str, Any]] = None
    failure: Optional[ToolFailure] = None
    metrics: ToolMetrics = Field(default_factory=ToolMetrics)
    cached: bool = False
    completed_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def _check_variant(self) -> "ToolResult":
        if self.status == ToolStatus.success and self.failure is not None:
            raise ValueError("a successful result cannot carry a failure")
        if self.status == ToolStatus.failure and self.failure is None:
            raise ValueError("a failed result must carry a failure")
        return self

    @property
    def ok(self) -> bool:
        return self.status == ToolStatus.success


class ToolUsageEvent(FrozenSchema):
    event_id: str = Field(default_factory=lambda: new_id("tool"))
    tool: str
    status: ToolStatus
    failure_type: Optional[FailureType] = None
    latency_ms: int = 0
    cost_cents: int = 0
    timestamp: datetime = Field(default_factory=utc_now)
