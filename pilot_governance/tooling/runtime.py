"""Tool invocation runtime.

``invoke_tool`` never raises: every failure path returns a failure
``ToolResult`` with a classified ``FailureType``. Validation runs in a fixed
order and the first failure short-circuits:

1. call shape, tool name, permission tier allowed by the tool
2. governance context present, domain and decision type present
3. agent registered, tool domain, tier consistency, impact consistency
4. input contract

After validation the external governance callback (if any) and the safety
gate are consulted and the cache is checked. On a miss the call's usage is
reserved against the budget in one locked step, and only then does the tool
run, inside a guard token and under a timeout. A reservation is kept when the
run fails or times out.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Optional, Protocol, Union

from pydantic import BaseModel, ValidationError

from ..cache.models import CacheContext, CachePolicy, CachePolicyDecision, evaluate_cache_policy
from ..cache.store import CacheStore, cache_key_for
from ..economics.cost_model import ensure_context_economics, ensure_tool_call_economics
from ..safety.budget import BudgetTracker
from ..safety.gate import evaluate_safety_gate
from ..schemas.domain import AgentRuntimeContext, ApprovalGate, CostSource, Initiator
from .definition import ToolDefinition, guarded_context
from .models import (
    RETRYABLE_FAILURES,
    FailureType,
    ToolCall,
    ToolFailure,
    ToolMetrics,
    ToolResult,
    ToolStatus,
    ToolUsageEvent,
)

logger = logging.getLogger(__name__)


class AgentLookup(Protocol):
    def has(self, agent_id: str) -> bool: ...


class GovernanceOutcome(Protocol):
    allowed: bool
    reason: str


GovernanceEnforcer = Callable[
    [str, AgentRuntimeContext, Initiator],
    Union[GovernanceOutcome, Awaitable[GovernanceOutcome]],
]
ToolUsageRecorder = Callable[[ToolUsageEvent], None]


@dataclass(frozen=True)
class ToolInvokeContext:
    """Everything ``invoke_tool`` needs besides the tool and the call.

    Attributes
    ----------
    identity_key:
        Identity the call is charged to.
    agent_context:
        The caller's runtime context. Missing context blocks the call.
    budget:
        The identity's safety budget tracker.
    agents:
        Registry used to check the agent is registered.
    enforce_governance:
        Optional callback consulted after validation (sync or async).
    cache / cache_store / cache_policy:
        Explicit cache context, the identity's cache store, and the policy
        used when a cache preference supplies the context.
    """

    identity_key: str
    agent_context: Optional[AgentRuntimeContext]
    budget: BudgetTracker
    agents: AgentLookup
    initiator: Initiator = Initiator.agent
    approval: Optional[ApprovalGate] = None
    timeout_seconds: Optional[float] = None
    enforce_governance: Optional[GovernanceEnforcer] = None
    cache: Optional[CacheContext] = None
    cache_store: Optional[CacheStore] = None
    cache_policy: Optional[CachePolicy] = None
    require_approval_for_irreversible: bool = True


def map_safety_failure(reason: str) -> FailureType:
    """Classify a safety gate reason code as a tool failure type."""
    if any(hint in reason for hint in ("budget", "token", "cost", "side_effect")):
        return FailureType.budget_exceeded
    if any(hint in reason for hint in ("approval", "draft", "suggestion")):
        return FailureType.permission_denied
    return FailureType.policy_blocked


class _Invocation:
    """Per-call bookkeeping: timing and usage reporting."""

    def __init__(self, tool: ToolDefinition, request_id: str, record_usage: Optional[ToolUsageRecorder]) -> None:
        self.tool = tool
        self.request_id = request_id
        self._record_usage = record_usage
        self._start = time.monotonic()

    @property
    def latency_ms(self) -> int:
        return int((time.monotonic() - self._start) * 1000)

    def _emit(self, result: ToolResult) -> ToolResult:
        if self._record_usage is not None:
            event = ToolUsageEvent(
                tool=self.tool.name,
                status=result.status,
                failure_type=result.failure.type if result.failure else None,
                latency_ms=result.metrics.latency_ms,
                cost_cents=result.metrics.cost_cents,
            )
            try:
                self._record_usage(event)
            except Exception:
                logger.exception("Tool usage recorder failed for %s", self.tool.name)
        return result

    def fail(self, failure_type: FailureType, message: str, metrics: Optional[ToolMetrics] = None) -> ToolResult:
        if failure_type in RETRYABLE_FAILURES:
            logger.warning("Tool %s failed (%s): %s", self.tool.name, failure_type.value, message)
        else:
            logger.info("Tool %s refused (%s): %s", self.tool.name, failure_type.value, message)
        return self._emit(
            ToolResult(
                request_id=self.request_id,
                tool=self.tool.name,
                status=ToolStatus.failure,
                failure=ToolFailure(
                    type=failure_type,
                    message=message,
                    retryable=failure_type in RETRYABLE_FAILURES,
                ),
                metrics=metrics or ToolMetrics(latency_ms=self.latency_ms),
            )
        )

    def succeed(self, output: dict, metrics: ToolMetrics, *, cached: bool = False) -> ToolResult:
        logger.debug("Tool %s succeeded (cached=%s)", self.tool.name, cached)
        return self._emit(
            ToolResult(
                request_id=self.request_id,
                tool=self.tool.name,
                status=ToolStatus.success,
                output=output,
                metrics=metrics,
                cached=cached,
            )
        )


def _governance_context(tool: ToolDefinition, call: ToolCall, agent: AgentRuntimeContext) -> AgentRuntimeContext:
    """Fill the caller's context with what the call declares, without overriding what the caller set."""
    explicit = agent.model_fields_set
    update: dict[str, Any] = {
        "tool": agent.tool or tool.name,
        "decision_type": agent.decision_type or tool.name,
        "impact": agent.impact or call.impact,
        "cost_units": agent.cost_units if agent.cost_units is not None else call.cost_units,
        "cost_category": agent.cost_category or call.cost_category,
        "cost_charge_id": agent.cost_charge_id or f"tool:{call.request_id}",
        "cost_source": agent.cost_source or CostSource.tool,
    }
    if "permission_tier" not in explicit:
        update["permission_tier"] = call.permission_tier
    for field in ("estimated_cost_cents", "estimated_tokens", "side_effect_count"):
        if field not in explicit:
            update[field] = getattr(call, field)
    return ensure_context_economics(agent.model_copy(update=update))


def _output_dict(tool: ToolDefinition, output: Any) -> dict:
    """Validate ``output`` against the tool's output model; raises ``ValidationError``."""
    model = output if isinstance(output, tool.output_schema) else tool.output_schema.model_validate(output)
    return model.model_dump(mode="json")


def _cache_eligibility(
    cache_context: Optional[CacheContext],
    fallback_policy: Optional[CachePolicy],
    call: ToolCall,
    governed: AgentRuntimeContext,
) -> Optional[CachePolicyDecision]:
    if cache_context is None:
        return None
    return evaluate_cache_policy(
        cache_context.policy or fallback_policy,
        impact=call.impact,
        novelty_score=governed.novelty_score,
        exploration_mode=governed.exploration_mode,
    )


async def invoke_tool(
    tool: ToolDefinition,
    call: Union[ToolCall, Mapping[str, Any]],
    context: ToolInvokeContext,
    record_usage: Optional[ToolUsageRecorder] = None,
) -> ToolResult:
    """
    Validate, govern and run one tool call.

    Args:
        tool: The governed tool definition.
        call: The call, as a ``ToolCall`` or a raw mapping to validate.
        context: Identity, budget, registries and optional cache/governance hooks.
        record_usage: Optional callback receiving one ``ToolUsageEvent`` per call.

    Returns:
        A terminal ``ToolResult``; this function does not raise.
    """
    if isinstance(call, ToolCall):
        parsed: Optional[ToolCall] = call
    else:
        try:
            parsed = ToolCall.model_validate(dict(call))
        except (ValidationError, TypeError, ValueError):
            parsed = None
    if parsed is None:
        raw_id = call.get("request_id") if isinstance(call, Mapping) else None
        request_id = raw_id if isinstance(raw_id, str) and raw_id else "unknown"
        return _Invocation(tool, request_id, record_usage).fail(FailureType.schema_validation_error, "invalid_tool_call")

    priced = ensure_tool_call_economics(parsed)
    inv = _Invocation(tool, priced.request_id, record_usage)

    if priced.tool != tool.name:
        return inv.fail(FailureType.policy_blocked, "tool_name_mismatch")
    if priced.permission_tier not in tool.permission_tiers:
        return inv.fail(FailureType.permission_denied, "tier_not_allowed")
    if not context.identity_key or context.agent_context is None:
        logger.warning("Tool %s called without governance context", tool.name)
        return inv.fail(FailureType.policy_blocked, "governance_context_required")

    governed = _governance_context(tool, priced, context.agent_context)

    if not governed.action_domain:
        return inv.fail(FailureType.policy_blocked, "domain_required")
    if not governed.decision_type:
        return inv.fail(FailureType.policy_blocked, "decision_type_required")
    if not context.agents.has(governed.agent_id):
        return inv.fail(FailureType.policy_blocked, "agent_unregistered")
    if tool.domains is not None and governed.action_domain not in tool.domains:
        return inv.fail(FailureType.policy_blocked, "tool_domain_mismatch")
    if governed.permission_tier != priced.permission_tier:
        return inv.fail(FailureType.policy_blocked, "permission_tier_mismatch")
    if priced.impact != tool.impact:
        return inv.fail(FailureType.policy_blocked, "impact_mismatch")

    try:
        payload: BaseModel = tool.input_schema.model_validate(priced.input)
    except ValidationError:
        return inv.fail(FailureType.schema_validation_error, "input_schema_invalid")

    cache_context = context.cache
    if cache_context is None and context.cache_store is not None:
        preference = context.cache_store.find_preference(
            context.identity_key, governed.task_type or priced.tool, governed.goal_id
        )
        if preference is not None:
            cache_context = preference.to_context(context.cache_policy, goal_id=governed.goal_id)
    eligibility = _cache_eligibility(cache_context, context.cache_policy, priced, governed)

    if context.enforce_governance is not None:
        try:
            outcome = context.enforce_governance(context.identity_key, governed, context.initiator)
            if inspect.isawaitable(outcome):
                outcome = await outcome
        except Exception:
            logger.exception("Governance enforcement failed for tool %s", tool.name)
            return inv.fail(FailureType.policy_blocked, "governance_blocked:governance_error")
        if not outcome.allowed:
            return inv.fail(FailureType.policy_blocked, f"governance_blocked:{outcome.reason}")

    safety = evaluate_safety_gate(
        permission_tier=priced.permission_tier,
        impact=priced.impact,
        estimated_cost_cents=priced.estimated_cost_cents,
        estimated_tokens=priced.estimated_tokens,
        side_effect_count=priced.side_effect_count,
        budget=context.budget,
        approval=context.approval or governed.approval,
        require_approval_for_irreversible=context.require_approval_for_irreversible,
    )
    if not safety.allowed:
        return inv.fail(map_safety_failure(safety.reason), safety.reason)

    cache_key: Optional[str] = None
    input_hash: Optional[str] = None
    store = context.cache_store
    if cache_context is not None and store is not None and eligibility is not None and eligibility.allowed:
        cache_key, input_hash = cache_key_for(cache_context, payload.model_dump(mode="json"))
        cached = store.get(context.identity_key, cache_key)
        if cached is not None:
            try:
                output = _output_dict(tool, cached.payload)
            except ValidationError:
                logger.debug("Cached payload for %s no longer matches the output contract", cache_key)
            else:
                store.record_hit(context.identity_key, cache_key)
                return inv.succeed(output, ToolMetrics(latency_ms=inv.latency_ms), cached=True)

    exceeded = context.budget.reserve(
        cost_cents=priced.estimated_cost_cents,
        tokens=priced.estimated_tokens,
        side_effects=priced.side_effect_count,
    )
    if exceeded is not None:
        return inv.fail(FailureType.budget_exceeded, exceeded)

    spent = ToolMetrics(
        latency_ms=0,
        cost_cents=priced.estimated_cost_cents,
        tokens=priced.estimated_tokens,
        side_effects=priced.side_effect_count,
    )
    try:
        execution = tool.execute(payload, guarded_context(context.identity_key, governed, context.initiator))
        if context.timeout_seconds:
            raw_output = await asyncio.wait_for(execution, timeout=context.timeout_seconds)
        else:
            raw_output = await execution
    except asyncio.TimeoutError:
        return inv.fail(FailureType.timeout, "timeout", spent.model_copy(update={"latency_ms": inv.latency_ms}))
    except Exception as exc:
        message = str(exc) or "execution_failed"
        return inv.fail(
            FailureType.tool_runtime_error, message, spent.model_copy(update={"latency_ms": inv.latency_ms})
        )

    try:
        output = _output_dict(tool, raw_output)
    except ValidationError:
        return inv.fail(
            FailureType.schema_validation_error,
            "output_schema_invalid",
            spent.model_copy(update={"latency_ms": inv.latency_ms}),
        )

    if cache_context is not None and store is not None and cache_key is not None and input_hash is not None:
        recheck = _cache_eligibility(cache_context, context.cache_policy, priced, governed)
        if recheck is not None and recheck.allowed:
            store.put(
                context.identity_key,
                cache_context,
                cache_key=cache_key,
                input_hash=input_hash,
                payload=output,
                policy=cache_context.policy or context.cache_policy,
            )

    return inv.succeed(output, spent.model_copy(update={"latency_ms": inv.latency_ms}))
