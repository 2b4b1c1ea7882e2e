from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import List

import pytest
from pydantic import BaseModel

from pilot_governance.cache import CacheContext, CachePreference, CacheStore
from pilot_governance.safety import BudgetLimits, BudgetTracker
from pilot_governance.safety.budget import BUDGET_COST_EXCEEDED, BUDGET_SIDE_EFFECTS_EXCEEDED
from pilot_governance.safety.gate import APPROVAL_REQUIRED
from pilot_governance.schemas import ActionImpact, ApprovalGate, PermissionTier
from pilot_governance.tooling import (
    FailureType,
    ToolInvokeContext,
    ToolStatus,
    ToolUsageEvent,
    create_governed_tool,
    invoke_tool,
    map_safety_failure,
)

IDENTITY = "user:alice"


class TextInput(BaseModel):
    text: str


class TextOutput(BaseModel):
    echoed: str


@pytest.fixture
def budget() -> BudgetTracker:
    return BudgetTracker(BudgetLimits(), scope=IDENTITY)


@pytest.fixture
def invoke_context(agents, make_context, budget):
    def _make(**overrides) -> ToolInvokeContext:
        fields = {
            "identity_key": IDENTITY,
            "agent_context": make_context(),
            "budget": budget,
            "agents": agents,
        }
        fields.update(overrides)
        return ToolInvokeContext(**fields)

    return _make


def _echo_call(**overrides) -> dict:
    fields = {
        "request_id": "req-1",
        "tool": "echo",
        "input": {"text": "hi"},
        "permission_tier": "execute",
        "impact": "reversible",
    }
    fields.update(overrides)
    return fields


def _purge_call(**overrides) -> dict:
    fields = {
        "request_id": "req-2",
        "tool": "purge_records",
        "input": {"table": "sessions"},
        "permission_tier": "execute",
        "impact": "irreversible",
    }
    fields.update(overrides)
    return fields


def _text_tool(handler, **kwargs):
    return create_governed_tool(
        name="echo",
        input_schema=TextInput,
        output_schema=TextOutput,
        impact=ActionImpact.reversible,
        handler=handler,
        **kwargs,
    )


def _assert_failure(result, failure_type: FailureType, message: str) -> None:
    assert result.status == ToolStatus.failure
    assert result.output is None
    assert result.failure.type == failure_type
    assert result.failure.message == message


class TestValidation:
    async def test_malformed_call_is_a_schema_error(self, echo_tool, invoke_context) -> None:
        result = await invoke_tool(echo_tool, {"request_id": "req-9", "tool": "echo"}, invoke_context())
        _assert_failure(result, FailureType.schema_validation_error, "invalid_tool_call")
        assert result.request_id == "req-9"

    async def test_tool_name_must_match(self, echo_tool, invoke_context, echo_calls) -> None:
        result = await invoke_tool(echo_tool, _echo_call(tool="other"), invoke_context())
        _assert_failure(result, FailureType.policy_blocked, "tool_name_mismatch")
        assert echo_calls.count == 0

    async def test_tier_must_be_allowed_by_tool(self, purge_tool, invoke_context) -> None:
        result = await invoke_tool(purge_tool, _purge_call(permission_tier="suggest"), invoke_context())
        _assert_failure(result, FailureType.permission_denied, "tier_not_allowed")

    async def test_governance_context_is_required(self, echo_tool, invoke_context) -> None:
        result = await invoke_tool(echo_tool, _echo_call(), invoke_context(agent_context=None))
        _assert_failure(result, FailureType.policy_blocked, "governance_context_required")

    async def test_domain_is_required(self, echo_tool, invoke_context, make_context) -> None:
        context = invoke_context(agent_context=make_context(action_domain=""))
        result = await invoke_tool(echo_tool, _echo_call(), context)
        _assert_failure(result, FailureType.policy_blocked, "domain_required")

    async def test_agent_must_be_registered(self, echo_tool, invoke_context, make_context) -> None:
        context = invoke_context(agent_context=make_context(agent_id="agent:ghost"))
        result = await invoke_tool(echo_tool, _echo_call(), context)
        _assert_failure(result, FailureType.policy_blocked, "agent_unregistered")

    async def test_tool_domain_must_match(self, invoke_context) -> None:
        tool = _text_tool(lambda payload, ctx: {"echoed": payload.text}, domains=["billing"])
        result = await invoke_tool(tool, _echo_call(), invoke_context())
        _assert_failure(result, FailureType.policy_blocked, "tool_domain_mismatch")

    async def test_context_tier_must_match_call_tier(self, echo_tool, invoke_context) -> None:
        result = await invoke_tool(echo_tool, _echo_call(permission_tier="suggest"), invoke_context())
        _assert_failure(result, FailureType.policy_blocked, "permission_tier_mismatch")

    async def test_declared_impact_must_match_tool(self, echo_tool, invoke_context) -> None:
        result = await invoke_tool(echo_tool, _echo_call(impact="irreversible"), invoke_context())
        _assert_failure(result, FailureType.policy_blocked, "impact_mismatch")

    async def test_input_must_match_contract(self, echo_tool, invoke_context) -> None:
        result = await invoke_tool(echo_tool, _echo_call(input={}), invoke_context())
        _assert_failure(result, FailureType.schema_validation_error, "input_schema_invalid")


class TestGovernanceAndSafety:
    async def test_governance_refusal_blocks_the_call(self, echo_tool, invoke_context, echo_calls) -> None:
        seen = []

        def _refuse(identity_key, agent_context, initiator):
            seen.append(agent_context)
            return SimpleNamespace(allowed=False, reason="economic_budget_exceeded")

        result = await invoke_tool(echo_tool, _echo_call(), invoke_context(enforce_governance=_refuse))

        _assert_failure(result, FailureType.policy_blocked, "governance_blocked:economic_budget_exceeded")
        assert echo_calls.count == 0
        assert seen[0].cost_charge_id == "tool:req-1"
        assert seen[0].tool == "echo"
        assert seen[0].cost_units is not None

    async def test_async_governance_callback_is_awaited(self, echo_tool, invoke_context) -> None:
        async def _allow(identity_key, agent_context, initiator):
            return SimpleNamespace(allowed=True, reason="ok")

        result = await invoke_tool(echo_tool, _echo_call(), invoke_context(enforce_governance=_allow))
        assert result.ok is True

    async def test_raising_governance_callback_fails_closed(self, echo_tool, invoke_context, echo_calls) -> None:
        def _explode(identity_key, agent_context, initiator):
            raise RuntimeError("ledger offline")

        result = await invoke_tool(echo_tool, _echo_call(), invoke_context(enforce_governance=_explode))
        _assert_failure(result, FailureType.policy_blocked, "governance_blocked:governance_error")
        assert echo_calls.count == 0

    async def test_budget_exceeded(self, echo_tool, invoke_context) -> None:
        tight = BudgetTracker(BudgetLimits(max_cost_cents=5))
        result = await invoke_tool(echo_tool, _echo_call(estimated_cost_cents=10), invoke_context(budget=tight))
        _assert_failure(result, FailureType.budget_exceeded, BUDGET_COST_EXCEEDED)

    async def test_concurrent_calls_cannot_overspend(self, echo_tool, invoke_context, echo_calls) -> None:
        tight = BudgetTracker(BudgetLimits(max_side_effects=1), scope=IDENTITY)
        context = invoke_context(budget=tight)

        results = await asyncio.gather(
            *(invoke_tool(echo_tool, _echo_call(request_id=f"req-{n}", side_effect_count=1), context) for n in range(3))
        )

        assert [r.ok for r in results].count(True) == 1
        refused = [r for r in results if not r.ok]
        assert {(r.failure.type, r.failure.message) for r in refused} == {
            (FailureType.budget_exceeded, BUDGET_SIDE_EFFECTS_EXCEEDED)
        }
        assert echo_calls.count == 1
        assert tight.state.side_effects == 1

    async def test_irreversible_call_needs_approval(self, purge_tool, invoke_context, purge_calls) -> None:
        result = await invoke_tool(purge_tool, _purge_call(), invoke_context())
        _assert_failure(result, FailureType.permission_denied, APPROVAL_REQUIRED)
        assert purge_calls.count == 0

    @pytest.mark.parametrize(
        "reason,failure_type",
        [
            ("budget_tokens_exceeded", FailureType.budget_exceeded),
            ("approval_required", FailureType.permission_denied),
            ("draft_tier_cannot_act", FailureType.permission_denied),
            ("suggestion_tier_cannot_execute", FailureType.permission_denied),
            ("something_else", FailureType.policy_blocked),
        ],
    )
    def test_map_safety_failure(self, reason: str, failure_type: FailureType) -> None:
        assert map_safety_failure(reason) == failure_type


class TestExecution:
    async def test_success_debits_budget_usage(self, echo_tool, invoke_context, budget, echo_calls) -> None:
        call = _echo_call(estimated_cost_cents=5, estimated_tokens=10, side_effect_count=1)
        result = await invoke_tool(echo_tool, call, invoke_context())

        assert result.ok is True
        assert result.output == {"echoed": "hi"}
        assert result.cached is False
        assert (result.metrics.cost_cents, result.metrics.tokens, result.metrics.side_effects) == (5, 10, 1)
        assert (budget.state.cost_cents, budget.state.tokens, budget.state.side_effects) == (5, 10, 1)
        assert echo_calls.inputs[0].text == "hi"

    async def test_sync_handler_with_approval(self, purge_tool, invoke_context) -> None:
        approval = ApprovalGate(approved=True, approver_id="steward-1")
        result = await invoke_tool(purge_tool, _purge_call(), invoke_context(approval=approval))
        assert result.ok is True
        assert result.output == {"purged": 3}

    async def test_invalid_output_is_a_schema_error(self, invoke_context, budget) -> None:
        tool = _text_tool(lambda payload, ctx: {"wrong": 1})
        result = await invoke_tool(tool, _echo_call(estimated_cost_cents=3), invoke_context())
        _assert_failure(result, FailureType.schema_validation_error, "output_schema_invalid")
        assert budget.state.cost_cents == 3

    async def test_timeout_is_retryable(self, invoke_context, budget) -> None:
        async def _slow(payload, ctx):
            await asyncio.sleep(1)
            return {"echoed": payload.text}

        result = await invoke_tool(
            _text_tool(_slow), _echo_call(estimated_cost_cents=3), invoke_context(timeout_seconds=0.01)
        )
        _assert_failure(result, FailureType.timeout, "timeout")
        assert result.failure.retryable is True
        assert result.metrics.cost_cents == 3
        assert budget.state.cost_cents == 3

    async def test_runtime_error_is_captured(self, invoke_context, budget) -> None:
        def _broken(payload, ctx):
            raise RuntimeError("boom")

        result = await invoke_tool(_text_tool(_broken), _echo_call(estimated_cost_cents=2), invoke_context())
        _assert_failure(result, FailureType.tool_runtime_error, "boom")
        assert result.failure.retryable is True
        assert budget.state.cost_cents == 2

    async def test_handler_receives_governed_context(self, invoke_context) -> None:
        seen = []

        def _capture(payload, ctx):
            seen.append(ctx)
            return {"echoed": payload.text}

        await invoke_tool(_text_tool(_capture), _echo_call(), invoke_context())
        assert seen[0].identity_key == IDENTITY
        assert seen[0].agent_context.cost_charge_id == "tool:req-1"


class TestUsageEvents:
    async def test_each_call_emits_one_event(self, echo_tool, invoke_context) -> None:
        events: List[ToolUsageEvent] = []
        await invoke_tool(echo_tool, _echo_call(), invoke_context(), record_usage=events.append)
        await invoke_tool(echo_tool, _echo_call(input={}), invoke_context(), record_usage=events.append)

        assert [e.status for e in events] == [ToolStatus.success, ToolStatus.failure]
        assert events[1].failure_type == FailureType.schema_validation_error
        assert {e.tool for e in events} == {"echo"}

    async def test_raising_recorder_does_not_change_the_result(self, echo_tool, invoke_context) -> None:
        def _broken(event: ToolUsageEvent) -> None:
            raise RuntimeError("metrics backend down")

        result = await invoke_tool(echo_tool, _echo_call(), invoke_context(), record_usage=_broken)
        assert result.ok is True


class TestCaching:
    async def test_cache_hit_skips_the_handler(self, echo_tool, invoke_context, echo_calls, budget) -> None:
        store = CacheStore()
        context = invoke_context(cache=CacheContext(task_type="echo"), cache_store=store)
        call = _echo_call(estimated_cost_cents=2)

        first = await invoke_tool(echo_tool, call, context)
        second = await invoke_tool(echo_tool, {**call, "request_id": "req-1b"}, context)

        assert (first.cached, second.cached) == (False, True)
        assert second.output == first.output
        assert echo_calls.count == 1
        assert budget.state.cost_cents == 2
        assert store.entries(IDENTITY)[0].hit_count == 1

    async def test_different_input_misses(self, echo_tool, invoke_context, echo_calls) -> None:
        context = invoke_context(cache=CacheContext(task_type="echo"), cache_store=CacheStore())
        await invoke_tool(echo_tool, _echo_call(), context)
        await invoke_tool(echo_tool, _echo_call(input={"text": "bye"}), context)
        assert echo_calls.count == 2

    async def test_irreversible_calls_are_never_cached(self, purge_tool, invoke_context, purge_calls) -> None:
        store = CacheStore()
        context = invoke_context(
            cache=CacheContext(task_type="purge_records"),
            cache_store=store,
            approval=ApprovalGate(approved=True),
        )
        await invoke_tool(purge_tool, _purge_call(), context)
        result = await invoke_tool(purge_tool, _purge_call(), context)

        assert result.cached is False
        assert purge_calls.count == 2
        assert store.entries(IDENTITY) == []

    async def test_cache_preference_supplies_the_context(self, echo_tool, invoke_context, echo_calls) -> None:
        store = CacheStore()
        store.set_preference(IDENTITY, CachePreference(task_type="echo"))
        context = invoke_context(cache_store=store)

        await invoke_tool(echo_tool, _echo_call(), context)
        result = await invoke_tool(echo_tool, _echo_call(), context)

        assert result.cached is True
        assert echo_calls.count == 1

    async def test_generic_preference_keeps_goals_apart(
        self, echo_tool, invoke_context, make_context, echo_calls
    ) -> None:
        store = CacheStore()
        store.set_preference(IDENTITY, CachePreference(task_type="echo"))

        def _under(goal_id: str) -> ToolInvokeContext:
            return invoke_context(agent_context=make_context(goal_id=goal_id), cache_store=store)

        first = await invoke_tool(echo_tool, _echo_call(), _under("goal-A"))
        other_goal = await invoke_tool(echo_tool, _echo_call(), _under("goal-B"))
        same_goal = await invoke_tool(echo_tool, _echo_call(), _under("goal-A"))

        assert (first.cached, other_goal.cached, same_goal.cached) == (False, False, True)
        assert echo_calls.count == 2
        assert sorted(e.goal_id for e in store.entries(IDENTITY)) == ["goal-A", "goal-B"]

    async def test_without_cache_context_nothing_is_stored(self, echo_tool, invoke_context, echo_calls) -> None:
        store = CacheStore()
        context = invoke_context(cache_store=store)
        await invoke_tool(echo_tool, _echo_call(), context)
        await invoke_tool(echo_tool, _echo_call(), context)
        assert echo_calls.count == 2
        assert store.entries(IDENTITY) == []

    async def test_novel_work_is_not_cached(self, echo_tool, invoke_context, make_context, echo_calls) -> None:
        context = invoke_context(
            agent_context=make_context(novelty_score=0.9),
            cache=CacheContext(task_type="echo"),
            cache_store=CacheStore(),
        )
        await invoke_tool(echo_tool, _echo_call(), context)
        await invoke_tool(echo_tool, _echo_call(), context)
        assert echo_calls.count == 2
