from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from pilot_governance.economics import (
    ECONOMIC_BUDGET_EXCEEDED,
    ECONOMIC_BUDGET_OK,
    ECONOMIC_CATEGORY_DENIED,
    ECONOMIC_ROLE_POLICY_MISSING,
    ECONOMIC_SESSION_BUDGET_EXCEEDED,
    EconomicDecision,
    EconomicStateStore,
    enforce_economic_gate,
    resolve_charge_id,
)
from pilot_governance.gateway import AgentProfile, AgentRegistry, RolePolicyRegistry
from pilot_governance.policy import EconomicPolicy, RolePolicy
from pilot_governance.schemas import AgentRuntimeContext, CostCategory, CostSource, Initiator

IDENTITY = "user:alice"
NOW = datetime(2025, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def agents() -> AgentRegistry:
    return AgentRegistry([AgentProfile(agent_id="agent:ops", role="operator")])


@pytest.fixture
def role_policies() -> RolePolicyRegistry:
    return RolePolicyRegistry(
        [RolePolicy(role_id="operator", allowed_cost_categories={CostCategory.io, CostCategory.compute})]
    )


def _store(**policy) -> EconomicStateStore:
    return EconomicStateStore(EconomicPolicy(**policy))


def _context(charge_id: str, units: int, category: CostCategory = CostCategory.io, **overrides) -> AgentRuntimeContext:
    fields = {
        "agent_id": "agent:ops",
        "decision_type": "send_message",
        "task_id": "task-1",
        "cost_units": units,
        "cost_category": category,
        "cost_charge_id": charge_id,
    }
    fields.update(overrides)
    return AgentRuntimeContext(**fields)


def _charge(store, agents, role_policies, context, initiator=Initiator.agent, now=NOW):
    return enforce_economic_gate(
        IDENTITY, context, initiator, store=store, agents=agents, role_policies=role_policies, now=now
    )


def test_retrying_a_charge_id_spends_only_once(agents, role_policies) -> None:
    store = _store(window_limit=100)
    first = _charge(store, agents, role_policies, _context("charge-1", 40))
    second = _charge(store, agents, role_policies, _context("charge-1", 40))

    assert first.allowed is True and first.replayed is False
    assert first.reason == ECONOMIC_BUDGET_OK
    assert second.allowed is True and second.replayed is True
    assert second.audit == first.audit
    assert store.ensure(IDENTITY, NOW).window_used == 40
    assert len(store.audits(IDENTITY)) == 1


def test_window_budget_exceeded_blocks_and_requires_review(agents, role_policies) -> None:
    store = _store(window_limit=100)
    _charge(store, agents, role_policies, _context("charge-1", 60))
    blocked = _charge(store, agents, role_policies, _context("charge-2", 60))

    assert blocked.allowed is False
    assert blocked.reason == ECONOMIC_BUDGET_EXCEEDED
    assert blocked.requires_human_review is True
    assert blocked.audit.decision == EconomicDecision.blocked
    assert store.ensure(IDENTITY, NOW).window_used == 60


def test_session_budget_is_checked_after_window(agents, role_policies) -> None:
    store = _store(window_limit=100, session_limit=50)
    blocked = _charge(store, agents, role_policies, _context("charge-1", 60))
    assert blocked.reason == ECONOMIC_SESSION_BUDGET_EXCEEDED


def test_window_rolls_over_but_session_usage_accumulates(agents, role_policies) -> None:
    store = _store(window_limit=100, window_seconds=60)
    _charge(store, agents, role_policies, _context("charge-1", 80))
    later = NOW + timedelta(seconds=61)
    decision = _charge(store, agents, role_policies, _context("charge-2", 80), now=later)

    assert decision.allowed is True
    budget = store.ensure(IDENTITY, later)
    assert (budget.window_used, budget.session_used) == (80, 160)


def test_unregistered_agent_has_no_role_policy(role_policies) -> None:
    store = _store()
    decision = _charge(store, AgentRegistry(), role_policies, _context("charge-1", 1))
    assert decision.allowed is False
    assert decision.reason == ECONOMIC_ROLE_POLICY_MISSING
    assert decision.requires_human_review is True


def test_cost_category_outside_role_policy_is_denied(agents, role_policies) -> None:
    store = _store()
    decision = _charge(store, agents, role_policies, _context("charge-1", 1, CostCategory.risk))
    assert decision.reason == ECONOMIC_CATEGORY_DENIED
    assert store.ensure(IDENTITY, NOW).window_used == 0


def test_identity_specific_role_policies_replace_defaults(agents, role_policies) -> None:
    role_policies.set_policies(IDENTITY, [RolePolicy(role_id="operator", allowed_cost_categories={CostCategory.risk})])
    store = _store()
    assert _charge(store, agents, role_policies, _context("charge-1", 1, CostCategory.risk)).allowed is True
    assert _charge(store, agents, role_policies, _context("charge-2", 1, CostCategory.io)).allowed is False


def test_human_retry_of_blocked_charge_returns_stored_decision(agents, role_policies) -> None:
    store = _store(window_limit=10)
    blocked = _charge(store, agents, role_policies, _context("charge-1", 20))
    store.set_policy(EconomicPolicy(window_limit=100))
    retried = _charge(store, agents, role_policies, _context("charge-1", 20), initiator=Initiator.human)

    assert retried.allowed is False
    assert retried.replayed is True
    assert retried.reason == blocked.reason
    assert store.ensure(IDENTITY, NOW).window_used == 0


def test_unpriced_context_is_priced_before_charging(agents, role_policies) -> None:
    store = _store()
    context = AgentRuntimeContext(agent_id="agent:ops", decision_type="send_message", task_id="task-9")
    decision = _charge(store, agents, role_policies, context)

    assert decision.context.cost_units == 3
    assert decision.context.cost_category == CostCategory.io
    assert decision.context.cost_charge_id == "action:task-9"
    assert decision.audit.charge_id == "action:task-9"


def test_resolve_charge_id() -> None:
    assert resolve_charge_id(AgentRuntimeContext(agent_id="a", cost_charge_id="explicit")) == "explicit"
    assert resolve_charge_id(AgentRuntimeContext(agent_id="a", task_id="t-1")) == "action:t-1"
    assert (
        resolve_charge_id(AgentRuntimeContext(agent_id="a", decision_type="sms", cost_source=CostSource.tool))
        == "tool:sms"
    )


def test_set_policy_keeps_usage_counters(agents, role_policies) -> None:
    store = _store(window_limit=100)
    _charge(store, agents, role_policies, _context("charge-1", 30))
    store.set_policy(EconomicPolicy(window_limit=200))
    budget = store.ensure(IDENTITY, NOW)
    assert (budget.window_limit, budget.window_used) == (200, 30)


def test_seed_skips_known_charge_ids(agents, role_policies) -> None:
    store = _store()
    decision = _charge(store, agents, role_policies, _context("charge-1", 5))

    fresh = _store()
    assert fresh.seed([decision.audit]) == 1
    assert fresh.seed([decision.audit]) == 0
    replay = _charge(fresh, agents, role_policies, _context("charge-1", 5))
    assert replay.replayed is True
    assert fresh.ensure(IDENTITY, NOW).window_used == 0
