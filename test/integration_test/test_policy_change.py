from __future__ import annotations

import pytest

from pilot_governance.cache import CachePolicy
from pilot_governance.core import Settings
from pilot_governance.errors import LedgerValidationError
from pilot_governance.gateway import POLICY_ADOPTED, GovernanceGateway, GovernanceStage, build_gateway_from_settings
from pilot_governance.ledger import GovernanceInitiator
from pilot_governance.policy import GovernancePolicy, KernelLockMode, SafetyPolicy, get_kernel_lock_state
from pilot_governance.safety import BudgetLimits
from pilot_governance.schemas import ExecutionScope

IDENTITY = "user:alice"


def _candidate(version: str = "governance-v2", **updates) -> GovernancePolicy:
    return GovernancePolicy().model_copy(update={"version": version, **updates})


async def _propose(gateway: GovernanceGateway, candidate: GovernancePolicy):
    return await gateway.propose_policy_change(
        candidate, justification="tighten spending", intent_id="intent-budget"
    )


async def test_weakened_approval_rule_is_vetoed(gateway) -> None:
    candidate = _candidate(safety=SafetyPolicy(require_approval_for_irreversible=False))
    outcome = await _propose(gateway, candidate)

    assert outcome.adopted is False
    assert outcome.reason == "task_regression"
    assert outcome.policy_version == "governance-v1"
    assert outcome.guard.diff.regressed == ("safety-irreversible-approval",)
    assert gateway.policy.version == "governance-v1"
    assert gateway.governance_ledger() == []
    assert len(gateway.evaluation_ledger.list()) == 2


async def test_caching_irreversible_results_is_vetoed(gateway) -> None:
    outcome = await _propose(gateway, _candidate(cache=CachePolicy(allow_irreversible=True)))

    assert outcome.adopted is False
    assert outcome.guard.diff.regressed == ("irreversible-not-cacheable",)
    assert gateway.policy.cache.allow_irreversible is False


async def test_benign_change_is_adopted_and_keeps_usage(gateway, make_context) -> None:
    gateway.enforce_runtime_governance(IDENTITY, make_context(task_id="t-1", estimated_cost_cents=20))

    candidate = _candidate(safety=SafetyPolicy(limits=BudgetLimits(max_cost_cents=50)))
    outcome = await _propose(gateway, candidate)

    assert outcome.adopted is True
    assert outcome.reason == POLICY_ADOPTED
    assert outcome.policy_version == "governance-v2"
    assert gateway.policy is candidate

    tracker = gateway.budget_for(IDENTITY)
    assert tracker.limits.max_cost_cents == 50
    assert tracker.state.cost_cents == 20

    record = outcome.governance_record
    assert record.decision_key == "policy:governance-v2"
    assert record.scope == ExecutionScope.system
    assert record.initiator == GovernanceInitiator.human
    assert record.payload == {"from_version": "governance-v1", "to_version": "governance-v2"}
    assert gateway.governance_ledger() == [record]

    refused = gateway.enforce_runtime_governance(IDENTITY, make_context(task_id="t-2", estimated_cost_cents=40))
    assert (refused.stage, refused.reason) == (GovernanceStage.safety, "budget_cost_exceeded")


async def test_kernel_lock_refuses_without_running_the_battery(tools, agents, role_policies) -> None:
    gateway = GovernanceGateway(
        tools=tools,
        agents=agents,
        role_policies=role_policies,
        kernel_lock=get_kernel_lock_state(is_production=True),
    )
    outcome = await _propose(gateway, _candidate())

    assert (outcome.adopted, outcome.reason) == (False, "kernel_locked")
    assert outcome.guard is None
    assert gateway.evaluation_ledger.list() == []


@pytest.mark.parametrize("justification,intent_id", [("  ", "intent-1"), ("reason", "")])
async def test_missing_justification_or_intent_raises(gateway, justification: str, intent_id: str) -> None:
    with pytest.raises(LedgerValidationError):
        await gateway.propose_policy_change(_candidate(), justification=justification, intent_id=intent_id)
    assert gateway.evaluation_ledger.list() == []


class TestBuildFromSettings:
    @pytest.fixture(autouse=True)
    def _isolated_env(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        for name in ("LOGFIRE_ENABLED", "LOGFIRE_TOKEN", "PILOT_GOVERNANCE_KERNEL_LOCK", "PILOT_GOVERNANCE_PRODUCTION"):
            monkeypatch.delenv(name, raising=False)

    def test_production_gateway_is_locked(self) -> None:
        gateway = build_gateway_from_settings(Settings(is_production=True), configure_logging=False)
        assert gateway.kernel_lock.locked is True
        assert gateway.kernel_lock.reason == "default_locked"

    def test_explicit_override_opens_the_lock(self) -> None:
        settings = Settings(is_production=True, kernel_lock=KernelLockMode.open, max_cost_cents=7)
        gateway = build_gateway_from_settings(settings, configure_logging=False)
        assert gateway.kernel_lock.locked is False
        assert gateway.budget_for(IDENTITY).limits.max_cost_cents == 7
