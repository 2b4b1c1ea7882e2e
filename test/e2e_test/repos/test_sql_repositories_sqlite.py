"""End-to-end tests for the SQL repositories on a file-backed SQLite database.

A gateway produces real ledger entries and economic audits, which are
exported through the SQL bundle and read back. Fresh gateways are then loaded
from the database to show that charge replay, ledger clocks and stewardship
activation survive a restart.
"""

import pytest

from pilot_governance.errors import LedgerValidationError
from pilot_governance.gateway import GovernanceGateway
from pilot_governance.policy import GovernancePolicy
from pilot_governance.repos import export_identity_state, load_economic_audits, load_identity_state
from pilot_governance.repos.sql import (
    SqlRepoBundle,
    build_sql_repos,
    create_all,
    create_engine,
    create_sessionmaker,
)
from pilot_governance.schemas import ApprovalGate, IrreversibilityEvidence

IDENTITY = "user:alice"

READY = {
    "constitution_loaded": True,
    "invariants_verified": True,
    "failure_simulations_passed": True,
    "human_approval": True,
    "approver_role": "founder-steward",
    "drift_score": 90.0,
    "explanation": "launch",
}


@pytest.fixture
async def db_engine(tmp_path):
    """Create a SQLite database file for the test."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'governance.db'}")
    await create_all(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
async def repos(db_engine) -> SqlRepoBundle:
    return build_sql_repos(session_factory=create_sessionmaker(db_engine))


@pytest.fixture
def busy_gateway(gateway: GovernanceGateway, make_context) -> GovernanceGateway:
    """A gateway with one reversible charge, one irreversible record and a stewardship handoff."""
    gateway.enforce_runtime_governance(IDENTITY, make_context(task_id="task-1"))
    gateway.enforce_runtime_governance(
        IDENTITY,
        make_context(
            decision_type="purge_records",
            task_id="task-2",
            impact="irreversible",
            approval=ApprovalGate(approved=True, approver_role="founder-steward"),
            irreversibility=IrreversibilityEvidence(
                action_key="data_delete",
                rationale="retention period elapsed",
                cooling_off_window="24h",
                drift_score=0.9,
            ),
        ),
    )
    gateway.apply_stewardship_handoff(IDENTITY, READY)
    return gateway


class TestExport:
    async def test_export_persists_every_ledger(self, busy_gateway: GovernanceGateway, repos: SqlRepoBundle) -> None:
        summary = await export_identity_state(busy_gateway, IDENTITY, repos)

        assert (summary.execution_records, summary.stewardship_entries, summary.economic_audits) == (1, 2, 2)
        assert await repos.ledger.list_execution(IDENTITY) == busy_gateway.execution_ledger(IDENTITY)
        assert await repos.ledger.list_stewardship(IDENTITY) == busy_gateway.stewardship_ledger(IDENTITY)
        stored = await repos.audits.list(IDENTITY)
        assert [a.charge_id for a in stored] == ["action:task-1", "action:task-2"]

    async def test_repeated_export_writes_nothing(self, busy_gateway: GovernanceGateway, repos: SqlRepoBundle) -> None:
        await export_identity_state(busy_gateway, IDENTITY, repos)
        again = await export_identity_state(busy_gateway, IDENTITY, repos)

        assert (again.execution_records, again.stewardship_entries, again.economic_audits) == (0, 0, 0)
        assert len(await repos.ledger.list_execution(IDENTITY)) == 1

    async def test_identities_are_isolated(self, busy_gateway: GovernanceGateway, repos: SqlRepoBundle) -> None:
        await export_identity_state(busy_gateway, IDENTITY, repos)
        assert await repos.ledger.list_execution("user:bob") == []
        assert await repos.audits.find_by_charge("user:bob", "action:task-1") is None


class TestAuditRepository:
    async def test_first_record_per_charge_wins(self, busy_gateway: GovernanceGateway, repos: SqlRepoBundle) -> None:
        original = busy_gateway.economic_audits(IDENTITY)[0]
        assert await repos.audits.record(original) is True

        duplicate = original.model_copy(update={"audit_id": "audit-other", "reason": "changed"})
        assert await repos.audits.record(duplicate) is False

        found = await repos.audits.find_by_charge(IDENTITY, original.charge_id)
        assert found == original


async def test_seeded_store_replays_persisted_charges(
    busy_gateway: GovernanceGateway, repos: SqlRepoBundle, tools, agents, role_policies, make_context
) -> None:
    await export_identity_state(busy_gateway, IDENTITY, repos)

    restarted = GovernanceGateway(GovernancePolicy(), tools=tools, agents=agents, role_policies=role_policies)
    assert await load_economic_audits(restarted.economic_store, IDENTITY, repos) == 2
    assert await load_economic_audits(restarted.economic_store, IDENTITY, repos) == 0

    decision = restarted.enforce_runtime_governance(IDENTITY, make_context(task_id="task-1"))
    assert decision.allowed is True
    assert decision.details.economic.replayed is True
    assert len(restarted.economic_audits(IDENTITY)) == 2


def _reversible(action_key: str) -> dict:
    return {"action_key": action_key, "action_impact": "reversible", "intent_id": f"intent-{action_key}"}


class TestRestart:
    @pytest.fixture
    def fresh_gateway(self, tools, agents, role_policies):
        def _make() -> GovernanceGateway:
            return GovernanceGateway(GovernancePolicy(), tools=tools, agents=agents, role_policies=role_policies)

        return _make

    async def test_loaded_gateway_continues_the_execution_clock(self, fresh_gateway, repos: SqlRepoBundle) -> None:
        first = fresh_gateway()
        first.append_execution_record(IDENTITY, _reversible("first"))
        await export_identity_state(first, IDENTITY, repos)

        second = fresh_gateway()
        loaded = await load_identity_state(second, IDENTITY, repos)
        record = second.append_execution_record(IDENTITY, _reversible("second"))
        summary = await export_identity_state(second, IDENTITY, repos)

        assert loaded.execution_records == 1
        assert (record.record_id, record.created_at) == ("exec-e2", "e2")
        assert summary.execution_records == 1
        assert [r.action_key for r in await repos.ledger.list_execution(IDENTITY)] == ["first", "second"]

    async def test_loaded_gateway_keeps_stewardship_active(
        self, busy_gateway: GovernanceGateway, fresh_gateway, repos: SqlRepoBundle
    ) -> None:
        await export_identity_state(busy_gateway, IDENTITY, repos)

        restarted = fresh_gateway()
        loaded = await load_identity_state(restarted, IDENTITY, repos)
        assert (loaded.execution_records, loaded.stewardship_entries, loaded.economic_audits) == (1, 2, 2)
        assert restarted.stewardship_state(IDENTITY).stewardship_active is True

        reset = restarted.apply_stewardship_reset(IDENTITY, explanation="rollback", human_approval=True)
        summary = await export_identity_state(restarted, IDENTITY, repos)

        assert reset.state.log[-1].created_at == "s3"
        assert summary.stewardship_entries == 1
        stored = await repos.ledger.list_stewardship(IDENTITY)
        assert [e.entry_id for e in stored] == ["steward-s1", "steward-s2", "steward-s3"]

    async def test_loading_twice_adds_nothing(self, busy_gateway: GovernanceGateway, fresh_gateway, repos) -> None:
        await export_identity_state(busy_gateway, IDENTITY, repos)
        restarted = fresh_gateway()
        await load_identity_state(restarted, IDENTITY, repos)

        again = await load_identity_state(restarted, IDENTITY, repos)

        assert (again.execution_records, again.stewardship_entries, again.economic_audits) == (0, 0, 0)
        assert len(restarted.execution_ledger(IDENTITY)) == 1

    async def test_appending_before_loading_is_refused(self, fresh_gateway, repos: SqlRepoBundle) -> None:
        first = fresh_gateway()
        first.append_execution_record(IDENTITY, _reversible("first"))
        await export_identity_state(first, IDENTITY, repos)

        careless = fresh_gateway()
        careless.append_execution_record(IDENTITY, _reversible("second"))

        with pytest.raises(LedgerValidationError):
            await export_identity_state(careless, IDENTITY, repos)
        with pytest.raises(LedgerValidationError):
            await load_identity_state(careless, IDENTITY, repos)
        assert [r.action_key for r in await repos.ledger.list_execution(IDENTITY)] == ["first"]
