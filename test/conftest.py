from __future__ import annotations

import asyncio
from pathlib import Path
from typing import List

import pytest
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict

# Load dotenv files early so Settings-based tests can pick up overrides via os.getenv
TEST_ROOT = Path(__file__).resolve().parent
load_dotenv(TEST_ROOT / ".env", override=False)

from pilot_governance.gateway import AgentProfile, AgentRegistry, GovernanceGateway, RolePolicyRegistry
from pilot_governance.policy import GovernancePolicy, RolePolicy
from pilot_governance.schemas import ActionImpact, AgentRuntimeContext, CostCategory, PermissionTier
from pilot_governance.tooling import ToolDefinition, ToolRegistry, create_governed_tool

IDENTITY = "user:alice"
AGENT_ID = "agent:ops"
AGENT_ROLE = "operator"


class EchoInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    text: str


class EchoOutput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    echoed: str


class PurgeInput(BaseModel):
    table: str


class PurgeOutput(BaseModel):
    purged: int


class HandlerCalls:
    """Counts how often a tool handler actually ran."""

    def __init__(self) -> None:
        self.inputs: List[BaseModel] = []

    @property
    def count(self) -> int:
        return len(self.inputs)


@pytest.fixture
def echo_calls() -> HandlerCalls:
    return HandlerCalls()


@pytest.fixture
def echo_tool(echo_calls: HandlerCalls) -> ToolDefinition:
    async def _handler(payload: EchoInput, ctx) -> dict:
        echo_calls.inputs.append(payload)
        await asyncio.sleep(0)
        return {"echoed": payload.text}

    return create_governed_tool(
        name="echo",
        input_schema=EchoInput,
        output_schema=EchoOutput,
        impact=ActionImpact.reversible,
        permission_tiers=[PermissionTier.suggest, PermissionTier.execute],
        handler=_handler,
        description="Echo the input text back.",
    )


@pytest.fixture
def purge_calls() -> HandlerCalls:
    return HandlerCalls()


@pytest.fixture
def purge_tool(purge_calls: HandlerCalls) -> ToolDefinition:
    def _handler(payload: PurgeInput, ctx) -> dict:
        purge_calls.inputs.append(payload)
        return {"purged": 3}

    return create_governed_tool(
        name="purge_records",
        input_schema=PurgeInput,
        output_schema=PurgeOutput,
        impact=ActionImpact.irreversible,
        handler=_handler,
    )


@pytest.fixture
def agents() -> AgentRegistry:
    return AgentRegistry([AgentProfile(agent_id=AGENT_ID, role=AGENT_ROLE, display_name="Ops agent")])


@pytest.fixture
def role_policies() -> RolePolicyRegistry:
    return RolePolicyRegistry([RolePolicy(role_id=AGENT_ROLE, allowed_cost_categories=set(CostCategory))])


@pytest.fixture
def tools(echo_tool: ToolDefinition, purge_tool: ToolDefinition) -> ToolRegistry:
    registry = ToolRegistry()
    registry.register(echo_tool)
    registry.register(purge_tool)
    return registry


@pytest.fixture
def gateway(tools: ToolRegistry, agents: AgentRegistry, role_policies: RolePolicyRegistry) -> GovernanceGateway:
    return GovernanceGateway(GovernancePolicy(), tools=tools, agents=agents, role_policies=role_policies)


@pytest.fixture
def make_context():
    """Factory for an execute-tier runtime context of the registered agent."""

    def _make(**overrides) -> AgentRuntimeContext:
        fields = {
            "agent_id": AGENT_ID,
            "action_domain": "support",
            "decision_type": "send_message",
            "permission_tier": PermissionTier.execute,
        }
        fields.update(overrides)
        return AgentRuntimeContext(**fields)

    return _make
