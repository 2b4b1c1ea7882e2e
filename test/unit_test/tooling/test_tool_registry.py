from __future__ import annotations

import pytest
from pydantic import BaseModel

from pilot_governance.schemas import ActionImpact
from pilot_governance.tooling import ToolDefinition, ToolRegistry


class LookupInput(BaseModel):
    key: str


class LookupOutput(BaseModel):
    value: str


def _lookup(payload: LookupInput, ctx) -> dict:
    return {"value": payload.key}


def test_register_and_get(echo_tool) -> None:
    registry = ToolRegistry()
    stored = registry.register(echo_tool)
    assert stored is echo_tool
    assert registry.get("echo") is echo_tool
    assert registry.has("echo") is True


def test_get_unknown_tool_raises_key_error() -> None:
    with pytest.raises(KeyError, match="unknown tool: missing"):
        ToolRegistry().get("missing")


def test_register_accepts_plain_mapping() -> None:
    registry = ToolRegistry()
    stored = registry.register(
        {
            "name": "lookup",
            "input_schema": LookupInput,
            "output_schema": LookupOutput,
            "impact": ActionImpact.reversible,
            "handler": _lookup,
        }
    )
    assert isinstance(stored, ToolDefinition)
    assert registry.get("lookup").impact == ActionImpact.reversible


def test_register_overwrites_by_name(echo_tool, purge_tool) -> None:
    registry = ToolRegistry()
    registry.register(echo_tool)
    replacement = purge_tool.model_copy(update={"name": "echo"})
    registry.register(replacement)
    assert registry.get("echo").impact == ActionImpact.irreversible
    assert len(registry.list()) == 1


def test_list_keeps_registration_order(tools) -> None:
    assert [t.name for t in tools.list()] == ["echo", "purge_records"]
