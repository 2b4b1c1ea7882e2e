from __future__ import annotations

"""Governed tool definitions.

A tool is a pydantic ``ToolDefinition`` with input and output models and a
handler. ``ToolDefinition.execute`` refuses to run unless it receives a
``ToolExecuteContext`` carrying the runtime's guard token, which only
``invoke_tool`` creates. Calling a tool directly raises ``ToolGuardError``.
"""

import asyncio
import inspect
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field

from ..errors import ToolGuardError
from ..schemas.domain import ActionImpact, AgentRuntimeContext, Initiator, PermissionTier

_INVOKE_TOOL_GUARD = object()


@dataclass(frozen=True)
class ToolExecuteContext:
    """Execution context handed to tool handlers.

    Attributes
    ----------
    identity_key:
        The identity the call is charged to.
    agent_context:
        The priced, governance-checked runtime context.
    initiator:
        Who asked for the call.
    """

    identity_key: str
    agent_context: AgentRuntimeContext
    initiator: Initiator = Initiator.agent
    guard: object = field(default=None, repr=False, compare=False)


def guarded_context(
    identity_key: str,
    agent_context: AgentRuntimeContext,
    initiator: Initiator = Initiator.agent,
) -> ToolExecuteContext:
    """Build the context ``invoke_tool`` passes to ``ToolDefinition.execute``."""
    return ToolExecuteContext(
        identity_key=identity_key,
        agent_context=agent_context,
        initiator=initiator,
        guard=_INVOKE_TOOL_GUARD,
    )


ToolHandler = Callable[[Any, ToolExecuteContext], Any]


class ToolDefinition(BaseModel):
    """Pydantic model for governed tool definitions.

    Declares the contract ``invoke_tool`` validates a call against: input and
    output models, impact, permitted tiers and, optionally, the action
    domains the tool may serve.
    """

    name: str = Field(..., min_length=1, description="Unique identifier for the tool")
    version: str = Field(default="1.0.0")
    description: str = Field(default="", description="Human-readable description of what the tool does")
    domains: Optional[List[str]] = Field(default=None, description="Action domains the tool may serve")
    input_schema: Type[BaseModel] = Field(..., description="Pydantic model class for input validation")
    output_schema: Type[BaseModel] = Field(..., description="Pydantic model class for output")
    impact: ActionImpact
    permission_tiers: List[PermissionTier] = Field(default_factory=lambda: [PermissionTier.execute])
    handler: ToolHandler = Field(..., description="Sync or async callable(input_model, context)")

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    async def execute(self, payload: BaseModel, context: Optional[ToolExecuteContext] = None) -> Any:
        """
        Run the handler.

        Raises:
            ToolGuardError: ``context`` is missing or was not created by ``invoke_tool``.
        """
        if context is None:
            raise ToolGuardError(self.name, "tool_governance_context_required")
        if context.guard is not _INVOKE_TOOL_GUARD:
            raise ToolGuardError(self.name, "tool_execute_requires_invoke_tool")
        if inspect.iscoroutinefunction(self.handler):
            return await self.handler(payload, context)
        result = await asyncio.to_thread(self.handler, payload, context)
        if inspect.isawaitable(result):
            return await result
        return result

    def to_dict(self) -> dict:
        """Describe the tool with JSON schemas for its contracts."""
        return {
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "impact": self.impact.value,
            "permission_tiers": [t.value for t in self.permission_tiers],
            "domains": list(self.domains) if self.domains is not None else None,
            "input_schema": self.input_schema.model_json_schema(),
            "output_schema": self.output_schema.model_json_schema(),
        }


def create_governed_tool(
    *,
    name: str,
    input_schema: Type[BaseModel],
    output_schema: Type[BaseModel],
    impact: ActionImpact,
    handler: ToolHandler,
    permission_tiers: Optional[List[PermissionTier]] = None,
    domains: Optional[List[str]] = None,
    version: str = "1.0.0",
    description: str = "",
) -> ToolDefinition:
    return ToolDefinition(
        name=name,
        version=version,
        description=description,
        domains=domains,
        input_schema=input_schema,
        output_schema=output_schema,
        impact=impact,
        permission_tiers=permission_tiers or [PermissionTier.execute],
        handler=handler,
    )
