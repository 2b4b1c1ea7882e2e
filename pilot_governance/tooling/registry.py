from __future__ import annotations

"""Tool registry.

The registry maps a tool name to its governed ``ToolDefinition``. It is an
explicit object handed to the gateway, never a module-level singleton.
"""

from typing import Any, Dict, List, Mapping, Union

from .definition import ToolDefinition, create_governed_tool


class ToolRegistry:
    """
    In-memory mapping of tool names to governed definitions.

    Notes:
        - ``register`` overwrites any existing mapping for the tool name.
        - ``register`` accepts a plain mapping of definition fields and wraps
          it with ``create_governed_tool``.
        - ``get`` will raise ``KeyError`` if the tool is missing.
    """

    def __init__(self) -> None:
        """Initialize an empty tool registry."""
        self._tools: Dict[str, ToolDefinition] = {}

    def register(self, tool: Union[ToolDefinition, Mapping[str, Any]]) -> ToolDefinition:
        """
        Register a tool.

        Args:
            tool: A ``ToolDefinition`` or the keyword arguments of ``create_governed_tool``.

        Returns:
            The stored governed definition.
        """
        governed = tool if isinstance(tool, ToolDefinition) else create_governed_tool(**dict(tool))
        self._tools[governed.name] = governed
        return governed

    def get(self, name: str) -> ToolDefinition:
        """
        Retrieve a registered tool by name.

        Raises:
            KeyError: If no tool is registered with the given name.
        """
        try:
            return self._tools[name]
        except KeyError as e:
            raise KeyError(f"unknown tool: {name}") from e

    def has(self, name: str) -> bool:
        return name in self._tools

    def list(self) -> List[ToolDefinition]:
        return list(self._tools.values())
