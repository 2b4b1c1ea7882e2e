"""Governed tools, the tool registry and the invocation runtime."""

from .adaptation import ToolHealth, ToolRecommendation, ToolUsageStore, recommend_tool
from .definition import ToolDefinition, ToolExecuteContext, create_governed_tool
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
from .registry import ToolRegistry
from .runtime import ToolInvokeContext, invoke_tool, map_safety_failure

__all__ = [
    "ToolHealth",
    "ToolRecommendation",
    "ToolUsageStore",
    "recommend_tool",
    "ToolDefinition",
    "ToolExecuteContext",
    "create_governed_tool",
    "RETRYABLE_FAILURES",
    "FailureType",
    "ToolCall",
    "ToolFailure",
    "ToolMetrics",
    "ToolResult",
    "ToolStatus",
    "ToolUsageEvent",
    "ToolRegistry",
    "ToolInvokeContext",
    "invoke_tool",
    "map_safety_failure",
]
