"""Tool health tracking from usage events.

Only failures the tool itself is responsible for (timeouts and runtime
errors) count against it; policy and permission refusals do not.
"""

from __future__ import annotations

import threading
from enum import Enum
from typing import Dict, List

from ..schemas.base import FrozenSchema
from .models import RETRYABLE_FAILURES, ToolStatus, ToolUsageEvent


class ToolHealth(str, Enum):
    active = "active"
    degraded = "degraded"
    disabled = "disabled"


class ToolRecommendation(FrozenSchema):
    tool: str
    status: ToolHealth
    reason: str
    sample_size: int
    failure_rate: float
    consecutive_failures: int


class ToolUsageStore:
    """Thread-safe, bounded history of usage events per tool."""

    def __init__(self, max_events_per_tool: int = 200) -> None:
        self._max = max_events_per_tool
        self._lock = threading.Lock()
        self._events: Dict[str, List[ToolUsageEvent]] = {}

    def record(self, event: ToolUsageEvent) -> None:
        with self._lock:
            events = self._events.setdefault(event.tool, [])
            events.append(event)
            if len(events) > self._max:
                del events[: len(events) - self._max]

    def events(self, tool: str) -> List[ToolUsageEvent]:
        with self._lock:
            return list(self._events.get(tool, []))


def _counts_against_tool(event: ToolUsageEvent) -> bool:
    return event.status == ToolStatus.failure and event.failure_type in RETRYABLE_FAILURES


def recommend_tool(
    tool: str,
    store: ToolUsageStore,
    *,
    window: int = 20,
    min_events: int = 3,
    disable_after_consecutive: int = 5,
    disable_failure_rate: float = 0.6,
    degrade_failure_rate: float = 0.3,
) -> ToolRecommendation:
    """Recommend whether ``tool`` should keep being used, judged on its recent events."""
    recent = store.events(tool)[-window:]
    failures = [e for e in recent if _counts_against_tool(e)]
    consecutive = 0
    for event in reversed(recent):
        if not _counts_against_tool(event):
            break
        consecutive += 1
    rate = len(failures) / len(recent) if recent else 0.0

    def _result(status: ToolHealth, reason: str) -> ToolRecommendation:
        return ToolRecommendation(
            tool=tool,
            status=status,
            reason=reason,
            sample_size=len(recent),
            failure_rate=rate,
            consecutive_failures=consecutive,
        )

    if consecutive >= disable_after_consecutive:
        return _result(ToolHealth.disabled, "consecutive_failures")
    if len(recent) < min_events:
        return _result(ToolHealth.active, "insufficient_data")
    if rate >= disable_failure_rate:
        return _result(ToolHealth.disabled, "failure_rate_critical")
    if rate >= degrade_failure_rate:
        return _result(ToolHealth.degraded, "failure_rate_elevated")
    return _result(ToolHealth.active, "healthy")
