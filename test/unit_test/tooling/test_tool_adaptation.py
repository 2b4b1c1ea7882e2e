from __future__ import annotations

from typing import List

import pytest

from pilot_governance.tooling import (
    FailureType,
    ToolHealth,
    ToolStatus,
    ToolUsageEvent,
    ToolUsageStore,
    recommend_tool,
)

OK = (ToolStatus.success, None)
TIMEOUT = (ToolStatus.failure, FailureType.timeout)
CRASH = (ToolStatus.failure, FailureType.tool_runtime_error)
REFUSED = (ToolStatus.failure, FailureType.policy_blocked)


def _store(outcomes: List[tuple], tool: str = "search") -> ToolUsageStore:
    store = ToolUsageStore()
    for status, failure_type in outcomes:
        store.record(ToolUsageEvent(tool=tool, status=status, failure_type=failure_type))
    return store


@pytest.mark.parametrize(
    "outcomes,status,reason",
    [
        ([], ToolHealth.active, "insufficient_data"),
        ([TIMEOUT, CRASH], ToolHealth.active, "insufficient_data"),
        ([OK] * 10, ToolHealth.active, "healthy"),
        ([TIMEOUT] * 5, ToolHealth.disabled, "consecutive_failures"),
        ([OK, OK, CRASH, CRASH, CRASH], ToolHealth.disabled, "failure_rate_critical"),
        ([OK, OK, OK, OK, OK, OK, TIMEOUT, OK, TIMEOUT, TIMEOUT], ToolHealth.degraded, "failure_rate_elevated"),
        ([REFUSED] * 10, ToolHealth.active, "healthy"),
    ],
)
def test_recommendation(outcomes: List[tuple], status: ToolHealth, reason: str) -> None:
    recommendation = recommend_tool("search", _store(outcomes))
    assert (recommendation.status, recommendation.reason) == (status, reason)


def test_success_resets_consecutive_count() -> None:
    recommendation = recommend_tool("search", _store([TIMEOUT] * 4 + [OK]))
    assert recommendation.consecutive_failures == 0
    assert recommendation.failure_rate == pytest.approx(0.8)


def test_only_recent_window_is_judged() -> None:
    outcomes = [CRASH] * 4 + [OK] * 20
    recommendation = recommend_tool("search", _store(outcomes), window=20)
    assert recommendation.sample_size == 20
    assert recommendation.status == ToolHealth.active


def test_store_is_bounded_per_tool() -> None:
    store = ToolUsageStore(max_events_per_tool=3)
    for _ in range(5):
        store.record(ToolUsageEvent(tool="search", status=ToolStatus.success))
    store.record(ToolUsageEvent(tool="other", status=ToolStatus.success))
    assert len(store.events("search")) == 3
    assert len(store.events("other")) == 1


def test_unknown_tool_has_no_events() -> None:
    assert ToolUsageStore().events("nope") == []
