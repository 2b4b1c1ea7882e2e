"""Budget tracking for cost, tokens and side effects.

A ``BudgetTracker`` holds monotonically increasing counters for one caller
scope and compares projected usage against static ``BudgetLimits``. The
tracker is one of the few pieces of state shared between concurrent
decisions, so every read and write goes through a lock. Callers only ever see
immutable ``BudgetState`` snapshots.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

from pydantic import Field

from ..schemas.base import FrozenSchema

logger = logging.getLogger(__name__)

BUDGET_COST_EXCEEDED = "budget_cost_exceeded"
BUDGET_TOKENS_EXCEEDED = "budget_tokens_exceeded"
BUDGET_SIDE_EFFECTS_EXCEEDED = "budget_side_effects_exceeded"


class BudgetLimits(FrozenSchema):
    """Static limits a scope may consume before the safety gate refuses work."""

    max_cost_cents: int = Field(default=500, ge=0)
    max_tokens: int = Field(default=50_000, ge=0)
    max_side_effects: int = Field(default=10, ge=0)


class BudgetState(FrozenSchema):
    """Snapshot of consumed budget for one scope."""

    scope: str = "default"
    cost_cents: int = Field(default=0, ge=0)
    tokens: int = Field(default=0, ge=0)
    side_effects: int = Field(default=0, ge=0)

    def plus(self, *, cost_cents: int = 0, tokens: int = 0, side_effects: int = 0) -> "BudgetState":
        """Return a new state with the given usage added."""
        return self.model_copy(
            update={
                "cost_cents": self.cost_cents + max(0, int(cost_cents)),
                "tokens": self.tokens + max(0, int(tokens)),
                "side_effects": self.side_effects + max(0, int(side_effects)),
            }
        )


def exceeded_limit(state: BudgetState, limits: BudgetLimits) -> Optional[str]:
    """Return the reason code of the first limit ``state`` exceeds, or None."""
    if state.cost_cents > limits.max_cost_cents:
        return BUDGET_COST_EXCEEDED
    if state.tokens > limits.max_tokens:
        return BUDGET_TOKENS_EXCEEDED
    if state.side_effects > limits.max_side_effects:
        return BUDGET_SIDE_EFFECTS_EXCEEDED
    return None


class BudgetTracker:
    """
    Mutable usage counters for one scope, compared against static limits.

    Usage only grows until ``reset`` is called by the owner of the scope.
    """

    def __init__(self, limits: BudgetLimits, *, scope: str = "default", state: Optional[BudgetState] = None) -> None:
        self._limits = limits
        self._state = state or BudgetState(scope=scope)
        self._lock = threading.Lock()

    @property
    def limits(self) -> BudgetLimits:
        return self._limits

    @property
    def state(self) -> BudgetState:
        with self._lock:
            return self._state

    def projected(self, *, cost_cents: int = 0, tokens: int = 0, side_effects: int = 0) -> BudgetState:
        """Return the state usage would reach if the given request were recorded."""
        with self._lock:
            return self._state.plus(cost_cents=cost_cents, tokens=tokens, side_effects=side_effects)

    def check(self, *, cost_cents: int = 0, tokens: int = 0, side_effects: int = 0) -> Optional[str]:
        """
        Check a request against the limits without recording it.

        Returns:
            The reason code of the first exceeded limit, or None when the
            request fits.
        """
        return exceeded_limit(
            self.projected(cost_cents=cost_cents, tokens=tokens, side_effects=side_effects),
            self._limits,
        )

    def reserve(self, *, cost_cents: int = 0, tokens: int = 0, side_effects: int = 0) -> Optional[str]:
        """
        Check a request against the limits and record it in one step.

        Concurrent callers cannot both pass the check on the same remaining
        budget: the check and the write happen under the tracker's lock.

        Returns:
            The reason code of the first exceeded limit, in which case nothing
            is recorded, or None once the usage has been recorded.
        """
        with self._lock:
            projected = self._state.plus(cost_cents=cost_cents, tokens=tokens, side_effects=side_effects)
            exceeded = exceeded_limit(projected, self._limits)
            if exceeded is None:
                self._state = projected
        if exceeded is not None:
            logger.info("budget reservation refused: scope=%s reason=%s", projected.scope, exceeded)
        else:
            self._log_usage(projected)
        return exceeded

    def record_usage(self, *, cost_cents: int = 0, tokens: int = 0, side_effects: int = 0) -> BudgetState:
        """Add usage to the counters and return the new snapshot."""
        with self._lock:
            self._state = self._state.plus(cost_cents=cost_cents, tokens=tokens, side_effects=side_effects)
            state = self._state
        self._log_usage(state)
        return state

    @staticmethod
    def _log_usage(state: BudgetState) -> None:
        logger.debug(
            "budget usage recorded: scope=%s cost_cents=%s tokens=%s side_effects=%s",
            state.scope,
            state.cost_cents,
            state.tokens,
            state.side_effects,
        )

    def reset(self) -> BudgetState:
        with self._lock:
            self._state = BudgetState(scope=self._state.scope)
            return self._state
