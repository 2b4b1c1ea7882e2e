"""Cache data model and eligibility policy."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import Field

from ..schemas.base import BaseSchema, FrozenSchema
from ..schemas.domain import ActionImpact, normalize_impact

CACHE_ALLOWED = "cache_allowed"
CACHE_DISABLED = "cache_disabled"
CACHE_IRREVERSIBLE = "irreversible_not_cacheable"
CACHE_NOVELTY_TOO_HIGH = "novelty_too_high"
CACHE_EXPLORATION_MODE = "exploration_mode"


class CachePolicy(BaseSchema):
    """
    Eligibility rules for memoising results.

    Irreversible calls, calls whose novelty exceeds ``max_novelty_score`` and
    exploration-mode calls are never cached unless the matching switch is
    turned on.
    """

    enabled: bool = True
    ttl_seconds: Optional[float] = Field(default=3600.0, gt=0.0)
    max_novelty_score: float = Field(default=0.7, ge=0.0, le=1.0)
    allow_irreversible: bool = False
    allow_exploration: bool = False


class CachePolicyDecision(FrozenSchema):
    allowed: bool
    reason: str


def evaluate_cache_policy(
    policy: Optional[CachePolicy],
    *,
    impact: Any = None,
    novelty_score: Optional[float] = None,
    exploration_mode: bool = False,
) -> CachePolicyDecision:
    """Decide whether a call with this classification may be served from or written to the cache."""
    policy = policy or CachePolicy()
    if not policy.enabled:
        return CachePolicyDecision(allowed=False, reason=CACHE_DISABLED)
    if normalize_impact(impact) == ActionImpact.irreversible and not policy.allow_irreversible:
        return CachePolicyDecision(allowed=False, reason=CACHE_IRREVERSIBLE)
    if novelty_score is not None and novelty_score > policy.max_novelty_score:
        return CachePolicyDecision(allowed=False, reason=CACHE_NOVELTY_TOO_HIGH)
    if exploration_mode and not policy.allow_exploration:
        return CachePolicyDecision(allowed=False, reason=CACHE_EXPLORATION_MODE)
    return CachePolicyDecision(allowed=True, reason=CACHE_ALLOWED)


class CacheContext(FrozenSchema):
    """What a caller attaches to a tool call to make it cacheable."""

    kind: str = "tool_output"
    task_type: str
    goal_id: Optional[str] = None
    goal_version: Optional[str] = None
    policy: Optional[CachePolicy] = None


class CacheEntry(FrozenSchema):
    cache_key: str
    kind: str
    task_type: str
    goal_id: Optional[str] = None
    goal_version: Optional[str] = None
    input_hash: str
    payload: Any = None
    created_at: datetime
    expires_at: Optional[datetime] = None
    hit_count: int = 0
    last_hit_at: Optional[datetime] = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class CachePreference(FrozenSchema):
    """An identity's standing request to cache results for a task type."""

    task_type: str
    kind: str = "tool_output"
    goal_id: Optional[str] = None
    goal_version: Optional[str] = None
    active: bool = True
    expires_at: Optional[datetime] = None

    def applies_to(self, task_type: str, goal_id: Optional[str], now: datetime) -> bool:
        if not self.active or self.task_type != task_type:
            return False
        if self.expires_at is not None and now >= self.expires_at:
            return False
        return self.goal_id is None or self.goal_id == goal_id

    def to_context(self, policy: Optional[CachePolicy] = None, *, goal_id: Optional[str] = None) -> CacheContext:
        """Build the cache context for one call; a preference without a goal takes the call's ``goal_id``."""
        return CacheContext(
            kind=self.kind,
            task_type=self.task_type,
            goal_id=self.goal_id or goal_id,
            goal_version=self.goal_version,
            policy=policy,
        )
