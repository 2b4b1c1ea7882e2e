"""Decision log: one entry per aggregate governance decision, allowed or not."""

from __future__ import annotations

from typing import Iterable, List, Optional

from ..schemas.base import FrozenSchema
from ..schemas.domain import ActionImpact, Initiator
from . import clock

DECISION_CLOCK_PREFIX = "d"


class DecisionLogEntry(FrozenSchema):
    entry_id: str
    created_at: str
    identity_key: str
    agent_id: str
    initiator: Initiator
    decision_type: str = ""
    action_domain: str = ""
    impact: Optional[ActionImpact] = None
    allowed: bool
    stage: str
    reason: str
    requires_human_review: bool = False
    reasons: tuple[str, ...] = ()
    charge_id: Optional[str] = None
    execution_record_id: Optional[str] = None


class DecisionLogState(FrozenSchema):
    entries: tuple[DecisionLogEntry, ...] = ()
    logical_clock: int = 0


def append_decision_entry(
    state: Optional[DecisionLogState],
    *,
    identity_key: str,
    agent_id: str,
    initiator: Initiator,
    allowed: bool,
    stage: str,
    reason: str,
    requires_human_review: bool = False,
    reasons: Iterable[str] = (),
    decision_type: str = "",
    action_domain: str = "",
    impact: Optional[ActionImpact] = None,
    charge_id: Optional[str] = None,
    execution_record_id: Optional[str] = None,
) -> tuple[DecisionLogState, DecisionLogEntry]:
    current = state or DecisionLogState()
    next_clock, created_at = clock.advance_clock(current.logical_clock, DECISION_CLOCK_PREFIX)
    entry = DecisionLogEntry(
        entry_id=f"decision-{created_at}",
        created_at=created_at,
        identity_key=identity_key,
        agent_id=agent_id,
        initiator=initiator,
        decision_type=decision_type,
        action_domain=action_domain,
        impact=impact,
        allowed=allowed,
        stage=stage,
        reason=reason,
        requires_human_review=requires_human_review,
        reasons=tuple(reasons),
        charge_id=charge_id,
        execution_record_id=execution_record_id,
    )
    return DecisionLogState(entries=current.entries + (entry,), logical_clock=next_clock), entry


def get_decision_log(entries: Iterable[DecisionLogEntry]) -> List[DecisionLogEntry]:
    return clock.sort_by_logical_time(entries, DECISION_CLOCK_PREFIX, key=lambda e: e.created_at)
