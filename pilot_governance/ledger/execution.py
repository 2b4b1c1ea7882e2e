"""Append-only execution ledger.

Persistence is the caller's concern: the functions here take an
``ExecutionLedgerState`` and return a new one, they never mutate their input.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, List, Mapping, Optional, Tuple, Union

from pydantic import Field

from ..errors import LedgerValidationError
from ..irreversibility.models import ReleaseGate, get_release_gate, normalize_scope
from ..schemas.base import BaseSchema, FrozenSchema
from ..schemas.domain import ActionImpact, ExecutionScope, normalize_impact
from . import clock

logger = logging.getLogger(__name__)

EXECUTION_CLOCK_PREFIX = "e"


class ExecutionRecord(FrozenSchema):
    record_id: str
    created_at: str
    action_key: str
    action_impact: ActionImpact
    intent_id: str
    scope: ExecutionScope = ExecutionScope.local_pod
    release_gate: ReleaseGate
    actor_role: Optional[str] = None
    human_approval: bool = False
    rationale: str = ""
    cooling_off_window: str = ""
    evidence: tuple[str, ...] = ()


class ExecutionRecordInput(BaseSchema):
    """Loose input for ``append_execution_record``; required fields are checked by hand."""

    record_id: Optional[str] = None
    created_at: Optional[str] = None
    action_key: Optional[str] = None
    action_impact: Optional[Any] = None
    intent_id: Optional[str] = None
    scope: Optional[Any] = None
    actor_role: Optional[str] = None
    human_approval: bool = False
    rationale: Optional[str] = None
    cooling_off_window: Optional[str] = None
    evidence: List[str] = Field(default_factory=list)


class ExecutionLedgerState(FrozenSchema):
    records: tuple[ExecutionRecord, ...] = ()
    logical_clock: int = 0


class AppendResult(FrozenSchema):
    state: ExecutionLedgerState
    record: ExecutionRecord


def create_execution_ledger_state() -> ExecutionLedgerState:
    return ExecutionLedgerState()


def advance_clock(state: ExecutionLedgerState) -> Tuple[ExecutionLedgerState, str]:
    """Return the state with its clock advanced by one, and the new stamp."""
    next_clock, stamp = clock.advance_clock(state.logical_clock, EXECUTION_CLOCK_PREFIX)
    return state.model_copy(update={"logical_clock": next_clock}), stamp


def _require(value: Optional[str], field: str) -> str:
    text = value.strip() if isinstance(value, str) else ""
    if not text:
        raise LedgerValidationError(f"{field} is required", field=field)
    return text


def append_execution_record(
    state: Optional[ExecutionLedgerState],
    record_input: Union[ExecutionRecordInput, Mapping[str, Any]],
) -> AppendResult:
    """
    Append one execution record.

    Args:
        state: Current ledger state, or None for an empty ledger.
        record_input: The record to append.

    Returns:
        The new state and the stored record.

    Raises:
        LedgerValidationError: A required field is missing. Irreversible
            records also need ``human_approval``, ``rationale`` and
            ``cooling_off_window``.
    """
    current = state or create_execution_ledger_state()
    data = record_input if isinstance(record_input, ExecutionRecordInput) else ExecutionRecordInput.model_validate(dict(record_input))

    action_key = _require(data.action_key, "action_key")
    intent_id = _require(data.intent_id, "intent_id")
    impact = normalize_impact(data.action_impact)
    if impact is None:
        raise LedgerValidationError("action_impact is required", field="action_impact")

    rationale = (data.rationale or "").strip()
    cooling_off = (data.cooling_off_window or "").strip()
    if impact == ActionImpact.irreversible:
        if not data.human_approval:
            raise LedgerValidationError("human_approval is required for irreversible actions", field="human_approval")
        _require(rationale, "rationale")
        _require(cooling_off, "cooling_off_window")

    next_clock, created_at = clock.stamp_entry(current.logical_clock, EXECUTION_CLOCK_PREFIX, data.created_at)
    scope = normalize_scope(data.scope)
    record = ExecutionRecord(
        record_id=(data.record_id or "").strip() or f"exec-{created_at}",
        created_at=created_at,
        action_key=action_key,
        action_impact=impact,
        intent_id=intent_id,
        scope=scope,
        release_gate=get_release_gate(scope, impact),
        actor_role=data.actor_role,
        human_approval=bool(data.human_approval),
        rationale=rationale,
        cooling_off_window=cooling_off,
        evidence=tuple(data.evidence),
    )
    logger.debug("Appended execution record %s (%s, %s)", record.record_id, action_key, impact.value)
    new_state = ExecutionLedgerState(records=current.records + (record,), logical_clock=next_clock)
    return AppendResult(state=new_state, record=record)


def get_execution_ledger(records: Iterable[ExecutionRecord]) -> List[ExecutionRecord]:
    """Return ``records`` in logical-clock order."""
    return clock.sort_by_logical_time(records, EXECUTION_CLOCK_PREFIX, key=lambda r: r.created_at)


def restore_execution_ledger(
    records: Iterable[ExecutionRecord], state: Optional[ExecutionLedgerState] = None
) -> ExecutionLedgerState:
    """
    Merge persisted records into ``state`` and move its clock past every stamp.

    Records already held (same ``record_id`` and content) are skipped, so
    restoring twice is harmless.

    Raises:
        LedgerValidationError: A persisted record shares its id with a
            different record already in ``state``.
    """
    current = state or create_execution_ledger_state()
    held = {r.record_id: r for r in current.records}
    merged = list(current.records)
    for record in records:
        existing = held.get(record.record_id)
        if existing is None:
            held[record.record_id] = record
            merged.append(record)
        elif existing != record:
            raise LedgerValidationError(
                f"record {record.record_id} conflicts with the ledger being restored", field="record_id"
            )
    stamps = (clock.parse_logical_time(r.created_at, EXECUTION_CLOCK_PREFIX) or 0 for r in merged)
    return ExecutionLedgerState(
        records=tuple(get_execution_ledger(merged)),
        logical_clock=max(current.logical_clock, max(stamps, default=0)),
    )
