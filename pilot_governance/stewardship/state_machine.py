"""Stewardship activation state machine.

Two states, ``inactive`` and ``active``. A handoff moves inactive -> active
after launch readiness passes; a reset moves back with human steward
approval. Both transitions are logged to the stewardship log (clock prefix
``s``). Every function returns a new ``StewardshipState``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from ..errors import LedgerValidationError
from ..irreversibility.constitution import CONSTITUTION, REQUIRED_INVARIANTS
from ..ledger import clock
from ..schemas.domain import ActionImpact, normalize_impact
from .models import (
    STEWARDSHIP_ROLES,
    EmergencyAction,
    EmergencyRecord,
    LaunchReadiness,
    LaunchReadinessInput,
    StewardshipAction,
    StewardshipGuardDecision,
    StewardshipLogEntry,
    StewardshipRole,
    StewardshipState,
    StewardshipStatus,
    StewardshipTransition,
    StewardshipTransparency,
    can_approve_irreversible,
    is_human_steward,
    normalize_role,
)

logger = logging.getLogger(__name__)

STEWARDSHIP_CLOCK_PREFIX = "s"


def create_stewardship_state() -> StewardshipState:
    return StewardshipState()


def append_stewardship_log(
    state: Optional[StewardshipState],
    *,
    action_type: Union[StewardshipAction, str],
    actor_role: Union[StewardshipRole, str],
    explanation: str,
    status: str = "RECORDED",
    context: Optional[Mapping[str, Any]] = None,
    created_at: Optional[str] = None,
    entry_id: Optional[str] = None,
) -> tuple[StewardshipState, StewardshipLogEntry]:
    """
    Append an entry to the stewardship log.

    Raises:
        LedgerValidationError: Unknown action type or role, or an empty explanation.
    """
    current = state or create_stewardship_state()
    try:
        action = StewardshipAction(action_type)
    except ValueError:
        raise LedgerValidationError(f"Invalid stewardship action: {action_type}", field="action_type") from None
    role = normalize_role(actor_role)
    text = (explanation or "").strip()
    if not text:
        raise LedgerValidationError("explanation is required.", field="explanation")

    next_clock, stamp = clock.stamp_entry(current.logical_clock, STEWARDSHIP_CLOCK_PREFIX, created_at)
    entry = StewardshipLogEntry(
        entry_id=(entry_id or "").strip() or f"steward-{stamp}",
        action_type=action,
        actor_role=role,
        explanation=text,
        status=(status or "").strip() or "RECORDED",
        context=dict(context or {}),
        created_at=stamp,
    )
    new_state = current.model_copy(update={"log": current.log + (entry,), "logical_clock": next_clock})
    return new_state, entry


def _readiness_input(data: Union[LaunchReadinessInput, Mapping[str, Any]]) -> LaunchReadinessInput:
    if isinstance(data, LaunchReadinessInput):
        return data
    return LaunchReadinessInput.model_validate(dict(data))


def evaluate_launch_readiness(readiness_input: Union[LaunchReadinessInput, Mapping[str, Any]]) -> LaunchReadiness:
    data = _readiness_input(readiness_input)
    # The constitution is a frozen model, so it is immutable unless the caller says otherwise.
    immutable = True if data.constitution_immutable is None else data.constitution_immutable
    try:
        approver: Optional[StewardshipRole] = normalize_role(data.approver_role) if data.approver_role else None
    except LedgerValidationError:
        approver = None

    reasons: List[str] = []
    if not data.constitution_loaded:
        reasons.append("constitution_not_loaded")
    if not immutable:
        reasons.append("constitution_not_immutable")
    if not data.invariants_verified:
        reasons.append("invariants_not_verified")
    if not data.failure_simulations_passed:
        reasons.append("failure_simulations_not_verified")
    if data.mock_mode:
        reasons.append("mock_mode_active")
    if data.drift_score is None:
        reasons.append("drift_score_missing")
    elif data.drift_score < data.drift_warning_threshold:
        reasons.append("drift_score_below_warning_threshold")
    if not data.human_approval:
        reasons.append("human_approval_missing")
    if not is_human_steward(approver):
        reasons.append("approver_role_invalid")

    ok = not reasons
    return LaunchReadiness(
        status=StewardshipStatus.allow if ok else StewardshipStatus.safe_hold,
        ok=ok,
        reasons=tuple(reasons),
        terminal_outcome="executed" if ok else "halted",
    )


def apply_stewardship_handoff(
    state: Optional[StewardshipState],
    handoff_input: Union[LaunchReadinessInput, Mapping[str, Any]],
) -> StewardshipTransition:
    """
    Attempt the inactive -> active transition.

    The attempt is always logged. Only when readiness passes and stewardship
    is not already active is the activation logged and builder privileges removed.
    """
    current = state or create_stewardship_state()
    data = _readiness_input(handoff_input)
    readiness = evaluate_launch_readiness(data)
    actor = normalize_role(data.actor_role or data.approver_role or StewardshipRole.founder_steward)
    explanation = data.explanation.strip() or "stewardship handoff"

    status = readiness.status
    reasons = readiness.reasons
    if current.stewardship_active:
        status = StewardshipStatus.safe_hold
        reasons = reasons + ("stewardship_already_active",)

    next_state, _ = append_stewardship_log(
        current,
        action_type=StewardshipAction.handoff_attempt,
        actor_role=actor,
        explanation=explanation,
        status=status.value,
        context={"reasons": list(reasons)},
        created_at=data.created_at,
    )

    if status != StewardshipStatus.allow:
        logger.info("Stewardship handoff held: %s", ", ".join(reasons))
        return StewardshipTransition(status=status, reasons=reasons, state=next_state, terminal_outcome="halted")

    next_state, _ = append_stewardship_log(
        next_state,
        action_type=StewardshipAction.handoff_activate,
        actor_role=actor,
        explanation=explanation,
        status=StewardshipStatus.applied.value,
        created_at=data.created_at,
    )
    logger.info("Stewardship activated by %s", actor.value)
    return StewardshipTransition(
        status=StewardshipStatus.applied,
        state=next_state.model_copy(update={"stewardship_active": True, "builder_privileges_removed": True}),
        terminal_outcome="executed",
    )


def apply_stewardship_reset(
    state: Optional[StewardshipState],
    *,
    explanation: str,
    human_approval: bool = False,
    actor_role: Union[StewardshipRole, str] = StewardshipRole.founder_steward,
    created_at: Optional[str] = None,
) -> StewardshipTransition:
    """
    Attempt the active -> inactive transition.

    Raises:
        LedgerValidationError: ``explanation`` is empty or the role is unknown.
    """
    current = state or create_stewardship_state()
    actor = normalize_role(actor_role)
    text = (explanation or "").strip()
    if not text:
        raise LedgerValidationError("explanation is required for reset.", field="explanation")

    if not current.stewardship_active:
        return StewardshipTransition(
            status=StewardshipStatus.safe_hold,
            reasons=("stewardship_not_active",),
            state=current,
            terminal_outcome="halted",
        )
    if not human_approval or not is_human_steward(actor):
        logger.info("Stewardship reset refused for %s: human approval required", actor.value)
        return StewardshipTransition(
            status=StewardshipStatus.safe_hold,
            reasons=("human_approval_required",),
            state=current,
            terminal_outcome="halted",
        )

    next_state, _ = append_stewardship_log(
        current,
        action_type=StewardshipAction.handoff_reset,
        actor_role=actor,
        explanation=text,
        status=StewardshipStatus.applied.value,
        created_at=created_at,
    )
    logger.info("Stewardship reset by %s", actor.value)
    return StewardshipTransition(
        status=StewardshipStatus.applied,
        state=next_state.model_copy(update={"stewardship_active": False, "builder_privileges_removed": False}),
        terminal_outcome="executed",
    )


def record_emergency_action(
    state: Optional[StewardshipState],
    *,
    actor_role: Union[StewardshipRole, str],
    emergency_action: Union[EmergencyAction, str],
    explanation: str,
    created_at: Optional[str] = None,
) -> EmergencyRecord:
    """
    Record an emergency action, whatever the activation state.

    Raises:
        LedgerValidationError: The actor is not a human steward, the action
            is unknown or the explanation is empty.
    """
    actor = normalize_role(actor_role)
    if not is_human_steward(actor):
        raise LedgerValidationError("Emergency actions require human stewardship role.", field="actor_role")
    try:
        action = EmergencyAction(emergency_action)
    except ValueError:
        raise LedgerValidationError(f"Invalid emergency_action: {emergency_action}", field="emergency_action") from None
    text = (explanation or "").strip()
    if not text:
        raise LedgerValidationError("explanation is required for emergency actions.", field="explanation")

    next_state, entry = append_stewardship_log(
        state,
        action_type=StewardshipAction.emergency_action,
        actor_role=actor,
        explanation=text,
        status=StewardshipStatus.applied.value,
        context={"emergency_action": action.value},
        created_at=created_at,
    )
    logger.warning("Emergency action %s recorded by %s", action.value, actor.value)
    return EmergencyRecord(state=next_state, entry=entry)


def evaluate_stewardship_guard(
    *,
    stewardship_active: bool,
    action_impact: Any,
    human_approval: bool = False,
    actor_role: Optional[str] = None,
    invariants_passed: bool = False,
    constitution_passed: bool = False,
) -> StewardshipGuardDecision:
    """Re-validate an action against the stewardship rules. Never raises for an unknown role."""
    reasons: List[str] = []
    if not invariants_passed:
        reasons.append("invariants_failed")
    if not constitution_passed:
        reasons.append("constitution_failed")

    if stewardship_active and normalize_impact(action_impact) == ActionImpact.irreversible:
        if not human_approval:
            reasons.append("human_approval_required")
        try:
            role_ok = bool(actor_role) and can_approve_irreversible(actor_role)
        except LedgerValidationError:
            role_ok = False
        if not role_ok:
            reasons.append("steward_role_invalid")

    return StewardshipGuardDecision(ok=not reasons, reasons=tuple(reasons))


def get_stewardship_transparency() -> StewardshipTransparency:
    invariants: tuple[Dict[str, str], ...] = tuple(
        {"id": inv.id, "title": inv.title, "description": inv.description} for inv in REQUIRED_INVARIANTS
    )
    return StewardshipTransparency(
        purpose=CONSTITUTION.purpose,
        non_goals=CONSTITUTION.non_goals,
        invariants=invariants,
        stewardship_roles=STEWARDSHIP_ROLES,
        stewardship_rules=(
            "Stewardship activation removes builder privileges.",
            "Irreversible actions require human stewardship approval.",
            "Maintenance Bot is advisory only.",
            "Emergency actions require explanation and immutable logging.",
        ),
        known_limitations=(
            "No automatic recovery from SAFE_HOLD.",
            "Budget consumed before a failed or timed-out tool execution is not refunded.",
            "Governance conflicts halt execution until human review.",
        ),
    )


def get_stewardship_ledger(entries: Iterable[StewardshipLogEntry]) -> List[StewardshipLogEntry]:
    return clock.sort_by_logical_time(entries, STEWARDSHIP_CLOCK_PREFIX, key=lambda e: e.created_at)


def restore_stewardship_state(
    entries: Iterable[StewardshipLogEntry], state: Optional[StewardshipState] = None
) -> StewardshipState:
    """
    Rebuild a stewardship state from persisted log entries.

    The entries are merged into ``state`` by ``entry_id``, the activation flags
    are replayed from the merged log, and the clock moves past every stamp.

    Raises:
        LedgerValidationError: A persisted entry shares its id with a different
            entry already in ``state``.
    """
    current = state or create_stewardship_state()
    held = {e.entry_id: e for e in current.log}
    merged = list(current.log)
    for entry in entries:
        existing = held.get(entry.entry_id)
        if existing is None:
            held[entry.entry_id] = entry
            merged.append(entry)
        elif existing != entry:
            raise LedgerValidationError(
                f"entry {entry.entry_id} conflicts with the log being restored", field="entry_id"
            )

    ordered = get_stewardship_ledger(merged)
    active = False
    for entry in ordered:
        if entry.action_type == StewardshipAction.handoff_activate:
            active = True
        elif entry.action_type == StewardshipAction.handoff_reset:
            active = False
    stamps = (clock.parse_logical_time(e.created_at, STEWARDSHIP_CLOCK_PREFIX) or 0 for e in ordered)
    return StewardshipState(
        stewardship_active=active,
        builder_privileges_removed=active,
        log=tuple(ordered),
        logical_clock=max(current.logical_clock, max(stamps, default=0)),
    )
