"""Stewardship roles and the activation state machine."""

from .models import (
    STEWARDSHIP_ROLES,
    EmergencyAction,
    EmergencyRecord,
    LaunchReadiness,
    LaunchReadinessInput,
    RoleConfig,
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
from .state_machine import (
    STEWARDSHIP_CLOCK_PREFIX,
    append_stewardship_log,
    apply_stewardship_handoff,
    apply_stewardship_reset,
    create_stewardship_state,
    evaluate_launch_readiness,
    evaluate_stewardship_guard,
    get_stewardship_ledger,
    get_stewardship_transparency,
    record_emergency_action,
    restore_stewardship_state,
)

__all__ = [
    "STEWARDSHIP_ROLES",
    "EmergencyAction",
    "EmergencyRecord",
    "LaunchReadiness",
    "LaunchReadinessInput",
    "RoleConfig",
    "StewardshipAction",
    "StewardshipGuardDecision",
    "StewardshipLogEntry",
    "StewardshipRole",
    "StewardshipState",
    "StewardshipStatus",
    "StewardshipTransition",
    "StewardshipTransparency",
    "can_approve_irreversible",
    "is_human_steward",
    "normalize_role",
    "STEWARDSHIP_CLOCK_PREFIX",
    "append_stewardship_log",
    "apply_stewardship_handoff",
    "apply_stewardship_reset",
    "create_stewardship_state",
    "evaluate_launch_readiness",
    "evaluate_stewardship_guard",
    "get_stewardship_ledger",
    "get_stewardship_transparency",
    "record_emergency_action",
    "restore_stewardship_state",
]
