"""Stewardship roles, log entries and state."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import Field

from ..errors import LedgerValidationError
from ..schemas.base import FrozenSchema


class StewardshipRole(str, Enum):
    founder_steward = "founder-steward"
    system_steward = "system-steward"
    maintenance_bot = "maintenance-bot"


class EmergencyAction(str, Enum):
    safe_hold = "SAFE_HOLD"
    read_only = "READ_ONLY"
    full_stop = "FULL_STOP"


class StewardshipAction(str, Enum):
    handoff_attempt = "HANDOFF_ATTEMPT"
    handoff_activate = "HANDOFF_ACTIVATE"
    handoff_reset = "HANDOFF_RESET"
    emergency_action = "EMERGENCY_ACTION"


class StewardshipStatus(str, Enum):
    allow = "ALLOW"
    safe_hold = "SAFE_HOLD"
    applied = "APPLIED"


class RoleConfig(FrozenSchema):
    role_id: StewardshipRole
    label: str
    advisory_only: bool
    can_approve_irreversible: bool
    revocable: bool = True


STEWARDSHIP_ROLES: tuple[RoleConfig, ...] = (
    RoleConfig(
        role_id=StewardshipRole.founder_steward,
        label="Founder-Steward",
        advisory_only=False,
        can_approve_irreversible=True,
    ),
    RoleConfig(
        role_id=StewardshipRole.system_steward,
        label="System Steward",
        advisory_only=False,
        can_approve_irreversible=True,
    ),
    RoleConfig(
        role_id=StewardshipRole.maintenance_bot,
        label="Maintenance Bot",
        advisory_only=True,
        can_approve_irreversible=False,
    ),
)

HUMAN_STEWARD_ROLES = frozenset({StewardshipRole.founder_steward, StewardshipRole.system_steward})


def normalize_role(role: Any) -> StewardshipRole:
    """
    Coerce ``role`` into a ``StewardshipRole``.

    Raises:
        LedgerValidationError: The role is missing or unknown.
    """
    if isinstance(role, StewardshipRole):
        return role
    if not isinstance(role, str) or not role.strip():
        raise LedgerValidationError("role is required.", field="actor_role")
    try:
        return StewardshipRole(role.strip())
    except ValueError:
        raise LedgerValidationError(f"Invalid stewardship role: {role}", field="actor_role") from None


def role_config(role: Any) -> RoleConfig:
    normalized = normalize_role(role)
    return next(cfg for cfg in STEWARDSHIP_ROLES if cfg.role_id == normalized)


def can_approve_irreversible(role: Any) -> bool:
    return role_config(role).can_approve_irreversible


def is_human_steward(role: Optional[StewardshipRole]) -> bool:
    return role in HUMAN_STEWARD_ROLES


class StewardshipLogEntry(FrozenSchema):
    entry_id: str
    action_type: StewardshipAction
    actor_role: StewardshipRole
    explanation: str
    status: str = "RECORDED"
    context: Dict[str, Any] = Field(default_factory=dict)
    created_at: str


class StewardshipState(FrozenSchema):
    stewardship_active: bool = False
    builder_privileges_removed: bool = False
    log: tuple[StewardshipLogEntry, ...] = ()
    logical_clock: int = 0


class LaunchReadinessInput(FrozenSchema):
    constitution_loaded: bool = False
    constitution_immutable: Optional[bool] = None
    invariants_verified: bool = False
    failure_simulations_passed: bool = False
    human_approval: bool = False
    approver_role: Optional[str] = None
    actor_role: Optional[str] = None
    mock_mode: bool = False
    drift_score: Optional[float] = None
    drift_warning_threshold: float = 80.0
    explanation: str = ""
    created_at: Optional[str] = None


class LaunchReadiness(FrozenSchema):
    status: StewardshipStatus
    ok: bool
    reasons: tuple[str, ...] = ()
    terminal_outcome: str


class StewardshipTransition(FrozenSchema):
    """Result of a handoff or reset; ``state`` is the state to persist."""

    status: StewardshipStatus
    reasons: tuple[str, ...] = ()
    state: StewardshipState
    terminal_outcome: str


class EmergencyRecord(FrozenSchema):
    state: StewardshipState
    entry: StewardshipLogEntry


class StewardshipGuardDecision(FrozenSchema):
    ok: bool
    reasons: tuple[str, ...] = ()


class StewardshipTransparency(FrozenSchema):
    purpose: str
    non_goals: tuple[str, ...]
    invariants: tuple[Dict[str, str], ...]
    stewardship_roles: tuple[RoleConfig, ...]
    stewardship_rules: tuple[str, ...]
    known_limitations: tuple[str, ...]
