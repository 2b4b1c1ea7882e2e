"""Kernel lock: while locked, governance policy cannot change."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from ..schemas.base import FrozenSchema

KERNEL_LOCKED = "kernel_locked"


class KernelLockMode(str, Enum):
    locked = "locked"
    open = "open"


class KernelLockState(FrozenSchema):
    locked: bool
    mode: KernelLockMode
    reason: str


def get_kernel_lock_state(*, is_production: bool, override: Optional[KernelLockMode] = None) -> KernelLockState:
    """
    Resolve the lock state.

    Production defaults to locked and everything else to open; an explicit
    override wins either way.
    """
    if override is not None:
        mode = KernelLockMode(override)
        reason = f"override_{mode.value}"
    else:
        mode = KernelLockMode.locked if is_production else KernelLockMode.open
        reason = "default_locked" if mode == KernelLockMode.locked else "default_open"
    return KernelLockState(locked=mode == KernelLockMode.locked, mode=mode, reason=reason)
