from .kernel_lock import KERNEL_LOCKED, KernelLockMode, KernelLockState, get_kernel_lock_state
from .models import (
    EconomicPolicy,
    GovernancePolicy,
    IrreversibilityPolicy,
    RolePolicy,
    SafetyPolicy,
    StewardshipPolicy,
)

__all__ = [
    "KERNEL_LOCKED",
    "KernelLockMode",
    "KernelLockState",
    "get_kernel_lock_state",
    "EconomicPolicy",
    "GovernancePolicy",
    "IrreversibilityPolicy",
    "RolePolicy",
    "SafetyPolicy",
    "StewardshipPolicy",
]
