from __future__ import annotations

import pytest
from pydantic import ValidationError

from pilot_governance.policy import (
    EconomicPolicy,
    GovernancePolicy,
    KernelLockMode,
    get_kernel_lock_state,
)


@pytest.mark.parametrize(
    "is_production,override,locked,reason",
    [
        (True, None, True, "default_locked"),
        (False, None, False, "default_open"),
        (True, KernelLockMode.open, False, "override_open"),
        (False, "locked", True, "override_locked"),
    ],
)
def test_kernel_lock_state(is_production: bool, override, locked: bool, reason: str) -> None:
    state = get_kernel_lock_state(is_production=is_production, override=override)
    assert state.locked is locked
    assert state.reason == reason
    assert state.mode == (KernelLockMode.locked if locked else KernelLockMode.open)


def test_unknown_override_is_rejected() -> None:
    with pytest.raises(ValueError):
        get_kernel_lock_state(is_production=False, override="ajar")


def test_policy_defaults() -> None:
    policy = GovernancePolicy()
    assert policy.version == "governance-v1"
    assert policy.safety.require_approval_for_irreversible is True
    assert (policy.economics.window_limit, policy.economics.session_limit) == (100, 1000)
    assert policy.irreversibility.drift_score_threshold == 0.8
    assert policy.cache.allow_irreversible is False


def test_policy_rejects_unknown_fields() -> None:
    with pytest.raises(ValidationError):
        GovernancePolicy(unknown=True)
    with pytest.raises(ValidationError):
        EconomicPolicy(window_limit=-1)
