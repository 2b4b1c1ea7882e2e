"""Safety gate for a single proposed action.

Rules are checked in order and the first failing rule decides:

1. Permission tier: ``draft`` may never act, ``suggest`` may only propose
   work without live effects, live work needs ``execute``.
2. Irreversible impact without an approved ``ApprovalGate`` requires approval.
3. Projected budget (current usage plus the request) must stay within every
   limit of the caller's ``BudgetTracker``.

The gate is a pure function over its inputs and the tracker's current totals;
it never records usage.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..schemas.base import FrozenSchema
from ..schemas.domain import ActionImpact, ApprovalGate, PermissionTier
from .budget import BudgetTracker

logger = logging.getLogger(__name__)

SAFETY_OK = "safety_ok"
DRAFT_TIER_CANNOT_ACT = "draft_tier_cannot_act"
SUGGESTION_TIER_CANNOT_EXECUTE = "suggestion_tier_cannot_execute"
APPROVAL_REQUIRED = "approval_required"


class SafetyDecision(FrozenSchema):
    """
    Result of evaluating the safety gate.

    Attributes:
        allowed: Whether the action may proceed.
        required_approval: True when the only way forward is a human approval.
        reason: Stable machine-readable reason code.
    """

    allowed: bool
    required_approval: bool
    reason: str


def evaluate_safety_gate(
    *,
    permission_tier: PermissionTier,
    impact: ActionImpact,
    estimated_cost_cents: int,
    estimated_tokens: int,
    side_effect_count: int,
    budget: BudgetTracker,
    approval: Optional[ApprovalGate] = None,
    live: Optional[bool] = None,
    require_approval_for_irreversible: bool = True,
) -> SafetyDecision:
    """
    Evaluate a proposed action against permission tier, impact and budget.

    Args:
        permission_tier: The tier the caller is acting under.
        impact: Reversibility classification of the action.
        estimated_cost_cents: Cost the action would add.
        estimated_tokens: Tokens the action would add.
        side_effect_count: Side effects the action would add.
        budget: The caller's budget tracker; read, never written.
        approval: Human approval, if any.
        live: Whether the action runs live. Defaults to True when the action
            has side effects or is not reversible.
        require_approval_for_irreversible: Policy switch for rule 2.

    Returns:
        SafetyDecision with the first failing rule's reason, or ``safety_ok``.
    """
    is_live = live if live is not None else (side_effect_count > 0 or impact != ActionImpact.reversible)

    if permission_tier == PermissionTier.draft:
        return _blocked(DRAFT_TIER_CANNOT_ACT)
    if is_live and permission_tier != PermissionTier.execute:
        return _blocked(SUGGESTION_TIER_CANNOT_EXECUTE)

    approved = bool(approval is not None and approval.approved)
    if require_approval_for_irreversible and impact == ActionImpact.irreversible and not approved:
        logger.info("safety gate: irreversible action requires approval")
        return SafetyDecision(allowed=False, required_approval=True, reason=APPROVAL_REQUIRED)

    exceeded = budget.check(
        cost_cents=estimated_cost_cents,
        tokens=estimated_tokens,
        side_effects=side_effect_count,
    )
    if exceeded is not None:
        return _blocked(exceeded)

    return SafetyDecision(allowed=True, required_approval=False, reason=SAFETY_OK)


def _blocked(reason: str) -> SafetyDecision:
    logger.info("safety gate blocked: %s", reason)
    return SafetyDecision(allowed=False, required_approval=False, reason=reason)
