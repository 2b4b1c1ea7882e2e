"""Economic gate: role-based cost categories plus a rolling budget.

Every decision is keyed by a charge id. The audit record for a charge id is
looked up before any budget is consumed, so retries replay the original
decision instead of spending twice.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional, Protocol, Sequence

from ..policy.models import RolePolicy
from ..schemas.base import FrozenSchema
from ..schemas.domain import AgentRuntimeContext, CostSource, Initiator
from .budget_state import (
    EconomicAuditRecord,
    EconomicBudgetState,
    EconomicDecision,
    EconomicStateStore,
)
from .cost_model import ensure_context_economics

logger = logging.getLogger(__name__)

ECONOMIC_ROLE_POLICY_MISSING = "economic_role_policy_missing"
ECONOMIC_CATEGORY_DENIED = "economic_category_denied"


class AgentDirectory(Protocol):
    def role_for(self, agent_id: str) -> Optional[str]: ...


class RolePolicySource(Protocol):
    def policies_for(self, identity_key: str) -> Sequence[RolePolicy]: ...


class EconomicGateDecision(FrozenSchema):
    allowed: bool
    reason: str
    requires_human_review: bool
    budget: EconomicBudgetState
    audit: EconomicAuditRecord
    replayed: bool = False
    context: AgentRuntimeContext


def resolve_charge_id(context: AgentRuntimeContext) -> str:
    """``cost_charge_id`` if set, otherwise ``<source>:<task id or decision type>``."""
    if context.cost_charge_id:
        return context.cost_charge_id
    source = (context.cost_source or CostSource.action).value
    return f"{source}:{context.task_id or context.decision_type}"


def enforce_economic_gate(
    identity_key: str,
    context: AgentRuntimeContext,
    initiator: Initiator = Initiator.agent,
    *,
    store: EconomicStateStore,
    agents: AgentDirectory,
    role_policies: RolePolicySource,
    now: Optional[datetime] = None,
) -> EconomicGateDecision:
    """
    Decide whether ``context`` may spend its cost units.

    Args:
        identity_key: The identity whose budget is charged.
        context: The decision context; priced via the cost model if needed.
        initiator: Who asked. A blocked charge is only re-examined for humans,
            and even then the stored record is returned.
        store: Per-identity budget state and audit trail.
        agents: Resolves an agent id to its role.
        role_policies: Resolves an identity's role policies.
        now: Clock override for window rollover.

    Returns:
        An ``EconomicGateDecision`` carrying the priced context.
    """
    enriched = ensure_context_economics(context)
    source = enriched.cost_source or CostSource.action
    charge_id = resolve_charge_id(enriched)
    enriched = enriched.model_copy(update={"cost_charge_id": charge_id, "cost_source": source})
    units = enriched.cost_units or 0
    category = enriched.cost_category

    with store.transaction():
        existing = store.find_by_charge(identity_key, charge_id)
        if existing is not None:
            blocked = existing.decision == EconomicDecision.blocked
            if blocked and initiator == Initiator.human:
                logger.info("Human retry of blocked charge %s returns the stored decision", charge_id)
            logger.debug("Replaying economic decision for charge %s (%s)", charge_id, existing.decision.value)
            return EconomicGateDecision(
                allowed=not blocked,
                reason=existing.reason,
                requires_human_review=blocked,
                budget=store.ensure(identity_key, now),
                audit=existing,
                replayed=True,
                context=enriched,
            )

        role_id = agents.role_for(enriched.agent_id)
        policy = next((p for p in role_policies.policies_for(identity_key) if role_id and p.role_id == role_id), None)
        budget = store.ensure(identity_key, now)

        def _audit(decision: EconomicDecision, reason: str, state: EconomicBudgetState) -> EconomicAuditRecord:
            return store.record(
                EconomicAuditRecord(
                    identity_key=identity_key,
                    role_id=policy.role_id if policy else role_id,
                    action_id=enriched.task_id,
                    task_id=enriched.task_id,
                    task_type=enriched.task_type,
                    tool=enriched.tool,
                    cost_units=units,
                    cost_category=category,
                    cost_source=source,
                    charge_id=charge_id,
                    decision=decision,
                    reason=reason,
                    remaining_budget=state.remaining_budget,
                    session_remaining=state.session_remaining,
                )
            )

        if policy is None:
            logger.warning("No economic role policy for agent %s (role=%s)", enriched.agent_id, role_id)
            audit = _audit(EconomicDecision.blocked, ECONOMIC_ROLE_POLICY_MISSING, budget)
            return EconomicGateDecision(
                allowed=False,
                reason=ECONOMIC_ROLE_POLICY_MISSING,
                requires_human_review=True,
                budget=budget,
                audit=audit,
                context=enriched,
            )

        if category not in policy.allowed_cost_categories:
            logger.info("Cost category %s denied for role %s", category.value, policy.role_id)
            audit = _audit(EconomicDecision.blocked, ECONOMIC_CATEGORY_DENIED, budget)
            return EconomicGateDecision(
                allowed=False,
                reason=ECONOMIC_CATEGORY_DENIED,
                requires_human_review=True,
                budget=budget,
                audit=audit,
                context=enriched,
            )

        consumed = store.consume(identity_key, units, now)
        decision = EconomicDecision.allowed if consumed.allowed else EconomicDecision.blocked
        audit = _audit(decision, consumed.reason, consumed.budget)

    if consumed.allowed:
        logger.debug("Charged %d unit(s) to %s for %s", units, identity_key, charge_id)
    else:
        logger.info("Economic budget refused %d unit(s) for %s: %s", units, charge_id, consumed.reason)
    return EconomicGateDecision(
        allowed=consumed.allowed,
        reason=consumed.reason,
        requires_human_review=not consumed.allowed,
        budget=consumed.budget,
        audit=audit,
        context=enriched,
    )
