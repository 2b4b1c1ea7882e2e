"""Cost attribution in abstract cost units.

Units are derived from the action, tool call or decision type when the
caller did not supply them. The ``ensure_*`` helpers return an enriched copy
and leave already-priced inputs untouched.
"""

from __future__ import annotations

import math
from typing import Optional, Protocol, TypeVar

from ..schemas.base import FrozenSchema
from ..schemas.domain import (
    ActionImpact,
    ActionSpec,
    AgentRuntimeContext,
    CostCategory,
    RiskLevel,
    TaskClass,
    normalize_impact,
)

_IO_HINTS = ("message", "email", "sms", "voice", "webhook")

_ACTION_BASE_UNITS = {
    "voice": 6,
    "sms": 4,
    "email": 3,
    "message": 3,
    "webhook": 2,
    "task": 3,
    "note": 1,
    "update_state": 1,
    "wait": 1,
}

# Order matters: the first hint contained in the decision type wins.
_CONTEXT_BASE_UNITS = (
    ("voice", 6),
    ("sms", 4),
    ("email", 3),
    ("message", 3),
    ("webhook", 2),
    ("task", 3),
    ("note", 1),
    ("wait", 1),
)
_CONTEXT_DEFAULT_UNITS = 2


class CostAttribution(FrozenSchema):
    cost_units: int
    cost_category: CostCategory
    reason: str


class PricedToolCall(Protocol):
    tool: str
    estimated_cost_cents: int
    side_effect_count: int
    impact: ActionImpact
    cost_units: Optional[int]
    cost_category: Optional[CostCategory]


TCall = TypeVar("TCall", bound=FrozenSchema)


def _clamp(units: float) -> int:
    return max(0, int(round(units)))


def _action_category(action: ActionSpec) -> CostCategory:
    if action.irreversible or action.risk_level == RiskLevel.high:
        return CostCategory.risk
    if action.action_type in _IO_HINTS:
        return CostCategory.io
    if action.action_type == "task":
        return CostCategory.human_attention
    if action.action_type == "note":
        return CostCategory.reasoning
    return CostCategory.compute


def derive_action_cost(action: ActionSpec) -> CostAttribution:
    units = _ACTION_BASE_UNITS.get(action.action_type, 1)
    if action.risk_level == RiskLevel.medium:
        units += 1
    elif action.risk_level == RiskLevel.high:
        units += 2
    if action.irreversible:
        units += 2
    return CostAttribution(cost_units=_clamp(units), cost_category=_action_category(action), reason="action_cost_model")


def derive_tool_call_cost(call: PricedToolCall) -> CostAttribution:
    units = 1
    if call.estimated_cost_cents > 0:
        units = max(1, math.ceil(call.estimated_cost_cents / 10))
    if call.side_effect_count > 0:
        units += 1
    impact = normalize_impact(call.impact)
    if impact == ActionImpact.irreversible:
        units += 2
    elif impact == ActionImpact.difficult_to_reverse:
        units += 1

    tool_name = call.tool.lower()
    if impact != ActionImpact.reversible:
        category = CostCategory.risk
    elif any(hint in tool_name for hint in _IO_HINTS):
        category = CostCategory.io
    else:
        category = CostCategory.compute
    return CostAttribution(cost_units=_clamp(units), cost_category=category, reason="tool_cost_model")


def _type_hint(context: AgentRuntimeContext, default: str) -> str:
    return context.decision_type or context.task_type or default


def derive_context_cost(context: AgentRuntimeContext) -> CostAttribution:
    hint = _type_hint(context, "task")
    units = next((value for key, value in _CONTEXT_BASE_UNITS if key in hint), _CONTEXT_DEFAULT_UNITS)
    if context.task_class == TaskClass.novel:
        units += 1
    elif context.task_class == TaskClass.high_risk:
        units += 2
    if context.impact == ActionImpact.irreversible:
        units += 2
    elif context.impact == ActionImpact.difficult_to_reverse:
        units += 1

    hint = _type_hint(context, "")
    if context.impact == ActionImpact.irreversible or context.task_class == TaskClass.high_risk:
        category = CostCategory.risk
    elif any(item in hint for item in _IO_HINTS):
        category = CostCategory.io
    elif "task" in hint:
        category = CostCategory.human_attention
    elif "note" in hint:
        category = CostCategory.reasoning
    else:
        category = CostCategory.compute
    return CostAttribution(cost_units=_clamp(units), cost_category=category, reason="context_cost_model")


def _missing(units: Optional[int], category: Optional[CostCategory], derived: CostAttribution) -> dict:
    """Fill only the attribution fields the caller left empty."""
    return {
        "cost_units": derived.cost_units if units is None else units,
        "cost_category": derived.cost_category if category is None else category,
    }


def ensure_action_economics(action: ActionSpec) -> ActionSpec:
    if action.cost_units is not None and action.cost_category is not None:
        return action
    derived = derive_action_cost(action)
    return action.model_copy(update=_missing(action.cost_units, action.cost_category, derived))


def ensure_tool_call_economics(call: TCall) -> TCall:
    if getattr(call, "cost_units", None) is not None and getattr(call, "cost_category", None) is not None:
        return call
    derived = derive_tool_call_cost(call)  # type: ignore[arg-type]
    return call.model_copy(update=_missing(getattr(call, "cost_units", None), getattr(call, "cost_category", None), derived))


def ensure_context_economics(context: AgentRuntimeContext) -> AgentRuntimeContext:
    if context.cost_units is not None and context.cost_category is not None:
        return context
    derived = derive_context_cost(context)
    return context.model_copy(update=_missing(context.cost_units, context.cost_category, derived))
