"""Constitution and required invariants.

These are fixed, immutable declarations. Optimisation targets declared by an
action or a governance change are matched against the constitution's
non-goals and every invariant's ``never_optimize_for`` list.
"""

from __future__ import annotations

import re
from typing import Iterable, List

from ..schemas.base import FrozenSchema


class Constitution(FrozenSchema):
    version: str
    purpose: str
    non_goals: tuple[str, ...]
    clauses: tuple[str, ...]


class Invariant(FrozenSchema):
    id: str
    title: str
    description: str
    never_optimize_for: tuple[str, ...]
    violation_signals: tuple[str, ...]
    enforcement: str
    safe_failure: str


CONSTITUTION = Constitution(
    version="v1",
    purpose=(
        "Help a human operator decide and execute safely without sacrificing trust, "
        "autonomy, or long-term resilience."
    ),
    non_goals=(
        "maximize engagement",
        "manipulate emotions",
        "centralize power",
        "growth at all costs",
        "coercive lock-in",
        "deception",
    ),
    clauses=(
        "Human-in-the-loop: the system advises; humans declare intent and accept accountability.",
        "Exit/fork rights: the operator can stop, export, fork, and rollback without coercion.",
        "Failure preference: degrade safely; block when intent/constraints are missing rather than guessing.",
    ),
)

REQUIRED_INVARIANTS: tuple[Invariant, ...] = (
    Invariant(
        id="no_central_control",
        title="No Central Control",
        description="The system must not optimize for centralizing power or creating dependency loops.",
        never_optimize_for=("centralize power", "single-owner capture", "forced dependency"),
        violation_signals=("centralized control path", "operator cannot exit", "coercive gate"),
        enforcement="Block shipping if changes explicitly optimize for central control or lock-in.",
        safe_failure="Degrade to read-only and require explicit human override with rationale.",
    ),
    Invariant(
        id="intent_before_action",
        title="Intent Before Action",
        description="Execution and optimization must be justified by declared human intent.",
        never_optimize_for=("automation without intent", "silent execution", "untraceable actions"),
        violation_signals=("missing intent envelope", "action without reason", "unlogged decision"),
        enforcement="Block if intent is missing (except explicit mock allowances).",
        safe_failure="Stop and ask for intent rather than guessing.",
    ),
    Invariant(
        id="authority_decays_without_contribution",
        title="Authority Decays Without Contribution",
        description="Authority is earned through contribution and accountability, not position or proximity.",
        never_optimize_for=("rank/position capture", "credentialism without evidence"),
        violation_signals=("position-based bypass", "unreviewed authority escalation"),
        enforcement="Warn when human-approval plumbing is missing; require review for escalations.",
        safe_failure="Treat escalations as advisory until a human approves.",
    ),
    Invariant(
        id="knowledge_over_position",
        title="Knowledge Over Position",
        description="Prefer evidence and verifiable knowledge over hierarchy or narrative.",
        never_optimize_for=("narrative laundering", "status games", "unverifiable claims"),
        violation_signals=("claims without evidence", "policy bypass justified by authority"),
        enforcement="Reject prohibited targets; encourage audit trails and evidence capture.",
        safe_failure="Surface uncertainty and request verification steps.",
    ),
)


def invariant_ids() -> List[str]:
    return [inv.id for inv in REQUIRED_INVARIANTS]


def normalize_text(value: object) -> str:
    text = str(value if value is not None else "").lower()
    text = re.sub(r"['\"]", "", text)
    text = re.sub(r"[^a-z0-9\s]", " ", text)
    return re.sub(r"\s+", " ", text).strip()


def forbidden_targets() -> List[str]:
    """All normalised forbidden optimisation targets, de-duplicated in order."""
    seen: List[str] = []
    candidates = list(CONSTITUTION.non_goals) + [t for inv in REQUIRED_INVARIANTS for t in inv.never_optimize_for]
    for item in candidates:
        normalized = normalize_text(item)
        if normalized and normalized not in seen:
            seen.append(normalized)
    return seen


def find_forbidden_targets(targets: Iterable[str]) -> List[str]:
    """Return the declared targets that hit a forbidden target."""
    forbidden = forbidden_targets()
    hits: List[str] = []
    for target in targets or ():
        if not isinstance(target, str):
            continue
        normalized = normalize_text(target)
        if not normalized:
            continue
        if any(normalized == item or item in normalized for item in forbidden):
            hits.append(target)
    return hits
