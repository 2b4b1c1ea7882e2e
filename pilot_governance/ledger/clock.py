"""Logical clocks for append-only ledgers.

Every ledger keeps a per-identity monotonic counter. Entries are stamped with
``<prefix><n>`` (``e12`` for execution records, ``s3`` for stewardship log
entries, ``g7`` for governance decisions, ``d40`` for decision log entries).

Stamping rules:

- No timestamp supplied: the clock advances and the new value is used.
- A logical timestamp strictly newer than the clock: the clock jumps to it.
- A logical timestamp that is not newer: the clock advances instead, so
  stamps stay strictly increasing.
- A non-logical timestamp (e.g. an ISO string from an external system): kept
  verbatim, the clock is left alone. Such entries sort lexicographically.
"""

from __future__ import annotations

import re
from functools import cmp_to_key
from typing import Callable, Iterable, List, Optional, Tuple, TypeVar

_LOGICAL_TIME = re.compile(r"^([a-z])(\d+)$")

T = TypeVar("T")


def format_logical_time(prefix: str, value: int) -> str:
    return f"{prefix}{value}"


def parse_logical_time(value: object, prefix: str) -> Optional[int]:
    """Return the counter encoded in ``value`` if it is a ``prefix``-stamp, else None."""
    if not isinstance(value, str):
        return None
    match = _LOGICAL_TIME.match(value.strip())
    if match is None or match.group(1) != prefix:
        return None
    return int(match.group(2))


def compare_logical_time(a: str, b: str, prefix: str) -> int:
    """
    Three-way comparison of two ledger timestamps.

    Two logical stamps compare numerically; anything else falls back to plain
    string comparison so externally-stamped entries still merge deterministically.
    """
    parsed_a = parse_logical_time(a, prefix)
    parsed_b = parse_logical_time(b, prefix)
    if parsed_a is not None and parsed_b is not None:
        return (parsed_a > parsed_b) - (parsed_a < parsed_b)
    sa, sb = str(a), str(b)
    return (sa > sb) - (sa < sb)


def advance_clock(clock: int, prefix: str) -> Tuple[int, str]:
    """Increment ``clock`` and return ``(new_clock, stamp)``."""
    next_value = max(0, int(clock)) + 1
    return next_value, format_logical_time(prefix, next_value)


def stamp_entry(clock: int, prefix: str, created_at: Optional[str]) -> Tuple[int, str]:
    """
    Decide the timestamp for a new entry and the clock value after it.

    Args:
        clock: Current clock value of the ledger.
        prefix: Logical stamp prefix of the ledger.
        created_at: Optional caller-supplied timestamp.

    Returns:
        ``(new_clock, created_at)``.
    """
    supplied = created_at.strip() if isinstance(created_at, str) else ""
    if not supplied:
        return advance_clock(clock, prefix)
    parsed = parse_logical_time(supplied, prefix)
    if parsed is None:
        return clock, supplied
    if parsed > clock:
        return parsed, supplied
    return advance_clock(clock, prefix)


def sort_by_logical_time(entries: Iterable[T], prefix: str, key: Callable[[T], str]) -> List[T]:
    """Return ``entries`` sorted by their logical timestamp (stable)."""
    return sorted(entries, key=cmp_to_key(lambda a, b: compare_logical_time(key(a), key(b), prefix)))
