"""In-process cache store, one namespace per identity.

Stored entries are frozen models. A hit returns a copy and replaces the
stored entry with an updated copy; nothing is changed in place.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from ..schemas.domain import utc_now
from .models import CacheContext, CacheEntry, CachePolicy, CachePreference

logger = logging.getLogger(__name__)


def hash_cache_input(payload: Any) -> str:
    """Stable SHA-256 of a JSON-serialisable payload (keys sorted)."""
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


def build_cache_key(
    kind: str,
    task_type: str,
    goal_id: Optional[str],
    goal_version: Optional[str],
    input_hash: str,
) -> str:
    return ":".join([kind, task_type, goal_id or "-", goal_version or "-", input_hash])


def cache_key_for(context: CacheContext, payload: Any) -> tuple[str, str]:
    """Return ``(cache_key, input_hash)`` for a call's input under ``context``."""
    input_hash = hash_cache_input(payload)
    return build_cache_key(context.kind, context.task_type, context.goal_id, context.goal_version, input_hash), input_hash


class CacheStore:
    """Thread-safe mapping of identity -> cache key -> ``CacheEntry``."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: Dict[str, Dict[str, CacheEntry]] = {}
        self._preferences: Dict[str, List[CachePreference]] = {}

    def get(self, identity_key: str, cache_key: str, *, now: Optional[datetime] = None) -> Optional[CacheEntry]:
        now = now or utc_now()
        with self._lock:
            entry = self._entries.get(identity_key, {}).get(cache_key)
            if entry is None:
                return None
            if entry.is_expired(now):
                del self._entries[identity_key][cache_key]
                logger.debug("Cache entry %s expired for %s", cache_key, identity_key)
                return None
            return entry.model_copy(deep=True)

    def put(
        self,
        identity_key: str,
        context: CacheContext,
        *,
        cache_key: str,
        input_hash: str,
        payload: Any,
        policy: Optional[CachePolicy] = None,
        now: Optional[datetime] = None,
    ) -> CacheEntry:
        now = now or utc_now()
        effective = policy or context.policy or CachePolicy()
        expires_at = now + timedelta(seconds=effective.ttl_seconds) if effective.ttl_seconds else None
        entry = CacheEntry(
            cache_key=cache_key,
            kind=context.kind,
            task_type=context.task_type,
            goal_id=context.goal_id,
            goal_version=context.goal_version,
            input_hash=input_hash,
            payload=payload,
            created_at=now,
            expires_at=expires_at,
        )
        with self._lock:
            self._entries.setdefault(identity_key, {})[cache_key] = entry
        return entry.model_copy(deep=True)

    def record_hit(self, identity_key: str, cache_key: str, *, now: Optional[datetime] = None) -> Optional[CacheEntry]:
        now = now or utc_now()
        with self._lock:
            entry = self._entries.get(identity_key, {}).get(cache_key)
            if entry is None:
                return None
            updated = entry.model_copy(update={"hit_count": entry.hit_count + 1, "last_hit_at": now})
            self._entries[identity_key][cache_key] = updated
            return updated.model_copy(deep=True)

    def entries(self, identity_key: str) -> List[CacheEntry]:
        with self._lock:
            return [e.model_copy(deep=True) for e in self._entries.get(identity_key, {}).values()]

    def clear(self, identity_key: str) -> None:
        with self._lock:
            self._entries.pop(identity_key, None)

    def set_preference(self, identity_key: str, preference: CachePreference) -> None:
        """Add or replace the preference for ``(task_type, goal_id)``."""
        with self._lock:
            kept = [
                p
                for p in self._preferences.get(identity_key, [])
                if (p.task_type, p.goal_id) != (preference.task_type, preference.goal_id)
            ]
            kept.append(preference)
            self._preferences[identity_key] = kept

    def preferences(self, identity_key: str) -> List[CachePreference]:
        with self._lock:
            return list(self._preferences.get(identity_key, []))

    def find_preference(
        self,
        identity_key: str,
        task_type: Optional[str],
        goal_id: Optional[str] = None,
        *,
        now: Optional[datetime] = None,
    ) -> Optional[CachePreference]:
        """Most specific active preference for a task type (goal-scoped beats generic)."""
        if not task_type:
            return None
        now = now or utc_now()
        matches = [p for p in self.preferences(identity_key) if p.applies_to(task_type, goal_id, now)]
        if not matches:
            return None
        matches.sort(key=lambda p: p.goal_id is None)
        return matches[0]
