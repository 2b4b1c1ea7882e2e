"""Tenant-scoped memory store used by the memory scope scenario."""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from ..schemas.base import FrozenSchema
from ..schemas.domain import PermissionTier, new_id, utc_now


class MemoryScope(FrozenSchema):
    tenant_id: str
    user_id: Optional[str] = None


class MemoryRecord(FrozenSchema):
    memory_id: str = Field(default_factory=lambda: new_id("mem"))
    kind: str = "fact"
    subject: str
    data: Dict[str, Any] = Field(default_factory=dict)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    scope: MemoryScope
    created_at: datetime = Field(default_factory=utc_now)
    expires_at: Optional[datetime] = None
    tags: tuple[str, ...] = ()


class MemoryWriteResult(FrozenSchema):
    stored: bool
    reason: str


class MemoryStore:
    """Records are only ever returned to a query with the same tenant (and user, when set)."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: List[MemoryRecord] = []

    def write(self, record: MemoryRecord, *, permission_tier: PermissionTier, verified: bool) -> MemoryWriteResult:
        if permission_tier != PermissionTier.execute:
            return MemoryWriteResult(stored=False, reason="memory_write_requires_execute")
        if not verified:
            return MemoryWriteResult(stored=False, reason="memory_write_unverified")
        with self._lock:
            self._records.append(record)
        return MemoryWriteResult(stored=True, reason="memory_written")

    def retrieve(self, scope: MemoryScope, *, now: Optional[datetime] = None) -> List[MemoryRecord]:
        now = now or utc_now()
        with self._lock:
            records = list(self._records)
        return [
            r
            for r in records
            if r.scope.tenant_id == scope.tenant_id
            and (r.scope.user_id is None or r.scope.user_id == scope.user_id)
            and (r.expires_at is None or r.expires_at > now)
        ]
