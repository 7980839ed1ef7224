"""
Dual persistence routing.

Authenticated sessions are served by the remote store, guests by the device
local store. The choice is made per call from the session and is never
revisited on failure: a failed remote write is reported, not redirected.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, Union

from common.logging import get_logger

from ..errors import DreamLogError
from ..metrics import PERSISTENCE_OPERATIONS
from ..models import DreamPage, DreamQuery, DreamRecord, DreamUpdate, SessionContext, utcnow
from .base import RecordStore
from .local import LocalRecordStore
from .remote import RemoteRecordStore

LOGGER = get_logger(__name__)

DEFAULT_TITLE = "Untitled Dream"

# Fields owned by the store; updates never touch them.
_PROTECTED_FIELDS = {"id", "user_id", "user_email", "created_at"}


def timestamp_id() -> str:
    """Client-side id: milliseconds since the epoch."""
    return str(int(time.time() * 1000))


class PersistenceRouter:
    """Route record operations to the backend the session calls for."""

    def __init__(
        self,
        remote: RemoteRecordStore,
        local: LocalRecordStore,
        id_factory: Callable[[], str] = timestamp_id,
        clock: Callable[[], Any] = utcnow,
    ) -> None:
        self._remote = remote
        self._local = local
        self._id_factory = id_factory
        self._clock = clock

    @property
    def remote_configured(self) -> bool:
        return self._remote.is_configured

    def _store_for(self, session: SessionContext) -> RecordStore:
        return self._remote if session.is_authenticated else self._local

    async def save(self, record: DreamRecord, session: SessionContext) -> DreamRecord:
        store = self._store_for(session)
        prepared = record.model_copy(
            update={
                "id": record.id or self._id_factory(),
                "created_at": record.created_at or self._clock(),
                "title": record.title or DEFAULT_TITLE,
                "user_id": session.user_id if session.is_authenticated else None,
            }
        )
        with _observe(store, "save"):
            return await store.create(prepared, session)

    async def get(self, dream_id: str, session: SessionContext) -> DreamRecord:
        store = self._store_for(session)
        with _observe(store, "get"):
            return await store.get(dream_id, session)

    async def list(self, query: DreamQuery, session: SessionContext) -> DreamPage:
        store = self._store_for(session)
        with _observe(store, "list"):
            return await store.list(query, session)

    async def update(
        self,
        dream_id: str,
        update: Union[DreamUpdate, Dict[str, Any]],
        session: SessionContext,
    ) -> DreamRecord:
        changes = update.changes() if isinstance(update, DreamUpdate) else dict(update)
        changes = {key: value for key, value in changes.items() if key not in _PROTECTED_FIELDS}
        store = self._store_for(session)
        with _observe(store, "update"):
            return await store.update(dream_id, changes, session)

    async def delete(self, dream_id: str, session: SessionContext) -> None:
        store = self._store_for(session)
        with _observe(store, "delete"):
            await store.delete(dream_id, session)


class _observe:
    """Count and log one persistence operation."""

    def __init__(self, store: RecordStore, operation: str) -> None:
        self.backend = store.backend
        self.operation = operation

    def __enter__(self) -> "_observe":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc is None:
            outcome = "success"
        elif isinstance(exc, DreamLogError):
            outcome = exc.reason.value
            LOGGER.warning(
                "Persistence operation failed",
                backend=self.backend,
                operation=self.operation,
                reason=outcome,
                error=exc.message,
            )
        else:
            outcome = "error"
            LOGGER.error(
                "Persistence operation crashed",
                backend=self.backend,
                operation=self.operation,
                error=str(exc),
            )
        PERSISTENCE_OPERATIONS.labels(
            backend=self.backend, operation=self.operation, outcome=outcome
        ).inc()
        return False


__all__ = ["PersistenceRouter", "DEFAULT_TITLE", "timestamp_id"]
