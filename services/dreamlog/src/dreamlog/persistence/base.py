"""Record store strategy shared by the local and remote backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict

from pydantic import ValidationError

from ..errors import InvalidSubmissionError
from ..models import DreamPage, DreamQuery, DreamRecord, SessionContext


class RecordStore(ABC):
    """Abstract base class for dream record backends."""

    backend: str = "abstract"

    @abstractmethod
    async def create(self, record: DreamRecord, session: SessionContext) -> DreamRecord:
        """Persist a new record and return it as stored."""
        ...

    @abstractmethod
    async def get(self, dream_id: str, session: SessionContext) -> DreamRecord:
        ...

    @abstractmethod
    async def list(self, query: DreamQuery, session: SessionContext) -> DreamPage:
        ...

    @abstractmethod
    async def update(self, dream_id: str, changes: Dict[str, Any], session: SessionContext) -> DreamRecord:
        """Overwrite exactly the fields in ``changes``."""
        ...

    @abstractmethod
    async def delete(self, dream_id: str, session: SessionContext) -> None:
        ...


def apply_changes(record: DreamRecord, changes: Dict[str, Any]) -> DreamRecord:
    """Return ``record`` with ``changes`` merged in and re-validated."""
    try:
        return DreamRecord.model_validate({**record.model_dump(), **changes})
    except ValidationError as exc:
        fields = ", ".join(".".join(str(part) for part in err["loc"]) for err in exc.errors())
        raise InvalidSubmissionError(f"Invalid dream update: {fields}") from exc


__all__ = ["RecordStore", "apply_changes"]
