"""
Device-local dream storage for guest sessions.

Each device owns one JSON document holding its full record list, newest
first. Every operation reads the whole document, changes it in memory and
rewrites it atomically, so writes for one device are serialized behind a lock.
"""

from __future__ import annotations

import asyncio
import json
import os
import re
from collections import defaultdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from common.logging import get_logger

from ..errors import RecordNotFoundError
from ..models import DreamPage, DreamQuery, DreamRecord, SessionContext
from .base import RecordStore, apply_changes

LOGGER = get_logger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]")


class LocalRecordStore(RecordStore):
    backend = "local"

    def __init__(self, root: Path | str) -> None:
        self._root = Path(root).expanduser()
        self._locks: Dict[Path, asyncio.Lock] = defaultdict(asyncio.Lock)

    def path_for(self, session: SessionContext) -> Path:
        device = _UNSAFE_CHARS.sub("", session.device_id)[:64] or "default"
        return self._root / f"{device}.json"

    # ------------------------------------------------------------------
    # Blob I/O
    # ------------------------------------------------------------------

    def _read(self, path: Path) -> List[DreamRecord]:
        if not path.exists():
            return []
        with open(path, encoding="utf-8") as f:
            raw = json.load(f)
        return [DreamRecord.model_validate(item) for item in raw]

    def _write(self, path: Path, records: List[DreamRecord]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = [record.model_dump(mode="json", by_alias=True) for record in records]
        tmp_path = path.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, path)

    # ------------------------------------------------------------------
    # RecordStore
    # ------------------------------------------------------------------

    async def create(self, record: DreamRecord, session: SessionContext) -> DreamRecord:
        path = self.path_for(session)
        async with self._locks[path]:
            records = self._read(path)
            existing_ids = {r.id for r in records}
            dream_id = record.id
            while dream_id in existing_ids:
                dream_id = str(int(dream_id) + 1) if dream_id.isdigit() else f"{dream_id}-1"
            stored = record.model_copy(update={"id": dream_id})
            self._write(path, [stored, *records])
        LOGGER.info("Saved dream locally", dream_id=stored.id, device=session.device_id)
        return stored

    async def get(self, dream_id: str, session: SessionContext) -> DreamRecord:
        for record in self._read(self.path_for(session)):
            if record.id == dream_id:
                return record
        raise RecordNotFoundError(dream_id)

    async def list(self, query: DreamQuery, session: SessionContext) -> DreamPage:
        records = [r for r in self._read(self.path_for(session)) if _matches(r, query)]
        records.sort(key=_sort_key, reverse=True)
        start = (query.page - 1) * query.limit
        return DreamPage(
            dreams=records[start:start + query.limit],
            total=len(records),
            page=query.page,
            limit=query.limit,
        )

    async def update(self, dream_id: str, changes: Dict[str, Any], session: SessionContext) -> DreamRecord:
        path = self.path_for(session)
        async with self._locks[path]:
            records = self._read(path)
            for index, record in enumerate(records):
                if record.id == dream_id:
                    records[index] = apply_changes(record, changes)
                    self._write(path, records)
                    return records[index]
        raise RecordNotFoundError(dream_id)

    async def delete(self, dream_id: str, session: SessionContext) -> None:
        path = self.path_for(session)
        async with self._locks[path]:
            records = self._read(path)
            remaining = [r for r in records if r.id != dream_id]
            if len(remaining) == len(records):
                raise RecordNotFoundError(dream_id)
            self._write(path, remaining)
        LOGGER.info("Deleted local dream", dream_id=dream_id, device=session.device_id)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _sort_key(record: DreamRecord) -> float:
    created = _aware(record.created_at)
    return created.timestamp() if created else 0.0


def _matches(record: DreamRecord, query: DreamQuery) -> bool:
    if query.favorites_only and not record.is_favorite:
        return False
    if query.tag and query.tag.lower() not in {t.lower() for t in record.tags}:
        return False
    created = _aware(record.created_at)
    if query.date_from and (created is None or created < _aware(query.date_from)):
        return False
    if query.date_to and (created is None or created > _aware(query.date_to)):
        return False
    if query.search:
        needle = query.search.lower()
        haystack = (record.title, record.original_dream, record.story, record.analysis)
        if not any(needle in (field or "").lower() for field in haystack):
            return False
    return True


__all__ = ["LocalRecordStore"]
