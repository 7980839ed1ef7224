"""
Remote, account-scoped dream store for authenticated sessions.

Talks JSON over HTTP to the dreams API with the session's bearer token and
translates between ``DreamRecord`` and the store's native field names
(``dreamText``, ``storyTone``, ``storyLength`` ...). Write failures surface as
``RemoteWriteFailedError``; nothing here ever falls back to local storage.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Type, TypeVar

import httpx
from pydantic.alias_generators import to_camel

from common.http import http_client
from common.logging import get_logger

from ..errors import ErrorReason, RecordNotFoundError, RemoteStoreError, RemoteWriteFailedError
from ..models import (
    DreamPage,
    DreamQuery,
    DreamRecord,
    InputMode,
    SessionContext,
    StoryLength,
    StoryTone,
)
from .base import RecordStore

LOGGER = get_logger(__name__)

E = TypeVar("E", bound=Enum)

# record field -> native store field
FIELD_MAP: Dict[str, str] = {
    "title": "title",
    "original_dream": "dreamText",
    "story": "story",
    "analysis": "analysis",
    "tone": "storyTone",
    "length": "storyLength",
    "images": "images",
    "tags": "tags",
    "is_favorite": "isFavorite",
    "has_audio": "hasAudio",
    "audio_duration_seconds": "audioDuration",
    "created_at": "createdAt",
    "user_id": "userId",
}


def _coerce(enum_cls: Type[E], value: Any, default: E) -> E:
    try:
        return enum_cls(value)
    except ValueError:
        return default


def _native_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {to_camel(key): _native_value(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_native_value(item) for item in value]
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json", by_alias=True)
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


def to_native(record: DreamRecord) -> Dict[str, Any]:
    """Record shape -> store shape (no id; the store assigns it)."""
    payload = {native: _native_value(getattr(record, field)) for field, native in FIELD_MAP.items()}
    return {key: value for key, value in payload.items() if value is not None}


def changes_to_native(changes: Dict[str, Any]) -> Dict[str, Any]:
    return {FIELD_MAP[field]: _native_value(value) for field, value in changes.items() if field in FIELD_MAP}


def from_native(payload: Dict[str, Any]) -> DreamRecord:
    """Store shape -> record shape, tolerating older payloads."""
    has_audio = bool(payload.get("hasAudio", False))
    images = []
    for position, image in enumerate(payload.get("images") or [], start=1):
        image = dict(image)
        image.setdefault("sceneIndex", min(position, 3))
        image.setdefault("scene", f"Scene {image['sceneIndex']}")
        image.setdefault("description", "")
        images.append(image)
    dream_id = payload.get("id", payload.get("_id"))
    return DreamRecord.model_validate(
        {
            "id": str(dream_id) if dream_id is not None else None,
            "userId": payload.get("userId"),
            "userEmail": payload.get("userEmail"),
            "originalDream": payload.get("dreamText", payload.get("originalDream", "")),
            "title": payload.get("title"),
            "story": payload.get("story"),
            "analysis": payload.get("analysis"),
            "tone": _coerce(StoryTone, payload.get("storyTone", payload.get("tone")), StoryTone.WHIMSICAL),
            "length": _coerce(StoryLength, payload.get("storyLength", payload.get("length")), StoryLength.MEDIUM),
            "images": images,
            "tags": payload.get("tags") or [],
            "isFavorite": bool(payload.get("isFavorite", False)),
            "createdAt": payload.get("createdAt"),
            "hasAudio": has_audio,
            "audioDurationSeconds": payload.get("audioDuration"),
            "inputMode": InputMode.VOICE if has_audio else InputMode.TEXT,
        }
    )


def _unwrap(data: Any) -> Dict[str, Any]:
    if isinstance(data, dict) and isinstance(data.get("dream"), dict):
        return data["dream"]
    if isinstance(data, dict):
        return data
    raise ValueError("Unexpected dream payload")


class RemoteRecordStore(RecordStore):
    backend = "remote"

    def __init__(
        self,
        base_url: Optional[str],
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/") if base_url else None
        self._timeout = timeout
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self._base_url)

    def _client(self, session: SessionContext):
        return http_client(
            base_url=self._base_url,
            bearer_token=session.identity,
            timeout=self._timeout,
            transport=self._transport,
        )

    async def create(self, record: DreamRecord, session: SessionContext) -> DreamRecord:
        if not self.is_configured:
            raise RemoteWriteFailedError("Remote dream store not configured")
        native = to_native(record)
        try:
            async with self._client(session) as client:
                response = await client.post("/dreams", json=native)
                response.raise_for_status()
                stored = _unwrap(response.json())
        except (httpx.HTTPError, ValueError) as exc:
            LOGGER.error("Remote save failed", error=str(exc))
            raise RemoteWriteFailedError(f"Failed to save dream: {exc}") from exc

        result = from_native({**native, **stored})
        LOGGER.info("Saved dream remotely", dream_id=result.id, client_id=record.id)
        return result

    async def get(self, dream_id: str, session: SessionContext) -> DreamRecord:
        self._require_configured()
        try:
            async with self._client(session) as client:
                response = await client.get(f"/dreams/{dream_id}")
                if response.status_code == 404:
                    raise RecordNotFoundError(dream_id)
                response.raise_for_status()
                return from_native(_unwrap(response.json()))
        except (httpx.HTTPError, ValueError) as exc:
            raise RemoteStoreError(f"Failed to load dream: {exc}") from exc

    async def list(self, query: DreamQuery, session: SessionContext) -> DreamPage:
        self._require_configured()
        params: Dict[str, Any] = {"page": query.page, "limit": query.limit}
        if query.search:
            params["search"] = query.search
        if query.tag:
            params["tag"] = query.tag
        if query.date_from:
            params["startDate"] = query.date_from.isoformat()
        if query.date_to:
            params["endDate"] = query.date_to.isoformat()
        if query.favorites_only:
            params["favorites"] = "true"

        try:
            async with self._client(session) as client:
                response = await client.get("/dreams", params=params)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            LOGGER.error("Remote list failed", error=str(exc))
            raise RemoteStoreError(f"Failed to load dreams: {exc}") from exc

        # Older store versions answer with a bare list.
        raw: List[Dict[str, Any]] = data if isinstance(data, list) else data.get("dreams", [])
        total = len(raw)
        if isinstance(data, dict):
            total = int((data.get("pagination") or {}).get("total", total))
        return DreamPage(
            dreams=[from_native(item) for item in raw],
            total=total,
            page=query.page,
            limit=query.limit,
        )

    async def update(self, dream_id: str, changes: Dict[str, Any], session: SessionContext) -> DreamRecord:
        if not self.is_configured:
            raise RemoteWriteFailedError("Remote dream store not configured")
        native = changes_to_native(changes)
        try:
            async with self._client(session) as client:
                response = await client.put(f"/dreams/{dream_id}", json=native)
                if response.status_code == 404:
                    raise RecordNotFoundError(dream_id)
                response.raise_for_status()
                stored = _unwrap(response.json())
        except (httpx.HTTPError, ValueError) as exc:
            LOGGER.error("Remote update failed", dream_id=dream_id, error=str(exc))
            raise RemoteWriteFailedError(f"Failed to update dream: {exc}") from exc

        stored.setdefault("id", dream_id)
        return from_native(stored)

    async def delete(self, dream_id: str, session: SessionContext) -> None:
        self._require_configured()
        try:
            async with self._client(session) as client:
                response = await client.delete(f"/dreams/{dream_id}")
                if response.status_code == 404:
                    raise RecordNotFoundError(dream_id)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            LOGGER.error("Remote delete failed", dream_id=dream_id, error=str(exc))
            raise RemoteStoreError(f"Failed to delete dream: {exc}") from exc

    def _require_configured(self) -> None:
        if not self.is_configured:
            raise RemoteStoreError("Remote dream store not configured", ErrorReason.NOT_CONFIGURED)


__all__ = ["RemoteRecordStore", "to_native", "from_native", "changes_to_native", "FIELD_MAP"]
