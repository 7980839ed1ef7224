"""Dream journal CRUD, routed to the remote or local store per session."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Response, status

from common.logging import get_logger

from ..dependencies import get_orchestrator, get_persistence
from ..models import (
    CamelModel,
    DreamQuery,
    DreamRecord,
    DreamSubmission,
    DreamUpdate,
    GenerationMode,
    SessionContext,
    StoryLength,
    StoryTone,
)
from ..orchestrator import GenerationOrchestrator
from ..persistence import PersistenceRouter
from ..session import get_client_key, get_session

LOGGER = get_logger(__name__)

router = APIRouter(prefix="/api/dreams", tags=["dreams"])


class RegenerateRequest(CamelModel):
    mode: GenerationMode = GenerationMode.STORY
    tone: Optional[StoryTone] = None
    length: Optional[StoryLength] = None
    generate_images: bool = True


def _dump(record: DreamRecord) -> Dict[str, Any]:
    return record.model_dump(mode="json", by_alias=True)


@router.get("")
async def list_dreams(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    search: Optional[str] = None,
    tag: Optional[str] = None,
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    favorites: bool = False,
    session: SessionContext = Depends(get_session),
    persistence: PersistenceRouter = Depends(get_persistence),
) -> Dict[str, Any]:
    query = DreamQuery(
        page=page,
        limit=limit,
        search=search or None,
        tag=tag or None,
        date_from=start_date,
        date_to=end_date,
        favorites_only=favorites,
    )
    result = await persistence.list(query, session)
    return result.model_dump(mode="json", by_alias=True)


@router.post("", status_code=status.HTTP_201_CREATED)
async def save_dream(
    record: DreamRecord,
    session: SessionContext = Depends(get_session),
    persistence: PersistenceRouter = Depends(get_persistence),
) -> Dict[str, Any]:
    stored = await persistence.save(record, session)
    return {"dream": _dump(stored)}


@router.get("/{dream_id}")
async def get_dream(
    dream_id: str,
    session: SessionContext = Depends(get_session),
    persistence: PersistenceRouter = Depends(get_persistence),
) -> Dict[str, Any]:
    return {"dream": _dump(await persistence.get(dream_id, session))}


@router.put("/{dream_id}")
async def update_dream(
    dream_id: str,
    update: DreamUpdate,
    session: SessionContext = Depends(get_session),
    persistence: PersistenceRouter = Depends(get_persistence),
) -> Dict[str, Any]:
    stored = await persistence.update(dream_id, update, session)
    return {"dream": _dump(stored)}


@router.delete("/{dream_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_dream(
    dream_id: str,
    session: SessionContext = Depends(get_session),
    persistence: PersistenceRouter = Depends(get_persistence),
) -> Response:
    await persistence.delete(dream_id, session)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{dream_id}/generate")
async def generate_for_dream(
    dream_id: str,
    body: RegenerateRequest,
    session: SessionContext = Depends(get_session),
    persistence: PersistenceRouter = Depends(get_persistence),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
    client: str = Depends(get_client_key),
) -> Dict[str, Any]:
    """Generate a story or analysis for a saved dream and store the results."""
    record = await persistence.get(dream_id, session)
    submission = DreamSubmission(
        dream_text=record.original_dream,
        title=record.title,
        tone=body.tone or record.tone,
        length=body.length or record.length,
        mode=body.mode,
        generate_images=body.generate_images,
    )
    bundle = await orchestrator.run(submission, client)

    changes: Dict[str, Any] = {}
    if bundle.story is not None:
        changes.update(story=bundle.story, tone=submission.tone, length=submission.length)
    if bundle.images is not None:
        changes["images"] = bundle.images
    if bundle.analysis is not None:
        changes["analysis"] = bundle.analysis
        changes["tags"] = list(dict.fromkeys([*record.tags, *bundle.themes, *bundle.emotions]))

    stored = await persistence.update(dream_id, changes, session) if changes else record
    LOGGER.info(
        "Regenerated saved dream",
        dream_id=dream_id,
        mode=body.mode.value,
        failures=[f.step.value for f in bundle.failures],
    )
    return {
        "dream": _dump(stored),
        "generation": bundle.model_dump(mode="json", by_alias=True),
    }


__all__ = ["router"]
