"""
Generation endpoints.

Per-capability routes (title, story, analysis, images, speech, transcription)
call one model each; ``/api/generate`` and ``/api/generate/voice`` run the
full orchestration and return the artifact bundle with any step failures.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile

from common.config import Settings

from ..dependencies import get_app_settings, get_orchestrator
from ..errors import InvalidSubmissionError
from ..models import (
    CamelModel,
    DreamSubmission,
    GenerationMode,
    SpeechRequest,
    StoryLength,
    StoryTone,
)
from ..orchestrator import GenerationOrchestrator
from ..session import get_client_key

router = APIRouter(prefix="/api", tags=["generation"])


class DreamTextRequest(CamelModel):
    dream_text: str


class StoryRequest(CamelModel):
    dream_text: str
    tone: StoryTone = StoryTone.WHIMSICAL
    length: StoryLength = StoryLength.MEDIUM


class ImagesRequest(CamelModel):
    story: str
    tone: StoryTone = StoryTone.WHIMSICAL


def _required_text(value: Optional[str], field: str) -> str:
    if not value or not value.strip():
        raise InvalidSubmissionError(f"{field} is required")
    return value.strip()


async def _read_upload(audio: UploadFile) -> bytes:
    data = await audio.read()
    if not data:
        raise InvalidSubmissionError("Audio file is required")
    return data


@router.post("/transcribe")
async def transcribe(
    audio: UploadFile = File(...),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
    client: str = Depends(get_client_key),
) -> Dict[str, Any]:
    data = await _read_upload(audio)
    text = await orchestrator.transcribe(data, audio.content_type, client)
    return {"text": text}


@router.post("/generate-title")
async def generate_title(
    body: DreamTextRequest,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
    client: str = Depends(get_client_key),
) -> Dict[str, Any]:
    title = await orchestrator.title(_required_text(body.dream_text, "Dream text"), client)
    return {"title": title}


@router.post("/generate-story")
async def generate_story(
    body: StoryRequest,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
    client: str = Depends(get_client_key),
) -> Dict[str, Any]:
    story = await orchestrator.story(
        _required_text(body.dream_text, "Dream text"), body.tone, body.length, client
    )
    return {"story": story}


@router.post("/analyze-dream")
async def analyze_dream(
    body: DreamTextRequest,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
    client: str = Depends(get_client_key),
) -> Dict[str, Any]:
    analysis, themes, emotions = await orchestrator.analyze(
        _required_text(body.dream_text, "Dream text"), client
    )
    return {"analysis": analysis, "themes": themes, "emotions": emotions}


@router.post("/generate-images")
async def generate_images(
    body: ImagesRequest,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
    client: str = Depends(get_client_key),
) -> Dict[str, Any]:
    images = await orchestrator.illustrate(body.story, body.tone, client)
    return {"images": [image.model_dump(mode="json", by_alias=True) for image in images]}


@router.post("/speech")
async def speech(
    body: SpeechRequest,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_app_settings),
    client: str = Depends(get_client_key),
) -> Response:
    audio = await orchestrator.narrate(
        _required_text(body.text, "Text"),
        client,
        voice=body.voice or settings.tts_default_voice,
        speed=body.speed or settings.tts_default_speed,
    )
    return Response(content=audio, media_type="audio/mpeg")


@router.post("/generate")
async def generate(
    submission: DreamSubmission,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
    client: str = Depends(get_client_key),
) -> Dict[str, Any]:
    bundle = await orchestrator.run(submission, client)
    return bundle.model_dump(mode="json", by_alias=True)


@router.post("/generate/voice")
async def generate_from_voice(
    audio: UploadFile = File(...),
    dream_text: Optional[str] = Form(None, alias="dreamText"),
    title: Optional[str] = Form(None),
    tone: StoryTone = Form(StoryTone.WHIMSICAL),
    length: StoryLength = Form(StoryLength.MEDIUM),
    mode: GenerationMode = Form(GenerationMode.STORY),
    generate_images: bool = Form(True, alias="generateImages"),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
    client: str = Depends(get_client_key),
) -> Dict[str, Any]:
    submission = DreamSubmission(
        dream_text=dream_text,
        audio=await audio.read(),
        audio_content_type=audio.content_type,
        title=title,
        tone=tone,
        length=length,
        mode=mode,
        generate_images=generate_images,
    )
    bundle = await orchestrator.run(submission, client)
    return bundle.model_dump(mode="json", by_alias=True)


__all__ = ["router"]
