"""
Pydantic models for the Dream Log pipeline.

Wire shapes use camelCase aliases (``dreamText``, ``isFavorite`` ...) and
accept snake_case field names as well.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator
from pydantic.alias_generators import to_camel

from .errors import ErrorReason


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StoryTone(str, Enum):
    WHIMSICAL = "whimsical"
    MYSTICAL = "mystical"
    ADVENTUROUS = "adventurous"
    GENTLE = "gentle"
    MYSTERIOUS = "mysterious"
    COMEDY = "comedy"


class StoryLength(str, Enum):
    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"


class GenerationMode(str, Enum):
    STORY = "story"
    ANALYSIS = "analysis"
    NONE = "none"


class InputMode(str, Enum):
    TEXT = "text"
    VOICE = "voice"


class GenerationStep(str, Enum):
    TRANSCRIPTION = "transcription"
    TITLE = "title"
    STORY = "story"
    ANALYSIS = "analysis"
    IMAGES = "images"
    SPEECH = "speech"


# ==============================================================================
# Generation
# ==============================================================================


class DreamSubmission(CamelModel):
    """
    One user submission. Either ``dream_text`` or ``audio`` must be non-empty.

    Example:
        {
            "dreamText": "I flew over a purple forest...",
            "tone": "mystical",
            "length": "short",
            "mode": "story",
            "generateImages": true
        }
    """

    dream_text: Optional[str] = Field(None, description="Dream description typed by the user")
    audio: Optional[bytes] = Field(None, exclude=True, description="Raw voice recording")
    audio_content_type: Optional[str] = Field(None, exclude=True)
    title: Optional[str] = Field(None, description="Existing title, skips title generation")
    tone: StoryTone = StoryTone.WHIMSICAL
    length: StoryLength = StoryLength.MEDIUM
    mode: GenerationMode = GenerationMode.STORY
    generate_images: bool = True

    @property
    def has_text(self) -> bool:
        return bool(self.dream_text and self.dream_text.strip())

    @property
    def has_audio(self) -> bool:
        return bool(self.audio)


class SceneImage(CamelModel):
    """One illustration of a story scene. Failed scenes carry ``url=None``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    scene_index: int = Field(..., ge=1, le=3)
    scene: str
    description: str
    prompt: Optional[str] = None
    url: Optional[str] = None
    error: bool = False
    error_reason: Optional[ErrorReason] = None


class StepFailure(CamelModel):
    step: GenerationStep
    reason: ErrorReason
    message: str
    retry_after_seconds: Optional[float] = None


class GeneratedArtifactBundle(CamelModel):
    """Everything produced by one orchestration run."""

    mode: GenerationMode
    dream_text: str
    transcribed: bool = False
    title: Optional[str] = None
    story: Optional[str] = None
    analysis: Optional[str] = None
    themes: List[str] = Field(default_factory=list)
    emotions: List[str] = Field(default_factory=list)
    images: Optional[List[SceneImage]] = None
    failures: List[StepFailure] = Field(default_factory=list)

    def failure_for(self, step: GenerationStep) -> Optional[StepFailure]:
        for failure in self.failures:
            if failure.step == step:
                return failure
        return None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def succeeded(self) -> bool:
        """False only when the requested primary step failed."""
        if self.mode == GenerationMode.STORY:
            return self.failure_for(GenerationStep.STORY) is None
        if self.mode == GenerationMode.ANALYSIS:
            return self.failure_for(GenerationStep.ANALYSIS) is None
        return True

    @computed_field  # type: ignore[prop-decorator]
    @property
    def partial(self) -> bool:
        return bool(self.failures)


class SpeechRequest(CamelModel):
    text: str = Field(..., min_length=1)
    voice: Optional[str] = None
    speed: Optional[float] = Field(None, ge=0.25, le=4.0)


# ==============================================================================
# Persistence
# ==============================================================================


class DreamRecord(CamelModel):
    """A persisted dream. ``id`` and ``created_at`` are filled on save."""

    id: Optional[str] = None
    user_id: Optional[str] = None
    user_email: Optional[str] = None
    original_dream: str
    title: Optional[str] = None
    story: Optional[str] = None
    analysis: Optional[str] = None
    tone: StoryTone = StoryTone.WHIMSICAL
    length: StoryLength = StoryLength.MEDIUM
    images: List[SceneImage] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    is_favorite: bool = False
    created_at: Optional[datetime] = None
    has_audio: bool = False
    audio_duration_seconds: Optional[float] = None
    input_mode: InputMode = InputMode.TEXT

    @classmethod
    def from_bundle(
        cls,
        bundle: GeneratedArtifactBundle,
        submission: DreamSubmission,
        audio_duration_seconds: Optional[float] = None,
    ) -> "DreamRecord":
        return cls(
            original_dream=bundle.dream_text,
            title=bundle.title,
            story=bundle.story,
            analysis=bundle.analysis,
            tone=submission.tone,
            length=submission.length,
            images=list(bundle.images or []),
            tags=[*bundle.themes, *bundle.emotions],
            has_audio=submission.has_audio,
            audio_duration_seconds=audio_duration_seconds,
            input_mode=InputMode.VOICE if submission.has_audio else InputMode.TEXT,
        )


class DreamUpdate(CamelModel):
    """Partial update; only explicitly provided fields are written."""

    title: Optional[str] = None
    original_dream: Optional[str] = None
    story: Optional[str] = None
    analysis: Optional[str] = None
    tone: Optional[StoryTone] = None
    length: Optional[StoryLength] = None
    images: Optional[List[SceneImage]] = None
    tags: Optional[List[str]] = None
    is_favorite: Optional[bool] = None

    @field_validator("original_dream", "tone", "length", "images", "tags", "is_favorite")
    @classmethod
    def _not_null(cls, value):
        # Omit a field to leave it unchanged; these fields have no null state.
        if value is None:
            raise ValueError("may not be null")
        return value

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)


class DreamQuery(CamelModel):
    page: int = Field(1, ge=1)
    limit: int = Field(50, ge=1, le=100)
    search: Optional[str] = None
    tag: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    favorites_only: bool = False


class DreamPage(CamelModel):
    dreams: List[DreamRecord]
    total: int
    page: int
    limit: int

    @computed_field  # type: ignore[prop-decorator]
    @property
    def has_more(self) -> bool:
        return self.page * self.limit < self.total


class SessionContext(BaseModel):
    """Identity supplied by the auth layer; consulted, never owned."""

    identity: Optional[str] = None
    is_guest: bool = True
    user_id: Optional[str] = None
    device_id: str = "default"

    @property
    def is_authenticated(self) -> bool:
        return bool(self.identity) and not self.is_guest


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


__all__ = [
    "StoryTone",
    "StoryLength",
    "GenerationMode",
    "InputMode",
    "GenerationStep",
    "DreamSubmission",
    "SceneImage",
    "StepFailure",
    "GeneratedArtifactBundle",
    "SpeechRequest",
    "DreamRecord",
    "DreamUpdate",
    "DreamQuery",
    "DreamPage",
    "SessionContext",
    "utcnow",
]
