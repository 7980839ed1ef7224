"""
Generation orchestrator: turns one dream submission into an artifact bundle.

Run shape:

1. Transcribe audio when no text was typed. Any failure here is fatal.
2. Generate a title (unless one exists) concurrently with the primary step.
3. Dispatch on the generation mode:
   - story: fairy tale, then three scene illustrations fanned out concurrently
   - analysis: psychological reading plus advisory theme/emotion tags
   - none: nothing beyond the title

Every step is admitted by the rate budget tracker first. Non-fatal failures
(title, story, analysis, individual scenes) are recorded in the bundle next to
whatever succeeded; only transcription failures and invalid submissions abort.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from common.logging import get_logger

from .errors import (
    BudgetExceededError,
    DreamLogError,
    ErrorReason,
    InvalidSubmissionError,
    TranscriptionFailedError,
)
from .gateway import ModelGateway
from .metrics import BUDGET_REJECTIONS, GENERATION_LATENCY, GENERATION_RUNS, SCENE_IMAGES
from .models import (
    DreamSubmission,
    GeneratedArtifactBundle,
    GenerationMode,
    GenerationStep,
    SceneImage,
    StepFailure,
    StoryLength,
    StoryTone,
)
from .prompts import EMOTION_VOCABULARY, SCENE_TEMPLATES, THEME_VOCABULARY, SceneTemplate, scene_prompt
from .rate_budget import Capability, RateBudgetTracker
from .segmenter import segment

LOGGER = get_logger(__name__)

ModeHandler = Callable[[DreamSubmission, GeneratedArtifactBundle, str], Awaitable[None]]


def derive_tags(analysis: str) -> Tuple[List[str], List[str]]:
    """Return ``(themes, emotions)`` mentioned anywhere in ``analysis``."""
    lowered = (analysis or "").lower()
    themes = [word for word in THEME_VOCABULARY if word in lowered]
    emotions = [word for word in EMOTION_VOCABULARY if word in lowered]
    return themes, emotions


class GenerationOrchestrator:
    """Sequence and fan out model calls for one submission at a time."""

    def __init__(self, gateway: ModelGateway, tracker: RateBudgetTracker) -> None:
        self._gateway = gateway
        self._tracker = tracker
        self._handlers: Dict[GenerationMode, ModeHandler] = {
            GenerationMode.STORY: self._run_story,
            GenerationMode.ANALYSIS: self._run_analysis,
            GenerationMode.NONE: self._run_none,
        }

    # ------------------------------------------------------------------
    # Full run
    # ------------------------------------------------------------------

    async def run(self, submission: DreamSubmission, client_key: str = "anonymous") -> GeneratedArtifactBundle:
        """Run every step the submission asks for and return the bundle.

        Raises:
            InvalidSubmissionError: neither text nor audio was provided, or the
                audio was rejected before dispatch.
            TranscriptionFailedError: the recording could not be transcribed.
        """
        run_id = uuid.uuid4().hex[:8]
        log = LOGGER.bind(run_id=run_id, mode=submission.mode.value, client=client_key)
        started = time.perf_counter()
        log.info("Generation run started", has_text=submission.has_text, has_audio=submission.has_audio)

        try:
            dream_text, transcribed = await self._resolve_text(submission, client_key)
        except DreamLogError:
            GENERATION_RUNS.labels(mode=submission.mode.value, outcome="aborted").inc()
            raise

        bundle = GeneratedArtifactBundle(
            mode=submission.mode,
            dream_text=dream_text,
            transcribed=transcribed,
            title=submission.title or None,
        )

        steps = [self._handlers[submission.mode](submission, bundle, client_key)]
        if not submission.title:
            steps.append(self._run_title(bundle, client_key))
        await asyncio.gather(*steps)

        outcome = "failed" if not bundle.succeeded else ("partial" if bundle.partial else "success")
        GENERATION_RUNS.labels(mode=submission.mode.value, outcome=outcome).inc()
        GENERATION_LATENCY.labels(mode=submission.mode.value).observe(time.perf_counter() - started)
        log.info(
            "Generation run finished",
            outcome=outcome,
            failures=[f.step.value for f in bundle.failures],
        )
        return bundle

    async def _resolve_text(self, submission: DreamSubmission, client_key: str) -> Tuple[str, bool]:
        if submission.has_text:
            return submission.dream_text.strip(), False
        if not submission.has_audio:
            raise InvalidSubmissionError("Dream text or audio is required")

        try:
            text = await self.transcribe(submission.audio, submission.audio_content_type, client_key)
        except DreamLogError as exc:
            if exc.reason == ErrorReason.INVALID_INPUT:
                raise InvalidSubmissionError(exc.message) from exc
            LOGGER.warning("Transcription failed", reason=exc.reason.value, client=client_key)
            raise TranscriptionFailedError(
                f"Failed to transcribe audio: {exc.message}", cause_reason=exc.reason
            ) from exc

        if not text:
            raise TranscriptionFailedError(
                "Transcription returned no text", cause_reason=ErrorReason.UPSTREAM_ERROR
            )
        return text, True

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _run_title(self, bundle: GeneratedArtifactBundle, client_key: str) -> None:
        try:
            bundle.title = await self.title(bundle.dream_text, client_key)
        except DreamLogError as exc:
            self._record_failure(bundle, GenerationStep.TITLE, exc)

    async def _run_story(self, submission: DreamSubmission, bundle: GeneratedArtifactBundle, client_key: str) -> None:
        try:
            bundle.story = await self.story(bundle.dream_text, submission.tone, submission.length, client_key)
        except DreamLogError as exc:
            self._record_failure(bundle, GenerationStep.STORY, exc)
            return

        if not submission.generate_images:
            return

        try:
            self._require(Capability.IMAGE, client_key)
        except BudgetExceededError as exc:
            self._record_failure(bundle, GenerationStep.IMAGES, exc)
            bundle.images = [self._failed_scene(t, None, exc.reason) for t in SCENE_TEMPLATES]
            return

        bundle.images = await self._fan_out_scenes(bundle.story, submission.tone)
        failed = [image for image in bundle.images if image.error]
        if failed:
            bundle.failures.append(
                StepFailure(
                    step=GenerationStep.IMAGES,
                    reason=failed[0].error_reason or ErrorReason.UPSTREAM_ERROR,
                    message=f"{len(failed)} of {len(bundle.images)} scene images failed",
                )
            )

    async def _run_analysis(self, submission: DreamSubmission, bundle: GeneratedArtifactBundle, client_key: str) -> None:
        try:
            bundle.analysis, bundle.themes, bundle.emotions = await self.analyze(bundle.dream_text, client_key)
        except DreamLogError as exc:
            self._record_failure(bundle, GenerationStep.ANALYSIS, exc)

    async def _run_none(self, submission: DreamSubmission, bundle: GeneratedArtifactBundle, client_key: str) -> None:
        return None

    # ------------------------------------------------------------------
    # Single-capability entry points
    # ------------------------------------------------------------------

    async def transcribe(self, audio: bytes, content_type: Optional[str], client_key: str) -> str:
        self._require(Capability.TRANSCRIPTION, client_key)
        return await self._gateway.transcribe(audio, content_type)

    async def title(self, dream_text: str, client_key: str) -> str:
        # Titles draw on the story budget.
        self._require(Capability.STORY, client_key)
        return await self._gateway.generate_title(dream_text)

    async def story(self, dream_text: str, tone: StoryTone, length: StoryLength, client_key: str) -> str:
        self._require(Capability.STORY, client_key)
        return await self._gateway.generate_story(dream_text, tone, length)

    async def analyze(self, dream_text: str, client_key: str) -> Tuple[str, List[str], List[str]]:
        self._require(Capability.ANALYSIS, client_key)
        analysis = await self._gateway.generate_analysis(dream_text)
        themes, emotions = derive_tags(analysis)
        return analysis, themes, emotions

    async def illustrate(self, story: str, tone: StoryTone, client_key: str) -> List[SceneImage]:
        """Illustrate an existing story; scenes fail independently."""
        if not story or not story.strip():
            raise InvalidSubmissionError("Story text is required")
        self._require(Capability.IMAGE, client_key)
        return await self._fan_out_scenes(story, tone)

    async def narrate(
        self,
        text: str,
        client_key: str,
        voice: Optional[str] = None,
        speed: Optional[float] = None,
    ) -> bytes:
        self._require(Capability.SPEECH, client_key)
        return await self._gateway.synthesize_speech(text, voice=voice or "nova", speed=speed or 1.0)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _fan_out_scenes(self, story: str, tone: StoryTone) -> List[SceneImage]:
        segments = segment(story)
        scene_prompts = [scene_prompt(t, text, tone) for t, text in zip(SCENE_TEMPLATES, segments)]
        results = await asyncio.gather(
            *(self._gateway.generate_image(prompt) for prompt in scene_prompts),
            return_exceptions=True,
        )

        images: List[SceneImage] = []
        for template, prompt, result in zip(SCENE_TEMPLATES, scene_prompts, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                reason = result.reason if isinstance(result, DreamLogError) else ErrorReason.UPSTREAM_ERROR
                LOGGER.warning(
                    "Scene image failed",
                    scene=template.name,
                    reason=reason.value,
                    error=str(result),
                )
                SCENE_IMAGES.labels(outcome="failed").inc()
                images.append(self._failed_scene(template, prompt, reason))
            else:
                SCENE_IMAGES.labels(outcome="success").inc()
                images.append(
                    SceneImage(
                        scene_index=template.index,
                        scene=template.name,
                        description=template.description,
                        prompt=prompt,
                        url=result,
                    )
                )
        return images

    @staticmethod
    def _failed_scene(template: SceneTemplate, prompt: Optional[str], reason: ErrorReason) -> SceneImage:
        return SceneImage(
            scene_index=template.index,
            scene=template.name,
            description=template.description,
            prompt=prompt,
            url=None,
            error=True,
            error_reason=reason,
        )

    def _require(self, capability: Capability, client_key: str) -> None:
        if not self._tracker.admit(capability, client_key):
            BUDGET_REJECTIONS.labels(capability=capability.value).inc()
            raise BudgetExceededError(capability.value, self._tracker.retry_after(capability, client_key))

    @staticmethod
    def _record_failure(bundle: GeneratedArtifactBundle, step: GenerationStep, exc: DreamLogError) -> None:
        LOGGER.warning("Generation step failed", step=step.value, reason=exc.reason.value, error=exc.message)
        bundle.failures.append(
            StepFailure(
                step=step,
                reason=exc.reason,
                message=exc.message,
                retry_after_seconds=getattr(exc, "retry_after", None),
            )
        )


__all__ = ["GenerationOrchestrator", "derive_tags"]
