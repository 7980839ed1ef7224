"""
Model gateway: one coroutine per external capability.

Wraps the OpenAI API (speech-to-text, chat completion, image generation,
text-to-speech) behind narrow typed calls. Every failure leaves the gateway as
a ``ModelGatewayError`` whose ``reason`` is one of ``not_configured``,
``invalid_input``, ``timeout`` or ``upstream_error``. Oversized inputs are
rejected locally before any network traffic. Calls are never retried.
"""

from __future__ import annotations

import time
from typing import Any, Awaitable, Callable, Optional, TypeVar

import openai
from openai import AsyncOpenAI

from common.config import Settings
from common.logging import get_logger

from .errors import ErrorReason, ModelGatewayError
from .models import StoryLength, StoryTone
from . import prompts

LOGGER = get_logger(__name__)

T = TypeVar("T")

TTS_VOICES = ["alloy", "echo", "fable", "onyx", "nova", "shimmer"]


class ModelGateway:
    """Uniform adapter over the model providers."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        chat_model: str = "gpt-4",
        image_model: str = "dall-e-3",
        transcription_model: str = "whisper-1",
        tts_model: str = "tts-1",
        timeout_seconds: float = 60.0,
        max_audio_bytes: int = 10 * 1024 * 1024,
        max_text_bytes: int = 10 * 1024 * 1024,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url
        self.chat_model = chat_model
        self.image_model = image_model
        self.transcription_model = transcription_model
        self.tts_model = tts_model
        self.timeout_seconds = timeout_seconds
        self.max_audio_bytes = max_audio_bytes
        self.max_text_bytes = max_text_bytes
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "ModelGateway":
        return cls(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            chat_model=settings.chat_model,
            image_model=settings.image_model,
            transcription_model=settings.transcription_model,
            tts_model=settings.tts_model,
            timeout_seconds=settings.provider_timeout_seconds,
            max_audio_bytes=settings.max_audio_bytes,
            max_text_bytes=settings.max_text_bytes,
        )

    @property
    def is_configured(self) -> bool:
        return self._client is not None or bool(self._api_key)

    def _ensure_client(self) -> AsyncOpenAI:
        """Lazy initialization of the OpenAI client."""
        if self._client is not None:
            return self._client
        if not self._api_key:
            raise ModelGatewayError("OpenAI API key not configured", ErrorReason.NOT_CONFIGURED)
        self._client = AsyncOpenAI(
            api_key=self._api_key,
            base_url=self._base_url,
            timeout=self.timeout_seconds,
            max_retries=0,
        )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()

    # ------------------------------------------------------------------
    # Input checks
    # ------------------------------------------------------------------

    def _check_text(self, text: Optional[str], field: str) -> str:
        if not text or not text.strip():
            raise ModelGatewayError(f"{field} is required", ErrorReason.INVALID_INPUT)
        if len(text.encode("utf-8")) > self.max_text_bytes:
            raise ModelGatewayError(
                f"{field} exceeds {self.max_text_bytes} bytes", ErrorReason.INVALID_INPUT
            )
        return text.strip()

    def _check_audio(self, audio: Optional[bytes]) -> bytes:
        if not audio:
            raise ModelGatewayError("No audio provided", ErrorReason.INVALID_INPUT)
        if len(audio) > self.max_audio_bytes:
            raise ModelGatewayError(
                f"Audio exceeds {self.max_audio_bytes} bytes", ErrorReason.INVALID_INPUT
            )
        return audio

    # ------------------------------------------------------------------
    # Dispatch with error normalization
    # ------------------------------------------------------------------

    async def _dispatch(self, capability: str, call: Callable[[AsyncOpenAI], Awaitable[T]]) -> T:
        client = self._ensure_client()
        started = time.perf_counter()
        try:
            result = await call(client)
        except openai.APITimeoutError as exc:
            LOGGER.warning("Provider call timed out", capability=capability)
            raise ModelGatewayError(f"{capability} timed out", ErrorReason.TIMEOUT) from exc
        except openai.APIStatusError as exc:
            LOGGER.error(
                "Provider returned error status",
                capability=capability,
                status_code=exc.status_code,
            )
            raise ModelGatewayError(
                f"{capability} failed: {exc.status_code}", ErrorReason.UPSTREAM_ERROR
            ) from exc
        except openai.OpenAIError as exc:
            LOGGER.error("Provider call failed", capability=capability, error=str(exc))
            raise ModelGatewayError(f"{capability} failed: {exc}", ErrorReason.UPSTREAM_ERROR) from exc

        LOGGER.debug(
            "Provider call completed",
            capability=capability,
            latency_ms=int((time.perf_counter() - started) * 1000),
        )
        return result

    async def _chat(self, capability: str, system: str, user: str, max_tokens: int, temperature: float) -> str:
        async def call(client: AsyncOpenAI) -> Any:
            return await client.chat.completions.create(
                model=self.chat_model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": user},
                ],
                max_tokens=max_tokens,
                temperature=temperature,
            )

        response = await self._dispatch(capability, call)
        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError) as exc:
            raise ModelGatewayError(f"{capability} returned no choices", ErrorReason.UPSTREAM_ERROR) from exc
        if not content or not content.strip():
            raise ModelGatewayError(f"{capability} returned empty content", ErrorReason.UPSTREAM_ERROR)
        return content.strip()

    # ------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------

    async def transcribe(
        self,
        audio: bytes,
        content_type: Optional[str] = None,
        language: str = "en",
    ) -> str:
        """Transcribe a voice recording to text."""
        audio = self._check_audio(audio)

        async def call(client: AsyncOpenAI) -> Any:
            return await client.audio.transcriptions.create(
                model=self.transcription_model,
                file=("dream.wav", audio, content_type or "audio/wav"),
                language=language,
            )

        result = await self._dispatch("transcribe", call)
        text = result if isinstance(result, str) else getattr(result, "text", "")
        return (text or "").strip()

    async def generate_title(self, dream_text: str) -> str:
        dream_text = self._check_text(dream_text, "Dream text")
        title = await self._chat(
            "generate-title",
            prompts.TITLE_SYSTEM,
            prompts.TITLE_USER_TEMPLATE.format(dream_text=dream_text),
            max_tokens=prompts.TITLE_MAX_TOKENS,
            temperature=prompts.TITLE_TEMPERATURE,
        )
        return title.strip().strip('"').strip("'").strip()

    async def generate_story(
        self,
        dream_text: str,
        tone: StoryTone = StoryTone.WHIMSICAL,
        length: StoryLength = StoryLength.MEDIUM,
    ) -> str:
        dream_text = self._check_text(dream_text, "Dream text")
        return await self._chat(
            "generate-story",
            prompts.story_system_prompt(tone, length),
            prompts.STORY_USER_TEMPLATE.format(dream_text=dream_text),
            max_tokens=prompts.STORY_MAX_TOKENS[length],
            temperature=prompts.STORY_TEMPERATURE,
        )

    async def generate_analysis(self, dream_text: str) -> str:
        dream_text = self._check_text(dream_text, "Dream text")
        return await self._chat(
            "generate-analysis",
            prompts.ANALYSIS_SYSTEM,
            prompts.ANALYSIS_USER_TEMPLATE.format(dream_text=dream_text),
            max_tokens=prompts.ANALYSIS_MAX_TOKENS,
            temperature=prompts.ANALYSIS_TEMPERATURE,
        )

    async def generate_image(
        self,
        prompt: str,
        size: str = "1024x1024",
        quality: str = "standard",
    ) -> str:
        """Generate one image and return its URL."""
        prompt = self._check_text(prompt, "Image prompt")

        async def call(client: AsyncOpenAI) -> Any:
            return await client.images.generate(
                model=self.image_model,
                prompt=prompt,
                size=size,
                quality=quality,
                n=1,
            )

        response = await self._dispatch("generate-image", call)
        try:
            url = response.data[0].url
        except (AttributeError, IndexError, TypeError) as exc:
            raise ModelGatewayError("generate-image returned no data", ErrorReason.UPSTREAM_ERROR) from exc
        if not url:
            raise ModelGatewayError("generate-image returned no url", ErrorReason.UPSTREAM_ERROR)
        return url

    async def synthesize_speech(self, text: str, voice: str = "nova", speed: float = 1.0) -> bytes:
        """Synthesize narration as MP3 bytes."""
        text = self._check_text(text, "Speech text")
        if voice not in TTS_VOICES:
            voice = "nova"

        async def call(client: AsyncOpenAI) -> Any:
            return await client.audio.speech.create(
                model=self.tts_model,
                voice=voice,
                input=text,
                speed=speed,
                response_format="mp3",
            )

        response = await self._dispatch("synthesize-speech", call)
        return response.content


__all__ = ["ModelGateway", "TTS_VOICES"]
