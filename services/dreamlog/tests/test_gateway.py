"""Tests for the model gateway with a stubbed OpenAI client."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from dreamlog.errors import ErrorReason, ModelGatewayError
from dreamlog.gateway import ModelGateway
from dreamlog.models import StoryLength, StoryTone
from dreamlog import prompts

_REQUEST = httpx.Request("POST", "https://api.openai.test/v1")


def _chat_response(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


@pytest.fixture
def client() -> MagicMock:
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=_chat_response("A tale"))
    client.images.generate = AsyncMock(
        return_value=SimpleNamespace(data=[SimpleNamespace(url="https://img.test/1.png")])
    )
    client.audio.transcriptions.create = AsyncMock(return_value=SimpleNamespace(text=" hello dream "))
    client.audio.speech.create = AsyncMock(return_value=SimpleNamespace(content=b"mp3"))
    client.close = AsyncMock()
    return client


@pytest.fixture
def gateway(client: MagicMock) -> ModelGateway:
    return ModelGateway(client=client, max_audio_bytes=16, max_text_bytes=64)


@pytest.mark.asyncio
async def test_story_uses_tone_and_length(gateway: ModelGateway, client: MagicMock):
    story = await gateway.generate_story("I flew", StoryTone.MYSTICAL, StoryLength.SHORT)

    assert story == "A tale"
    kwargs = client.chat.completions.create.await_args.kwargs
    assert kwargs["max_tokens"] == prompts.STORY_MAX_TOKENS[StoryLength.SHORT]
    assert kwargs["temperature"] == prompts.STORY_TEMPERATURE
    assert kwargs["messages"][0]["content"] == prompts.story_system_prompt(StoryTone.MYSTICAL, StoryLength.SHORT)
    assert "I flew" in kwargs["messages"][1]["content"]


@pytest.mark.asyncio
async def test_title_strips_quotes(gateway: ModelGateway, client: MagicMock):
    client.chat.completions.create.return_value = _chat_response('"The Fox of Riddles"')

    assert await gateway.generate_title("I met a fox") == "The Fox of Riddles"


@pytest.mark.asyncio
async def test_empty_completion_is_upstream_error(gateway: ModelGateway, client: MagicMock):
    client.chat.completions.create.return_value = _chat_response("   ")

    with pytest.raises(ModelGatewayError) as exc_info:
        await gateway.generate_analysis("I met a fox")
    assert exc_info.value.reason == ErrorReason.UPSTREAM_ERROR


@pytest.mark.asyncio
async def test_timeout_maps_to_timeout(gateway: ModelGateway, client: MagicMock):
    client.chat.completions.create.side_effect = openai.APITimeoutError(request=_REQUEST)

    with pytest.raises(ModelGatewayError) as exc_info:
        await gateway.generate_story("I flew")
    assert exc_info.value.reason == ErrorReason.TIMEOUT


@pytest.mark.asyncio
async def test_status_error_maps_to_upstream(gateway: ModelGateway, client: MagicMock):
    client.images.generate.side_effect = openai.APIStatusError(
        "server exploded",
        response=httpx.Response(500, request=_REQUEST),
        body=None,
    )

    with pytest.raises(ModelGatewayError) as exc_info:
        await gateway.generate_image("a fox")
    assert exc_info.value.reason == ErrorReason.UPSTREAM_ERROR


@pytest.mark.asyncio
async def test_connection_error_maps_to_upstream(gateway: ModelGateway, client: MagicMock):
    client.audio.speech.create.side_effect = openai.APIConnectionError(request=_REQUEST)

    with pytest.raises(ModelGatewayError) as exc_info:
        await gateway.synthesize_speech("hello")
    assert exc_info.value.reason == ErrorReason.UPSTREAM_ERROR


@pytest.mark.asyncio
async def test_missing_key_is_not_configured():
    gateway = ModelGateway(api_key=None)

    assert gateway.is_configured is False
    with pytest.raises(ModelGatewayError) as exc_info:
        await gateway.generate_title("I flew")
    assert exc_info.value.reason == ErrorReason.NOT_CONFIGURED


@pytest.mark.asyncio
async def test_oversized_audio_rejected_before_dispatch(gateway: ModelGateway, client: MagicMock):
    with pytest.raises(ModelGatewayError) as exc_info:
        await gateway.transcribe(b"x" * 17, "audio/webm")

    assert exc_info.value.reason == ErrorReason.INVALID_INPUT
    client.audio.transcriptions.create.assert_not_awaited()


@pytest.mark.asyncio
async def test_oversized_text_rejected_before_dispatch(gateway: ModelGateway, client: MagicMock):
    with pytest.raises(ModelGatewayError) as exc_info:
        await gateway.generate_story("z" * 65)

    assert exc_info.value.reason == ErrorReason.INVALID_INPUT
    client.chat.completions.create.assert_not_awaited()


@pytest.mark.asyncio
async def test_transcribe_returns_trimmed_text(gateway: ModelGateway, client: MagicMock):
    text = await gateway.transcribe(b"RIFF", "audio/webm")

    assert text == "hello dream"
    kwargs = client.audio.transcriptions.create.await_args.kwargs
    assert kwargs["file"] == ("dream.wav", b"RIFF", "audio/webm")
    assert kwargs["language"] == "en"


@pytest.mark.asyncio
async def test_image_returns_url(gateway: ModelGateway, client: MagicMock):
    url = await gateway.generate_image("a fox", size="1792x1024", quality="hd")

    assert url == "https://img.test/1.png"
    kwargs = client.images.generate.await_args.kwargs
    assert kwargs["n"] == 1
    assert kwargs["size"] == "1792x1024"


@pytest.mark.asyncio
async def test_image_without_url_is_upstream_error(gateway: ModelGateway, client: MagicMock):
    client.images.generate.return_value = SimpleNamespace(data=[])

    with pytest.raises(ModelGatewayError) as exc_info:
        await gateway.generate_image("a fox")
    assert exc_info.value.reason == ErrorReason.UPSTREAM_ERROR


@pytest.mark.asyncio
async def test_unknown_voice_falls_back(gateway: ModelGateway, client: MagicMock):
    audio = await gateway.synthesize_speech("hello", voice="robot", speed=1.25)

    assert audio == b"mp3"
    kwargs = client.audio.speech.create.await_args.kwargs
    assert kwargs["voice"] == "nova"
    assert kwargs["speed"] == 1.25
    assert kwargs["response_format"] == "mp3"


@pytest.mark.asyncio
async def test_close_closes_client(gateway: ModelGateway, client: MagicMock):
    await gateway.close()

    client.close.assert_awaited_once()
