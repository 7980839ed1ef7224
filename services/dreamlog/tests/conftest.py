# noqa: D104
"""Pytest fixtures for Dream Log tests."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, List
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from dreamlog.gateway import ModelGateway
from dreamlog.models import SessionContext
from dreamlog.orchestrator import GenerationOrchestrator
from dreamlog.persistence import LocalRecordStore, PersistenceRouter, RemoteRecordStore
from dreamlog.rate_budget import RateBudgetTracker

REMOTE_URL = "https://store.test/api"

STORY = (
    "Once upon a time a girl flew above a purple forest. "
    "A silver fox waited on the tallest branch. "
    "He asked her a riddle about the moon. "
    "She answered with a song the trees remembered. "
    "The fox bowed and the forest began to glow. "
    "At dawn she floated home, wiser than before."
)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def tracker(clock: FakeClock) -> RateBudgetTracker:
    return RateBudgetTracker(clock=clock)


@pytest.fixture
def gateway() -> MagicMock:
    """Gateway double with every capability succeeding."""
    mock = MagicMock(spec=ModelGateway)
    mock.is_configured = True
    mock.transcribe = AsyncMock(return_value="I flew over a purple forest.")
    mock.generate_title = AsyncMock(return_value="The Riddling Fox")
    mock.generate_story = AsyncMock(return_value=STORY)
    mock.generate_analysis = AsyncMock(
        return_value="This dream speaks of freedom and transformation. You may feel anxious but excited."
    )
    mock.generate_image = AsyncMock(
        side_effect=lambda prompt, **kwargs: f"https://img.test/{abs(hash(prompt))}.png"
    )
    mock.synthesize_speech = AsyncMock(return_value=b"ID3-mp3-bytes")
    mock.close = AsyncMock()
    return mock


@pytest.fixture
def orchestrator(gateway: MagicMock, tracker: RateBudgetTracker) -> GenerationOrchestrator:
    return GenerationOrchestrator(gateway, tracker)


@pytest.fixture
def local_store(tmp_path: Path) -> LocalRecordStore:
    return LocalRecordStore(tmp_path / "dreams")


class RecordingTransport:
    """Collects requests and answers them with a pluggable handler."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.requests: List[httpx.Request] = []
        self._handler = handler
        self.transport = httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._handler(request)


@pytest.fixture
def make_transport() -> Callable[[Callable[[httpx.Request], httpx.Response]], RecordingTransport]:
    return RecordingTransport


@pytest.fixture
def guest_session() -> SessionContext:
    return SessionContext(is_guest=True, device_id="device-a")


@pytest.fixture
def user_session() -> SessionContext:
    return SessionContext(identity="token-123", is_guest=False, user_id="user-1")


@pytest.fixture
def make_router(local_store: LocalRecordStore):
    def _make(transport: RecordingTransport | None = None, url: str | None = REMOTE_URL) -> PersistenceRouter:
        remote = RemoteRecordStore(url, transport=transport.transport if transport else None)
        return PersistenceRouter(remote, local_store, id_factory=lambda: "1700000000000")

    return _make
