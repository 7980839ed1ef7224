"""HTTP surface tests using FastAPI's TestClient with dependency overrides."""

from __future__ import annotations

import httpx
import pytest
from fastapi.testclient import TestClient

from common.config import Settings, get_settings
from dreamlog.app import app
from dreamlog.dependencies import get_gateway, get_orchestrator, get_persistence, get_tracker
from dreamlog.errors import ErrorReason, ModelGatewayError
from dreamlog.gateway import ModelGateway
from dreamlog.orchestrator import GenerationOrchestrator
from dreamlog.rate_budget import Budget, Capability, RateBudgetTracker

GUEST = {"X-Guest-Mode": "true", "X-Device-Id": "phone-1"}
USER = {"Authorization": "Bearer token-123", "X-User-Id": "user-1"}


@pytest.fixture
def remote_handler():
    """Mutable holder for the remote store's response function."""
    state = {"handler": lambda request: httpx.Response(500)}
    return state


@pytest.fixture
def wire(gateway, tracker, make_router, make_transport, remote_handler):
    """Install overrides and return a function to rebuild them."""

    def _wire(tracker_override: RateBudgetTracker = tracker, gateway_override=gateway):
        transport = make_transport(lambda request: remote_handler["handler"](request))
        persistence = make_router(transport)
        orchestrator = GenerationOrchestrator(gateway_override, tracker_override)
        app.dependency_overrides[get_tracker] = lambda: tracker_override
        app.state.tracker = tracker_override
        app.dependency_overrides[get_gateway] = lambda: gateway_override
        app.dependency_overrides[get_orchestrator] = lambda: orchestrator
        app.dependency_overrides[get_persistence] = lambda: persistence
        return transport

    original_tracker = app.state.tracker
    yield _wire
    app.dependency_overrides.clear()
    app.state.tracker = original_tracker


@pytest.fixture
def client(wire) -> TestClient:
    wire()
    return TestClient(app)


def test_healthz(client: TestClient):
    response = client.get("/healthz")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_api_health_reports_configuration(client: TestClient):
    response = client.get("/api/health")

    assert response.status_code == 200
    body = response.json()
    assert body["providerConfigured"] is True
    assert body["remoteStoreConfigured"] is True


def test_metrics_endpoint(client: TestClient):
    client.post("/api/generate", json={"dreamText": "I flew over a purple forest."})

    response = client.get("/metrics")

    assert response.status_code == 200
    assert "dreamlog_generation_runs_total" in response.text


def test_generate_returns_bundle(client: TestClient):
    response = client.post(
        "/api/generate",
        json={"dreamText": "I flew over a purple forest.", "tone": "mystical", "length": "short"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["title"] == "The Riddling Fox"
    assert body["story"]
    assert [image["sceneIndex"] for image in body["images"]] == [1, 2, 3]
    assert body["succeeded"] is True
    assert body["failures"] == []


def test_generate_partial_failure_still_200(client: TestClient, gateway):
    gateway.generate_image.side_effect = [
        "https://img.test/1.png",
        ModelGatewayError("nope"),
        "https://img.test/3.png",
    ]

    body = client.post("/api/generate", json={"dreamText": "I flew."}).json()

    assert body["succeeded"] is True
    assert body["partial"] is True
    assert body["images"][1]["error"] is True
    assert body["failures"][0]["step"] == "images"


def test_generate_requires_text_or_audio(client: TestClient):
    response = client.post("/api/generate", json={"dreamText": ""})

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_input"


def test_invalid_enum_is_bad_request(client: TestClient):
    response = client.post("/api/generate", json={"dreamText": "x", "tone": "grim"})

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_input"


def test_voice_generation_transcription_failure(client: TestClient, gateway):
    gateway.transcribe.side_effect = ModelGatewayError("whisper down", ErrorReason.TIMEOUT)

    response = client.post(
        "/api/generate/voice",
        files={"audio": ("dream.webm", b"RIFFDATA", "audio/webm")},
        data={"mode": "story"},
    )

    assert response.status_code == 502
    body = response.json()
    assert body["error"] == "transcription_failed"
    assert body["cause"] == "timeout"
    gateway.generate_story.assert_not_awaited()


def test_voice_generation_success(client: TestClient, gateway):
    response = client.post(
        "/api/generate/voice",
        files={"audio": ("dream.webm", b"RIFFDATA", "audio/webm")},
        data={"mode": "analysis"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["transcribed"] is True
    assert body["analysis"]
    gateway.transcribe.assert_awaited_once_with(b"RIFFDATA", "audio/webm")


def test_transcribe_endpoint(client: TestClient):
    response = client.post("/api/transcribe", files={"audio": ("a.wav", b"RIFF", "audio/wav")})

    assert response.status_code == 200
    assert response.json() == {"text": "I flew over a purple forest."}


def test_single_step_endpoints(client: TestClient):
    assert client.post("/api/generate-title", json={"dreamText": "fox"}).json() == {"title": "The Riddling Fox"}
    assert client.post("/api/generate-story", json={"dreamText": "fox", "tone": "comedy"}).json()["story"]

    analysis = client.post("/api/analyze-dream", json={"dreamText": "fox"}).json()
    assert analysis["themes"] == ["freedom", "transformation"]

    images = client.post("/api/generate-images", json={"story": "One. Two. Three.", "tone": "gentle"}).json()
    assert len(images["images"]) == 3


def test_speech_returns_mpeg(client: TestClient, gateway):
    response = client.post("/api/speech", json={"text": "Once upon a time", "voice": "shimmer"})

    assert response.status_code == 200
    assert response.headers["content-type"] == "audio/mpeg"
    assert response.content == b"ID3-mp3-bytes"
    assert gateway.synthesize_speech.await_args.kwargs["voice"] == "shimmer"


def test_capability_budget_returns_429(wire, clock):
    wire(tracker_override=RateBudgetTracker(budgets={Capability.STORY: Budget(1, 60)}, clock=clock))
    client = TestClient(app)

    assert client.post("/api/generate-story", json={"dreamText": "fox"}).status_code == 200
    response = client.post("/api/generate-story", json={"dreamText": "fox"})

    assert response.status_code == 429
    assert response.headers["Retry-After"] == "60"
    assert response.json()["error"] == "budget_exceeded"
    assert response.json()["capability"] == "story"


def test_general_budget_middleware(wire, clock):
    wire(tracker_override=RateBudgetTracker(budgets={Capability.GENERAL: Budget(2, 900)}, clock=clock))
    client = TestClient(app)

    assert client.get("/api/dreams", headers=GUEST).status_code == 200
    assert client.get("/api/dreams", headers=GUEST).status_code == 200
    response = client.get("/api/dreams", headers=GUEST)

    assert response.status_code == 429
    assert response.headers["Retry-After"] == "900"
    # non-API routes are not budgeted
    assert client.get("/healthz").status_code == 200


def test_unconfigured_provider_is_503(wire):
    wire(gateway_override=ModelGateway(api_key=None))
    client = TestClient(app)

    response = client.post("/api/generate-title", json={"dreamText": "fox"})

    assert response.status_code == 503
    assert response.json()["error"] == "not_configured"


def test_guest_dream_crud(client: TestClient):
    created = client.post("/api/dreams", json={"originalDream": "I flew.", "story": "A tale."}, headers=GUEST)
    assert created.status_code == 201
    dream = created.json()["dream"]
    assert dream["title"] == "Untitled Dream"
    dream_id = dream["id"]

    listed = client.get("/api/dreams", headers=GUEST).json()
    assert listed["total"] == 1
    assert listed["dreams"][0]["id"] == dream_id

    updated = client.put(f"/api/dreams/{dream_id}", json={"isFavorite": True}, headers=GUEST)
    assert updated.json()["dream"]["isFavorite"] is True
    assert client.get("/api/dreams?favorites=true", headers=GUEST).json()["total"] == 1

    assert client.delete(f"/api/dreams/{dream_id}", headers=GUEST).status_code == 204
    missing = client.get(f"/api/dreams/{dream_id}", headers=GUEST)
    assert missing.status_code == 404
    assert missing.json()["error"] == "not_found"


def test_delete_missing_dream_is_404(client: TestClient):
    response = client.delete("/api/dreams/does-not-exist", headers=GUEST)

    assert response.status_code == 404


def test_authenticated_save_failure_is_502(client: TestClient, remote_handler):
    remote_handler["handler"] = lambda request: httpx.Response(503)

    response = client.post("/api/dreams", json={"originalDream": "I flew."}, headers=USER)

    assert response.status_code == 502
    assert response.json()["error"] == "remote_write_failed"
    # nothing landed in guest storage
    assert client.get("/api/dreams", headers={"X-Device-Id": "default"}).json()["total"] == 0


def test_authenticated_save_uses_store_id(client: TestClient, remote_handler):
    remote_handler["handler"] = lambda request: httpx.Response(201, json={"dream": {"id": "srv-9"}})

    response = client.post("/api/dreams", json={"originalDream": "I flew."}, headers=USER)

    assert response.status_code == 201
    assert response.json()["dream"]["id"] == "srv-9"
    assert response.json()["dream"]["userId"] == "user-1"


def test_generate_for_saved_dream(client: TestClient, gateway):
    dream_id = client.post("/api/dreams", json={"originalDream": "I flew."}, headers=GUEST).json()["dream"]["id"]

    response = client.post(f"/api/dreams/{dream_id}/generate", json={"mode": "analysis"}, headers=GUEST)

    assert response.status_code == 200
    body = response.json()
    assert body["dream"]["analysis"].startswith("This dream speaks")
    assert set(body["dream"]["tags"]) == {"freedom", "transformation", "anxious", "excited"}
    assert body["generation"]["succeeded"] is True
    gateway.generate_title.assert_not_awaited()


def test_forwarded_header_does_not_reset_budget(wire, clock):
    tracker = RateBudgetTracker(budgets={Capability.STORY: Budget(1, 60)}, clock=clock)
    wire(tracker_override=tracker)
    client = TestClient(app)

    codes = [
        client.post(
            "/api/generate-story",
            json={"dreamText": "fox"},
            headers={"X-Forwarded-For": f"10.0.0.{i}"},
        ).status_code
        for i in range(5)
    ]

    assert codes == [200, 429, 429, 429, 429]
    # one general window and one story window for the real peer
    assert tracker.tracked_windows == 2


def test_trusted_proxy_forwards_client_address(wire, clock):
    wire(tracker_override=RateBudgetTracker(budgets={Capability.STORY: Budget(1, 60)}, clock=clock))
    app.dependency_overrides[get_settings] = lambda: Settings(trusted_proxies=["testclient"])
    client = TestClient(app)

    def story(forwarded: str) -> int:
        return client.post(
            "/api/generate-story", json={"dreamText": "fox"}, headers={"X-Forwarded-For": forwarded}
        ).status_code

    assert story("10.0.0.1") == 200
    assert story("10.0.0.2") == 200
    assert story("10.0.0.1") == 429
    # a spoofed left-most hop does not change the key
    assert story("6.6.6.6, 10.0.0.2") == 429


def test_null_update_is_bad_request(client: TestClient):
    dream_id = client.post("/api/dreams", json={"originalDream": "I flew."}, headers=GUEST).json()["dream"]["id"]

    response = client.put(f"/api/dreams/{dream_id}", json={"tone": None}, headers=GUEST)

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_input"
    assert client.get(f"/api/dreams/{dream_id}", headers=GUEST).json()["dream"]["tone"] == "whimsical"


def test_nullable_fields_can_be_cleared(client: TestClient):
    created = client.post(
        "/api/dreams", json={"originalDream": "I flew.", "story": "A tale."}, headers=GUEST
    ).json()["dream"]

    response = client.put(f"/api/dreams/{created['id']}", json={"story": None}, headers=GUEST)

    assert response.status_code == 200
    assert response.json()["dream"]["story"] is None


def test_failed_story_keeps_saved_tone(client: TestClient, gateway):
    created = client.post(
        "/api/dreams",
        json={"originalDream": "I flew.", "story": "Old tale.", "tone": "gentle"},
        headers=GUEST,
    ).json()["dream"]
    gateway.generate_story.side_effect = ModelGatewayError("timed out", ErrorReason.TIMEOUT)

    response = client.post(
        f"/api/dreams/{created['id']}/generate", json={"mode": "story", "tone": "comedy"}, headers=GUEST
    )

    assert response.status_code == 200
    dream = response.json()["dream"]
    assert dream["tone"] == "gentle"
    assert dream["story"] == "Old tale."
    assert response.json()["generation"]["succeeded"] is False
