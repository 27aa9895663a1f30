"""Tests for API endpoints (generation service is faked, no external API keys required)."""

from __future__ import annotations

from collections.abc import Iterator
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from src.api.main import app, run
from src.config import settings
from src.generation.scheduler import RequestScheduler
from src.pipeline.session import SessionRegistry
from src.pipeline_config import PipelineConfig, SchedulerConfig, TriggerPolicy
from tests.fakes import FakeGenerator, summary_json


def make_registry(generator: FakeGenerator) -> SessionRegistry:
    config = PipelineConfig(
        scheduler=SchedulerConfig(max_retries=0),
        trigger=TriggerPolicy(auto_generate=False),
    )
    return SessionRegistry(RequestScheduler(config.scheduler), generator, config)


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator(summary_json(content="Release recap.", decisions=["Ship v2 on Friday"]))


@pytest.fixture
def client(generator: FakeGenerator) -> Iterator[TestClient]:
    registry = make_registry(generator)
    with patch("src.api.main.build_registry", return_value=registry), TestClient(app) as test_client:
        yield test_client


def create_session(client: TestClient, **body: str) -> str:
    response = client.post("/api/sessions", json=body or None)
    assert response.status_code == 201
    return response.json()["id"]


def post_final(client: TestClient, session_id: str, text: str, ts: int) -> None:
    response = client.post(
        f"/api/sessions/{session_id}/events",
        json={"text": text, "confidence": 0.9, "timestamp_ms": ts, "is_final": True},
    )
    assert response.status_code == 200
    assert response.json()["accepted"] is True


def test_health(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


class TestSessions:
    def test_create_and_get(self, client: TestClient) -> None:
        session_id = create_session(client, custom_instructions="Focus on risks.")
        response = client.get(f"/api/sessions/{session_id}")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "recording"
        assert body["state"] == "idle"
        assert body["custom_instructions"] == "Focus on risks."

    def test_unknown_session_returns_404(self, client: TestClient) -> None:
        assert client.get("/api/sessions/nope").status_code == 404
        assert client.post("/api/sessions/nope/pause").status_code == 404

    def test_event_validation(self, client: TestClient) -> None:
        session_id = create_session(client)
        response = client.post(f"/api/sessions/{session_id}/events", json={"confidence": "high"})
        assert response.status_code == 422

    def test_interim_event(self, client: TestClient) -> None:
        session_id = create_session(client)
        response = client.post(f"/api/sessions/{session_id}/events", json={"text": "we sho", "confidence": 0.4})
        body = response.json()
        assert body["accepted"] is True
        assert body["segment"]["is_final"] is False
        assert client.get(f"/api/sessions/{session_id}").json()["interim_text"] == "we sho"

    def test_actions(self, client: TestClient) -> None:
        session_id = create_session(client)
        client.post(f"/api/sessions/{session_id}/events", json={"text": "trailing words", "timestamp_ms": 5})
        paused = client.post(f"/api/sessions/{session_id}/pause").json()
        assert paused["status"] == "paused"
        assert paused["final_segments"] == 1
        assert client.post(f"/api/sessions/{session_id}/resume").json()["status"] == "recording"
        assert client.post(f"/api/sessions/{session_id}/stop").json()["status"] == "stopped"
        assert client.post(f"/api/sessions/{session_id}/clear").json()["final_segments"] == 0
        assert client.post(f"/api/sessions/{session_id}/explode").status_code == 422

    def test_set_instructions(self, client: TestClient) -> None:
        session_id = create_session(client)
        response = client.put(f"/api/sessions/{session_id}/instructions", json={"custom_instructions": "Be brief."})
        assert response.json()["custom_instructions"] == "Be brief."

    def test_delete(self, client: TestClient) -> None:
        session_id = create_session(client)
        assert client.delete(f"/api/sessions/{session_id}").status_code == 204
        assert client.get(f"/api/sessions/{session_id}").status_code == 404


class TestSummaries:
    def test_no_summary_yet(self, client: TestClient) -> None:
        session_id = create_session(client)
        assert client.get(f"/api/sessions/{session_id}/summary").status_code == 404
        assert client.get(f"/api/sessions/{session_id}/summary.txt").status_code == 404

    def test_generate_with_nothing_to_summarize_conflicts(self, client: TestClient) -> None:
        session_id = create_session(client)
        response = client.post(f"/api/sessions/{session_id}/summary")
        assert response.status_code == 409

    def test_generate_and_fetch(self, client: TestClient) -> None:
        session_id = create_session(client)
        post_final(client, session_id, "Let's ship v2", 0)
        post_final(client, session_id, "we agreed on Friday", 1_200)

        response = client.post(f"/api/sessions/{session_id}/summary")
        assert response.status_code == 200
        body = response.json()
        assert body["decisions"] == ["Ship v2 on Friday"]
        assert body["is_incremental"] is False
        assert body["stats"]["decisionsCount"] == 1

        fetched = client.get(f"/api/sessions/{session_id}/summary").json()
        assert fetched["id"] == body["id"]

        text = client.get(f"/api/sessions/{session_id}/summary.txt")
        assert text.status_code == 200
        assert "DECISIONS MADE:\n• Ship v2 on Friday" in text.text

    def test_regenerate(self, client: TestClient) -> None:
        session_id = create_session(client)
        post_final(client, session_id, "Let's ship v2", 0)
        first = client.post(f"/api/sessions/{session_id}/summary").json()
        second = client.post(f"/api/sessions/{session_id}/summary", params={"regenerate": "true"}).json()
        assert second["previous_id"] == first["id"]
        assert second["is_incremental"] is False

    def test_skipped_cycle_returns_current_summary(self, client: TestClient) -> None:
        session_id = create_session(client)
        post_final(client, session_id, "Let's ship v2", 0)
        first = client.post(f"/api/sessions/{session_id}/summary").json()
        again = client.post(f"/api/sessions/{session_id}/summary")
        assert again.status_code == 200
        assert again.json()["id"] == first["id"]


@pytest.mark.parametrize(
    ("failure", "status_code"),
    [(ValueError("invalid api key"), 502), (ConnectionError("network down"), 503)],
)
def test_generation_failures_map_to_gateway_errors(failure: Exception, status_code: int) -> None:
    registry = make_registry(FakeGenerator(failure))
    with patch("src.api.main.build_registry", return_value=registry), TestClient(app) as client:
        session_id = create_session(client)
        post_final(client, session_id, "Let's ship v2", 0)
        response = client.post(f"/api/sessions/{session_id}/summary")
    assert response.status_code == status_code
    assert "LLM unavailable" in response.json()["detail"]


def test_scheduler_status(client: TestClient) -> None:
    response = client.get("/api/scheduler/status")
    assert response.status_code == 200
    body = response.json()
    assert body["limit"] == 15
    assert body["queue_length"] == 0
    assert body["can_make_request"] is True


def test_run_serves_app_on_configured_address() -> None:
    with patch("src.api.main.uvicorn.run") as serve:
        run()
    serve.assert_called_once_with(app, host=settings.api_host, port=settings.api_port, log_level="info")
