"""Tests for the FastAPI gateway with the simulated and Kling providers."""

import json

import httpx
import jwt
import pytest
from fastapi.testclient import TestClient

from clipchain.api.app import create_app
from clipchain.api.routes import ensure_data_uri
from clipchain.config import GatewayConfig, KlingConfig
from clipchain.services.providers.kling import KlingProvider
from clipchain.services.providers.simulation import SimulationBackend

from conftest import FakeClock

SAMPLE_URL = "https://cdn.example/sample.mp4"
JPEG_B64 = "/9j/4AAQSkZJRgABAQ"


@pytest.fixture
def sim_clock() -> FakeClock:
    return FakeClock(1_700_000_000.0)


@pytest.fixture
def sim_client(sim_clock):
    provider = SimulationBackend(20.0, SAMPLE_URL, clock=sim_clock)
    app = create_app(provider=provider, gateway=GatewayConfig())
    with TestClient(app) as client:
        yield client


# ---------------------------------------------------------------------------
# Simulation mode
# ---------------------------------------------------------------------------

def test_health_reports_mode(sim_client):
    response = sim_client.get("/")
    assert response.status_code == 200
    assert response.json() == {"status": "clipchain gateway running", "mode": "simulation"}


def test_simulated_job_lifecycle(sim_client, sim_clock):
    response = sim_client.post("/generate", json={"image": JPEG_B64, "prompt": "a fox"})
    assert response.status_code == 200
    job_id = response.json()["jobId"]
    assert job_id == "sim_1700000020000"

    response = sim_client.get(f"/status/{job_id}")
    assert response.status_code == 200
    assert response.json() == {"phase": "processing"}

    sim_clock.advance(20)
    response = sim_client.get(f"/status/{job_id}")
    assert response.json() == {"phase": "completed", "videoUrl": SAMPLE_URL}


@pytest.mark.parametrize("body", [
    {},
    {"image": JPEG_B64},
    {"prompt": "a fox"},
    {"image": "", "prompt": "a fox"},
])
def test_generate_requires_image_and_prompt(sim_client, body):
    response = sim_client.post("/generate", json=body)
    assert response.status_code == 400
    assert response.json()["detail"] == "image and prompt required"


@pytest.mark.parametrize("job_id", ["abc", "sim_abc", "sim_0"])
def test_status_unknown_job_is_404(sim_client, job_id):
    response = sim_client.get(f"/status/{job_id}")
    assert response.status_code == 404


def test_api_key_is_enforced_when_configured(sim_clock):
    provider = SimulationBackend(20.0, SAMPLE_URL, clock=sim_clock)
    app = create_app(provider=provider, gateway=GatewayConfig(api_key="s3cret"))

    with TestClient(app) as client:
        assert client.get("/").status_code == 401
        assert client.get("/", headers={"X-API-Key": "wrong"}).status_code == 401
        response = client.post(
            "/generate",
            json={"image": JPEG_B64, "prompt": "a fox"},
            headers={"X-API-Key": "s3cret"},
        )
        assert response.status_code == 200


# ---------------------------------------------------------------------------
# Data URI handling
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("image, expected", [
    ("/9j/4AAQ", "data:image/jpeg;base64,/9j/4AAQ"),
    ("iVBORw0KGgo", "data:image/png;base64,iVBORw0KGgo"),
    ("R0lGODlh", "data:image/gif;base64,R0lGODlh"),
    ("UklGRiQAAABXRUJQ", "data:image/webp;base64,UklGRiQAAABXRUJQ"),
    ("AAAA", "data:image/jpeg;base64,AAAA"),
    ("data:image/png;base64,iVBOR", "data:image/png;base64,iVBOR"),
])
def test_ensure_data_uri(image, expected):
    assert ensure_data_uri(image) == expected


# ---------------------------------------------------------------------------
# Kling mode
# ---------------------------------------------------------------------------

def _kling_client(handler) -> TestClient:
    config = KlingConfig(access_key="ak-test", secret_key="sk-test")
    provider = KlingProvider(config, transport=httpx.MockTransport(handler))
    return TestClient(create_app(provider=provider, gateway=GatewayConfig()))


def test_kling_submit_sends_signed_request_with_data_uri():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"code": 0, "data": {"task_id": "task-42"}})

    with _kling_client(handler) as client:
        response = client.post("/generate", json={"image": JPEG_B64, "prompt": "a fox"})

    assert response.status_code == 200
    assert response.json() == {"jobId": "task-42"}
    assert seen["path"] == "/v1/videos/image2video"
    assert seen["body"] == {
        "model_name": "kling-v2-6",
        "image": f"data:image/jpeg;base64,{JPEG_B64}",
        "prompt": "a fox",
        "duration": "5",
        "mode": "std",
        "cfg_scale": 0.5,
    }

    scheme, token = seen["auth"].split(" ", 1)
    assert scheme == "Bearer"
    claims = jwt.decode(token, "sk-test", algorithms=["HS256"])
    assert claims["iss"] == "ak-test"
    assert claims["exp"] - claims["iat"] == 1800 + 5


def test_kling_submit_error_is_passed_through():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, text="too many requests")

    with _kling_client(handler) as client:
        response = client.post("/generate", json={"image": JPEG_B64, "prompt": "a fox"})

    assert response.status_code == 429
    assert response.json()["detail"] == "too many requests"


def test_kling_submit_without_task_id_is_500():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"code": 1201, "message": "bad"})

    with _kling_client(handler) as client:
        response = client.post("/generate", json={"image": JPEG_B64, "prompt": "a fox"})

    assert response.status_code == 500
    assert response.json()["detail"] == "No task_id returned"


def test_kling_status_completed_returns_video_url():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/videos/image2video/task-42"
        return httpx.Response(200, json={
            "data": {
                "task_id": "task-42",
                "task_status": "succeed",
                "task_result": {"videos": [{"id": "v1", "url": "https://kling.cdn/v1.mp4"}]},
            },
        })

    with _kling_client(handler) as client:
        response = client.get("/status/task-42")

    assert response.status_code == 200
    assert response.json() == {"phase": "completed", "videoUrl": "https://kling.cdn/v1.mp4"}
