from __future__ import annotations

import json

import httpx
import pytest

from fashion_studio.infra.fashn.client import (
    FashnAPIError,
    FashnClient,
    FashnTimeoutError,
    GenerationFailed,
)


def _client(handler) -> FashnClient:
    return FashnClient("http://mock/v1", "secret", transport=httpx.MockTransport(handler))


def test_run_maps_request_fields():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "pred-1", "error": None})

    with _client(handler) as c:
        run = c.run("http://m.jpg", "http://g.jpg", "full-body", seed=7, samples=2, quality="quality")

    assert run.id == "pred-1"
    assert seen["path"] == "/v1/run"
    assert seen["auth"] == "Bearer secret"
    assert seen["body"] == {
        "model_image": "http://m.jpg",
        "garment_image": "http://g.jpg",
        "category": "one-pieces",
        "mode": "quality",
        "num_samples": 2,
        "seed": 7,
    }


def test_run_omits_seed_when_not_given():
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"id": "pred-2"})

    with _client(handler) as c:
        c.run("m", "g", "tops")
    assert "seed" not in bodies[0]
    assert bodies[0]["mode"] == "balanced"
    assert bodies[0]["num_samples"] == 1


def test_run_without_id_raises():
    def handler(request):
        return httpx.Response(200, json={"id": None, "error": {"name": "ImageLoadError", "message": "bad url"}})

    with _client(handler) as c, pytest.raises(FashnAPIError) as exc:
        c.run("m", "g", "tops")
    assert "ImageLoadError: bad url" in str(exc.value)


def test_http_errors_are_classified():
    def handler(request):
        return httpx.Response(400, json={"error": "bad request"})

    with _client(handler) as c, pytest.raises(FashnAPIError) as exc:
        c.run("m", "g", "tops")
    assert exc.value.status_code == 400
    assert exc.value.transient is False

    assert FashnAPIError("x", status_code=503).transient is True
    assert FashnAPIError("x", status_code=429).transient is True
    assert FashnAPIError("network down").transient is True
    assert FashnTimeoutError("slow").transient is True
    assert GenerationFailed("nope", status_code=500).transient is False


def test_network_error_is_transient():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with _client(handler) as c, pytest.raises(FashnAPIError) as exc:
        c.status("pred-1")
    assert exc.value.transient is True


def test_wait_for_completion_polls_until_completed():
    answers = iter([
        httpx.Response(200, json={"id": "p", "status": "starting"}),
        httpx.Response(503, text="busy"),
        httpx.Response(200, json={"id": "p", "status": "processing"}),
        httpx.Response(200, json={"id": "p", "status": "completed", "output": ["http://cdn/1.png"]}),
    ])
    sleeps = []
    statuses = []

    with _client(lambda request: next(answers)) as c:
        result = c.wait_for_completion("p", sleep=sleeps.append, on_status=lambda s: statuses.append(s.status))

    assert result.is_completed
    assert result.output == ["http://cdn/1.png"]
    assert statuses == ["starting", "processing", "completed"]
    # 1s between normal checks, 2s after the 503
    assert sleeps == [1.0, 2.0, 1.0]


def test_wait_for_completion_raises_on_failure():
    def handler(request):
        return httpx.Response(200, json={"id": "p", "status": "failed", "error": {"name": "PoseError", "message": "no pose"}})

    with _client(handler) as c, pytest.raises(GenerationFailed) as exc:
        c.wait_for_completion("p", sleep=lambda s: None)
    assert "PoseError: no pose" in str(exc.value)
    assert exc.value.transient is False


def test_wait_for_completion_gives_up_after_max_attempts():
    calls = []

    def handler(request):
        calls.append(1)
        return httpx.Response(200, json={"id": "p", "status": "processing"})

    with _client(handler) as c, pytest.raises(FashnTimeoutError):
        c.wait_for_completion("p", sleep=lambda s: None, max_attempts=5)
    assert len(calls) == 5


def test_client_error_while_polling_is_not_retried():
    calls = []

    def handler(request):
        calls.append(1)
        return httpx.Response(404, json={"error": "unknown prediction"})

    with _client(handler) as c, pytest.raises(FashnAPIError) as exc:
        c.wait_for_completion("p", sleep=lambda s: None)
    assert exc.value.status_code == 404
    assert len(calls) == 1


def test_download_does_not_send_bearer_token():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, content=b"png-bytes")

    with _client(handler) as c:
        assert c.download("http://cdn.example/out.png") == b"png-bytes"
    assert seen["auth"] is None


def test_missing_api_key_is_rejected():
    with pytest.raises(RuntimeError):
        FashnClient("http://mock", "")
