import asyncio
import os
from unittest.mock import patch

import httpx
import pytest

from backend_fakes import BASE_URL, FakeBackend, connect_error

from backend_client import BackendClient


def test_from_env_requires_base_url():
    with patch.dict(os.environ, {"FARE_API_BASE": ""}, clear=False):
        with pytest.raises(RuntimeError) as excinfo:
            BackendClient.from_env()
    assert "FARE_API_BASE" in str(excinfo.value)


def test_from_env_reads_optional_settings():
    env = {"FARE_API_BASE": "https://cabs.example.com/", "FARE_API_VERSION": "2.0.0", "REQUEST_TIMEOUT_S": "4"}
    with patch.dict(os.environ, env, clear=False):
        client = BackendClient.from_env()
    assert client.base_url == "https://cabs.example.com"
    assert client.bypass_headers()["X-API-Version"] == "2.0.0"


def test_calls_are_recorded_with_status():
    calls = []
    backend = FakeBackend({
        ("GET", "/api/ok"): (200, {"ok": True}),
        ("GET", "/api/down"): connect_error,
    })
    client = BackendClient(
        BASE_URL,
        transport=httpx.MockTransport(backend),
        record_api_call_fn=lambda method, url, status: calls.append((method, url, status)),
    )

    async def main():
        assert await client.get_json("/api/ok") == {"ok": True}
        with pytest.raises(httpx.ConnectError):
            await client.get_json("/api/down")
        with pytest.raises(httpx.HTTPStatusError):
            await client.get_json("/api/missing")
        await client.aclose()

    asyncio.run(main())
    assert calls == [
        ("GET", f"{BASE_URL}/api/ok", 200),
        ("GET", f"{BASE_URL}/api/down", 0),
        ("GET", f"{BASE_URL}/api/missing", 404),
    ]


def test_hung_request_times_out():
    async def hang(request):
        await asyncio.sleep(5)
        return httpx.Response(200, json=[])

    calls = []
    client = BackendClient(
        BASE_URL,
        transport=httpx.MockTransport(hang),
        record_api_call_fn=lambda method, url, status: calls.append(status),
    )

    async def main():
        with pytest.raises((asyncio.TimeoutError, httpx.TimeoutException)):
            await client.get_json("/api/slow", timeout_s=0.05)

    asyncio.run(main())
    assert calls == [0]


def test_post_sends_bypass_headers_and_returns_raw_response():
    backend = FakeBackend({("POST", "/api/write"): (409, {"status": "error"})})
    client = BackendClient(BASE_URL, api_version="1.0.55", transport=httpx.MockTransport(backend))

    response = asyncio.run(client.post_json("/api/write", {"a": 1}, extra_headers={"X-Update-Type": "test"}))

    assert response.status_code == 409
    request = backend.calls[0]
    assert request.headers["X-Force-Refresh"] == "true"
    assert request.headers["X-Update-Type"] == "test"
    assert request.headers["Pragma"] == "no-cache"
    assert "_t" in request.url.params
