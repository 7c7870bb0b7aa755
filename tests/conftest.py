"""
Pytest fixtures for wrist companion tests.

Provides fixtures for:
- An in-memory settings store with both endpoints configured
- An httpx client backed by a scripted MockTransport
"""

import json

import httpx
import pytest
import pytest_asyncio

from wrist_companion.store import (
    EXTERNAL_URL_KEY,
    LOCAL_URL_KEY,
    TOKEN_KEY,
    InMemorySettingsStore,
)

LOCAL_URL = "http://192.168.1.10:8123"
EXTERNAL_URL = "https://home.example.com"


class FakeHomeAssistant:
    """
    Scripted Home Assistant behind an httpx MockTransport.

    Hosts listed in ``down`` raise ConnectError; every request is
    recorded in ``requests``.
    """

    def __init__(self, states=None):
        self.states = states if states is not None else []
        self.down: set[str] = set()
        self.slow: set[str] = set()
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host = request.url.host
        if host in self.down:
            raise httpx.ConnectError("Connection refused", request=request)
        if host in self.slow:
            raise httpx.ReadTimeout("Timed out", request=request)
        if request.method == "GET" and request.url.path == "/api/states":
            return httpx.Response(200, content=json.dumps(self.states).encode())
        if request.method == "POST" and request.url.path.startswith("/api/services/"):
            return httpx.Response(200, json=[])
        return httpx.Response(404, json={"message": "Not found"})


@pytest.fixture
def store():
    return InMemorySettingsStore({
        TOKEN_KEY: "secret-token",
        LOCAL_URL_KEY: LOCAL_URL,
        EXTERNAL_URL_KEY: EXTERNAL_URL,
    })


@pytest.fixture
def fake_ha():
    return FakeHomeAssistant()


@pytest_asyncio.fixture
async def http_client(fake_ha):
    client = httpx.AsyncClient(transport=httpx.MockTransport(fake_ha.handler))
    yield client
    await client.aclose()
