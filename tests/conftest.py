import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from kay.config import AppSettings


BACKEND_URL = "http://kay.test"


@pytest.fixture(autouse=True)
def isolate_home(tmp_path, monkeypatch):
    """Keep every test away from the real ~/.kay directory."""
    home = tmp_path / "kay-home"
    monkeypatch.setenv("KAY_HOME", str(home))
    monkeypatch.setenv("KAY_BACKEND_URL", BACKEND_URL)
    monkeypatch.setenv("KAY_POLL_INTERVAL_SECONDS", "0")
    monkeypatch.setenv("KAY_MAX_POLL_ATTEMPTS", "3")
    monkeypatch.delenv("JIRA_CLIENT_ID", raising=False)
    return home


@pytest.fixture
def settings(isolate_home):
    return AppSettings(
        backend_url=BACKEND_URL,
        home=isolate_home,
        poll_interval_seconds=0,
        max_poll_attempts=3,
    )


def future(seconds=3600):
    return (datetime.now(timezone.utc) + timedelta(seconds=seconds)).isoformat()


def past(seconds=3600):
    return (datetime.now(timezone.utc) - timedelta(seconds=seconds)).isoformat()


def bearer(request):
    return request.headers.get("Authorization", "").removeprefix("Bearer ")


def json_body(request):
    return json.loads(request.content or b"{}")


class Backend:
    """Routes ``MockTransport`` requests to per-path handlers and records them."""

    def __init__(self):
        self.routes = {}
        self.requests = []

    def route(self, method, path, handler):
        self.routes[(method, path)] = handler

    def calls(self, method, path):
        return [r for r in self.requests if r.method == method and r.url.path == path]

    async def __call__(self, request):
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"error": "not found"})
        response = handler(request)
        if not isinstance(response, httpx.Response):
            response = await response
        return response

    @property
    def transport(self):
        return httpx.MockTransport(self)


@pytest.fixture
def backend():
    return Backend()
