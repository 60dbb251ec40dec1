"""Shared fixtures for the Siteadmin test-suite."""

from __future__ import annotations

from pathlib import Path

import httpx
import pytest
from starlette.websockets import WebSocketState

ADMIN_PASSWORD = "correct-horse"
JWT_SECRET = "test-secret"
RELEASE_URL = "https://releases.example.test/latest"


class FakeSocket:
    """Minimal stand-in for a FastAPI WebSocket."""

    def __init__(self, fail: bool = False) -> None:
        self.client_state = WebSocketState.CONNECTING
        self.sent: list[str] = []
        self.fail = fail

    async def accept(self) -> None:
        self.client_state = WebSocketState.CONNECTED

    async def send_text(self, text: str) -> None:
        if self.fail:
            raise RuntimeError("socket broken")
        self.sent.append(text)


class FakeReleases:
    """Serves a configurable latest-release descriptor through httpx."""

    def __init__(self) -> None:
        self.tag = "v9.9.9"
        self.status = 200
        self.error: Exception | None = None
        self.requests: list[httpx.Request] = []
        self.transport = httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(
            self.status,
            json={
                "tag_name": self.tag,
                "html_url": f"https://example.test/releases/{self.tag}",
                "body": "Bug fixes",
            },
        )


@pytest.fixture
def releases() -> FakeReleases:
    return FakeReleases()


@pytest.fixture
def project_dir(tmp_path, monkeypatch) -> Path:
    """A project directory with periodic checks disabled and secrets set."""

    monkeypatch.setenv("ADMIN_PASSWORD", ADMIN_PASSWORD)
    monkeypatch.setenv("JWT_SECRET", JWT_SECRET)
    (tmp_path / "config.yaml").write_text(
        "updates:\n"
        "  enabled: false\n"
        "  current_version: 1.0.0\n"
        f"  release_url: {RELEASE_URL}\n",
        encoding="utf-8",
    )
    return tmp_path


@pytest.fixture
def app(project_dir, releases):
    from server.main import create_app

    return create_app(str(project_dir), release_transport=releases.transport)


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def token(client) -> str:
    response = client.post("/login", json={"password": ADMIN_PASSWORD})
    assert response.status_code == 200
    return response.json()["token"]


@pytest.fixture
def auth_headers(token) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_socket():
    return FakeSocket


@pytest.fixture
def admin_password() -> str:
    return ADMIN_PASSWORD
