"""Kay backend integration: service connections, authorization status and health."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

import httpx

from .config import AppSettings
from .config_store import ConfigStore
from .errors import ApiError, KayError
from .gateway import Endpoints, SessionGateway, build_http_client
from .session_store import SessionStore


logger = logging.getLogger(__name__)

SESSION_INIT_PATH = "/session/init"
SESSION_REFRESH_PATH = "/session/refresh"


class ServiceName(str, Enum):
    KYG = "kyg"
    JIRA = "jira"
    CONFLUENCE = "confluence"
    BITBUCKET = "bitbucket"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["ServiceName"]:
        if not value:
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


_DISPLAY_NAMES = {
    ServiceName.KYG: "KYG Trade",
    ServiceName.JIRA: "Jira",
    ServiceName.CONFLUENCE: "Confluence",
    ServiceName.BITBUCKET: "Bitbucket",
}

SUPPORTED_SERVICES = tuple(ServiceName)


@dataclass(slots=True)
class ConnectResult:
    service: str
    session_id: Optional[str] = None
    authorization_url: Optional[str] = None
    state: Optional[str] = None
    message: str = ""
    session_reset: bool = False

    @property
    def needs_browser(self) -> bool:
        return bool(self.authorization_url and self.state)


@dataclass(slots=True)
class ServiceConnection:
    connected: bool = False
    user: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)


def json_object(response: httpx.Response) -> dict[str, Any]:
    try:
        payload = response.json()
    except ValueError as exc:
        raise KayError(f"Invalid response from backend ({response.status_code}): not JSON") from exc
    if not isinstance(payload, dict):
        raise KayError("Invalid response from backend: expected a JSON object")
    return payload


def ensure_success(response: httpx.Response, action: str) -> None:
    """Raise ``ApiError`` with the backend's own message for non-2xx responses."""
    if response.is_success:
        return
    try:
        body = response.json()
    except ValueError:
        body = {}
    message = None
    if isinstance(body, dict):
        message = body.get("error") or body.get("message")
    raise ApiError(
        response.status_code,
        message or f"{action} failed: {response.status_code} {response.reason_phrase}",
    )


def authorization_status(response: httpx.Response) -> dict[str, Any]:
    if response.status_code == 400:
        raise ApiError(400, "Invalid or expired state parameter")
    ensure_success(response, "Status check")
    return json_object(response)


class BackendClient:
    def __init__(
        self,
        settings: AppSettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = ConfigStore(settings.config_path)
        self._sessions = SessionStore(settings.session_path)
        self._gateway = SessionGateway(
            build_http_client(settings.backend_url, timeout=settings.http_timeout, transport=transport),
            self._sessions,
            endpoints=Endpoints(refresh=SESSION_REFRESH_PATH, bootstrap=SESSION_INIT_PATH),
            config=self._config,
        )

    @property
    def session_id(self) -> Optional[str]:
        return self._config.get("session_id")

    def remember_session_id(self, session_id: Optional[str]) -> None:
        if session_id:
            self._config.set("session_id", session_id)

    def clear_session(self) -> None:
        self._sessions.clear()

    async def aclose(self) -> None:
        await self._gateway.aclose()

    async def connections(self, session_id: str) -> dict[str, ServiceConnection]:
        path = str(httpx.URL("/connections", params={"session_id": session_id}))
        response = await self._gateway.request("GET", path)
        ensure_success(response, "Fetching connection status")
        raw = json_object(response).get("connections") or {}
        result: dict[str, ServiceConnection] = {}
        for name, info in raw.items():
            if not isinstance(info, dict):
                continue
            result[name] = ServiceConnection(
                connected=info.get("connected") is True,
                user=info.get("user") or {},
                metadata=info.get("metadata") or {},
            )
        return result

    async def is_connected(self, service: ServiceName, session_id: str) -> bool:
        connection = (await self.connections(session_id)).get(service.value)
        return connection is not None and connection.connected

    async def connect(
        self,
        service: ServiceName,
        *,
        session_id: Optional[str] = None,
        email: Optional[str] = None,
        password: Optional[str] = None,
    ) -> ConnectResult:
        body: dict[str, Any] = {}
        if email is not None:
            body["email"] = email
            body["password"] = password or ""
        if session_id:
            body["session_id"] = session_id

        response = await self._gateway.request(
            "POST",
            "/connections/connect",
            params={"service": service.value},
            json=body,
        )
        ensure_success(response, "Connecting")
        payload = json_object(response)
        result = ConnectResult(
            service=payload.get("service") or service.value,
            session_id=payload.get("session_id"),
            authorization_url=payload.get("authorization_url"),
            state=payload.get("state"),
            message=payload.get("message") or "",
            session_reset=payload.get("session_reset") is True,
        )
        # the backend may have created a new conversation session
        self.remember_session_id(result.session_id)
        return result

    async def disconnect(self, service: ServiceName, session_id: str) -> str:
        response = await self._gateway.request(
            "POST",
            "/connections/disconnect",
            params={"service": service.value},
            json={"session_id": session_id},
        )
        ensure_success(response, "Disconnect")
        return json_object(response).get("message") or f"{service.display_name} disconnected successfully."

    async def authorization_status(self, state: str) -> dict[str, Any]:
        return authorization_status(await self._gateway.request("GET", f"/auth/status/{state}"))

    async def health(self) -> dict[str, Any]:
        if self._sessions.load() is not None:
            response = await self._gateway.request("GET", "/health")
        else:
            response = await self._gateway.send("GET", "/health")
        ensure_success(response, "Health check")
        return json_object(response)
