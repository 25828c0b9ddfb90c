"""Client for the account endpoints of the Kay backend (login, ask, logout)."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from .backend_client import authorization_status, ensure_success, json_object
from .config import AppSettings
from .config_store import ConfigStore
from .errors import KayError, NotAuthenticatedError
from .gateway import Endpoints, SessionGateway, build_http_client
from .session_store import ConfigCredentials, SessionRecord


logger = logging.getLogger(__name__)

AUTH_REFRESH_PATH = "/auth/refresh"


@dataclass(slots=True)
class SessionCredentials:
    token: str = field(repr=False)
    refresh_token: str = field(repr=False)
    account_id: str
    session_id: Optional[str] = None


class AuthClient:
    """Owns the account token pair kept in ``config.json``.

    Unlike ``BackendClient`` there is no bootstrap endpoint: a rejected token
    is refreshed once through ``/auth/refresh`` and the request replayed once.
    """

    def __init__(
        self,
        settings: AppSettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = ConfigStore(settings.config_path)
        self._credentials = ConfigCredentials(self._config)
        self._gateway = SessionGateway(
            build_http_client(settings.backend_url, timeout=settings.http_timeout, transport=transport),
            self._credentials,
            endpoints=Endpoints(refresh=AUTH_REFRESH_PATH),
            config=self._config,
        )

    async def aclose(self) -> None:
        await self._gateway.aclose()

    # Local credential helpers ------------------------------------------
    def get_credentials(self) -> Optional[SessionCredentials]:
        config = self._config.load()
        token = config.get("token")
        refresh_token = config.get("refresh_token")
        account_id = config.get("account_id")
        if not (token and refresh_token and account_id):
            return None
        return SessionCredentials(
            token=token,
            refresh_token=refresh_token,
            account_id=account_id,
            session_id=config.get("session_id"),
        )

    def is_authenticated(self) -> bool:
        return self.get_credentials() is not None

    def get_session_id(self) -> Optional[str]:
        return self._config.get("session_id")

    def update_session_id(self, session_id: str) -> None:
        self._config.set("session_id", session_id)

    def save_session(
        self,
        token: str,
        refresh_token: str,
        account_id: str,
        *,
        session_id: Optional[str] = None,
        expires_at: str = "",
    ) -> None:
        self._credentials.save(
            SessionRecord(
                access_token=token,
                refresh_token=refresh_token,
                expires_at=expires_at,
                session_id=session_id,
            )
        )
        self._config.set("account_id", account_id)

    def clear(self) -> None:
        self._credentials.clear()
        self._config.delete("session_id")

    # Backend calls -----------------------------------------------------
    async def make_authenticated_request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        if not self.is_authenticated():
            raise NotAuthenticatedError("Not authenticated. Run 'kay login' first.")
        return await self._gateway.request(method, path, **kwargs)

    async def refresh_token(self) -> bool:
        return await self._gateway.refresh_session()

    async def login_init(self) -> dict[str, Any]:
        response = await self._gateway.send("GET", "/auth/login")
        ensure_success(response, "Initiating login")
        payload = json_object(response)
        if not payload.get("authorization_url") or not payload.get("state"):
            raise KayError("Invalid response from backend: missing authorization URL or state")
        return payload

    async def authorization_status(self, state: str) -> dict[str, Any]:
        return authorization_status(await self._gateway.send("GET", f"/auth/status/{state}"))

    async def me(self) -> dict[str, Any]:
        response = await self.make_authenticated_request("GET", "/auth/me")
        ensure_success(response, "Fetching user information")
        data = json_object(response).get("data")
        if not isinstance(data, dict):
            raise KayError("Invalid response from backend: missing user data")
        return data

    async def logout(self) -> bool:
        """Revoke the session server-side; False when it was already invalid."""
        credentials = self.get_credentials()
        if credentials is None:
            return False
        response = await self._gateway.send(
            "POST",
            "/auth/logout",
            headers={"Authorization": f"Bearer {credentials.token}", "Accept": "application/json"},
        )
        if response.status_code == 401:
            return False
        ensure_success(response, "Logout")
        return True

    async def ask(
        self,
        prompt: str,
        *,
        interactive: bool = False,
        confirm: bool = False,
        session_id: Optional[str] = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {"prompt": prompt, "interactive": interactive, "confirm": confirm}
        if session_id:
            body["session_id"] = session_id
        response = await self.make_authenticated_request("POST", "/ask", json=body)
        ensure_success(response, "Request")
        data = json_object(response)
        if not data.get("message"):
            logger.debug("Unexpected /ask payload keys: %s", sorted(data))
            raise KayError("Invalid response structure from backend")
        return data

    async def confirm_action(self, confirmation_token: str, approved: bool) -> dict[str, Any]:
        response = await self.make_authenticated_request(
            "POST",
            "/ask/confirm",
            json={"confirmation_token": confirmation_token, "approved": approved},
        )
        ensure_success(response, "Confirmation")
        return json_object(response)
