"""Jira REST integration using either basic auth or OAuth 2.0 bearer tokens."""
from __future__ import annotations

import base64
import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from functools import partial
from typing import Any, Optional

import httpx

from .config import AppSettings
from .config_store import ConfigStore
from .errors import AuthenticationError, BackendUnavailableError, KayError, NotAuthenticatedError
from .gateway import Endpoints, SessionGateway, build_http_client
from .session_store import SessionRecord


logger = logging.getLogger(__name__)

CONFIG_KEY = "jira"
TOKEN_PATH = "/rest/oauth2/latest/token"
AUTHORIZE_PATH = "/rest/oauth2/latest/authorize"
DEFAULT_SCOPES = ("READ", "WRITE")
_LOGIN_HINT = "Run 'kay jira login' to re-authenticate."


@dataclass(slots=True)
class JiraCredentials:
    base_url: str
    auth_type: str = "oauth"
    access_token: Optional[str] = field(default=None, repr=False)
    refresh_token: Optional[str] = field(default=None, repr=False)
    expires_at: Optional[str] = None
    client_id: Optional[str] = None
    email: Optional[str] = None
    api_token: Optional[str] = field(default=None, repr=False)

    @property
    def is_usable(self) -> bool:
        if not self.base_url:
            return False
        if self.auth_type == "basic":
            return bool(self.email and self.api_token)
        return bool(self.access_token)

    @classmethod
    def from_dict(cls, raw: Any) -> Optional["JiraCredentials"]:
        if not isinstance(raw, dict) or not raw.get("base_url"):
            return None
        return cls(
            base_url=str(raw["base_url"]).rstrip("/"),
            auth_type=raw.get("auth_type") or "oauth",
            access_token=raw.get("access_token"),
            refresh_token=raw.get("refresh_token"),
            expires_at=raw.get("expires_at"),
            client_id=raw.get("client_id"),
            email=raw.get("email"),
            api_token=raw.get("api_token"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


@dataclass(slots=True)
class JiraUser:
    account_id: str
    display_name: str
    email_address: str

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "JiraUser":
        return cls(
            account_id=str(payload.get("accountId") or payload.get("key") or payload.get("name") or ""),
            display_name=payload.get("displayName") or "",
            email_address=payload.get("emailAddress") or "",
        )


class JiraTokenStore:
    """Exposes the OAuth pair under the ``jira`` config key as a session record."""

    def __init__(self, config: ConfigStore) -> None:
        self._config = config

    def _credentials(self) -> Optional[JiraCredentials]:
        return JiraCredentials.from_dict(self._config.get(CONFIG_KEY))

    def load(self) -> Optional[SessionRecord]:
        creds = self._credentials()
        if creds is None or creds.auth_type != "oauth" or not creds.access_token:
            return None
        return SessionRecord(
            access_token=creds.access_token,
            refresh_token=creds.refresh_token or "",
            expires_at=creds.expires_at or "",
        )

    def save(self, record: SessionRecord) -> None:
        creds = self._credentials()
        if creds is None:
            raise KayError("Jira credentials disappeared while refreshing the token")
        creds.access_token = record.access_token
        creds.refresh_token = record.refresh_token or creds.refresh_token
        creds.expires_at = record.expires_at or None
        self._config.set(CONFIG_KEY, creds.to_dict())

    def clear(self) -> None:
        self._config.delete(CONFIG_KEY)


def _refresh_form(client_id: Optional[str], refresh_token: str) -> dict[str, Any]:
    data = {"grant_type": "refresh_token", "refresh_token": refresh_token}
    if client_id:
        data["client_id"] = client_id
    return {"data": data, "headers": {"Accept": "application/json"}}


def _expires_at(expires_in: Optional[float]) -> Optional[str]:
    if not expires_in:
        return None
    return datetime.fromtimestamp(time.time() + float(expires_in), tz=timezone.utc).isoformat()


class JiraClient:
    def __init__(
        self,
        settings: AppSettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._settings = settings
        self._config = ConfigStore(settings.config_path)
        self._tokens = JiraTokenStore(self._config)
        self._transport = transport

    # Local credential helpers ------------------------------------------
    def get_credentials(self) -> Optional[JiraCredentials]:
        creds = JiraCredentials.from_dict(self._config.get(CONFIG_KEY))
        if creds is None or not creds.is_usable:
            return None
        return creds

    def is_authenticated(self) -> bool:
        return self.get_credentials() is not None

    def get_base_url(self) -> Optional[str]:
        creds = self.get_credentials()
        return creds.base_url if creds else None

    def save_credentials(
        self,
        access_token: str,
        base_url: str,
        *,
        refresh_token: Optional[str] = None,
        expires_in: Optional[float] = None,
        client_id: Optional[str] = None,
    ) -> JiraCredentials:
        creds = JiraCredentials(
            base_url=base_url.rstrip("/"),
            auth_type="oauth",
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=_expires_at(expires_in),
            client_id=client_id,
        )
        self._config.set(CONFIG_KEY, creds.to_dict())
        return creds

    def save_credentials_with_basic_auth(self, email: str, api_token: str, base_url: str) -> JiraCredentials:
        creds = JiraCredentials(base_url=base_url.rstrip("/"), auth_type="basic", email=email, api_token=api_token)
        self._config.set(CONFIG_KEY, creds.to_dict())
        return creds

    def clear_credentials(self) -> None:
        self._tokens.clear()

    # HTTP helpers --------------------------------------------------------
    def _http(self, base_url: str, timeout: Optional[float] = None) -> httpx.AsyncClient:
        return build_http_client(
            base_url,
            timeout=timeout or self._settings.http_timeout,
            transport=self._transport,
        )

    async def _get(self, path: str) -> httpx.Response:
        creds = self.get_credentials()
        if creds is None:
            raise NotAuthenticatedError(f"Not authenticated. {_LOGIN_HINT}")

        headers = {"Accept": "application/json"}
        if creds.auth_type == "basic":
            encoded = base64.b64encode(f"{creds.email}:{creds.api_token}".encode("utf-8")).decode("ascii")
            headers["Authorization"] = f"Basic {encoded}"
            async with self._http(creds.base_url) as http:
                try:
                    response = await http.get(path, headers=headers)
                except httpx.TransportError as exc:
                    raise BackendUnavailableError(creds.base_url, exc, service="Jira server") from exc
            if response.status_code in (401, 403):
                raise AuthenticationError(f"Invalid or expired credentials. {_LOGIN_HINT}")
            return response

        gateway = SessionGateway(
            self._http(creds.base_url),
            self._tokens,
            endpoints=Endpoints(refresh=TOKEN_PATH),
            refresh_request=partial(_refresh_form, creds.client_id),
            service="Jira server",
        )
        async with gateway:
            return await gateway.request("GET", path, headers=headers)

    async def get_myself(self) -> JiraUser:
        response = await self._get("/rest/api/2/myself")
        if not response.is_success:
            raise KayError(f"Request failed: {response.status_code} {response.reason_phrase}")
        return JiraUser.from_payload(response.json())

    async def server_info(self, *, timeout: float = 5.0) -> dict[str, Any]:
        """Unauthenticated reachability probe used by ``kay doctor``."""
        base_url = self.get_base_url()
        if not base_url:
            raise NotAuthenticatedError(f"Jira base URL not set. {_LOGIN_HINT}")
        async with self._http(base_url, timeout) as http:
            try:
                response = await http.get("/rest/api/2/serverInfo")
            except httpx.TransportError as exc:
                raise BackendUnavailableError(base_url, exc, service="Jira server") from exc
        if not response.is_success:
            raise KayError(f"Server returned {response.status_code}")
        return response.json()

    async def exchange_code_for_token(
        self,
        *,
        code: str,
        redirect_uri: str,
        client_id: str,
        code_verifier: str,
        base_url: str,
    ) -> dict[str, Any]:
        data = {
            "grant_type": "authorization_code",
            "client_id": client_id,
            "code": code,
            "redirect_uri": redirect_uri,
            "code_verifier": code_verifier,
        }
        async with self._http(base_url) as http:
            try:
                response = await http.post(TOKEN_PATH, data=data, headers={"Accept": "application/json"})
            except httpx.TransportError as exc:
                raise BackendUnavailableError(base_url, exc, service="Jira server") from exc
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise KayError(
                f"Token exchange failed ({exc.response.status_code}): {exc.response.text}"
            ) from exc
        return response.json()
