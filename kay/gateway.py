"""Authenticated HTTP requests with transparent session recovery.

Every request re-reads the credential pair from its store, attaches it as a
bearer token and, when the backend answers 401/403, runs one recovery step
keyed by the error code in the response body:

* ``TOKEN_MISSING``: bootstrap a brand new session, then retry.
* ``TOKEN_EXPIRED``: exchange the refresh token for a new pair, then retry.
* ``TOKEN_INVALID``: clear the session and fail.
* anything else: bootstrap when we never had a token (or refresh, for
  gateways without a bootstrap endpoint), otherwise clear and fail.

A request is retried at most once. Concurrent requests that all hit an
expired token share a single refresh call through ``RefreshGuard``.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, Optional

import httpx

from .config_store import ConfigStore
from .errors import (
    AuthorizationError,
    BackendUnavailableError,
    InvalidTokenError,
    NotAuthenticatedError,
    RetryExhaustedError,
    SessionExpiredError,
    SessionInitError,
)
from .session_store import CredentialStore, SessionRecord


logger = logging.getLogger(__name__)

AUTH_FAILURE_STATUSES = frozenset({401, 403})
_DEFAULT_TIMEOUT = 20.0


class ErrorCode(str, Enum):
    TOKEN_MISSING = "TOKEN_MISSING"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    TOKEN_INVALID = "TOKEN_INVALID"
    UNRECOGNIZED = "UNRECOGNIZED"

    @classmethod
    def classify(cls, body: Mapping[str, Any]) -> "ErrorCode":
        raw = body.get("code") or body.get("error") or ""
        try:
            return cls(raw)
        except ValueError:
            return cls.UNRECOGNIZED


@dataclass(frozen=True, slots=True)
class Endpoints:
    refresh: str
    bootstrap: Optional[str] = None


def json_refresh_request(refresh_token: str) -> dict[str, Any]:
    return {"json": {"refresh_token": refresh_token}}


def rewrite_session_param(path: str, session_id: Optional[str]) -> str:
    """Point the ``session_id`` query parameter at ``session_id`` or drop it."""
    url = httpx.URL(path)
    if "session_id" not in url.params:
        return path
    if session_id:
        url = url.copy_set_param("session_id", session_id)
    else:
        url = url.copy_remove_param("session_id")
    return str(url)


def error_body(response: httpx.Response) -> dict[str, Any]:
    try:
        payload = response.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


def build_http_client(
    base_url: str,
    *,
    timeout: float = _DEFAULT_TIMEOUT,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=base_url,
        timeout=httpx.Timeout(timeout, read=timeout),
        transport=transport,
    )


@dataclass(frozen=True, slots=True)
class RefreshOutcome:
    """A successful refresh; ``session_id`` is set only when the server named one."""

    session_id: Optional[str] = None


class RefreshGuard:
    """Hands every concurrent caller the same in-flight refresh task."""

    def __init__(self) -> None:
        self._pending: Optional[asyncio.Task[Any]] = None

    @property
    def busy(self) -> bool:
        return self._pending is not None

    async def run(self, operation: Callable[[], Awaitable[Any]]) -> Any:
        if self._pending is None:
            self._pending = asyncio.ensure_future(self._settle(operation))
        # shield: one caller being cancelled must not cancel the shared refresh
        return await asyncio.shield(self._pending)

    async def _settle(self, operation: Callable[[], Awaitable[Any]]) -> Any:
        try:
            return await operation()
        finally:
            self._pending = None


class SessionGateway:
    MAX_RETRIES = 1

    def __init__(
        self,
        http: httpx.AsyncClient,
        credentials: CredentialStore,
        *,
        endpoints: Endpoints,
        config: Optional[ConfigStore] = None,
        refresh_request: Callable[[str], dict[str, Any]] = json_refresh_request,
        service: str = "Kay backend",
    ) -> None:
        self._http = http
        self._credentials = credentials
        self._endpoints = endpoints
        self._config = config
        self._refresh_request = refresh_request
        self._service = service
        self._guard = RefreshGuard()

    @property
    def base_url(self) -> str:
        return str(self._http.base_url).rstrip("/")

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "SessionGateway":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Issue a request without credentials or recovery."""
        try:
            return await self._http.request(method, url, **kwargs)
        except httpx.TransportError as exc:
            logger.debug("Transport failure for %s %s: %s", method, url, exc)
            raise BackendUnavailableError(self.base_url, exc, service=self._service) from exc

    async def request(
        self,
        method: str,
        path: str,
        *,
        retry_count: int = 0,
        headers: Optional[Mapping[str, str]] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        session = self._credentials.load()

        merged = {"Content-Type": "application/json", **(headers or {})}
        if session is not None and session.access_token:
            merged["Authorization"] = f"Bearer {session.access_token}"

        response = await self.send(method, path, headers=merged, **kwargs)
        if response.status_code not in AUTH_FAILURE_STATUSES:
            return response

        if retry_count >= self.MAX_RETRIES:
            logger.warning("%s %s still unauthorized after retry", method, path)
            self._credentials.clear()
            raise RetryExhaustedError()

        body = error_body(response)
        code = ErrorCode.classify(body)
        logger.info("%s %s rejected with %s (%s)", method, path, response.status_code, code.value)

        rewrite, session_id = await self._recover(code, body, session)
        retry_path = rewrite_session_param(path, session_id) if rewrite else path
        return await self.request(method, retry_path, retry_count=retry_count + 1, headers=headers, **kwargs)

    async def _recover(
        self,
        code: ErrorCode,
        body: Mapping[str, Any],
        session: Optional[SessionRecord],
    ) -> tuple[bool, Optional[str]]:
        """Run one recovery step.

        Returns whether the retry should rewrite its ``session_id`` query
        parameter, and the value to rewrite it to (``None`` drops it).
        """
        if code is ErrorCode.TOKEN_INVALID:
            self._credentials.clear()
            raise InvalidTokenError()

        if code is ErrorCode.TOKEN_EXPIRED:
            outcome = await self._guard.run(self._refresh_once)
            if outcome is None or not self._has_token():
                self._credentials.clear()
                raise SessionExpiredError()
            return self._after_refresh(outcome)

        if code is ErrorCode.TOKEN_MISSING:
            return self._after_bootstrap(await self._bootstrap())

        had_token = session is not None and bool(session.access_token)
        if self._endpoints.bootstrap and not had_token:
            try:
                return self._after_bootstrap(await self._bootstrap())
            except SessionInitError as exc:
                logger.warning("Best-effort session bootstrap failed: %s", exc.detail or exc)
        elif not self._endpoints.bootstrap and session is not None and session.refresh_token:
            outcome = await self._guard.run(self._refresh_once)
            if outcome is not None and self._has_token():
                return self._after_refresh(outcome)

        self._credentials.clear()
        raise AuthorizationError(body.get("message") or body.get("error") or "Authorization failed.")

    @staticmethod
    def _after_refresh(outcome: RefreshOutcome) -> tuple[bool, Optional[str]]:
        # the caller's session id stands unless the refresh issued a new one
        return outcome.session_id is not None, outcome.session_id

    def _after_bootstrap(self, record: SessionRecord) -> tuple[bool, Optional[str]]:
        return True, record.session_id or self._configured_session_id()

    def _configured_session_id(self) -> Optional[str]:
        return self._config.get("session_id") if self._config is not None else None

    async def _bootstrap(self) -> SessionRecord:
        if not self._endpoints.bootstrap:
            self._credentials.clear()
            raise NotAuthenticatedError("Not authenticated. Connect a service first.")
        try:
            record = await self.init_session()
        except (SessionInitError, BackendUnavailableError):
            self._credentials.clear()
            raise
        if not self._has_token():
            self._credentials.clear()
            raise SessionInitError("bootstrap response did not include a usable token")
        return record

    def _has_token(self) -> bool:
        record = self._credentials.load()
        return record is not None and bool(record.access_token)

    async def init_session(self) -> SessionRecord:
        """Obtain a first token pair from the bootstrap endpoint and persist it."""
        if not self._endpoints.bootstrap:
            raise SessionInitError("no bootstrap endpoint configured")

        response = await self.send("POST", self._endpoints.bootstrap, headers={"Content-Type": "application/json"})
        if not response.is_success:
            raise SessionInitError(f"{response.status_code} {response.reason_phrase}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise SessionInitError("bootstrap response was not JSON") from exc
        if not isinstance(payload, dict):
            raise SessionInitError("bootstrap response was not a JSON object")

        record = SessionRecord.from_response(payload)
        self._credentials.save(record)
        if record.session_id and self._config is not None:
            self._config.set("session_id", record.session_id)
        logger.info("Initialized a new session")
        return record

    async def refresh_session(self) -> bool:
        return await self._guard.run(self._refresh_once) is not None

    async def _refresh_once(self) -> Optional[RefreshOutcome]:
        try:
            current = self._credentials.load()
            if current is None or not current.refresh_token:
                logger.info("No refresh token available; cannot refresh access token")
                return None

            response = await self._http.request(
                "POST",
                self._endpoints.refresh,
                **self._refresh_request(current.refresh_token),
            )
            if not response.is_success:
                logger.warning("Token refresh rejected with status %s", response.status_code)
                return None

            payload = response.json()
            record = SessionRecord.from_response(payload, previous=current)
            if not record.access_token:
                logger.warning("Token refresh response did not include an access token")
                return None

            self._credentials.save(record)
            issued = payload.get("session_id") or None
            if self._config is not None and issued and issued != current.session_id:
                self._config.set("session_id", issued)
            logger.info("Obtained refreshed access token")
            return RefreshOutcome(session_id=issued)
        except Exception:
            logger.warning("Token refresh failed", exc_info=True)
            return None
