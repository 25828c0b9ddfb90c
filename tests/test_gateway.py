import asyncio

import httpx
import pytest

from kay.config_store import ConfigStore
from kay.errors import (
    AuthorizationError,
    BackendUnavailableError,
    InvalidTokenError,
    RetryExhaustedError,
    SessionExpiredError,
    SessionInitError,
)
from kay.gateway import (
    Endpoints,
    ErrorCode,
    RefreshGuard,
    SessionGateway,
    build_http_client,
    rewrite_session_param,
)
from kay.session_store import SessionRecord, SessionStore

from conftest import BACKEND_URL, bearer, future, json_body


def make_gateway(tmp_path, backend, *, bootstrap="/session/init"):
    store = SessionStore(tmp_path / "session.json")
    config = ConfigStore(tmp_path / "config.json")
    gateway = SessionGateway(
        build_http_client(BACKEND_URL, transport=backend.transport),
        store,
        endpoints=Endpoints(refresh="/session/refresh", bootstrap=bootstrap),
        config=config,
    )
    return gateway, store, config


def seed(store, access="old", refresh="refresh-1", session_id=None):
    store.save(SessionRecord(access_token=access, refresh_token=refresh, expires_at=future(), session_id=session_id))


def unauthorized(code, message=None):
    body = {"code": code}
    if message:
        body["message"] = message
    return httpx.Response(401, json=body)


def refreshed(token="new", **extra):
    return httpx.Response(200, json={"token": token, "refresh_token": "refresh-2", "expires_in": 3600, **extra})


class TestErrorCode:
    def test_reads_code_then_error(self):
        assert ErrorCode.classify({"code": "TOKEN_EXPIRED"}) is ErrorCode.TOKEN_EXPIRED
        assert ErrorCode.classify({"error": "TOKEN_MISSING"}) is ErrorCode.TOKEN_MISSING

    def test_unknown_is_unrecognized(self):
        assert ErrorCode.classify({"code": "NOPE"}) is ErrorCode.UNRECOGNIZED
        assert ErrorCode.classify({}) is ErrorCode.UNRECOGNIZED


class TestRewriteSessionParam:
    def test_replaces_value(self):
        assert rewrite_session_param("/connections?session_id=old", "new") == "/connections?session_id=new"

    def test_removes_when_no_session(self):
        assert rewrite_session_param("/connections?session_id=old&x=1", None) == "/connections?x=1"

    def test_leaves_other_paths_alone(self):
        assert rewrite_session_param("/health", "new") == "/health"


class TestPassThrough:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [200, 404, 500])
    async def test_non_auth_status_is_returned_unchanged(self, tmp_path, backend, status):
        backend.route("GET", "/data", lambda r: httpx.Response(status, json={"ok": status}))
        gateway, store, _ = make_gateway(tmp_path, backend)
        seed(store)
        before = store.path.read_text()

        async with gateway:
            response = await gateway.request("GET", "/data")

        assert response.status_code == status
        assert len(backend.requests) == 1
        assert bearer(backend.requests[0]) == "old"
        assert store.path.read_text() == before


class TestExpiredToken:
    @pytest.mark.asyncio
    async def test_refreshes_and_retries_once(self, tmp_path, backend):
        backend.route(
            "GET",
            "/data",
            lambda r: httpx.Response(200, json={"ok": True}) if bearer(r) == "new" else unauthorized("TOKEN_EXPIRED"),
        )
        backend.route("POST", "/session/refresh", lambda r: refreshed())
        gateway, store, _ = make_gateway(tmp_path, backend)
        seed(store)

        async with gateway:
            response = await gateway.request("GET", "/data")

        assert response.status_code == 200
        refresh_calls = backend.calls("POST", "/session/refresh")
        assert len(refresh_calls) == 1
        assert json_body(refresh_calls[0]) == {"refresh_token": "refresh-1"}
        assert store.load().access_token == "new"
        assert store.load().refresh_token == "refresh-2"

    @pytest.mark.asyncio
    async def test_failed_refresh_is_terminal(self, tmp_path, backend):
        backend.route("GET", "/data", lambda r: unauthorized("TOKEN_EXPIRED"))
        backend.route("POST", "/session/refresh", lambda r: httpx.Response(401, json={"error": "revoked"}))
        gateway, store, _ = make_gateway(tmp_path, backend)
        seed(store)

        async with gateway:
            with pytest.raises(SessionExpiredError, match="expired or been revoked"):
                await gateway.request("GET", "/data")

        assert len(backend.calls("GET", "/data")) == 1
        assert store.load() is None

    @pytest.mark.asyncio
    async def test_retry_is_bounded_to_one(self, tmp_path, backend):
        backend.route("GET", "/data", lambda r: unauthorized("TOKEN_EXPIRED"))
        backend.route("POST", "/session/refresh", lambda r: refreshed())
        gateway, store, _ = make_gateway(tmp_path, backend)
        seed(store)

        async with gateway:
            with pytest.raises(RetryExhaustedError, match="after retry"):
                await gateway.request("GET", "/data")

        assert len(backend.calls("GET", "/data")) == 2
        assert len(backend.calls("POST", "/session/refresh")) == 1
        assert not store.path.exists()


class TestRefreshDeduplication:
    @pytest.mark.asyncio
    async def test_concurrent_requests_share_one_refresh(self, tmp_path, backend):
        async def slow_refresh(request):
            await asyncio.sleep(0.05)
            return refreshed()

        backend.route(
            "GET",
            "/data",
            lambda r: httpx.Response(200, json={"ok": True}) if bearer(r) == "new" else unauthorized("TOKEN_EXPIRED"),
        )
        backend.route("POST", "/session/refresh", slow_refresh)
        gateway, store, _ = make_gateway(tmp_path, backend)
        seed(store)

        async with gateway:
            responses = await asyncio.gather(*(gateway.request("GET", "/data") for _ in range(5)))

        assert [r.status_code for r in responses] == [200] * 5
        assert len(backend.calls("POST", "/session/refresh")) == 1

    @pytest.mark.asyncio
    async def test_guard_resets_after_completion(self):
        guard = RefreshGuard()
        calls = []

        async def operation():
            calls.append(1)
            await asyncio.sleep(0)
            return True

        assert await asyncio.gather(guard.run(operation), guard.run(operation)) == [True, True]
        assert not guard.busy
        assert await guard.run(operation)
        assert len(calls) == 2


class TestMissingToken:
    @pytest.mark.asyncio
    async def test_bootstraps_a_new_session(self, tmp_path, backend):
        backend.route(
            "GET",
            "/data",
            lambda r: httpx.Response(200, json={"ok": True}) if bearer(r) == "boot" else unauthorized("TOKEN_MISSING"),
        )
        backend.route(
            "POST",
            "/session/init",
            lambda r: httpx.Response(
                200,
                json={"session_token": "boot", "refresh_token": "r", "expires_at": future(), "session_id": "s1"},
            ),
        )
        gateway, store, config = make_gateway(tmp_path, backend)

        async with gateway:
            response = await gateway.request("GET", "/data")

        assert response.status_code == 200
        assert "Authorization" not in backend.requests[0].headers
        assert store.load().access_token == "boot"
        assert config.get("session_id") == "s1"

    @pytest.mark.asyncio
    async def test_retry_uses_new_session_id(self, tmp_path, backend):
        backend.route(
            "GET",
            "/connections",
            lambda r: httpx.Response(200, json={}) if bearer(r) == "boot" else unauthorized("TOKEN_MISSING"),
        )
        backend.route(
            "POST",
            "/session/init",
            lambda r: httpx.Response(
                200,
                json={"token": "boot", "refresh_token": "r", "expires_in": 600, "session_id": "s2"},
            ),
        )
        gateway, _, _ = make_gateway(tmp_path, backend)

        async with gateway:
            await gateway.request("GET", "/connections?session_id=stale")

        sent = backend.calls("GET", "/connections")
        assert sent[0].url.params["session_id"] == "stale"
        assert sent[1].url.params["session_id"] == "s2"

    @pytest.mark.asyncio
    async def test_failed_bootstrap_is_terminal(self, tmp_path, backend):
        backend.route("GET", "/data", lambda r: unauthorized("TOKEN_MISSING"))
        backend.route("POST", "/session/init", lambda r: httpx.Response(500))
        gateway, store, _ = make_gateway(tmp_path, backend)

        async with gateway:
            with pytest.raises(SessionInitError, match="Failed to initialize session"):
                await gateway.request("GET", "/data")

        assert len(backend.calls("GET", "/data")) == 1
        assert store.load() is None

    @pytest.mark.asyncio
    async def test_unrecognized_without_token_bootstraps(self, tmp_path, backend):
        backend.route(
            "GET",
            "/data",
            lambda r: httpx.Response(200) if bearer(r) == "boot" else httpx.Response(403, json={"error": "Forbidden"}),
        )
        backend.route(
            "POST",
            "/session/init",
            lambda r: httpx.Response(200, json={"token": "boot", "refresh_token": "r", "expires_in": 600}),
        )
        gateway, _, _ = make_gateway(tmp_path, backend)

        async with gateway:
            response = await gateway.request("GET", "/data")

        assert response.status_code == 200


class TestTerminalFailures:
    @pytest.mark.asyncio
    async def test_invalid_token_is_not_retried(self, tmp_path, backend):
        backend.route("GET", "/data", lambda r: unauthorized("TOKEN_INVALID"))
        gateway, store, _ = make_gateway(tmp_path, backend)
        seed(store)

        async with gateway:
            with pytest.raises(InvalidTokenError, match="Invalid or revoked session"):
                await gateway.request("GET", "/data")

        assert len(backend.requests) == 1
        assert store.load() is None

    @pytest.mark.asyncio
    async def test_unrecognized_with_token_clears_session(self, tmp_path, backend):
        backend.route("GET", "/data", lambda r: unauthorized("SOMETHING_ELSE", "Account suspended"))
        gateway, store, _ = make_gateway(tmp_path, backend)
        seed(store)

        async with gateway:
            with pytest.raises(AuthorizationError, match="Account suspended"):
                await gateway.request("GET", "/data")

        assert len(backend.requests) == 1
        assert store.load() is None

    @pytest.mark.asyncio
    async def test_transport_failure_is_not_an_auth_error(self, tmp_path, backend):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        backend.route("GET", "/data", refuse)
        gateway, store, _ = make_gateway(tmp_path, backend)
        seed(store)

        async with gateway:
            with pytest.raises(BackendUnavailableError, match="Cannot connect to Kay backend at http://kay.test"):
                await gateway.request("GET", "/data")

        assert store.load() is not None


class TestWithoutBootstrapEndpoint:
    @pytest.mark.asyncio
    async def test_unrecognized_with_refresh_token_refreshes(self, tmp_path, backend):
        backend.route(
            "GET",
            "/data",
            lambda r: httpx.Response(200) if bearer(r) == "new" else httpx.Response(401, json={"message": "jwt expired"}),
        )
        backend.route("POST", "/session/refresh", lambda r: refreshed())
        gateway, store, _ = make_gateway(tmp_path, backend, bootstrap=None)
        seed(store)

        async with gateway:
            response = await gateway.request("GET", "/data")

        assert response.status_code == 200
        assert len(backend.calls("POST", "/session/refresh")) == 1


class TestSessionParamAfterRecovery:
    def route_connections(self, backend, token):
        backend.route(
            "GET",
            "/connections",
            lambda r: httpx.Response(200, json={}) if bearer(r) == token else unauthorized("TOKEN_EXPIRED"),
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("stored_session_id", ["s1", None])
    async def test_refresh_keeps_callers_session_id(self, tmp_path, backend, stored_session_id):
        self.route_connections(backend, "new")
        backend.route("POST", "/session/refresh", lambda r: refreshed())
        gateway, store, config = make_gateway(tmp_path, backend)
        seed(store, session_id=stored_session_id)
        config.set("session_id", "s2")

        async with gateway:
            response = await gateway.request("GET", "/connections?session_id=s2")

        assert response.status_code == 200
        sent = backend.calls("GET", "/connections")
        assert [r.url.params.get("session_id") for r in sent] == ["s2", "s2"]
        assert config.get("session_id") == "s2"

    @pytest.mark.asyncio
    async def test_refresh_issuing_new_session_id(self, tmp_path, backend):
        self.route_connections(backend, "new")
        backend.route("POST", "/session/refresh", lambda r: refreshed(session_id="s3"))
        gateway, store, config = make_gateway(tmp_path, backend)
        seed(store, session_id="s1")
        config.set("session_id", "s2")

        async with gateway:
            await gateway.request("GET", "/connections?session_id=s2")

        sent = backend.calls("GET", "/connections")
        assert sent[1].url.params["session_id"] == "s3"
        assert config.get("session_id") == "s3"

    @pytest.mark.asyncio
    async def test_bootstrap_falls_back_to_configured_session_id(self, tmp_path, backend):
        backend.route(
            "GET",
            "/connections",
            lambda r: httpx.Response(200, json={}) if bearer(r) == "boot" else unauthorized("TOKEN_MISSING"),
        )
        backend.route(
            "POST",
            "/session/init",
            lambda r: httpx.Response(200, json={"token": "boot", "refresh_token": "r", "expires_in": 600}),
        )
        gateway, _, config = make_gateway(tmp_path, backend)
        config.set("session_id", "s2")

        async with gateway:
            await gateway.request("GET", "/connections?session_id=stale")

        sent = backend.calls("GET", "/connections")
        assert sent[1].url.params["session_id"] == "s2"


class TestRetryExhaustionAfterBootstrap:
    @pytest.mark.asyncio
    async def test_missing_token_twice_clears_session(self, tmp_path, backend):
        backend.route("GET", "/data", lambda r: unauthorized("TOKEN_MISSING"))
        backend.route(
            "POST",
            "/session/init",
            lambda r: httpx.Response(200, json={"token": "boot", "refresh_token": "r", "expires_in": 600}),
        )
        gateway, store, _ = make_gateway(tmp_path, backend)

        async with gateway:
            with pytest.raises(RetryExhaustedError, match="after retry"):
                await gateway.request("GET", "/data")

        assert len(backend.calls("GET", "/data")) == 2
        assert len(backend.calls("POST", "/session/init")) == 1
        assert not store.path.exists()


class TestSharedRefreshFailure:
    @pytest.mark.asyncio
    async def test_concurrent_callers_share_a_failed_refresh(self, tmp_path, backend):
        async def slow_rejection(request):
            await asyncio.sleep(0.05)
            return httpx.Response(401, json={"error": "revoked"})

        backend.route("GET", "/data", lambda r: unauthorized("TOKEN_EXPIRED"))
        backend.route("POST", "/session/refresh", slow_rejection)
        gateway, store, _ = make_gateway(tmp_path, backend)
        seed(store)

        async with gateway:
            results = await asyncio.gather(
                *(gateway.request("GET", "/data") for _ in range(5)),
                return_exceptions=True,
            )

        assert all(isinstance(result, SessionExpiredError) for result in results)
        assert len(backend.calls("POST", "/session/refresh")) == 1
        assert len(backend.calls("GET", "/data")) == 5
        assert store.load() is None

    @pytest.mark.asyncio
    async def test_refresh_without_refresh_token_skips_network(self, tmp_path, backend):
        gateway, _, _ = make_gateway(tmp_path, backend)

        async with gateway:
            assert await gateway.refresh_session() is False

        assert backend.requests == []
