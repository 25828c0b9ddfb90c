"""Helpers for browser-based OAuth flows (PKCE, local callback, status polling)."""
from __future__ import annotations

import asyncio
import base64
import errno
import hashlib
import logging
import os
import socket
import time
import urllib.parse
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Awaitable, Callable, Optional

import typer

from .errors import KayError, PollTimeoutError


logger = logging.getLogger(__name__)

_CALLBACK_PAGE = """<html>
  <body>
    <h1>Authentication {outcome}</h1>
    <p>You can close this window and return to the terminal.</p>
    <script>setTimeout(() => window.close(), 2000);</script>
  </body>
</html>
"""


@dataclass(slots=True)
class PkcePair:
    verifier: str
    challenge: str


@dataclass(slots=True)
class OAuthCallback:
    code: Optional[str] = None
    error: Optional[str] = None
    state: Optional[str] = None


# -------------------------------
# PKCE helpers
# -------------------------------

def generate_code_verifier(length: int = 32) -> str:
    """Return a URL-safe verifier built from ``length`` random bytes (43-128 chars)."""
    if not 32 <= length <= 96:
        raise ValueError("code_verifier entropy must be between 32 and 96 bytes")
    return base64.urlsafe_b64encode(os.urandom(length)).decode("ascii").rstrip("=")


def code_challenge_from_verifier(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def generate_pkce() -> PkcePair:
    verifier = generate_code_verifier()
    return PkcePair(verifier=verifier, challenge=code_challenge_from_verifier(verifier))


def build_authorization_url(
    authorize_url: str,
    *,
    client_id: str,
    redirect_uri: str,
    scope: tuple[str, ...] | list[str] | str,
    state: str,
    code_challenge: str,
) -> str:
    scope_value = scope if isinstance(scope, str) else " ".join(scope)
    query = {
        "response_type": "code",
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "scope": scope_value,
        "state": state,
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
    }
    return authorize_url + "?" + urllib.parse.urlencode(query, quote_via=urllib.parse.quote)


def open_browser(url: str) -> None:
    typer.echo("Please authorize in your browser.")
    typer.echo("If the browser doesn't open, visit:")
    typer.echo(url)
    typer.echo("")
    typer.launch(url)


# -------------------------------
# Local callback listener
# -------------------------------

def find_available_port(start_port: int, *, attempts: int = 20) -> int:
    """Return the first port from ``start_port`` upward that can be bound."""
    for port in range(start_port, start_port + attempts):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            try:
                sock.bind(("127.0.0.1", port))
            except OSError:
                logger.debug("Port %s is in use, trying the next one", port)
                continue
            return port
    raise KayError(f"No free port between {start_port} and {start_port + attempts - 1}")


def _first(query: dict[str, list[str]], key: str) -> Optional[str]:
    values = query.get(key)
    return values[0] if values else None


def _serve_once(port: int, timeout: float) -> OAuthCallback:
    received: list[OAuthCallback] = []

    class CallbackHandler(BaseHTTPRequestHandler):
        def do_GET(self) -> None:  # noqa: N802 - http.server naming
            query = urllib.parse.parse_qs(urllib.parse.urlparse(self.path).query)
            callback = OAuthCallback(
                code=_first(query, "code"),
                error=_first(query, "error"),
                state=_first(query, "state"),
            )
            if not callback.code and not callback.error:
                self.send_response(400)
                self.end_headers()
                self.wfile.write(b"Invalid request")
                return
            page = _CALLBACK_PAGE.format(outcome="Failed" if callback.error else "Successful")
            self.send_response(200)
            self.send_header("Content-Type", "text/html")
            self.end_headers()
            self.wfile.write(page.encode("utf-8"))
            received.append(callback)

        def log_message(self, format: str, *args: Any) -> None:
            logger.debug("callback server: " + format, *args)

    deadline = time.monotonic() + timeout
    with HTTPServer(("127.0.0.1", port), CallbackHandler) as server:
        while not received:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise PollTimeoutError("Timed out waiting for the browser to complete authorization.")
            server.timeout = remaining
            server.handle_request()
    return received[0]


async def wait_for_callback(port: int, *, timeout: float = 300.0) -> OAuthCallback:
    """Serve ``http://127.0.0.1:<port>/`` until the provider redirects back once."""
    try:
        return await asyncio.to_thread(_serve_once, port, timeout)
    except OSError as exc:
        if exc.errno == errno.EADDRINUSE:
            return OAuthCallback(error=f"Port {port} is already in use")
        return OAuthCallback(error=str(exc))


# -------------------------------
# Status polling
# -------------------------------

async def poll_authorization(
    check: Callable[[], Awaitable[dict[str, Any]]],
    *,
    interval: float,
    max_attempts: int,
    label: str = "Authorization",
) -> dict[str, Any]:
    """Call ``check`` until it reports ``completed``; give up after ``max_attempts``."""
    for attempt in range(1, max_attempts + 1):
        payload = await check()
        status = payload.get("status")
        if status == "completed":
            return payload
        if status != "pending":
            detail = payload.get("message")
            message = f"Unexpected status: {status or 'unknown'}"
            raise KayError(f"{message} - {detail}" if detail else message)
        logger.debug("%s still pending (attempt %s/%s)", label, attempt, max_attempts)
        await asyncio.sleep(interval)

    minutes = max(1, round(interval * max_attempts / 60))
    raise PollTimeoutError(
        f"{label} timeout ({minutes} minutes). Please try again or check if you completed the flow in your browser."
    )
