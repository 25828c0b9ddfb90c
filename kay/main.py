"""Command-line entry point for the Kay CLI."""
from __future__ import annotations

import asyncio
import json
import logging
import secrets
import sys
import urllib.parse
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import typer

from .auth_client import AuthClient
from .backend_client import SUPPORTED_SERVICES, BackendClient, ServiceConnection, ServiceName
from .chat import ask_once, interactive_chat
from .config import AppSettings
from .config_store import ConfigStore
from .errors import BackendUnavailableError, ConfigError, KayError
from .jira_client import AUTHORIZE_PATH, DEFAULT_SCOPES, JiraClient
from .oauth import (
    build_authorization_url,
    find_available_port,
    generate_pkce,
    open_browser,
    poll_authorization,
    wait_for_callback,
)


logger = logging.getLogger(__name__)

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    help="Kay: AI assistant for Jira & Atlassian workflows.",
)
jira_app = typer.Typer(add_completion=False, no_args_is_help=True, help="Manage direct Jira site credentials.")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


@dataclass(slots=True)
class Services:
    settings: AppSettings
    backend: BackendClient
    auth: AuthClient
    jira: JiraClient

    async def aclose(self) -> None:
        await self.backend.aclose()
        await self.auth.aclose()


def build_services(settings: AppSettings) -> Services:
    return Services(
        settings=settings,
        backend=BackendClient(settings),
        auth=AuthClient(settings),
        jira=JiraClient(settings),
    )


def _fail(message: str) -> typer.Exit:
    typer.secho(message, fg=typer.colors.RED, err=True)
    return typer.Exit(code=1)


def _run(ctx: typer.Context, handler: Callable[[Services], Awaitable[None]]) -> None:
    settings: AppSettings = ctx.obj

    async def runner() -> None:
        services = build_services(settings)
        try:
            await handler(services)
        finally:
            await services.aclose()

    try:
        asyncio.run(runner())
    except KayError as exc:
        logger.debug("Command failed", exc_info=True)
        raise _fail(str(exc)) from exc


def _echo_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2))


@app.callback()
def main_callback(
    ctx: typer.Context,
    log_level: Optional[str] = typer.Option(None, help="Logging level (DEBUG, INFO, WARNING)."),
) -> None:
    try:
        settings = AppSettings.from_env()
    except ConfigError as exc:
        raise _fail(str(exc)) from exc
    configure_logging(log_level or settings.log_level)
    ctx.obj = settings


# ---------------------------------------------------------------------------
# Account commands
# ---------------------------------------------------------------------------

def _print_user(user: dict[str, Any]) -> None:
    typer.echo("Currently authenticated as:")
    typer.echo(f"  Name:         {user.get('name', '-')}")
    typer.echo(f"  Email:        {user.get('email', '-')}")
    typer.echo(f"  Account Type: {user.get('account_type', '-')}")
    typer.echo(f"  Status:       {user.get('account_status', '-')}")
    resources = user.get("resources") or []
    if resources:
        typer.echo("")
        typer.echo("Accessible Jira sites:")
        for index, resource in enumerate(resources, start=1):
            typer.echo(f"  {index}. {resource.get('name', '-')}")
            typer.echo(f"     URL: {resource.get('url', '-')}")


async def _login(services: Services, *, as_json: bool, force: bool = False) -> None:
    auth = services.auth
    settings = services.settings

    if auth.is_authenticated() and not force and not as_json:
        try:
            user: Optional[dict[str, Any]] = await auth.me()
        except KayError:
            user = None
        if user:
            typer.secho("You are already logged in.", fg=typer.colors.YELLOW)
            typer.echo(f"Currently authenticated as: {user.get('name')} ({user.get('email')})")
            if not typer.confirm("Would you like to logout and login with different credentials?", default=False):
                typer.echo("Login cancelled. Using existing credentials.")
                return
            auth.clear()
            typer.echo("Logged out. Proceeding with login...")

    if not as_json:
        typer.echo("Initiating authentication...")
    init = await auth.login_init()
    open_browser(init["authorization_url"])

    status = await poll_authorization(
        lambda: auth.authorization_status(init["state"]),
        interval=settings.poll_interval_seconds,
        max_attempts=settings.max_poll_attempts,
        label="Authentication",
    )
    if not status.get("token") or not status.get("refresh_token"):
        raise KayError("Login completed but the backend did not return a token pair")
    auth.save_session(
        status["token"],
        status["refresh_token"],
        status.get("account_id") or "",
        session_id=status.get("session_id"),
        expires_at=status.get("expires_at") or "",
    )

    user = await auth.me()
    if as_json:
        _echo_json(
            {
                "success": True,
                "email": user.get("email"),
                "accountId": user.get("account_id"),
                "displayName": user.get("name"),
                "resources": user.get("resources") or [],
            }
        )
        return
    typer.secho(f"Successfully authenticated as {user.get('name')}", fg=typer.colors.GREEN)
    typer.echo(f"Email: {user.get('email')}")
    typer.echo(f"Account ID: {user.get('account_id')}")
    resources = user.get("resources") or []
    if resources:
        typer.echo(f"Resources: {len(resources)} site(s) accessible")


@app.command()
def login(
    ctx: typer.Context,
    as_json: bool = typer.Option(False, "--json", help="Output in JSON format."),
) -> None:
    """Authenticate with the Kay backend through your browser."""
    _run(ctx, lambda services: _login(services, as_json=as_json))


@app.command()
def reauth(
    ctx: typer.Context,
    as_json: bool = typer.Option(False, "--json", help="Output in JSON format."),
) -> None:
    """Discard the current credentials and run the login flow again."""

    async def handler(services: Services) -> None:
        if not services.auth.is_authenticated():
            typer.echo("Not currently authenticated. Running login flow...")
        else:
            typer.echo("Re-authenticating...")
            typer.echo(f"Backend: {services.settings.backend_url}")
            services.auth.clear()
        await _login(services, as_json=as_json, force=True)

    _run(ctx, handler)


@app.command()
def logout(ctx: typer.Context) -> None:
    """Revoke the current session and remove local credentials."""

    async def handler(services: Services) -> None:
        auth = services.auth
        if not auth.is_authenticated():
            typer.secho("Not authenticated. Nothing to logout.", fg=typer.colors.YELLOW)
            return
        try:
            if not await auth.logout():
                typer.secho("Session already expired or invalid.", fg=typer.colors.YELLOW)
        except BackendUnavailableError:
            typer.secho("Cannot reach backend, but clearing local credentials anyway.", fg=typer.colors.YELLOW)
        auth.clear()
        services.backend.clear_session()
        typer.secho("Successfully logged out", fg=typer.colors.GREEN)

    _run(ctx, handler)


@app.command()
def whoami(
    ctx: typer.Context,
    as_json: bool = typer.Option(False, "--json", help="Output in JSON format."),
) -> None:
    """Show currently authenticated user information."""

    async def handler(services: Services) -> None:
        if not services.auth.is_authenticated():
            raise KayError("Not authenticated. Run 'kay login' first.")
        user = await services.auth.me()
        if as_json:
            _echo_json(user)
        else:
            _print_user(user)

    _run(ctx, handler)


@app.command()
def status(
    ctx: typer.Context,
    as_json: bool = typer.Option(False, "--json", help="Output in JSON format."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show connection details."),
) -> None:
    """Check whether the stored credentials are still accepted."""

    async def handler(services: Services) -> None:
        auth = services.auth
        if not auth.is_authenticated():
            if as_json:
                _echo_json({"authenticated": False, "valid": False, "message": "Not authenticated"})
                raise typer.Exit(code=1)
            raise KayError("Not authenticated. Run 'kay login' first.")

        try:
            user = await auth.me()
        except KayError as exc:
            if as_json:
                _echo_json({"authenticated": True, "valid": False, "error": str(exc)})
            else:
                typer.secho("Authentication status: Invalid", fg=typer.colors.RED, err=True)
                typer.secho(str(exc), fg=typer.colors.RED, err=True)
                if not verbose:
                    typer.echo("Run 'kay status --verbose' for more details")
            raise typer.Exit(code=1) from exc

        if as_json:
            _echo_json(
                {
                    "authenticated": True,
                    "valid": True,
                    "email": user.get("email"),
                    "accountId": user.get("account_id"),
                    "displayName": user.get("name"),
                    "backendUrl": services.settings.backend_url,
                }
            )
            return
        typer.secho("Authentication status: Valid", fg=typer.colors.GREEN)
        if verbose:
            typer.echo("Connection details:")
            typer.echo(f"  User:       {user.get('name')}")
            typer.echo(f"  Email:      {user.get('email')}")
            typer.echo(f"  Account ID: {user.get('account_id')}")
            typer.echo(f"  Backend:    {services.settings.backend_url}")

    _run(ctx, handler)


@dataclass(slots=True)
class CheckResult:
    name: str
    passed: bool
    message: str
    error: Optional[str] = None


async def _doctor_checks(services: Services) -> tuple[list[CheckResult], list[str], list[str]]:
    settings = services.settings
    results: list[CheckResult] = []
    issues: list[str] = []
    fixes: list[str] = []

    try:
        ConfigStore(settings.config_path).load()
        results.append(CheckResult("Configuration file access", True, f"Can read {settings.config_path}"))
    except ConfigError as exc:
        issues.append("Cannot read configuration file")
        fixes.append(f"Check {settings.config_path} or run 'kay login' to recreate it")
        results.append(CheckResult("Configuration file access", False, f"Cannot read {settings.config_path}", str(exc)))
        return results, issues, fixes

    authenticated = services.auth.is_authenticated()
    if authenticated:
        results.append(CheckResult("Authentication status", True, "Authenticated"))
    else:
        issues.append("Not authenticated")
        fixes.append("Run 'kay login' to authenticate")
        results.append(CheckResult("Authentication status", False, "Not authenticated"))

    parsed = urllib.parse.urlparse(settings.backend_url)
    if parsed.scheme in ("http", "https") and parsed.netloc:
        results.append(CheckResult("Backend URL format", True, f"Valid URL: {settings.backend_url}"))
    else:
        issues.append("Invalid backend URL")
        fixes.append("Set KAY_BACKEND_URL to an http:// or https:// URL")
        results.append(CheckResult("Backend URL format", False, f"Invalid URL: {settings.backend_url}"))

    if not authenticated:
        results.append(CheckResult("Token validity", False, "Skipped (not authenticated)"))
    else:
        try:
            user = await services.auth.me()
            results.append(CheckResult("Token validity", True, f"Token valid (authenticated as {user.get('name')})"))
        except KayError as exc:
            issues.append("Invalid or expired token")
            fixes.append("Run 'kay reauth' or 'kay login' to refresh credentials")
            results.append(CheckResult("Token validity", False, "Token invalid or expired", str(exc)))

    try:
        await services.backend.health()
        results.append(CheckResult("Network connectivity", True, "Can reach Kay backend"))
    except KayError as exc:
        issues.append("Network connectivity issue")
        fixes.append(f"Check that the backend is running and reachable at {settings.backend_url}")
        results.append(CheckResult("Network connectivity", False, "Cannot reach backend", str(exc)))

    if services.jira.is_authenticated():
        try:
            info = await services.jira.server_info()
            results.append(
                CheckResult("Jira site", True, f"Reachable ({info.get('serverTitle') or services.jira.get_base_url()})")
            )
        except KayError as exc:
            issues.append("Jira site unreachable")
            fixes.append("Check the Jira base URL or run 'kay jira login' again")
            results.append(CheckResult("Jira site", False, "Cannot reach Jira site", str(exc)))

    return results, issues, fixes


@app.command()
def doctor(ctx: typer.Context) -> None:
    """Run diagnostic checks on configuration, credentials and connectivity."""

    async def handler(services: Services) -> None:
        typer.echo("Running diagnostic checks...")
        typer.echo("")
        results, issues, fixes = await _doctor_checks(services)
        for result in results:
            mark = "✓" if result.passed else "✗"
            colour = typer.colors.GREEN if result.passed else typer.colors.RED
            typer.echo(f"{result.name}: " + typer.style(f"{mark} {result.message}", fg=colour))
            if result.error:
                typer.echo(f"  {result.error}")
        typer.echo("")

        if not issues:
            typer.secho("All checks passed! Your authentication is working correctly.", fg=typer.colors.GREEN)
            return
        typer.secho(f"Found {len(issues)} issue(s):", fg=typer.colors.YELLOW)
        for issue in issues:
            typer.echo(f"  - {issue}")
        typer.echo("")
        typer.echo("Suggested fixes:")
        for index, fix in enumerate(fixes, start=1):
            typer.echo(f"  {index}. {fix}")

    _run(ctx, handler)


# ---------------------------------------------------------------------------
# Service connection commands
# ---------------------------------------------------------------------------

def _require_service(value: Optional[str], command: str) -> ServiceName:
    service = ServiceName.parse(value)
    if service is not None:
        return service
    typer.secho("Missing or unsupported service: -s, --service", fg=typer.colors.RED, err=True)
    typer.echo(f"Usage: kay {command} -s <service>", err=True)
    typer.echo("Supported services:", err=True)
    for item in SUPPORTED_SERVICES:
        typer.echo(f"  - {item.value}", err=True)
    raise typer.Exit(code=1)


def _prompt_email(value: str) -> str:
    value = value.strip()
    if "@" not in value:
        raise typer.BadParameter("Please enter a valid email address")
    return value


async def _connect(services: Services, service: ServiceName) -> None:
    backend = services.backend
    settings = services.settings
    session_id = backend.session_id

    if session_id:
        try:
            if await backend.is_connected(service, session_id):
                typer.secho(f"{service.display_name} is already connected.", fg=typer.colors.YELLOW)
                typer.echo("Run 'kay connections' to see which services are not connected.")
                return
        except KayError as exc:
            # carry on with the connection attempt; the backend validates again
            logger.debug("Could not check connection status: %s", exc)
            session_id = backend.session_id

    typer.echo(f"Connecting to {service.value}...")
    if service is ServiceName.KYG:
        email = typer.prompt("Email", value_proc=_prompt_email)
        password = typer.prompt("Password", hide_input=True)
        result = await backend.connect(service, session_id=session_id, email=email, password=password)
    else:
        result = await backend.connect(service, session_id=session_id)

    if result.session_reset:
        typer.secho("Session was reset. New session created.", fg=typer.colors.YELLOW)

    if not result.needs_browser:
        if service is not ServiceName.KYG:
            raise KayError("Invalid response from backend: missing authorization URL or state")
        typer.secho(f"{service.display_name} connected successfully.", fg=typer.colors.GREEN)
        return

    open_browser(result.authorization_url)
    await poll_authorization(
        lambda: backend.authorization_status(result.state),
        interval=settings.poll_interval_seconds,
        max_attempts=settings.max_poll_attempts,
        label="Connection",
    )
    backend.remember_session_id(result.session_id)
    typer.secho(f"{service.display_name} connected successfully.", fg=typer.colors.GREEN)


@app.command()
def connect(
    ctx: typer.Context,
    service: Optional[str] = typer.Option(None, "--service", "-s", help="Service to connect (kyg, jira, confluence, bitbucket)."),
) -> None:
    """Connect to a service."""
    selected = _require_service(service, "connect")
    _run(ctx, lambda services: _connect(services, selected))


@app.command()
def disconnect(
    ctx: typer.Context,
    service: Optional[str] = typer.Option(None, "--service", "-s", help="Service to disconnect from."),
) -> None:
    """Disconnect from a service."""
    selected = _require_service(service, "disconnect")

    async def handler(services: Services) -> None:
        backend = services.backend
        session_id = backend.session_id
        if not session_id:
            typer.secho("No session found. Please connect a service first.", fg=typer.colors.YELLOW)
            return

        try:
            if not await backend.is_connected(selected, session_id):
                typer.secho(f"{selected.display_name} is not connected.", fg=typer.colors.YELLOW)
                typer.echo("Run 'kay connections' to see which services are connected.")
                return
        except KayError as exc:
            logger.debug("Could not check connection status: %s", exc)
            session_id = backend.session_id or session_id

        if not typer.confirm(f"Are you sure you want to disconnect {selected.display_name}?", default=False):
            typer.echo("Disconnect cancelled.")
            return

        typer.echo(f"Disconnecting from {selected.value}...")
        message = await backend.disconnect(selected, session_id)
        typer.secho(message, fg=typer.colors.GREEN)

    _run(ctx, handler)


def _connection_rows(connections: dict[str, ServiceConnection]) -> list[tuple[str, str, str]]:
    rows = []
    for service in SUPPORTED_SERVICES:
        conn = connections.get(service.value) or ServiceConnection()
        user = "-"
        if conn.user:
            parts = [conn.user.get("name")] if conn.user.get("name") else []
            email = conn.user.get("email")
            if email and email != conn.user.get("name"):
                parts.append(f"({email})")
            user = " ".join(parts) or "-"
        rows.append((service.display_name, "Connected" if conn.connected else "Not connected", user))
    return rows


def _print_table(rows: list[tuple[str, str, str]]) -> None:
    typer.echo(f"{'Service':<20}{'Status':<20}User")
    typer.echo("-" * 60)
    for name, state, user in rows:
        typer.echo(f"{name:<20}{state:<20}{user}")


@app.command()
def connections(
    ctx: typer.Context,
    as_json: bool = typer.Option(False, "--json", help="Output in JSON format."),
) -> None:
    """List all service connections and their status."""

    async def handler(services: Services) -> None:
        session_id = services.backend.session_id
        if not session_id:
            typer.secho(
                "No active session found. Connect a service first with 'kay connect -s <service>'.",
                fg=typer.colors.YELLOW,
            )
            _print_table(_connection_rows({}))
            return

        current = await services.backend.connections(session_id)
        if as_json:
            _echo_json(
                [
                    {
                        "service": service.value,
                        "displayName": service.display_name,
                        "connected": bool(current.get(service.value) and current[service.value].connected),
                        "user": current[service.value].user if service.value in current else None,
                        "metadata": current[service.value].metadata if service.value in current else None,
                    }
                    for service in SUPPORTED_SERVICES
                ]
            )
            return
        typer.secho("Service Connections", bold=True)
        _print_table(_connection_rows(current))

    _run(ctx, handler)


# ---------------------------------------------------------------------------
# Assistant and system commands
# ---------------------------------------------------------------------------

@app.command()
def ask(
    ctx: typer.Context,
    prompt: Optional[list[str]] = typer.Argument(None, help="Question for Kay."),
    interactive: bool = typer.Option(False, "--interactive", "-i", help="Enable interactive chat mode."),
    confirm: bool = typer.Option(False, "--confirm", help="Ask before running actions."),
    as_json: bool = typer.Option(False, "--json", help="Output in JSON format."),
) -> None:
    """Ask Kay AI assistant a question."""
    text = " ".join(prompt or []).strip() or None

    async def handler(services: Services) -> None:
        if not services.auth.is_authenticated():
            raise KayError("Not authenticated. Run 'kay login' first.")
        if interactive:
            await interactive_chat(services.auth, text, confirm=confirm)
            return
        if text is None:
            raise KayError('Please provide a prompt. Usage: kay ask "your question here"')
        await ask_once(services.auth, text, confirm=confirm, as_json=as_json)

    _run(ctx, handler)


_OVERALL_MESSAGES = {
    "healthy": ("All systems operational", typer.colors.GREEN),
    "degraded": ("Some services are experiencing issues", typer.colors.YELLOW),
}


@app.command()
def health(
    ctx: typer.Context,
    as_json: bool = typer.Option(False, "--json", help="Output in JSON format."),
) -> None:
    """Check Kay backend service health status."""

    async def handler(services: Services) -> None:
        data = await services.backend.health()
        if as_json:
            _echo_json(data)
            return

        overall = str(data.get("status", "unknown"))
        typer.secho("Kay Backend Health Status", bold=True)
        if data.get("timestamp"):
            typer.echo(f"Last checked: {data['timestamp']}")
        typer.echo(f"Overall Status: {overall.upper()}")
        typer.echo("")
        typer.echo("Services:")
        for name, info in (data.get("services") or {}).items():
            if not isinstance(info, dict):
                continue
            line = f"  {name} - {info.get('status', 'unknown')}"
            if "configured" in info:
                line += " (configured)" if info["configured"] else " (not configured)"
            if "enabled" in info:
                line += " (enabled)" if info["enabled"] else " (disabled)"
            if info.get("toolCount") is not None:
                line += f" [{info['toolCount']} tools]"
            typer.echo(line)
            if info.get("message"):
                typer.echo(f"      {info['message']}")
        typer.echo("")

        message, colour = _OVERALL_MESSAGES.get(overall, ("Critical systems are down", typer.colors.RED))
        typer.secho(message, fg=colour)

    _run(ctx, handler)


# ---------------------------------------------------------------------------
# Jira site credentials
# ---------------------------------------------------------------------------

async def _jira_oauth_login(services: Services, base_url: str) -> None:
    jira_settings = services.settings.jira
    if not jira_settings.client_id:
        raise ConfigError("JIRA_CLIENT_ID must be configured for OAuth login (or use --basic)")

    port = find_available_port(jira_settings.redirect_port)
    redirect_uri = f"http://localhost:{port}/callback"
    pkce = generate_pkce()
    state = secrets.token_urlsafe(16)
    open_browser(
        build_authorization_url(
            base_url + AUTHORIZE_PATH,
            client_id=jira_settings.client_id,
            redirect_uri=redirect_uri,
            scope=DEFAULT_SCOPES,
            state=state,
            code_challenge=pkce.challenge,
        )
    )

    callback = await wait_for_callback(port)
    if callback.error:
        raise KayError(f"Authorization failed: {callback.error}")
    if callback.state != state:
        raise KayError("Authorization failed: state mismatch")

    payload = await services.jira.exchange_code_for_token(
        code=callback.code or "",
        redirect_uri=redirect_uri,
        client_id=jira_settings.client_id,
        code_verifier=pkce.verifier,
        base_url=base_url,
    )
    if not payload.get("access_token"):
        raise KayError("Token exchange did not return an access token")
    services.jira.save_credentials(
        payload["access_token"],
        base_url,
        refresh_token=payload.get("refresh_token"),
        expires_in=payload.get("expires_in"),
        client_id=jira_settings.client_id,
    )


@jira_app.command("login")
def jira_login(
    ctx: typer.Context,
    base_url: str = typer.Option(..., prompt="Jira base URL", help="e.g. https://jira.example.com"),
    basic: bool = typer.Option(False, "--basic", help="Use email + API token instead of OAuth."),
) -> None:
    """Store credentials for a Jira site and verify them."""
    base_url = base_url.strip().rstrip("/")
    parsed = urllib.parse.urlparse(base_url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise _fail("Base URL must start with http:// or https://")

    async def handler(services: Services) -> None:
        if basic:
            email = typer.prompt("Email", value_proc=_prompt_email)
            api_token = typer.prompt("API token", hide_input=True)
            services.jira.save_credentials_with_basic_auth(email, api_token, base_url)
        else:
            await _jira_oauth_login(services, base_url)
        try:
            user = await services.jira.get_myself()
        except KayError:
            services.jira.clear_credentials()
            raise
        typer.secho(f"Successfully authenticated as {user.display_name}", fg=typer.colors.GREEN)
        typer.echo(f"Email: {user.email_address}")
        typer.echo(f"Account ID: {user.account_id}")

    _run(ctx, handler)


@jira_app.command("whoami")
def jira_whoami(
    ctx: typer.Context,
    as_json: bool = typer.Option(False, "--json", help="Output in JSON format."),
) -> None:
    """Show the Jira user behind the stored credentials."""

    async def handler(services: Services) -> None:
        user = await services.jira.get_myself()
        if as_json:
            _echo_json(
                {
                    "accountId": user.account_id,
                    "displayName": user.display_name,
                    "emailAddress": user.email_address,
                    "baseUrl": services.jira.get_base_url(),
                }
            )
            return
        typer.echo(f"Name:     {user.display_name}")
        typer.echo(f"Email:    {user.email_address}")
        typer.echo(f"Base URL: {services.jira.get_base_url()}")

    _run(ctx, handler)


@jira_app.command("logout")
def jira_logout(ctx: typer.Context) -> None:
    """Forget the stored Jira credentials."""

    async def handler(services: Services) -> None:
        if not services.jira.is_authenticated():
            typer.secho("No Jira credentials stored.", fg=typer.colors.YELLOW)
            return
        services.jira.clear_credentials()
        typer.secho("Jira credentials removed", fg=typer.colors.GREEN)

    _run(ctx, handler)


app.add_typer(jira_app, name="jira")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
