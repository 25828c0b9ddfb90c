"""Question/answer flows for ``kay ask``."""
from __future__ import annotations

import json
import logging
from typing import Any, Optional

import typer

from .auth_client import AuthClient
from .errors import AuthenticationError, KayError


logger = logging.getLogger(__name__)

EXIT_WORDS = frozenset({"exit", "quit"})


def print_reply(message: str) -> None:
    typer.echo("")
    typer.secho("Kay:", fg=typer.colors.CYAN, bold=True)
    for line in message.splitlines() or [""]:
        typer.echo(f"  {line}")
    typer.echo("")


async def handle_confirmation(client: AuthClient, response: dict[str, Any]) -> None:
    token = response.get("confirmation_token")
    if not response.get("requires_confirmation") or not token:
        return

    typer.secho("This action requires confirmation.", fg=typer.colors.YELLOW)
    try:
        approved = typer.confirm("Do you want to proceed?", default=False)
    except typer.Abort:
        typer.echo("Action cancelled by user")
        return

    try:
        result = await client.confirm_action(token, approved)
    except AuthenticationError:
        raise
    except KayError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        return
    print_reply(result.get("message") or ("Confirmed." if approved else "Cancelled."))


async def ask_once(client: AuthClient, prompt: str, *, confirm: bool, as_json: bool) -> None:
    data = await client.ask(prompt, interactive=False, confirm=confirm)
    if as_json:
        typer.echo(json.dumps(data, indent=2))
        return
    print_reply(data["message"])
    await handle_confirmation(client, data)


async def interactive_chat(client: AuthClient, initial_prompt: Optional[str], *, confirm: bool) -> None:
    """Keep a conversation going until the user types ``exit``/``quit`` or aborts."""
    typer.secho("Interactive chat mode. Type 'exit' or 'quit' to end the conversation.", fg=typer.colors.CYAN)
    session_id: Optional[str] = None
    pending = initial_prompt

    while True:
        if pending is None:
            try:
                pending = typer.prompt("You", default="", show_default=False)
            except typer.Abort:
                break
        prompt = pending.strip()
        pending = None
        if not prompt:
            continue
        if prompt.lower() in EXIT_WORDS:
            break

        try:
            data = await client.ask(prompt, interactive=True, confirm=confirm, session_id=session_id)
        except AuthenticationError:
            raise
        except KayError as exc:
            logger.debug("Chat round-trip failed", exc_info=True)
            typer.secho(str(exc), fg=typer.colors.RED, err=True)
            continue

        session_id = data.get("session_id") or session_id
        print_reply(data.get("message") or "(No response)")
        await handle_confirmation(client, data)

    typer.echo("Chat ended. Goodbye!")
