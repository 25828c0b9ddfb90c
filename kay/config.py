"""Configuration helpers for the Kay CLI."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .errors import ConfigError


load_dotenv()


DEFAULT_BACKEND_URL = "http://localhost:4000"
DEFAULT_HOME = Path.home() / ".kay"
DEFAULT_HTTP_TIMEOUT = 20.0
DEFAULT_POLL_INTERVAL_SECONDS = 2.0
DEFAULT_MAX_POLL_ATTEMPTS = 150
DEFAULT_JIRA_REDIRECT_PORT = 8765


@dataclass(slots=True)
class JiraSettings:
    client_id: Optional[str] = field(default=None, repr=False)
    redirect_port: int = DEFAULT_JIRA_REDIRECT_PORT


@dataclass(slots=True)
class AppSettings:
    backend_url: str = DEFAULT_BACKEND_URL
    home: Path = DEFAULT_HOME
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    max_poll_attempts: int = DEFAULT_MAX_POLL_ATTEMPTS
    log_level: str = "WARNING"
    jira: JiraSettings = field(default_factory=JiraSettings)

    @property
    def config_path(self) -> Path:
        return self.home / "config.json"

    @property
    def session_path(self) -> Path:
        return self.home / "session.json"

    @classmethod
    def from_env(cls) -> "AppSettings":
        def number(name: str, default: float, cast=float):
            raw = os.getenv(name)
            if raw is None or not raw.strip():
                return cast(default)
            try:
                return cast(raw)
            except ValueError as exc:
                raise ConfigError(f"Invalid value for {name}: {raw!r}") from exc

        home_env = os.getenv("KAY_HOME")
        home = Path(home_env).expanduser() if home_env else DEFAULT_HOME

        jira = JiraSettings(
            client_id=os.getenv("JIRA_CLIENT_ID") or None,
            redirect_port=number("JIRA_REDIRECT_PORT", DEFAULT_JIRA_REDIRECT_PORT, int),
        )

        return cls(
            backend_url=os.getenv("KAY_BACKEND_URL", DEFAULT_BACKEND_URL).rstrip("/"),
            home=home,
            http_timeout=number("KAY_HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT),
            poll_interval_seconds=number("KAY_POLL_INTERVAL_SECONDS", DEFAULT_POLL_INTERVAL_SECONDS),
            max_poll_attempts=number("KAY_MAX_POLL_ATTEMPTS", DEFAULT_MAX_POLL_ATTEMPTS, int),
            log_level=os.getenv("KAY_LOG_LEVEL", "WARNING"),
            jira=jira,
        )
