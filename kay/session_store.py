"""Persistence helpers for the access/refresh token pair."""
from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Mapping, Optional, Protocol, Union

from .config_store import ConfigStore, write_json_atomic


logger = logging.getLogger(__name__)

# Preference order when a backend names the access token differently.
TOKEN_FIELDS = ("session_token", "token", "access_token")


@dataclass(slots=True)
class SessionRecord:
    access_token: str
    refresh_token: str
    expires_at: str
    session_id: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return bool(self.access_token and self.refresh_token and self.expires_at)

    @classmethod
    def from_response(
        cls,
        payload: Mapping[str, Any],
        previous: Optional["SessionRecord"] = None,
    ) -> "SessionRecord":
        """Map a bootstrap or refresh response onto a record.

        The access token is taken from the first non-empty of ``TOKEN_FIELDS``.
        ``expires_at`` falls back to ``expires_in`` seconds from now. Fields the
        server leaves out (refresh token, expiry, session id) carry over from
        ``previous``.
        """
        access_token = next((str(payload[name]) for name in TOKEN_FIELDS if payload.get(name)), "")
        refresh_token = payload.get("refresh_token") or (previous.refresh_token if previous else "")
        expires_at = payload.get("expires_at") or ""
        if not expires_at and payload.get("expires_in"):
            try:
                seconds = float(payload["expires_in"])
            except (TypeError, ValueError):
                seconds = 0.0
            if seconds > 0:
                expires_at = (datetime.now(timezone.utc) + timedelta(seconds=seconds)).isoformat()
        if not expires_at and previous is not None:
            expires_at = previous.expires_at
        session_id = payload.get("session_id") or (previous.session_id if previous else None)
        return cls(
            access_token=access_token,
            refresh_token=str(refresh_token),
            expires_at=str(expires_at),
            session_id=session_id,
        )


class CredentialStore(Protocol):
    """Where a gateway reads and writes its credential pair."""

    def load(self) -> Optional[SessionRecord]:
        ...

    def save(self, record: SessionRecord) -> None:
        ...

    def clear(self) -> None:
        ...


def parse_timestamp(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_session_expired(record: Optional[SessionRecord], now: Optional[datetime] = None) -> bool:
    """Return True unless ``record`` carries an expiry strictly in the future."""
    if record is None:
        return True
    expires_at = parse_timestamp(record.expires_at)
    if expires_at is None:
        return True
    return (now or datetime.now(timezone.utc)) >= expires_at


class SessionStore:
    """The session record kept as its own document (``session.json``)."""

    def __init__(self, path: Union[str, Path]) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Optional[SessionRecord]:
        if not self._path.exists():
            return None
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning("Discarding unreadable session file %s", self._path)
            self.clear()
            return None
        if not isinstance(payload, dict):
            self.clear()
            return None
        expires_at = payload.get("expires_at")
        record = SessionRecord(
            access_token=payload.get("access_token") or "",
            refresh_token=payload.get("refresh_token") or "",
            # only ISO-8601 strings count; anything else leaves the record invalid
            expires_at=expires_at if isinstance(expires_at, str) else "",
            session_id=payload.get("session_id"),
        )
        if not record.is_valid:
            logger.info("Session file %s is incomplete; treating as signed out", self._path)
            self.clear()
            return None
        return record

    def save(self, record: SessionRecord) -> None:
        payload = asdict(record)
        if payload["session_id"] is None:
            del payload["session_id"]
        write_json_atomic(self._path, payload, private=True)

    def clear(self) -> None:
        self._path.unlink(missing_ok=True)

    def is_expired(self) -> bool:
        return is_session_expired(self.load())


class ConfigCredentials:
    """The token pair flattened into top-level configuration keys."""

    CREDENTIAL_KEYS = ("token", "refresh_token", "expires_at", "account_id")

    def __init__(self, config: ConfigStore) -> None:
        self._config = config

    def load(self) -> Optional[SessionRecord]:
        config = self._config.load()
        token = config.get("token")
        refresh = config.get("refresh_token")
        if not token or not refresh:
            return None
        return SessionRecord(
            access_token=token,
            refresh_token=refresh,
            expires_at=config.get("expires_at") or "",
            session_id=config.get("session_id"),
        )

    def save(self, record: SessionRecord) -> None:
        values: dict[str, Any] = {
            "token": record.access_token,
            "refresh_token": record.refresh_token,
        }
        if record.expires_at:
            values["expires_at"] = record.expires_at
        if record.session_id:
            values["session_id"] = record.session_id
        self._config.update(values)

    def clear(self) -> None:
        self._config.delete(*self.CREDENTIAL_KEYS)
