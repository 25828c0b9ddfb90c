"""Exception hierarchy shared by the stores, the gateway and the commands."""
from __future__ import annotations

from typing import Optional


RECONNECT_HINT = "Please run 'kay connect' to reconnect."


class KayError(RuntimeError):
    """Base class for every error the CLI reports to the user."""


class ConfigError(KayError):
    pass


class BackendUnavailableError(KayError):
    """The backend could not be reached at all (DNS, refused, timeout)."""

    def __init__(
        self,
        base_url: str,
        cause: Optional[BaseException] = None,
        *,
        service: str = "Kay backend",
    ) -> None:
        super().__init__(f"Cannot connect to {service} at {base_url}. Make sure the {service} is running.")
        self.base_url = base_url
        self.cause = cause


class ApiError(KayError):
    """A non-authentication HTTP error returned by the backend."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code


class PollTimeoutError(KayError):
    pass


class AuthenticationError(KayError):
    """Terminal authentication failure; the stored session has been cleared."""


class NotAuthenticatedError(AuthenticationError):
    pass


class InvalidTokenError(AuthenticationError):
    def __init__(self) -> None:
        super().__init__(f"Invalid or revoked session. {RECONNECT_HINT}")


class SessionExpiredError(AuthenticationError):
    def __init__(self) -> None:
        super().__init__(f"Your session has expired or been revoked. {RECONNECT_HINT}")


class SessionInitError(AuthenticationError):
    def __init__(self, detail: Optional[str] = None) -> None:
        message = "Failed to initialize session."
        if detail:
            message = f"{message} ({detail})"
        super().__init__(f"{message} Please run 'kay connect' to authenticate.")
        self.detail = detail


class RetryExhaustedError(AuthenticationError):
    def __init__(self) -> None:
        super().__init__(f"Authentication failed after retry. {RECONNECT_HINT}")


class AuthorizationError(AuthenticationError):
    pass
