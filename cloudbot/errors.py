"""Exception types raised by the Cloudbot core."""

from __future__ import annotations

from typing import Optional


class CloudbotError(Exception):
    """Base class for all Cloudbot errors."""


class ConfigError(CloudbotError):
    """Configuration is missing or malformed."""


class ProvisioningError(CloudbotError):
    """The remote browser service rejected a request or was unreachable."""

    def __init__(self, message: str, *, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class ConnectivityError(CloudbotError):
    """The browser is disconnected or its page has been closed."""


class ProbeError(ConnectivityError):
    """A liveness probe failed with a known disconnect signature."""


class SessionCreationError(CloudbotError):
    """A session could not be created or connected."""


class SessionNotAvailableError(CloudbotError):
    """A named session is absent or was dropped because it went stale."""

    def __init__(self, session_id: str) -> None:
        super().__init__(
            f"Session '{session_id}' is not available. "
            "Create it with browserbase_session_create first."
        )
        self.session_id = session_id


class RefValidationError(CloudbotError):
    """A ref could not be resolved against the current snapshot.

    ``retryable`` is False for caller mistakes (e.g. no ref supplied) that a
    fresh snapshot cannot fix.
    """

    def __init__(self, message: str, *, retryable: bool = True) -> None:
        super().__init__(message)
        self.retryable = retryable


class VisibilityTimeoutError(CloudbotError):
    """The target element did not become visible in time."""


class ActionExhaustedError(CloudbotError):
    """Every attempt of a retried action failed."""

    def __init__(self, tool: str, attempts: int, last_error: BaseException) -> None:
        super().__init__(
            f"{tool} failed after {attempts} attempt(s): {last_error}"
        )
        self.tool = tool
        self.attempts = attempts
        self.last_error = last_error


__all__ = [
    "CloudbotError",
    "ConfigError",
    "ProvisioningError",
    "ConnectivityError",
    "ProbeError",
    "SessionCreationError",
    "SessionNotAvailableError",
    "RefValidationError",
    "VisibilityTimeoutError",
    "ActionExhaustedError",
]
