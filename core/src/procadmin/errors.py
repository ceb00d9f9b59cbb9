"""Error types raised by the backend clients and the session stores.

Clients raise these to their caller; only the UI router and the CLI turn them
into user-facing messages.
"""

from __future__ import annotations


class AdminError(Exception):
    """Base class for all console errors."""

    default_message = "Unexpected error. Please try again later."

    def __init__(self, message: str = "") -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class NetworkError(AdminError):
    """The backend could not be reached (no HTTP response at all)."""

    default_message = "Network error. Please try again later."


class HealthTimeoutError(NetworkError):
    """The health check did not complete within its deadline."""

    default_message = "Health check timed out."


class ServerError(AdminError):
    """The backend answered with a non-success HTTP status."""

    default_message = "Server error. Please try again later."

    def __init__(self, status: int, message: str = "") -> None:
        self.status = status
        super().__init__(message)


class InvalidCodeError(AdminError):
    default_message = "Invalid code. Please try again."


class MalformedResponseError(AdminError):
    default_message = "Unexpected server response. Please try again later."


class ValidationError(AdminError):
    """A field failed a client-side constraint; nothing was sent."""

    default_message = "Invalid input."

    def __init__(self, field: str, message: str = "") -> None:
        self.field = field
        super().__init__(message)


class TokenPersistError(AdminError):
    default_message = "The session token could not be persisted."


class DirectoryError(AdminError):
    """A user directory call failed.

    ``status`` is the HTTP status of the failed response, or ``None`` when the
    backend was unreachable.
    """

    action = "process users"

    def __init__(self, *, status: int | None = None, detail: str | None = None) -> None:
        self.status = status
        self.detail = detail
        super().__init__(self._describe())

    @property
    def unreachable(self) -> bool:
        return self.status is None

    def _describe(self) -> str:
        if self.status is None:
            return f"Could not {self.action}: user data is unreachable."
        text = f"Could not {self.action}: server responded with HTTP {self.status}."
        if self.detail:
            text = f"{text} {self.detail}"
        return text


class LoadError(DirectoryError):
    action = "load users"


class CreateError(DirectoryError):
    action = "create user"


class UpdateError(DirectoryError):
    action = "update user"


class DeleteError(DirectoryError):
    action = "delete user"
