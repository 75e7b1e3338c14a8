"""Exception taxonomy shared by the ESI client, stores and workers."""

from __future__ import annotations


class TrackerError(Exception):
    """Base class for every error raised by the background workers."""


class CredentialExpiredError(TrackerError):
    """The stored refresh token was rejected by EVE SSO.

    The character cannot be synced until its owner logs in again, so callers
    skip it for the rest of the current cycle instead of retrying.
    """

    def __init__(self, character_id: int, message: str = "") -> None:
        self.character_id = character_id
        self.message = message or "refresh token rejected"
        super().__init__(f"Credentials expired for character {character_id}: {self.message}")


class RemoteApiError(TrackerError):
    """ESI or SSO call failed (transport error or non-2xx response).

    Attributes:
        status:  HTTP status code, or None when no response was received.
        message: Error text from the response body or the transport.
    """

    def __init__(self, status: int | None, message: str) -> None:
        self.status = status
        self.message = message
        prefix = f"HTTP {status}" if status is not None else "transport error"
        super().__init__(f"{prefix}: {message}")


class StorageError(TrackerError):
    """Read or write against the persistence layer failed."""


class SchedulingError(TrackerError):
    """A trigger expression could not be parsed."""


class BackupError(TrackerError):
    """One or both steps of a backup run failed.

    Attributes:
        errors: One message per failed step, in execution order.
    """

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        super().__init__("; ".join(errors))
