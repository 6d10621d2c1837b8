"""Error taxonomy shared by the API server and the bot runner."""

from __future__ import annotations


class VasteError(Exception):
    """Base exception for all vaste-bot errors."""

    def __init__(self, message: str, *, details: dict[str, object] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidIdError(VasteError):
    """Raised when an identifier is not a well-formed 32-char lowercase token."""

    def __init__(self, kind: str, value: object) -> None:
        super().__init__(f"Invalid {kind} format", details={"kind": kind})
        self.value = value


class InvalidInputError(VasteError):
    """Raised when caller input is malformed. Never retried."""


class NotFoundError(VasteError):
    """Raised when a requested agent, session or bot config does not exist."""

    def __init__(self, kind: str, identifier: str) -> None:
        super().__init__(f"{kind} not found", details={"kind": kind, "identifier": identifier})
        self.kind = kind
        self.identifier = identifier


class SessionMismatchError(VasteError):
    """Raised when a session id is replayed against a different agent."""

    def __init__(self, session_id: str, agent_id: str) -> None:
        super().__init__(
            "Session does not belong to this agent",
            details={"session_id": session_id, "agent_id": agent_id},
        )


class PermissionDeniedError(VasteError):
    """Raised when a user mutates an agent they do not own."""


class GenerationFailedError(VasteError):
    """Raised by AI clients on provider errors, timeouts or malformed responses."""


class LoginFailedError(VasteError):
    """A bot connection could not log in with its credential."""


class CoordinationError(VasteError):
    """The coordination store could not be reached or rejected the request."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message, details={"status_code": status_code})
        self.status_code = status_code


class ConfigurationError(VasteError):
    """Unrecoverable start-up misconfiguration."""
