"""Domain error hierarchy for the rescue coordination engine.

Services raise these; the HTTP layer turns them into JSON responses with the
status code declared on each class. Nothing here is retried by the engine.
"""

from __future__ import annotations

from typing import Any


class RescueError(Exception):
    """Base exception for all rescue engine errors."""

    code = "RESCUE_ERROR"
    status_code = 400

    def __init__(
        self,
        message: str,
        *,
        rescue_id: int | None = None,
        field: str | None = None,
    ) -> None:
        self.message = message
        self.rescue_id = rescue_id
        self.field = field
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.message,
            "code": self.code,
            "rescueId": self.rescue_id,
            "field": self.field,
        }


# ---- Client input ----


class ValidationError(RescueError):
    """Malformed coordinates, enumeration value or content."""

    code = "VALIDATION_ERROR"
    status_code = 400


class EmptyContent(ValidationError):
    code = "EMPTY_CONTENT"


class ContentTooLong(ValidationError):
    code = "CONTENT_TOO_LONG"


# ---- Authorization ----


class Forbidden(RescueError):
    """Actor lacks the relationship the operation requires."""

    code = "FORBIDDEN"
    status_code = 403


class NotFound(RescueError):
    code = "NOT_FOUND"
    status_code = 404


# ---- State machine ----


class InvalidState(RescueError):
    """Operation is sound but the record's current state disallows it."""

    code = "INVALID_STATE"
    status_code = 409


class AlreadyAssigned(InvalidState):
    code = "ALREADY_ASSIGNED"


class AlreadyResolved(InvalidState):
    code = "ALREADY_RESOLVED"


class RescueClosed(InvalidState):
    code = "RESCUE_CLOSED"


class InvalidCandidate(InvalidState):
    code = "INVALID_CANDIDATE"


# ---- Candidacy integrity ----


class DuplicateCandidate(RescueError):
    code = "DUPLICATE_CANDIDATE"
    status_code = 409


class SelfCandidacy(RescueError):
    code = "SELF_CANDIDACY"
    status_code = 409


# ---- Transport (client side) ----


class ConnectionLost(Exception):
    """Stream transport dropped; the client reconnects with backoff."""
