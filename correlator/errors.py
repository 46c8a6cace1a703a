"""Exceptions raised by the correlation engine.

Each error carries the HTTP status it maps to so the API layer can turn any
of them into a structured ``{"error", "message", "details"}`` payload.
"""

from typing import Any, Dict, Optional


class CorrelationError(Exception):
    """Base exception for correlation engine errors."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.kind, "message": self.message, "details": self.details}


class InvalidIdentifier(CorrelationError):
    """Raised when an ASIN does not match the provider's format."""

    status_code = 400

    def __init__(self, identifier: Optional[str]):
        super().__init__(
            "Valid ASIN required (B + 9 chars)",
            details={"identifier": identifier},
        )


class MissingCredential(CorrelationError):
    """Raised when a sync is requested without a usable Keepa key."""

    status_code = 400

    def __init__(self, service: str = "keepa"):
        super().__init__(
            f"No {service} API key configured. Add your key in settings or pass one with the request.",
            details={"service": service},
        )


class NotFound(CorrelationError):
    """Raised for unknown products or feedback against a missing correlation."""

    status_code = 404


class UpstreamUnavailable(CorrelationError):
    """Raised when Keepa or the AI provider fails."""

    status_code = 502


class PersistenceConflict(CorrelationError):
    """Raised when a write cannot be reconciled with existing rows."""

    status_code = 409


class InvalidFeedback(CorrelationError):
    """Raised for malformed feedback payloads."""

    status_code = 400


class ClassificationError(CorrelationError):
    """Raised when an AI reply is not a strict YES/NO answer.

    Never surfaced to callers; the classifier converts it into a decline.
    """

    status_code = 502


class RunTimeout(CorrelationError):
    """Raised when a sync run exceeds its wall-clock budget.

    Rows persisted before the deadline are kept.
    """

    status_code = 504
