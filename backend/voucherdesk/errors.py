# Overview: Domain error taxonomy shared by services and routes.

"""
Domain errors.

Services raise these; routes turn them into JSON responses with
``error_response``. Every error carries the HTTP status it maps to so the
routing layer never has to guess.
"""

from __future__ import annotations


class DomainError(Exception):
    """Base class for expected, user-facing failures."""

    status_code = 400

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message}


class ValidationError(DomainError, ValueError):
    """400-level input problem, raised before anything is written."""


class NotFoundError(DomainError):
    """No document matches the given id or code."""

    status_code = 404


class ConflictError(DomainError, ValueError):
    """409-level duplicate unique key (item code, category name, voucher code)."""

    status_code = 409


class InvalidStateError(DomainError):
    """Operation not allowed in the document's current lifecycle state."""

    status_code = 409


class DependencyUnavailableError(DomainError):
    """The database could not be reached after retries."""

    status_code = 503


def error_response(exc: DomainError) -> tuple[dict, int]:
    return exc.to_dict(), exc.status_code
