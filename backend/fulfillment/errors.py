# Overview: Domain error taxonomy shared by services and routes.

"""
Domain errors.

Every error a service raises on purpose derives from DomainError and carries
the HTTP status and machine code the routes render. Primary-mutation errors
fail the request. Side-effect failures are never raised: they are recorded as
SideEffectOutcome entries (see services/side_effects.py) and logged.
"""

from __future__ import annotations


class DomainError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 400
    code = "ERROR"

    def __init__(self, message: str, *, code: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        return {"message": self.message, "code": self.code}


class ValidationError(DomainError, ValueError):
    """400-level input problem."""

    status_code = 400
    code = "VALIDATION_ERROR"


class AuthorizationError(DomainError):
    """Role or ownership mismatch. No partial effect."""

    status_code = 403
    code = "FORBIDDEN"


class NotFoundError(DomainError):
    """Referenced entity does not exist (or is not visible to the caller)."""

    status_code = 404
    code = "NOT_FOUND"


class PreconditionError(DomainError):
    """
    Business precondition failed: outstanding debt, recent subscription
    activity, wrong password or 2FA code. The guarded mutation never starts.
    """

    status_code = 403
    code = "PRECONDITION_FAILED"


class InvalidCredentialsError(PreconditionError):
    """Password, admin password or second factor did not verify."""

    status_code = 401
    code = "INVALID_CREDENTIALS"


class PersistenceError(DomainError):
    """The primary database write failed and was rolled back."""

    status_code = 500
    code = "PERSISTENCE_ERROR"


class SideEffectError(DomainError):
    """
    A post-commit side effect failed. Raised only inside side-effect
    callables; run_side_effect converts it into a failed SideEffectOutcome.
    """

    status_code = 500
    code = "SIDE_EFFECT_FAILED"
