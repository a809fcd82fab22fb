# Overview: Typed business errors raised by services and rendered by routes.

from __future__ import annotations


class BackofficeError(Exception):
    """Base class for every business-rule failure surfaced to callers."""

    status_code = 400
    code = "BACKOFFICE_ERROR"

    def __init__(self, message: str, details: dict | None = None, *, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if code:
            self.code = code

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code, "details": self.details}


class NotFoundError(BackofficeError):
    """Entity missing or outside the caller's business."""
    status_code = 404
    code = "NOT_FOUND"

    @classmethod
    def for_entity(cls, entity: str, entity_id=None) -> "NotFoundError":
        if entity_id is None:
            return cls(f"{entity} not found")
        return cls(f"{entity} {entity_id} not found", {"entity": entity, "id": entity_id})


class InvalidStateError(BackofficeError):
    """Operation not allowed in the entity's current status."""
    status_code = 409
    code = "INVALID_STATE"


class InsufficientFundsError(BackofficeError):
    status_code = 402
    code = "INSUFFICIENT_FUNDS"


class NotApplicableError(BackofficeError):
    """Discount exists but cannot be applied (window or eligibility)."""
    status_code = 422
    code = "NOT_APPLICABLE"


class ConflictError(BackofficeError):
    """Reservation overlap or duplicate unique code."""
    status_code = 409
    code = "CONFLICT"


class ValidationError(BackofficeError, ValueError):
    """400-level input problem."""
    status_code = 400
    code = "VALIDATION_ERROR"


class ForbiddenError(BackofficeError):
    status_code = 403
    code = "FORBIDDEN"
