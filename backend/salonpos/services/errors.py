# Overview: Domain error taxonomy for the POS engine.

"""
POS Engine Errors

Every failure a caller can act on is a PosError subclass. Each carries an
HTTP-ish status_code and a stable code so the request layer can render it
without knowing the individual types.

Gateway failures (GatewayError) are the exception: the refund processor
catches and logs them, the caller only ever sees the refund outcome.
"""

from __future__ import annotations


class PosError(Exception):
    """Base class for POS engine errors."""
    status_code = 400
    code = "POS_ERROR"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code, **self.details}


class NotFoundError(PosError):
    status_code = 404
    code = "NOT_FOUND"


class SaleNotFoundError(NotFoundError):
    code = "SALE_NOT_FOUND"


class SessionNotFoundError(NotFoundError):
    code = "SESSION_NOT_FOUND"


class ItemNotFoundError(NotFoundError):
    code = "ITEM_NOT_FOUND"


class AppointmentNotFoundError(NotFoundError):
    code = "APPOINTMENT_NOT_FOUND"


class InsufficientStockError(PosError):
    status_code = 409
    code = "INSUFFICIENT_STOCK"


class RegisterClosedError(PosError):
    status_code = 409
    code = "REGISTER_CLOSED"


class PaymentMismatchError(PosError):
    code = "PAYMENT_MISMATCH"


class InvalidIndexError(PosError):
    code = "INVALID_INDEX"


class ExceedsAvailableError(PosError):
    code = "EXCEEDS_AVAILABLE"


class AlreadyOpenError(PosError):
    status_code = 409
    code = "ALREADY_OPEN"


class NotOpenError(PosError):
    status_code = 409
    code = "NOT_OPEN"


class InvalidAmountError(PosError):
    code = "INVALID_AMOUNT"


class GatewayError(Exception):
    """Raised by the payment gateway client. Never surfaced by refunds."""
    pass
