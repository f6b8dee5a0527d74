# Overview: Exception taxonomy shared by services and routes.

"""
Every failure a service can report maps to exactly one HTTP status.

Services raise these; routes translate them with error_response().
Anything that is not a FarmProError is an internal failure: routes log it
and answer with a generic 500.
"""

from __future__ import annotations

from decimal import Decimal


class FarmProError(Exception):
    """Base class for expected, user-facing failures."""
    status_code = 500
    code = "INTERNAL"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"message": self.message, "error": self.code}


class AuthenticationError(FarmProError):
    """No valid session."""
    status_code = 401
    code = "UNAUTHENTICATED"


class PermissionDeniedError(FarmProError):
    """Authenticated but lacking the rights for the operation."""
    status_code = 403
    code = "FORBIDDEN"


class ValidationError(FarmProError, ValueError):
    """400-level input problem (bad shape, missing scope, bad quantity)."""
    status_code = 400
    code = "INVALID_ARGUMENT"


class NotFoundError(FarmProError, LookupError):
    status_code = 404
    code = "NOT_FOUND"


class ConflictError(FarmProError):
    """409-level business rule conflict (e.g., duplicate username)."""
    status_code = 409
    code = "CONFLICT"


class InsufficientStockError(ConflictError):
    """Withdrawal larger than the on-hand balance."""
    code = "INSUFFICIENT_STOCK"

    def __init__(self, *, item_id: int, current_balance: Decimal, requested: Decimal, unit: str | None = None):
        from .services.ledger_service import format_quantity

        unit_suffix = f" {unit}" if unit else ""
        super().__init__(
            f"Insufficient stock for item {item_id}: "
            f"requested {format_quantity(requested)}{unit_suffix}, "
            f"available {format_quantity(current_balance)}{unit_suffix}"
        )
        self.item_id = item_id
        self.current_balance = current_balance
        self.requested = requested

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({
            "item_id": self.item_id,
            "current_balance": float(self.current_balance),
            "requested": float(self.requested),
        })
        return data


def error_response(exc: FarmProError):
    """Flask (body, status) tuple for a FarmProError."""
    return exc.to_dict(), exc.status_code
