# Overview: Domain error taxonomy shared by services, routes, and CLI.

"""
Deposit engine errors.

Every error carries the message shown to staff and a ``details`` dict with the
current authoritative values (balance due, available stock, status) so the
caller can re-render consistent state instead of retrying blindly.

The enclosing transaction is always rolled back before these propagate.
"""

from __future__ import annotations


class DepositEngineError(Exception):
    """Base class for all deposit engine errors."""

    code = "deposit_error"
    http_status = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "code": self.code,
            "details": self.details,
        }


class ValidationError(DepositEngineError, ValueError):
    """400-level input problem (caller-correctable)."""

    code = "validation_error"
    http_status = 400


class NotFoundError(DepositEngineError, LookupError):
    """Unknown order, item, or product id."""

    code = "not_found"
    http_status = 404


class InsufficientStockError(DepositEngineError):
    """Reservation would exceed available stock."""

    code = "insufficient_stock"
    http_status = 409


class OverpaymentError(DepositEngineError):
    """Payment exceeds the order's balance due."""

    code = "overpayment"
    http_status = 409


class InvalidStateError(DepositEngineError):
    """Operation attempted from a terminal or otherwise wrong state."""

    code = "invalid_state"
    http_status = 409


class OutstandingBalanceError(DepositEngineError):
    """Completion attempted while a balance is still due."""

    code = "outstanding_balance"
    http_status = 409


class MissingAttributionError(DepositEngineError):
    """
    Consigned product has no payout recipient (or no payout cost).

    Fatal to the completion attempt only: the order stays active and can be
    completed once the product data is fixed.
    """

    code = "missing_attribution"
    http_status = 422
