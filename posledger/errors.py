# Overview: Error taxonomy shared by the ledger, catalog, and HTTP boundary.

"""
Ledger error kinds.

Calculation helpers (money.py, the preview endpoint) never raise these:
they clamp or coerce instead. Commit-layer operations raise exactly one of
the subclasses below and leave the database untouched when they do.

    ValidationError          400  empty or degenerate request
    NotFound                 404  unknown sale or product id
    DuplicateIdentifier      409  sale number or SKU collision
    InsufficientStock        409  debit would take stock below zero
    InvalidStateTransition   409  refund/void of a non-COMPLETED sale
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    VALIDATION = "validation_error"
    DUPLICATE_IDENTIFIER = "duplicate_identifier"
    INSUFFICIENT_STOCK = "insufficient_stock"
    NOT_FOUND = "not_found"
    INVALID_STATE_TRANSITION = "invalid_state_transition"


class LedgerError(Exception):
    """Base class for commit-layer failures."""

    kind: ErrorKind = ErrorKind.VALIDATION
    http_status: int = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(LedgerError):
    """400-level input problem."""
    kind = ErrorKind.VALIDATION
    http_status = 400


class NotFound(LedgerError):
    kind = ErrorKind.NOT_FOUND
    http_status = 404


class DuplicateIdentifier(LedgerError):
    """409-level uniqueness conflict (sale number, SKU)."""
    kind = ErrorKind.DUPLICATE_IDENTIFIER
    http_status = 409


class InsufficientStock(LedgerError):
    kind = ErrorKind.INSUFFICIENT_STOCK
    http_status = 409


class InvalidStateTransition(LedgerError):
    kind = ErrorKind.INVALID_STATE_TRANSITION
    http_status = 409
