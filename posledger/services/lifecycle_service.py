# Overview: Sale status state machine.

"""
Sale lifecycle

================================================================================
STATE MACHINE:
    (none) -> COMPLETED -> REFUNDED
                        -> VOIDED

    COMPLETED: stock debited, money recorded
    REFUNDED:  TERMINAL, stock credited back
    VOIDED:    TERMINAL, note stored, stock credited back when
               VOID_RESTORES_STOCK is enabled

RULES:
1. Sales are born COMPLETED; nothing transitions into COMPLETED afterwards
2. REFUNDED and VOIDED are terminal
3. Same-state "transitions" are rejected too (a second refund is an error,
   not a no-op), so stock is credited exactly once
================================================================================
"""

from __future__ import annotations

from ..errors import InvalidStateTransition
from ..models.sales import STATUS_COMPLETED, STATUS_REFUNDED, STATUS_VOIDED


VALID_STATUSES = {STATUS_COMPLETED, STATUS_REFUNDED, STATUS_VOIDED}
TERMINAL_STATUSES = {STATUS_REFUNDED, STATUS_VOIDED}

_ALLOWED = {
    (STATUS_COMPLETED, STATUS_REFUNDED),
    (STATUS_COMPLETED, STATUS_VOIDED),
}


def can_transition(from_status: str, to_status: str) -> bool:
    return (from_status, to_status) in _ALLOWED


def require_transition(sale, to_status: str) -> None:
    """
    Raises:
        InvalidStateTransition: if sale.status cannot move to to_status
    """
    if not can_transition(sale.status, to_status):
        raise InvalidStateTransition(
            f"Cannot move sale {sale.sale_number} from {sale.status} to {to_status}",
            details={
                "sale_id": sale.id,
                "current_status": sale.status,
                "requested_status": to_status,
            },
        )
