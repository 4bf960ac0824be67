"""Mini README: Payment instruction engine package.

``instructions`` creates multi-item payment instructions against a
recipient's available balance, reserving funds with all-or-nothing
semantics, and exposes the status transitions that later release or
consume that reservation.
"""

from .instructions import ALLOWED_TRANSITIONS, PaymentInstructionEngine, PaymentItemRequest

__all__ = ["ALLOWED_TRANSITIONS", "PaymentInstructionEngine", "PaymentItemRequest"]
