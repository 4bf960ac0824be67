"""Mini README: Error taxonomy shared by every ledger operation.

Structure:
    * LedgerError - base class carrying a stable ``code`` and ``http_status``.
    * Validation errors - raised before any write happens.
    * ConcurrencyConflict / PersistenceFailure - raised once writes began.

Validation errors also derive from ``ValueError`` and ``NotFound`` from
``LookupError`` so callers that only know the builtin hierarchy still catch
them. The web layer maps ``code`` and ``http_status`` straight into JSON.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class LedgerError(Exception):
    """Base class for all failures surfaced by the ledger."""

    code = "ledger_error"
    http_status = 400

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = dict(details or {})

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.details:
            payload["details"] = {key: str(value) for key, value in self.details.items()}
        return payload


class NotFound(LedgerError, LookupError):
    """A project, person, balance, distribution or instruction does not exist."""

    code = "not_found"
    http_status = 404


class InvalidRecipient(LedgerError, ValueError):
    """Payment recipient is inactive or has no IBAN."""

    code = "invalid_recipient"


class NotRepresentative(LedgerError, ValueError):
    """Person is not linked to the project as a representative."""

    code = "not_representative"


class ProjectClosed(LedgerError, ValueError):
    """Project is completed or cancelled and accepts no new distributions."""

    code = "project_closed"


class OutstandingDebt(LedgerError, ValueError):
    """Recipient owes money; debts are settled before any new payment."""

    code = "outstanding_debt"


class InsufficientBalance(LedgerError, ValueError):
    """The operation would drive an available or reserved amount negative."""

    code = "insufficient_balance"


class BudgetExceeded(LedgerError, ValueError):
    """Allocations or incomes would pass the project's ceiling."""

    code = "budget_exceeded"


class InvalidAmount(LedgerError, ValueError):
    """Amount is zero, negative where it must be positive, or above a ceiling."""

    code = "invalid_amount"


class AmountMismatch(InvalidAmount):
    """Instruction total differs from the sum of its items."""

    code = "amount_mismatch"


class InvalidTransition(LedgerError, ValueError):
    """Payment instruction status change is not allowed."""

    code = "invalid_transition"


class ConcurrencyConflict(LedgerError):
    """Lost a race on a serialised check; the caller should retry."""

    code = "concurrency_conflict"
    http_status = 409


class PersistenceFailure(LedgerError):
    """Underlying storage failed while writing."""

    code = "persistence_failure"
    http_status = 500
