"""Mini README: Payment instructions drawn on a recipient's available balance.

Structure:
    * PaymentItemRequest - one requested line, optionally tied to an income distribution.
    * ALLOWED_TRANSITIONS - payment instruction state machine.
    * PaymentInstructionEngine - ``create_instruction``, ``transition``,
      ``list_instructions`` and ``delete_instruction``.

Creating an instruction writes three things: the instruction row, its item
rows and the reservation that moves the total from available to reserved.
Every check runs before the first write, under the recipient's balance lock.
Each write pushes its undo step on a stack; if a later write fails (or the
call is interrupted) the stack is unwound in reverse order so no instruction
or item row survives a failed attempt.

Lifecycle::

    pending -> approved -> processing -> completed
        \\          \\            \\
         +---------> rejected <---+      (rejected -> pending reopens)

Rejection releases the reservation, completion consumes it and reopening a
rejected instruction reserves the funds again under the creation checks.
Deleting an instruction that still holds a reservation releases it first;
completed instructions cannot be deleted.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Union

from ..balances import Balance, BalanceStore
from ..errors import (
    AmountMismatch,
    InsufficientBalance,
    InvalidAmount,
    InvalidRecipient,
    InvalidTransition,
    LedgerError,
    NotFound,
    OutstandingDebt,
    PersistenceFailure,
)
from ..events import (
    AuditEvent,
    AuditSink,
    Notification,
    NotificationSink,
    dispatch_audit,
    dispatch_notification,
)
from ..finance import CENT, Money, PersonRef, PersonType
from ..finance.money import MoneyLike
from ..logging_utils import get_logger, operation_logger
from ..storage import (
    PaymentInstruction,
    PaymentInstructionItem,
    PaymentInstructionRepository,
    PaymentStatus,
    ProjectDirectory,
)

LOGGER = get_logger(__name__)

INSTRUCTION_REFERENCE = "payment_instruction"

ALLOWED_TRANSITIONS: Dict[PaymentStatus, FrozenSet[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.APPROVED, PaymentStatus.REJECTED}),
    PaymentStatus.APPROVED: frozenset({PaymentStatus.PROCESSING, PaymentStatus.REJECTED}),
    PaymentStatus.PROCESSING: frozenset({PaymentStatus.COMPLETED, PaymentStatus.REJECTED}),
    PaymentStatus.COMPLETED: frozenset(),
    PaymentStatus.REJECTED: frozenset({PaymentStatus.PENDING}),
}


@dataclass(slots=True)
class PaymentItemRequest:
    """Requested line of a payment instruction."""

    amount: Money
    description: str = ""
    income_distribution_id: Optional[str] = None

    def __post_init__(self) -> None:
        self.amount = Money.of(self.amount)


def _guarded(step: str, action: Callable[[], object]) -> object:
    """Run a write, turning unexpected storage errors into ``PersistenceFailure``."""

    try:
        return action()
    except LedgerError:
        raise
    except Exception as error:
        raise PersistenceFailure(f"Failed to {step}: {error}") from error


class PaymentInstructionEngine:
    """Create payment instructions and move them through their lifecycle."""

    def __init__(
        self,
        directory: ProjectDirectory,
        instructions: PaymentInstructionRepository,
        balances: BalanceStore,
        *,
        audit_sink: Optional[AuditSink] = None,
        notification_sink: Optional[NotificationSink] = None,
        tolerance: Decimal = CENT,
    ) -> None:
        self.directory = directory
        self.instructions = instructions
        self.balances = balances
        self.audit_sink = audit_sink
        self.notification_sink = notification_sink
        self.tolerance = tolerance

    # creation -----------------------------------------------------------

    def create_instruction(
        self,
        recipient: PersonRef,
        total_amount: MoneyLike,
        items: Iterable[PaymentItemRequest],
        notes: Optional[str] = None,
        *,
        actor_id: str,
    ) -> PaymentInstruction:
        """Validate, persist and reserve funds for a new ``pending`` instruction."""

        total = Money.of(total_amount)
        requests = list(items)
        log = operation_logger(LOGGER, op="create_instruction", recipient=recipient)

        person = self.directory.get_person(recipient)
        if not person.is_active:
            raise InvalidRecipient(
                f"Cannot create a payment instruction for inactive {recipient.kind.value} {recipient.person_id}",
                details={"person": recipient},
            )
        if not person.has_iban:
            raise InvalidRecipient(
                f"{person.full_name} must have an IBAN to receive payments",
                details={"person": recipient},
            )
        if not requests:
            raise InvalidAmount("A payment instruction needs at least one item")
        if not total.is_positive:
            raise InvalidAmount(f"Total amount must be positive, got {total}")
        for request in requests:
            if not request.amount.is_positive:
                raise InvalidAmount(f"Item amounts must be positive, got {request.amount}")

        with self.balances.locked(recipient):
            balance = self.balances.get_balance(recipient)
            self._check_funds(balance, total)
            self._check_distributions(recipient, requests)
            items_total = Money.sum(request.amount for request in requests)
            if not items_total.within(total, self.tolerance):
                raise AmountMismatch(
                    f"Total amount {total} must equal the sum of item amounts {items_total}",
                    details={"total_amount": total, "items_total": items_total},
                )
            instruction = self._persist(recipient, total, requests, notes, actor_id, log)

        log.info("Created payment instruction %s for %s", instruction.instruction_number, total)
        if recipient.kind is PersonType.USER:
            dispatch_notification(
                self.notification_sink,
                Notification(
                    person_id=recipient.person_id,
                    type="info",
                    title="New payment instruction",
                    message=f"A payment instruction of {total} has been created.",
                    reference_type=INSTRUCTION_REFERENCE,
                    reference_id=instruction.instruction_id,
                ),
            )
        dispatch_audit(
            self.audit_sink,
            AuditEvent(
                actor_id=actor_id,
                action="CREATE",
                entity_type=INSTRUCTION_REFERENCE,
                entity_id=instruction.instruction_id,
                after=instruction.as_dict(),
            ),
        )
        return instruction

    @staticmethod
    def _check_funds(balance: Balance, total: Money) -> None:
        """Reject recipients with debt or too little available."""

        if balance.debt_amount.is_positive:
            raise OutstandingDebt(
                f"Recipient owes {balance.debt_amount}; the debt must be settled first",
                details={"debt_amount": balance.debt_amount},
            )
        if total > balance.available_amount:
            raise InsufficientBalance(
                f"Insufficient balance. Available: {balance.available_amount}, requested: {total}",
                details={"available_amount": balance.available_amount, "requested": total},
            )

    def _check_distributions(self, recipient: PersonRef, requests: List[PaymentItemRequest]) -> None:
        """Each linked distribution must be reachable and large enough."""

        for request in requests:
            if not request.income_distribution_id:
                continue
            distribution = self.directory.get_income_distribution(request.income_distribution_id)
            if not self.directory.distribution_reachable_by(distribution, recipient):
                raise NotFound(
                    f"Income distribution {distribution.distribution_id} is not accessible by {recipient}",
                    details={"distribution_id": distribution.distribution_id},
                )
            if request.amount > distribution.amount:
                raise InvalidAmount(
                    f"Payment amount {request.amount} cannot exceed distribution amount {distribution.amount}",
                    details={"distribution_id": distribution.distribution_id},
                )

    def _persist(
        self,
        recipient: PersonRef,
        total: Money,
        requests: List[PaymentItemRequest],
        notes: Optional[str],
        actor_id: str,
        log,
    ) -> PaymentInstruction:
        instruction = PaymentInstruction(
            instruction_id=self.instructions.next_id(),
            instruction_number=self.instructions.next_instruction_number(),
            recipient=recipient,
            total_amount=total,
            status=PaymentStatus.PENDING,
            notes=notes,
            created_by=actor_id,
        )
        instruction_id = instruction.instruction_id
        items = [
            PaymentInstructionItem(
                item_id=self.instructions.next_item_id(),
                instruction_id=instruction_id,
                amount=request.amount,
                description=request.description,
                income_distribution_id=request.income_distribution_id,
            )
            for request in requests
        ]

        undo: List[Callable[[], None]] = []
        finished = False
        try:
            _guarded("create payment instruction", lambda: self.instructions.insert_instruction(instruction))
            undo.append(lambda: self.instructions.delete_instruction(instruction_id))

            _guarded("create payment items", lambda: self.instructions.insert_items(instruction_id, items))
            undo.append(lambda: self.instructions.delete_items(instruction_id))

            _guarded(
                "reserve balance",
                lambda: self.balances.reserve(
                    recipient,
                    total,
                    reference_type=INSTRUCTION_REFERENCE,
                    reference_id=instruction_id,
                    description=f"Reserved for payment instruction {instruction.instruction_number}",
                ),
            )
            finished = True
        finally:
            if not finished:
                log.warning("Unwinding %s steps of payment instruction %s", len(undo), instruction_id)
                self._unwind(undo, log)
        return self.instructions.get(instruction_id)

    @staticmethod
    def _unwind(undo: List[Callable[[], None]], log) -> None:
        """Run undo steps newest first, logging any that fail."""

        for step in reversed(undo):
            try:
                step()
            except Exception:
                log.exception("Compensating step failed")

    # lifecycle ----------------------------------------------------------

    def transition(
        self,
        instruction_id: str,
        status: Union[PaymentStatus, str],
        *,
        actor_id: str,
    ) -> PaymentInstruction:
        """Move an instruction to ``status`` and apply the matching balance movement."""

        target = status if isinstance(status, PaymentStatus) else PaymentStatus.from_str(status)
        recipient = self.instructions.get(instruction_id).recipient
        log = operation_logger(LOGGER, op="transition", instruction=instruction_id, recipient=recipient)

        with self.balances.locked(recipient):
            current = self.instructions.get(instruction_id)
            previous = current.status
            if target not in ALLOWED_TRANSITIONS[previous]:
                raise InvalidTransition(
                    f"Cannot change status from {previous.value} to {target.value}",
                    details={"instruction_id": instruction_id},
                )
            if previous is PaymentStatus.REJECTED and target is PaymentStatus.PENDING:
                self._check_funds(self.balances.get_balance(recipient), current.total_amount)

            updated = _guarded("update payment status", lambda: self.instructions.update_status(instruction_id, target))
            moved = False
            try:
                _guarded("update balance", lambda: self._move_reservation(current, previous, target))
                moved = True
            finally:
                if not moved:
                    log.warning("Balance movement failed; restoring status %s", previous.value)
                    try:
                        self.instructions.update_status(instruction_id, previous)
                    except Exception:
                        log.exception("Could not restore status of %s", instruction_id)

        log.info("Status %s -> %s", previous.value, target.value)
        dispatch_audit(
            self.audit_sink,
            AuditEvent(
                actor_id=actor_id,
                action="UPDATE",
                entity_type=INSTRUCTION_REFERENCE,
                entity_id=instruction_id,
                before={"status": previous.value},
                after={"status": target.value},
            ),
        )
        if recipient.kind is PersonType.USER and target in (PaymentStatus.COMPLETED, PaymentStatus.REJECTED):
            dispatch_notification(
                self.notification_sink,
                Notification(
                    person_id=recipient.person_id,
                    type="success" if target is PaymentStatus.COMPLETED else "warning",
                    title=f"Payment instruction {target.value}",
                    message=f"Payment instruction {current.instruction_number} of {current.total_amount} is {target.value}.",
                    reference_type=INSTRUCTION_REFERENCE,
                    reference_id=instruction_id,
                ),
            )
        return updated  # type: ignore[return-value]

    def _move_reservation(
        self,
        instruction: PaymentInstruction,
        previous: PaymentStatus,
        target: PaymentStatus,
    ) -> None:
        reference = {
            "reference_type": INSTRUCTION_REFERENCE,
            "reference_id": instruction.instruction_id,
        }
        if target is PaymentStatus.REJECTED:
            self.balances.release_reservation(
                instruction.recipient,
                instruction.total_amount,
                description=f"Released: payment instruction {instruction.instruction_number} rejected",
                **reference,
            )
        elif target is PaymentStatus.COMPLETED:
            self.balances.consume_reservation(
                instruction.recipient,
                instruction.total_amount,
                description=f"Paid: payment instruction {instruction.instruction_number}",
                **reference,
            )
        elif previous is PaymentStatus.REJECTED and target is PaymentStatus.PENDING:
            self.balances.reserve(
                instruction.recipient,
                instruction.total_amount,
                description=f"Reserved again: payment instruction {instruction.instruction_number} reopened",
                **reference,
            )

    # listing and removal ------------------------------------------------

    def list_instructions(
        self,
        recipient: Optional[PersonRef] = None,
        status: Optional[Union[PaymentStatus, str]] = None,
    ) -> List[PaymentInstruction]:
        """Return instructions, newest first, optionally for one recipient or status."""

        wanted = status if status is None or isinstance(status, PaymentStatus) else PaymentStatus.from_str(status)
        return self.instructions.list_instructions(recipient, wanted)

    def delete_instruction(self, instruction_id: str, *, actor_id: str) -> PaymentInstruction:
        """Remove a non-completed instruction and hand its reservation back.

        Pending, approved and processing instructions still hold their total in
        ``reserved``; it is released before the rows go. Rejected instructions
        have already been released. Completed ones are paid out and stay.
        """

        recipient = self.instructions.get(instruction_id).recipient
        log = operation_logger(LOGGER, op="delete_instruction", instruction=instruction_id, recipient=recipient)

        with self.balances.locked(recipient):
            instruction = self.instructions.get(instruction_id)
            if instruction.status is PaymentStatus.COMPLETED:
                raise InvalidTransition(
                    f"Completed payment instruction {instruction.instruction_number} cannot be deleted",
                    details={"instruction_id": instruction_id},
                )
            items = self.instructions.items_for(instruction_id)
            reference = {
                "reference_type": INSTRUCTION_REFERENCE,
                "reference_id": instruction_id,
            }

            undo: List[Callable[[], None]] = []
            finished = False
            try:
                if instruction.status is not PaymentStatus.REJECTED:
                    _guarded(
                        "release reservation",
                        lambda: self.balances.release_reservation(
                            recipient,
                            instruction.total_amount,
                            description=f"Released: payment instruction {instruction.instruction_number} deleted",
                            **reference,
                        ),
                    )
                    undo.append(
                        lambda: self.balances.reserve(
                            recipient,
                            instruction.total_amount,
                            description=f"Reserved again: deletion of {instruction.instruction_number} failed",
                            **reference,
                        )
                    )

                _guarded("delete payment items", lambda: self.instructions.delete_items(instruction_id))
                undo.append(lambda: self.instructions.insert_items(instruction_id, items))

                _guarded("delete payment instruction", lambda: self.instructions.delete_instruction(instruction_id))
                finished = True
            finally:
                if not finished:
                    log.warning("Unwinding %s steps of deleting payment instruction %s", len(undo), instruction_id)
                    self._unwind(undo, log)

        log.info("Deleted payment instruction %s (%s)", instruction.instruction_number, instruction.status.value)
        dispatch_audit(
            self.audit_sink,
            AuditEvent(
                actor_id=actor_id,
                action="DELETE",
                entity_type=INSTRUCTION_REFERENCE,
                entity_id=instruction_id,
                before=instruction.as_dict(),
                after={},
            ),
        )
        return instruction
