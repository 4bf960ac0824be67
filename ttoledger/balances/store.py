"""Mini README: Per-person balances and the general ledger primitive.

Structure:
    * BalanceTransactionType - kinds of movement ``adjust_balance`` understands.
    * Balance - available / reserved / debt amounts for one person.
    * BalanceTransaction - journal row written for every successful movement.
    * split_income_against_debt - how incoming money settles an open debt.
    * BalanceStore - in-memory store with keyed locking and versioned writes.

Movement rules (``amount`` is always the magnitude moved unless noted):

    =============  =====================================================
    income         available += amount (signed), total_income += amount
    adjustment     available += amount (signed)
    debt           debt += amount (signed, negative settles)
    reservation    available -> reserved
    release        reserved -> available
    payment        reserved is consumed, total_payment += amount
    settlement     available is used to pay down debt
    =============  =====================================================

A movement that would leave any of available, reserved or debt below zero is
rejected before anything is written. Writes compare the stored ``version``
with the one that was read, so a lost update raises ``ConcurrencyConflict``
instead of silently overwriting.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from ..errors import ConcurrencyConflict, InsufficientBalance, InvalidAmount, NotFound
from ..finance.models import PersonRef
from ..finance.money import Money, MoneyLike
from ..logging_utils import get_logger
from .locks import KeyedLockRegistry

LOGGER = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BalanceTransactionType(str, Enum):
    """Kinds of movement ``adjust_balance`` applies."""

    INCOME = "income"
    PAYMENT = "payment"
    DEBT = "debt"
    ADJUSTMENT = "adjustment"
    RESERVATION = "reservation"
    RELEASE = "release"
    SETTLEMENT = "settlement"

    @classmethod
    def from_str(cls, value: str) -> "BalanceTransactionType":
        """Coerce arbitrary casing into a valid movement kind."""

        try:
            return cls(value.strip().lower())
        except (ValueError, AttributeError) as error:
            raise ValueError(f"Unsupported balance transaction type: {value}") from error

    @property
    def is_signed(self) -> bool:
        """Signed kinds accept negative amounts."""

        return self in (BalanceTransactionType.INCOME, BalanceTransactionType.ADJUSTMENT, BalanceTransactionType.DEBT)


@dataclass(slots=True)
class Balance:
    """Money a single person can draw on, has reserved, or owes."""

    balance_id: str
    person: PersonRef
    available_amount: Money
    reserved_amount: Money
    debt_amount: Money
    total_income: Money
    total_payment: Money
    last_updated: datetime
    version: int = 0

    @classmethod
    def empty(cls, balance_id: str, person: PersonRef) -> "Balance":
        """Return a zeroed balance for ``person``."""

        zero = Money.zero()
        return cls(
            balance_id=balance_id,
            person=person,
            available_amount=zero,
            reserved_amount=zero,
            debt_amount=zero,
            total_income=zero,
            total_payment=zero,
            last_updated=_utcnow(),
        )

    def copy(self) -> "Balance":
        """Return a detached snapshot."""

        return replace(self)

    def as_dict(self) -> Dict[str, object]:
        """Render amounts as strings for JSON."""

        return {
            "balance_id": self.balance_id,
            "person_type": self.person.kind.value,
            "person_id": self.person.person_id,
            "available_amount": str(self.available_amount),
            "reserved_amount": str(self.reserved_amount),
            "debt_amount": str(self.debt_amount),
            "total_income": str(self.total_income),
            "total_payment": str(self.total_payment),
            "last_updated": self.last_updated.isoformat(),
        }


@dataclass(frozen=True, slots=True)
class BalanceTransaction:
    """Journal entry describing one applied movement."""

    transaction_id: str
    balance_id: str
    person: PersonRef
    kind: BalanceTransactionType
    amount: Money
    balance_before: Money
    balance_after: Money
    reference_type: Optional[str]
    reference_id: Optional[str]
    description: str
    created_at: datetime

    def as_dict(self) -> Dict[str, object]:
        return {
            "transaction_id": self.transaction_id,
            "balance_id": self.balance_id,
            "type": self.kind.value,
            "amount": str(self.amount),
            "balance_before": str(self.balance_before),
            "balance_after": str(self.balance_after),
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "description": self.description,
            "created_at": self.created_at.isoformat(),
        }


def split_income_against_debt(income: Money, debt: Money) -> Tuple[Money, Money]:
    """Return ``(remaining_income, remaining_debt)`` after income pays debt."""

    if debt.is_zero:
        return income, Money.zero()
    if income >= debt:
        return income - debt, Money.zero()
    return Money.zero(), debt - income


def _apply_movement(balance: Balance, kind: BalanceTransactionType, amount: Money) -> Balance:
    """Return the balance after the movement, raising if it would go negative."""

    if amount.is_zero:
        raise InvalidAmount("Balance movements must have a non-zero amount")
    if not kind.is_signed and amount.is_negative:
        raise InvalidAmount(f"{kind.value} movements take a positive amount, got {amount}")

    updated = balance.copy()
    if kind is BalanceTransactionType.INCOME:
        updated.available_amount = balance.available_amount + amount
        updated.total_income = balance.total_income + amount
    elif kind is BalanceTransactionType.ADJUSTMENT:
        updated.available_amount = balance.available_amount + amount
    elif kind is BalanceTransactionType.DEBT:
        updated.debt_amount = balance.debt_amount + amount
    elif kind is BalanceTransactionType.RESERVATION:
        updated.available_amount = balance.available_amount - amount
        updated.reserved_amount = balance.reserved_amount + amount
    elif kind is BalanceTransactionType.RELEASE:
        updated.reserved_amount = balance.reserved_amount - amount
        updated.available_amount = balance.available_amount + amount
    elif kind is BalanceTransactionType.PAYMENT:
        updated.reserved_amount = balance.reserved_amount - amount
        updated.total_payment = balance.total_payment + amount
    elif kind is BalanceTransactionType.SETTLEMENT:
        if amount > balance.debt_amount:
            raise InvalidAmount(f"Settlement of {amount} exceeds the debt of {balance.debt_amount}")
        updated.available_amount = balance.available_amount - amount
        updated.debt_amount = balance.debt_amount - amount

    details = {"person": balance.person, "kind": kind.value, "amount": amount}
    if updated.available_amount.is_negative:
        raise InsufficientBalance(
            f"Available balance of {balance.available_amount} cannot cover {kind.value} of {amount}",
            details=details,
        )
    if updated.reserved_amount.is_negative:
        raise InsufficientBalance(
            f"Reserved balance of {balance.reserved_amount} cannot cover {kind.value} of {amount}",
            details=details,
        )
    if updated.debt_amount.is_negative:
        raise InvalidAmount(f"Debt of {balance.debt_amount} cannot be reduced by {-amount}", details=details)
    updated.last_updated = _utcnow()
    return updated


class BalanceStore:
    """Hold one balance per person and apply movements atomically."""

    def __init__(
        self,
        balances: Optional[Iterable[Balance]] = None,
        *,
        locks: Optional[KeyedLockRegistry] = None,
    ) -> None:
        self.locks = locks if locks is not None else KeyedLockRegistry()
        self._balances: Dict[PersonRef, Balance] = {}
        self._transactions: List[BalanceTransaction] = []
        self._balance_sequence = 0
        self._transaction_sequence = 0
        self._sequence_guard = threading.Lock()
        for balance in balances or []:
            self._balances[balance.person] = balance.copy()
            self._balance_sequence += 1
        LOGGER.debug("Balance store initialised with %s balances", len(self._balances))

    @staticmethod
    def lock_key(person: PersonRef) -> Tuple[str, str, str]:
        """Key of the lock guarding ``person``'s balance."""

        return ("balance", person.kind.value, person.person_id)

    @contextmanager
    def locked(self, person: PersonRef) -> Iterator[None]:
        """Serialise every read-check-write on ``person``'s balance."""

        with self.locks.hold(self.lock_key(person)):
            yield

    def _next_balance_id(self) -> str:
        """Allocate the next ``bal_`` id."""

        with self._sequence_guard:
            self._balance_sequence += 1
            return f"bal_{self._balance_sequence:04d}"

    def _next_transaction_id(self) -> str:
        """Allocate the next ``btx_`` id."""

        with self._sequence_guard:
            self._transaction_sequence += 1
            return f"btx_{self._transaction_sequence:06d}"

    def find_balance(self, person: PersonRef) -> Optional[Balance]:
        """Return a snapshot of the balance, or ``None`` if never opened."""

        stored = self._balances.get(person)
        return stored.copy() if stored else None

    def get_balance(self, person: PersonRef) -> Balance:
        """Return a snapshot of the balance, raising when it does not exist."""

        balance = self.find_balance(person)
        if balance is None:
            raise NotFound(f"No balance record for {person}", details={"person": person})
        return balance

    def open_balance(self, person: PersonRef) -> Balance:
        """Create an empty balance for ``person`` unless one already exists."""

        with self.locked(person):
            stored = self._balances.get(person)
            if stored is None:
                stored = Balance.empty(self._next_balance_id(), person)
                self._balances[person] = stored
                LOGGER.info("Opened balance %s for %s", stored.balance_id, person)
            return stored.copy()

    def _write(self, balance: Balance, *, expected_version: int) -> Balance:
        """Compare-and-swap the stored balance."""

        stored = self._balances.get(balance.person)
        current_version = stored.version if stored else 0
        if current_version != expected_version:
            raise ConcurrencyConflict(
                f"Balance for {balance.person} changed concurrently",
                details={"expected_version": expected_version, "current_version": current_version},
            )
        written = replace(balance, version=expected_version + 1)
        self._balances[balance.person] = written
        return written

    def adjust_balance(
        self,
        person: PersonRef,
        kind: BalanceTransactionType,
        amount: MoneyLike,
        *,
        reference_type: Optional[str] = None,
        reference_id: Optional[str] = None,
        description: str = "",
    ) -> BalanceTransaction:
        """Apply one movement and journal it; the general ledger primitive."""

        money = Money.of(amount)
        with self.locked(person):
            current = self._balances.get(person)
            if current is None:
                current = Balance.empty(self._next_balance_id(), person)
            updated = _apply_movement(current, kind, money)
            written = self._write(updated, expected_version=current.version)
            transaction = BalanceTransaction(
                transaction_id=self._next_transaction_id(),
                balance_id=written.balance_id,
                person=person,
                kind=kind,
                amount=money,
                balance_before=current.available_amount,
                balance_after=written.available_amount,
                reference_type=reference_type,
                reference_id=reference_id,
                description=description,
                created_at=written.last_updated,
            )
            self._transactions.append(transaction)
        LOGGER.info(
            "Applied %s of %s to %s (available %s -> %s)",
            kind.value,
            money,
            person,
            transaction.balance_before,
            transaction.balance_after,
        )
        return transaction

    def reserve(self, person: PersonRef, amount: MoneyLike, **reference: object) -> BalanceTransaction:
        """Move funds from available to reserved."""

        return self.adjust_balance(person, BalanceTransactionType.RESERVATION, amount, **reference)  # type: ignore[arg-type]

    def release_reservation(self, person: PersonRef, amount: MoneyLike, **reference: object) -> BalanceTransaction:
        """Hand reserved funds back to the available amount."""

        return self.adjust_balance(person, BalanceTransactionType.RELEASE, amount, **reference)  # type: ignore[arg-type]

    def consume_reservation(self, person: PersonRef, amount: MoneyLike, **reference: object) -> BalanceTransaction:
        """Pay reserved funds out; they leave the balance for good."""

        return self.adjust_balance(person, BalanceTransactionType.PAYMENT, amount, **reference)  # type: ignore[arg-type]

    def settle_debt(self, person: PersonRef, amount: Optional[MoneyLike] = None, **reference: object) -> Optional[BalanceTransaction]:
        """Use available funds to pay down debt, by default as much as possible."""

        with self.locked(person):
            balance = self.get_balance(person)
            if amount is None:
                _, remaining_debt = split_income_against_debt(balance.available_amount, balance.debt_amount)
                settle = balance.debt_amount - remaining_debt
            else:
                settle = Money.of(amount)
            if settle.is_zero:
                LOGGER.debug("Nothing to settle for %s", person)
                return None
            return self.adjust_balance(person, BalanceTransactionType.SETTLEMENT, settle, **reference)  # type: ignore[arg-type]

    def list_transactions(
        self,
        person: PersonRef,
        kind: Optional[BalanceTransactionType] = None,
    ) -> List[BalanceTransaction]:
        """Return journal rows for ``person``, most recent first."""

        rows = [
            transaction
            for transaction in self._transactions
            if transaction.person == person and (kind is None or transaction.kind is kind)
        ]
        return list(reversed(rows))

    def list_balances(self) -> List[Balance]:
        """Return snapshots of every balance ordered by id."""

        return sorted((balance.copy() for balance in self._balances.values()), key=lambda balance: balance.balance_id)
