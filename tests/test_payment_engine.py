"""Mini README: Tests for payment instructions.

Structure:
    * Creation - reservation, numbering, notification and audit.
    * Recipient checks - inactive people and missing IBANs.
    * Funds checks - outstanding debt and insufficient balance.
    * Item checks - totals, tolerance and income distribution limits.
    * All-or-nothing writes - a failed reservation leaves no rows behind.
    * Lifecycle - rejection releases, completion consumes, reopening reserves again.
    * Listing and deletion - filters, released reservations, completed rows kept.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from conftest import AYSE, ZEYNEP
from ttoledger.balances import BalanceStore, BalanceTransactionType
from ttoledger.errors import (
    AmountMismatch,
    InsufficientBalance,
    InvalidAmount,
    InvalidRecipient,
    InvalidTransition,
    NotFound,
    OutstandingDebt,
    PersistenceFailure,
)
from ttoledger.events import NotificationSink
from ttoledger.finance import Money, Person, PersonRef
from ttoledger.payments import PaymentItemRequest
from ttoledger.service import LedgerService
from ttoledger.storage import PaymentInstructionRepository, PaymentStatus


def _items(*amounts, distribution_id=None):
    return [PaymentItemRequest(amount=amount, description=f"Line {index}", income_distribution_id=distribution_id) for index, amount in enumerate(amounts, start=1)]


def _fund(service: LedgerService, person: PersonRef = AYSE, amount="1000") -> None:
    service.adjust_balance(person, "income", amount, description="Test funding")


class _FailingReserveStore(BalanceStore):
    def reserve(self, *args, **kwargs):
        raise RuntimeError("balance table locked")


class _FailingReleaseStore(BalanceStore):
    def release_reservation(self, *args, **kwargs):
        raise RuntimeError("balance table locked")


class _FailingDeleteRepository(PaymentInstructionRepository):
    def delete_instruction(self, *args, **kwargs):
        raise RuntimeError("instruction table locked")


class _BrokenNotificationSink(NotificationSink):
    def notify(self, notification) -> None:
        raise RuntimeError("mail server down")


def test_instruction_reserves_the_total(service, audit_sink, notification_sink) -> None:
    _fund(service)

    instruction = service.create_payment_instruction(AYSE, "1000", _items("600", "400"), "June payout", "usr_admin")

    assert instruction.status is PaymentStatus.PENDING
    assert instruction.instruction_number == f"PAY-{datetime.now(timezone.utc).year}-001"
    assert [item.amount for item in instruction.items] == [Money.of(600), Money.of(400)]
    balance = service.get_balance(AYSE)
    assert balance.available_amount == Money.zero()
    assert balance.reserved_amount == Money.of(1000)

    reservation = service.list_balance_transactions(AYSE, BalanceTransactionType.RESERVATION)[0]
    assert reservation.reference_id == instruction.instruction_id

    assert [note.person_id for note in notification_sink.notifications] == ["usr_ayse"]
    assert audit_sink.events[-1].entity_type == "payment_instruction"
    assert audit_sink.events[-1].after["total_amount"] == "1000.00"


def test_instruction_numbers_increase(service) -> None:
    _fund(service)

    first = service.create_payment_instruction(AYSE, 100, _items(100), None, "usr_admin")
    second = service.create_payment_instruction(AYSE, 100, _items(100), None, "usr_admin")

    assert first.instruction_number.endswith("-001")
    assert second.instruction_number.endswith("-002")


def test_recipient_without_iban_is_rejected(service) -> None:
    _fund(service, ZEYNEP)

    with pytest.raises(InvalidRecipient):
        service.create_payment_instruction(ZEYNEP, 100, _items(100), None, "usr_admin")
    assert service.get_balance(ZEYNEP).reserved_amount == Money.zero()


def test_inactive_recipient_is_rejected(service, directory) -> None:
    retired = PersonRef.user("usr_retired")
    directory.add_person(Person(retired, "Retired Person", iban="TR00", is_active=False))

    with pytest.raises(InvalidRecipient):
        service.create_payment_instruction(retired, 100, _items(100), None, "usr_admin")


def test_unknown_recipient_is_not_found(service) -> None:
    with pytest.raises(NotFound):
        service.create_payment_instruction(PersonRef.user("usr_ghost"), 100, _items(100), None, "usr_admin")


def test_recipient_without_balance_is_not_found(service, directory) -> None:
    newcomer = PersonRef.user("usr_new")
    directory.add_person(Person(newcomer, "New Person", iban="TR00"))

    with pytest.raises(NotFound):
        service.create_payment_instruction(newcomer, 100, _items(100), None, "usr_admin")


def test_outstanding_debt_blocks_any_payment(service) -> None:
    """A debt of 50 blocks payment even with plenty available."""

    _fund(service, amount="10000")
    service.adjust_balance(AYSE, BalanceTransactionType.DEBT, 50)

    with pytest.raises(OutstandingDebt):
        service.create_payment_instruction(AYSE, 10, _items(10), None, "usr_admin")
    assert len(service.instructions) == 0


def test_total_above_available_is_rejected(service) -> None:
    _fund(service)

    with pytest.raises(InsufficientBalance):
        service.create_payment_instruction(AYSE, "1000.01", _items("1000.01"), None, "usr_admin")


@pytest.mark.parametrize("items", [[], _items(0), _items(-5)])
def test_items_must_exist_and_be_positive(service, items) -> None:
    _fund(service)

    with pytest.raises(InvalidAmount):
        service.create_payment_instruction(AYSE, 100, items, None, "usr_admin")


def test_total_must_match_items_within_a_cent(service) -> None:
    _fund(service)

    with pytest.raises(AmountMismatch):
        service.create_payment_instruction(AYSE, 1000, _items(600, 300), None, "usr_admin")

    instruction = service.create_payment_instruction(AYSE, 1000, _items("600", "399.99"), None, "usr_admin")
    assert instruction.total_amount == Money.of(1000)


def test_item_cannot_exceed_its_income_distribution(service) -> None:
    """dist_0001 entitles usr_ayse to 30000 of inc_0001."""

    _fund(service, amount="40000")

    with pytest.raises(InvalidAmount):
        service.create_payment_instruction(AYSE, 35000, _items(35000, distribution_id="dist_0001"), None, "usr_admin")

    instruction = service.create_payment_instruction(AYSE, 30000, _items(30000, distribution_id="dist_0001"), None, "usr_admin")
    assert instruction.items[0].income_distribution_id == "dist_0001"


def test_distribution_must_be_known_and_reachable(service, directory) -> None:
    outsider = PersonRef.user("usr_outsider")
    directory.add_person(Person(outsider, "Outside Person", iban="TR00"))
    _fund(service, outsider)

    with pytest.raises(NotFound):
        service.create_payment_instruction(outsider, 100, _items(100, distribution_id="dist_0001"), None, "usr_admin")
    _fund(service)
    with pytest.raises(NotFound):
        service.create_payment_instruction(AYSE, 100, _items(100, distribution_id="dist_missing"), None, "usr_admin")


def test_failed_reservation_leaves_no_instruction_rows(directory, settings) -> None:
    """Instruction and item rows are removed when the reservation step fails."""

    service = LedgerService(directory, settings=settings, balances=_FailingReserveStore())
    _fund(service)

    with pytest.raises(PersistenceFailure):
        service.create_payment_instruction(AYSE, 500, _items(200, 300), None, "usr_admin")

    assert len(service.instructions) == 0
    assert service.instructions.item_count() == 0
    assert service.get_balance(AYSE).available_amount == Money.of(1000)


def test_notification_failure_does_not_undo_the_instruction(directory, settings) -> None:
    service = LedgerService(directory, settings=settings, notification_sink=_BrokenNotificationSink())
    _fund(service)

    instruction = service.create_payment_instruction(AYSE, 100, _items(100), None, "usr_admin")

    assert service.instructions.get(instruction.instruction_id).status is PaymentStatus.PENDING


def test_personnel_recipients_get_no_notification(service, directory, notification_sink) -> None:
    directory.get_person(ZEYNEP).iban = "TR440006400000112345678901"
    _fund(service, ZEYNEP)

    service.create_payment_instruction(ZEYNEP, 100, _items(100), None, "usr_admin")

    assert notification_sink.notifications == []


def test_rejection_releases_and_reopening_reserves_again(service) -> None:
    _fund(service)
    instruction = service.create_payment_instruction(AYSE, 400, _items(400), None, "usr_admin")

    rejected = service.transition_payment_instruction(instruction.instruction_id, PaymentStatus.REJECTED, "usr_admin")
    assert rejected.status is PaymentStatus.REJECTED
    balance = service.get_balance(AYSE)
    assert (balance.available_amount, balance.reserved_amount) == (Money.of(1000), Money.zero())

    reopened = service.transition_payment_instruction(instruction.instruction_id, "pending", "usr_admin")
    assert reopened.status is PaymentStatus.PENDING
    balance = service.get_balance(AYSE)
    assert (balance.available_amount, balance.reserved_amount) == (Money.of(600), Money.of(400))


def test_completion_consumes_the_reservation(service, audit_sink, notification_sink) -> None:
    _fund(service)
    instruction = service.create_payment_instruction(AYSE, 400, _items(400), None, "usr_admin")

    for status in ("approved", "processing", "completed"):
        service.transition_payment_instruction(instruction.instruction_id, status, "usr_admin")

    balance = service.get_balance(AYSE)
    assert balance.reserved_amount == Money.zero()
    assert balance.available_amount == Money.of(600)
    assert balance.total_payment == Money.of(400)
    assert audit_sink.events[-1].before == {"status": "processing"}
    assert audit_sink.events[-1].after == {"status": "completed"}
    assert notification_sink.notifications[-1].type == "success"


@pytest.mark.parametrize("path", [["completed"], ["approved", "pending"], ["approved", "processing", "completed", "rejected"]])
def test_disallowed_transitions_are_rejected(service, path) -> None:
    _fund(service)
    instruction = service.create_payment_instruction(AYSE, 100, _items(100), None, "usr_admin")

    *allowed, last = path
    for status in allowed:
        service.transition_payment_instruction(instruction.instruction_id, status, "usr_admin")
    before = service.get_balance(AYSE)

    with pytest.raises(InvalidTransition):
        service.transition_payment_instruction(instruction.instruction_id, last, "usr_admin")

    after = service.get_balance(AYSE)
    assert (after.available_amount, after.reserved_amount) == (before.available_amount, before.reserved_amount)


def test_reopening_requires_funds_again(service) -> None:
    _fund(service)
    first = service.create_payment_instruction(AYSE, 1000, _items(1000), None, "usr_admin")
    service.transition_payment_instruction(first.instruction_id, "rejected", "usr_admin")
    service.create_payment_instruction(AYSE, 1000, _items(1000), None, "usr_admin")

    with pytest.raises(InsufficientBalance):
        service.transition_payment_instruction(first.instruction_id, "pending", "usr_admin")
    assert service.instructions.get(first.instruction_id).status is PaymentStatus.REJECTED


def test_failed_release_restores_the_previous_status(directory, settings) -> None:
    service = LedgerService(directory, settings=settings, balances=_FailingReleaseStore())
    _fund(service)
    instruction = service.create_payment_instruction(AYSE, 100, _items(100), None, "usr_admin")

    with pytest.raises(PersistenceFailure):
        service.transition_payment_instruction(instruction.instruction_id, "rejected", "usr_admin")

    assert service.instructions.get(instruction.instruction_id).status is PaymentStatus.PENDING
    assert service.get_balance(AYSE).reserved_amount == Money.of(100)


def test_unknown_instruction_is_not_found(service) -> None:
    with pytest.raises(NotFound):
        service.transition_payment_instruction("pi_missing", "approved", "usr_admin")


def test_listing_filters_by_recipient_and_status(service, directory) -> None:
    directory.get_person(ZEYNEP).iban = "TR440006400000112345678901"
    _fund(service)
    _fund(service, ZEYNEP)
    first = service.create_payment_instruction(AYSE, 100, _items(100), None, "usr_admin")
    second = service.create_payment_instruction(AYSE, 200, _items(200), None, "usr_admin")
    service.create_payment_instruction(ZEYNEP, 300, _items(300), None, "usr_admin")
    service.transition_payment_instruction(first.instruction_id, "rejected", "usr_admin")

    listed = service.list_payment_instructions(AYSE)
    assert [row.instruction_id for row in listed] == [second.instruction_id, first.instruction_id]
    assert [item.amount for item in listed[0].items] == [Money.of(200)]

    rejected = service.list_payment_instructions(AYSE, "rejected")
    assert [row.instruction_id for row in rejected] == [first.instruction_id]
    assert len(service.list_payment_instructions()) == 3


@pytest.mark.parametrize("path", [[], ["approved"], ["approved", "processing"]])
def test_deleting_an_open_instruction_releases_its_reservation(service, audit_sink, path) -> None:
    _fund(service)
    instruction = service.create_payment_instruction(AYSE, 400, _items(150, 250), None, "usr_admin")
    for status in path:
        service.transition_payment_instruction(instruction.instruction_id, status, "usr_admin")

    deleted = service.delete_payment_instruction(instruction.instruction_id, "usr_admin")

    assert deleted.instruction_id == instruction.instruction_id
    balance = service.get_balance(AYSE)
    assert (balance.available_amount, balance.reserved_amount) == (Money.of(1000), Money.zero())
    assert len(service.instructions) == 0
    assert service.instructions.item_count() == 0
    release = service.list_balance_transactions(AYSE, BalanceTransactionType.RELEASE)[0]
    assert release.reference_id == instruction.instruction_id
    assert audit_sink.events[-1].action == "DELETE"
    assert audit_sink.events[-1].after == {}


def test_deleting_a_rejected_instruction_does_not_release_twice(service) -> None:
    _fund(service)
    instruction = service.create_payment_instruction(AYSE, 400, _items(400), None, "usr_admin")
    service.transition_payment_instruction(instruction.instruction_id, "rejected", "usr_admin")

    service.delete_payment_instruction(instruction.instruction_id, "usr_admin")

    balance = service.get_balance(AYSE)
    assert (balance.available_amount, balance.reserved_amount) == (Money.of(1000), Money.zero())
    assert len(service.list_balance_transactions(AYSE, BalanceTransactionType.RELEASE)) == 1


def test_completed_instruction_cannot_be_deleted(service) -> None:
    _fund(service)
    instruction = service.create_payment_instruction(AYSE, 400, _items(400), None, "usr_admin")
    for status in ("approved", "processing", "completed"):
        service.transition_payment_instruction(instruction.instruction_id, status, "usr_admin")

    with pytest.raises(InvalidTransition):
        service.delete_payment_instruction(instruction.instruction_id, "usr_admin")

    assert service.instructions.get(instruction.instruction_id).status is PaymentStatus.COMPLETED
    assert service.get_balance(AYSE).total_payment == Money.of(400)


def test_failed_release_keeps_the_instruction_rows(directory, settings) -> None:
    service = LedgerService(directory, settings=settings, balances=_FailingReleaseStore())
    _fund(service)
    instruction = service.create_payment_instruction(AYSE, 100, _items(100), None, "usr_admin")

    with pytest.raises(PersistenceFailure):
        service.delete_payment_instruction(instruction.instruction_id, "usr_admin")

    assert len(service.instructions) == 1
    assert service.instructions.item_count() == 1
    assert service.get_balance(AYSE).reserved_amount == Money.of(100)


def test_failed_row_delete_restores_items_and_reservation(directory, settings) -> None:
    """The release and the item delete are both undone when the instruction row cannot go."""

    service = LedgerService(directory, settings=settings, instructions=_FailingDeleteRepository())
    _fund(service)
    instruction = service.create_payment_instruction(AYSE, 300, _items(100, 200), None, "usr_admin")

    with pytest.raises(PersistenceFailure):
        service.delete_payment_instruction(instruction.instruction_id, "usr_admin")

    assert service.instructions.item_count() == 2
    balance = service.get_balance(AYSE)
    assert (balance.available_amount, balance.reserved_amount) == (Money.of(700), Money.of(300))


def test_deleting_an_unknown_instruction_is_not_found(service) -> None:
    with pytest.raises(NotFound):
        service.delete_payment_instruction("pi_missing", "usr_admin")
