"""Mini README: Concurrency tests for the ledger service.

Structure:
    * Project ceiling - parallel allocations on one project never jointly pass
      the distributable amount.
    * Balance serialisation - parallel payment instructions for one person
      never reserve more than was available.
    * Independence - work on different people does not share a lock.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List

from conftest import AYSE, DEMO_PROJECT, MEHMET, ZEYNEP
from ttoledger.errors import BudgetExceeded, InsufficientBalance, LedgerError
from ttoledger.finance import Money, Person, PersonRef
from ttoledger.payments import PaymentItemRequest


def _race(workers: int, action: Callable[[int], object]) -> List[object]:
    """Run ``action`` from ``workers`` threads released at the same moment."""

    barrier = threading.Barrier(workers)

    def _run(index: int) -> object:
        barrier.wait()
        try:
            return action(index)
        except LedgerError as error:
            return error

    with ThreadPoolExecutor(max_workers=workers) as pool:
        return list(pool.map(_run, range(workers)))


def test_parallel_allocations_respect_the_project_ceiling(service) -> None:
    """Ten allocations of 15000 against 99591.00 distributable: six fit."""

    people = [AYSE, MEHMET, ZEYNEP]
    results = _race(
        10,
        lambda index: service.create_manual_allocation(DEMO_PROJECT, people[index % 3], "15000", None, "usr_admin"),
    )

    failures = [result for result in results if isinstance(result, LedgerError)]
    assert len(results) - len(failures) == 6
    assert all(isinstance(failure, BudgetExceeded) for failure in failures)
    total = service.allocations.sum_for_project(DEMO_PROJECT)
    assert total == Money.of(90000)
    balances = Money.sum(service.get_balance(person).available_amount for person in people)
    assert balances == total


def test_parallel_instructions_never_over_reserve(service) -> None:
    """Ten instructions of 300 against an available 1000: three fit."""

    service.adjust_balance(AYSE, "income", 1000)

    results = _race(
        10,
        lambda index: service.create_payment_instruction(
            AYSE, 300, [PaymentItemRequest(amount=300)], None, "usr_admin"
        ),
    )

    failures = [result for result in results if isinstance(result, LedgerError)]
    assert len(results) - len(failures) == 3
    assert all(isinstance(failure, InsufficientBalance) for failure in failures)
    balance = service.get_balance(AYSE)
    assert balance.available_amount == Money.of(100)
    assert balance.reserved_amount == Money.of(900)
    assert len(service.instructions) == 3


def test_different_people_do_not_block_each_other(service, directory) -> None:
    """Holding one person's balance lock leaves other balances writable."""

    other = PersonRef.user("usr_other")
    directory.add_person(Person(other, "Other Person", iban="TR00"))
    done = threading.Event()

    with service.balances.locked(AYSE):
        worker = threading.Thread(
            target=lambda: (service.adjust_balance(other, "income", 10), done.set())
        )
        worker.start()
        assert done.wait(2)
        worker.join()

    assert service.get_balance(other).available_amount == Money.of(10)
