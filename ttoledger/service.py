"""Mini README: Facade the application calls into.

Structure:
    * LedgerService - wires directory, repositories, balance store, engines
      and sinks; implements the public operations.
    * build_demo_service - service over deterministic demo data.

Public operations:
    * get_financial_summary(project_id) -> (FinancialSummary, [TeamMember])
    * create_manual_allocation(project_id, person, amount, notes, actor_id)
    * create_payment_instruction(recipient, total_amount, items, notes, actor_id)
    * adjust_balance(person, kind, amount, reference_type, reference_id, description)
    * transition_payment_instruction / get_balance / list_balance_transactions
    * list_payment_instructions / delete_payment_instruction

Writes are retried when they lose a lock race (``ConcurrencyConflict``);
every other error reaches the caller on the first attempt. The acting user
is always an explicit ``actor_id`` argument.
"""

from __future__ import annotations

from typing import Callable, Iterable, List, Optional, Tuple, TypeVar, Union

from .allocations import AllocationEngine, ProjectAllocationSummary, TeamMember
from .balances import Balance, BalanceStore, BalanceTransaction, BalanceTransactionType, KeyedLockRegistry
from .configuration import LedgerSettings, get_settings
from .errors import ConcurrencyConflict
from .events import AuditSink, LoggingAuditSink, LoggingNotificationSink, NotificationSink
from .finance import FinancialSummary, PersonRef
from .finance.money import MoneyLike
from .logging_utils import get_logger
from .payments import PaymentInstructionEngine, PaymentItemRequest
from .storage import (
    AllocationRepository,
    InMemoryProjectDirectory,
    ManualBalanceAllocation,
    PaymentInstruction,
    PaymentInstructionRepository,
    PaymentStatus,
    ProjectDirectory,
)

LOGGER = get_logger(__name__)

T = TypeVar("T")


class LedgerService:
    """Single entry point for summaries, allocations, payments and balances."""

    def __init__(
        self,
        directory: ProjectDirectory,
        *,
        settings: Optional[LedgerSettings] = None,
        balances: Optional[BalanceStore] = None,
        allocations: Optional[AllocationRepository] = None,
        instructions: Optional[PaymentInstructionRepository] = None,
        audit_sink: Optional[AuditSink] = None,
        notification_sink: Optional[NotificationSink] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.directory = directory
        self.balances = balances if balances is not None else BalanceStore(
            locks=KeyedLockRegistry(timeout_seconds=self.settings.lock_timeout_seconds)
        )
        self.allocations = allocations if allocations is not None else AllocationRepository()
        self.instructions = instructions if instructions is not None else PaymentInstructionRepository(
            number_prefix=self.settings.payment_number_prefix
        )
        self.audit_sink = audit_sink if audit_sink is not None else LoggingAuditSink()
        self.notification_sink = notification_sink if notification_sink is not None else LoggingNotificationSink()
        self.allocation_engine = AllocationEngine(
            directory,
            self.allocations,
            self.balances,
            audit_sink=self.audit_sink,
            block_closed_projects=self.settings.block_allocations_on_closed_projects,
        )
        self.payment_engine = PaymentInstructionEngine(
            directory,
            self.instructions,
            self.balances,
            audit_sink=self.audit_sink,
            notification_sink=self.notification_sink,
            tolerance=self.settings.amount_tolerance,
        )
        LOGGER.debug("Ledger service ready (environment=%s)", self.settings.environment)

    def _with_retry(self, operation: str, action: Callable[[], T]) -> T:
        """Run ``action``, retrying only when it lost a lock race."""

        attempts = self.settings.concurrency_retry_attempts
        for attempt in range(1, attempts + 1):
            try:
                return action()
            except ConcurrencyConflict:
                if attempt == attempts:
                    LOGGER.error("%s lost %s lock races in a row; giving up", operation, attempts)
                    raise
                LOGGER.warning("%s hit a concurrency conflict (attempt %s/%s); retrying", operation, attempt, attempts)
        raise AssertionError("unreachable")

    # reads --------------------------------------------------------------

    def get_financial_summary(self, project_id: str) -> Tuple[FinancialSummary, List[TeamMember]]:
        """Return the project summary and its team breakdown."""

        overview = self.allocation_engine.summarize(project_id)
        return overview.summary, overview.team_members

    def summarize_project(self, project_id: str) -> ProjectAllocationSummary:
        """Return the summary with allocation totals and team members."""

        return self.allocation_engine.summarize(project_id)

    def get_balance(self, person: PersonRef) -> Balance:
        """Return a snapshot of ``person``'s balance."""

        return self.balances.get_balance(person)

    def list_balance_transactions(
        self,
        person: PersonRef,
        kind: Optional[BalanceTransactionType] = None,
    ) -> List[BalanceTransaction]:
        self.balances.get_balance(person)
        return self.balances.list_transactions(person, kind)

    def list_payment_instructions(
        self,
        recipient: Optional[PersonRef] = None,
        status: Optional[Union[PaymentStatus, str]] = None,
    ) -> List[PaymentInstruction]:
        """Return instructions with their items, newest first."""

        return self.payment_engine.list_instructions(recipient, status)

    # writes -------------------------------------------------------------

    def create_manual_allocation(
        self,
        project_id: str,
        person: PersonRef,
        amount: MoneyLike,
        notes: Optional[str],
        actor_id: str,
    ) -> ManualBalanceAllocation:
        return self._with_retry(
            "create_manual_allocation",
            lambda: self.allocation_engine.allocate(project_id, person, amount, notes, actor_id=actor_id),
        )

    def create_payment_instruction(
        self,
        recipient: PersonRef,
        total_amount: MoneyLike,
        items: Iterable[PaymentItemRequest],
        notes: Optional[str],
        actor_id: str,
    ) -> PaymentInstruction:
        item_list = list(items)
        return self._with_retry(
            "create_payment_instruction",
            lambda: self.payment_engine.create_instruction(
                recipient, total_amount, item_list, notes, actor_id=actor_id
            ),
        )

    def transition_payment_instruction(
        self,
        instruction_id: str,
        status: Union[PaymentStatus, str],
        actor_id: str,
    ) -> PaymentInstruction:
        return self._with_retry(
            "transition_payment_instruction",
            lambda: self.payment_engine.transition(instruction_id, status, actor_id=actor_id),
        )

    def delete_payment_instruction(self, instruction_id: str, actor_id: str) -> PaymentInstruction:
        """Delete a non-completed instruction, releasing its reservation."""

        return self._with_retry(
            "delete_payment_instruction",
            lambda: self.payment_engine.delete_instruction(instruction_id, actor_id=actor_id),
        )

    def adjust_balance(
        self,
        person: PersonRef,
        kind: Union[BalanceTransactionType, str],
        amount: MoneyLike,
        reference_type: Optional[str] = None,
        reference_id: Optional[str] = None,
        description: str = "",
    ) -> BalanceTransaction:
        movement = kind if isinstance(kind, BalanceTransactionType) else BalanceTransactionType.from_str(kind)
        return self._with_retry(
            "adjust_balance",
            lambda: self.balances.adjust_balance(
                person,
                movement,
                amount,
                reference_type=reference_type,
                reference_id=reference_id,
                description=description,
            ),
        )


def build_demo_service(settings: Optional[LedgerSettings] = None) -> LedgerService:
    """Return a service over demo data with a couple of opened balances."""

    directory = InMemoryProjectDirectory.with_demo_data()
    service = LedgerService(directory, settings=settings)
    for representative in directory.representatives_for("prj_0001"):
        service.balances.open_balance(representative.person)
    return service
