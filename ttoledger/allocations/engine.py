"""Mini README: Manual balance allocations bounded by a project's budget.

Structure:
    * TeamMember - representative with allocated total and live balance.
    * ProjectAllocationSummary - financial summary plus team breakdown.
    * AllocationEngine - ``summarize`` (read-only) and ``allocate`` (write).

``allocate`` holds the project lock while it recomputes the distributable
amount, sums the existing allocations and inserts the new one, so two
administrators allocating on the same project cannot jointly pass the
ceiling. Inside that it holds the person's balance lock while checking the
available amount and crediting it. If the balance write fails, the
allocation row is deleted again before the error propagates.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

from ..balances import BalanceStore, BalanceTransactionType, KeyedLockRegistry
from ..errors import (
    BudgetExceeded,
    InsufficientBalance,
    InvalidAmount,
    LedgerError,
    NotFound,
    NotRepresentative,
    PersistenceFailure,
    ProjectClosed,
)
from ..events import AuditEvent, AuditSink, dispatch_audit
from ..finance import FinancialSummary, Money, PersonRef, Project, RepresentativeRole, calculate_financial_summary
from ..finance.money import MoneyLike
from ..logging_utils import get_logger, operation_logger
from ..storage import AllocationRepository, ManualBalanceAllocation, ProjectDirectory

LOGGER = get_logger(__name__)

ALLOCATION_REFERENCE = "manual_allocation"


@dataclass(slots=True)
class TeamMember:
    """Representative of a project with their allocation total and balance."""

    representative_id: str
    person: PersonRef
    person_name: str
    person_email: str
    role: RepresentativeRole
    allocated_amount: Money
    current_balance: Money

    def as_dict(self) -> Dict[str, object]:
        """Render the team member for JSON responses."""

        return {
            "id": self.representative_id,
            **self.person.as_dict(),
            "person_type": self.person.kind.value,
            "person_name": self.person_name,
            "person_email": self.person_email,
            "role": self.role.value,
            "allocated_amount": str(self.allocated_amount),
            "current_balance": str(self.current_balance),
        }


@dataclass(slots=True)
class ProjectAllocationSummary:
    """Financial summary of a project together with its allocations."""

    project: Project
    summary: FinancialSummary
    team_members: List[TeamMember]
    total_allocated: Money
    remaining_amount: Money

    def as_dict(self) -> Dict[str, object]:
        """Render project, figures and team for JSON responses."""

        financial = self.summary.as_dict()
        financial["total_allocated"] = str(self.total_allocated)
        financial["remaining_amount"] = str(self.remaining_amount)
        return {
            "project": {
                "id": self.project.project_id,
                "code": self.project.code,
                "name": self.project.name,
                "status": self.project.status.value,
            },
            "financial_summary": financial,
            "team_members": [member.as_dict() for member in self.team_members],
        }


class AllocationEngine:
    """Validate and record manual allocations against a project's budget."""

    def __init__(
        self,
        directory: ProjectDirectory,
        allocations: AllocationRepository,
        balances: BalanceStore,
        *,
        audit_sink: Optional[AuditSink] = None,
        locks: Optional[KeyedLockRegistry] = None,
        block_closed_projects: bool = True,
    ) -> None:
        self.directory = directory
        self.allocations = allocations
        self.balances = balances
        self.audit_sink = audit_sink
        self.locks = locks if locks is not None else balances.locks
        self.block_closed_projects = block_closed_projects

    def financial_summary(self, project_id: str) -> FinancialSummary:
        """Recompute the project's summary from the current inputs."""

        project = self.directory.get_project(project_id)
        return self._summary_for(project)

    def _summary_for(self, project: Project) -> FinancialSummary:
        return calculate_financial_summary(
            project,
            self.directory.incomes_for(project.project_id),
            self.directory.expenses_for(project.project_id),
        )

    def summarize(self, project_id: str) -> ProjectAllocationSummary:
        """Return the summary with each representative's allocations and balance."""

        project = self.directory.get_project(project_id)
        summary = self._summary_for(project)
        allocated = self.allocations.sums_by_person(project_id)

        members: List[TeamMember] = []
        for representative in self.directory.representatives_for(project_id):
            try:
                person = self.directory.get_person(representative.person)
                name, email = person.full_name, person.email
            except NotFound:
                name, email = "Unknown", ""
            balance = self.balances.find_balance(representative.person)
            members.append(
                TeamMember(
                    representative_id=representative.representative_id,
                    person=representative.person,
                    person_name=name,
                    person_email=email,
                    role=representative.role,
                    allocated_amount=allocated.get(representative.person, Money.zero()),
                    current_balance=balance.available_amount if balance else Money.zero(),
                )
            )

        total_allocated = Money.sum(allocated.values())
        return ProjectAllocationSummary(
            project=project,
            summary=summary,
            team_members=members,
            total_allocated=total_allocated,
            remaining_amount=summary.distributable_amount - total_allocated,
        )

    def allocate(
        self,
        project_id: str,
        person: PersonRef,
        amount: MoneyLike,
        notes: Optional[str] = None,
        *,
        actor_id: str,
    ) -> ManualBalanceAllocation:
        """Credit (or debit) ``person`` on ``project_id`` within its budget."""

        money = Money.of(amount)
        log = operation_logger(LOGGER, op="allocate", project=project_id, person=person)

        project = self.directory.get_project(project_id)
        if self.block_closed_projects and project.status.is_closed:
            raise ProjectClosed(
                f"Project {project.code} is {project.status.value}; no new allocations are accepted",
                details={"project_id": project_id, "status": project.status.value},
            )
        if self.directory.find_representative(project_id, person) is None:
            raise NotRepresentative(
                f"{person} is not a representative of project {project.code}",
                details={"project_id": project_id, "person": person},
            )
        if money.is_zero:
            raise InvalidAmount("Allocation amount must not be zero")

        with self.locks.hold(("project", project_id)):
            summary = self._summary_for(project)
            existing = self.allocations.sum_for_project(project_id)
            if existing + money > summary.distributable_amount:
                raise BudgetExceeded(
                    f"Allocations of {existing + money} would exceed the distributable "
                    f"amount of {summary.distributable_amount} for project {project.code}",
                    details={
                        "distributable_amount": summary.distributable_amount,
                        "total_allocated": existing,
                        "requested": money,
                    },
                )

            with self.balances.locked(person):
                balance = self.balances.find_balance(person)
                available = balance.available_amount if balance else Money.zero()
                if (available + money).is_negative:
                    raise InsufficientBalance(
                        f"Debit of {-money} exceeds the available balance of {available}",
                        details={"available_amount": available, "requested": money},
                    )
                allocation = ManualBalanceAllocation(
                    allocation_id=self.allocations.next_id(),
                    project_id=project_id,
                    person=person,
                    amount=money,
                    notes=notes,
                    created_by=actor_id,
                )
                self._record(allocation, project, log)

        log.info("Allocated %s (%s)", money, allocation.allocation_id)
        dispatch_audit(
            self.audit_sink,
            AuditEvent(
                actor_id=actor_id,
                action="CREATE",
                entity_type="manual_balance_allocation",
                entity_id=allocation.allocation_id,
                after={
                    "project_id": project_id,
                    **person.as_dict(),
                    "amount": str(money),
                    "notes": notes,
                },
            ),
        )
        return allocation

    def _record(self, allocation: ManualBalanceAllocation, project: Project, log) -> None:
        """Insert the allocation and credit the balance, or neither."""

        try:
            self.allocations.insert(allocation)
        except LedgerError:
            raise
        except Exception as error:
            raise PersistenceFailure(f"Failed to record allocation: {error}") from error

        description = f"Manual balance allocation: {project.code} - {project.name}"
        if allocation.notes:
            description += f" ({allocation.notes})"

        applied = False
        try:
            self.balances.adjust_balance(
                allocation.person,
                BalanceTransactionType.INCOME,
                allocation.amount,
                reference_type=ALLOCATION_REFERENCE,
                reference_id=allocation.allocation_id,
                description=description,
            )
            applied = True
        except LedgerError:
            raise
        except Exception as error:
            raise PersistenceFailure(f"Failed to update balance: {error}") from error
        finally:
            if not applied:
                log.warning("Balance update failed; removing allocation %s", allocation.allocation_id)
                self._compensate(allocation.allocation_id, log)

    def _compensate(self, allocation_id: str, log) -> None:
        """Delete the allocation row, logging if even that fails."""

        try:
            self.allocations.delete(allocation_id)
        except Exception:
            log.exception("Could not remove allocation %s after a failed balance update", allocation_id)
