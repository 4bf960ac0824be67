"""Mini README: Read side the engines consult for projects and people.

Structure:
    * ProjectDirectory - abstract read-only interface the engines depend on.
    * InMemoryProjectDirectory - dictionary backed implementation with
      registration helpers and deterministic demo data.

Finance staff record projects, incomes and expenses through other parts of
the application; the engines only ever read them. The in-memory directory
still validates what it is given (unique ids, known projects, the income
budget ceiling) so tests and the demo API cannot build impossible states.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from ..errors import NotFound
from ..finance.models import (
    Expense,
    ExpenseShareType,
    Income,
    IncomeDistribution,
    Person,
    PersonRef,
    Project,
    Representative,
    RepresentativeRole,
)
from ..finance.money import Money
from ..finance.summary import ensure_income_within_budget
from ..logging_utils import get_logger

LOGGER = get_logger(__name__)


class ProjectDirectory(ABC):
    """Read-only access to projects, their inputs and their people."""

    @abstractmethod
    def get_project(self, project_id: str) -> Project:
        """Return the project or raise ``NotFound``."""

    @abstractmethod
    def incomes_for(self, project_id: str) -> List[Income]:
        """Return every income recorded against the project."""

    @abstractmethod
    def expenses_for(self, project_id: str) -> List[Expense]:
        """Return every expense charged to the project."""

    @abstractmethod
    def representatives_for(self, project_id: str) -> List[Representative]:
        """Return the representative links of the project."""

    @abstractmethod
    def get_person(self, person: PersonRef) -> Person:
        """Return the user or personnel record or raise ``NotFound``."""

    @abstractmethod
    def get_income(self, income_id: str) -> Income:
        """Return the income or raise ``NotFound``."""

    @abstractmethod
    def get_income_distribution(self, distribution_id: str) -> IncomeDistribution:
        """Return the distribution or raise ``NotFound``."""

    def find_representative(self, project_id: str, person: PersonRef) -> Optional[Representative]:
        """Return the representative link of ``person`` on the project, if any."""

        for representative in self.representatives_for(project_id):
            if representative.person == person:
                return representative
        return None

    def distribution_reachable_by(self, distribution: IncomeDistribution, person: PersonRef) -> bool:
        """True when the distribution's project links ``person`` as a representative."""

        income = self.get_income(distribution.income_id)
        return self.find_representative(income.project_id, person) is not None


class InMemoryProjectDirectory(ProjectDirectory):
    """Dictionary backed directory used by the service and the tests."""

    def __init__(self) -> None:
        self._projects: Dict[str, Project] = {}
        self._incomes: Dict[str, Income] = {}
        self._expenses: Dict[str, Expense] = {}
        self._representatives: Dict[str, Representative] = {}
        self._people: Dict[PersonRef, Person] = {}
        self._distributions: Dict[str, IncomeDistribution] = {}

    # registration -------------------------------------------------------

    def add_project(self, project: Project) -> Project:
        """Register a project; ids must be unique."""

        if project.project_id in self._projects:
            raise ValueError(f"Project {project.project_id} already exists.")
        self._projects[project.project_id] = project
        LOGGER.debug("Registered project %s (%s)", project.project_id, project.code)
        return project

    def add_person(self, person: Person) -> Person:
        """Register a user or personnel record."""

        if person.ref in self._people:
            raise ValueError(f"Person {person.ref} already exists.")
        self._people[person.ref] = person
        return person

    def add_income(self, income: Income) -> Income:
        """Record an income, enforcing the project's cumulative gross ceiling."""

        if income.income_id in self._incomes:
            raise ValueError(f"Income {income.income_id} already exists.")
        project = self.get_project(income.project_id)
        ensure_income_within_budget(project, self.incomes_for(project.project_id), income.gross_amount)
        self._incomes[income.income_id] = income
        LOGGER.debug("Registered income %s for project %s", income.income_id, project.project_id)
        return income

    def add_expense(self, expense: Expense) -> Expense:
        """Register an expense; a project link must point at a known project."""

        if expense.expense_id in self._expenses:
            raise ValueError(f"Expense {expense.expense_id} already exists.")
        if expense.project_id is not None:
            self.get_project(expense.project_id)
        self._expenses[expense.expense_id] = expense
        return expense

    def add_representative(self, representative: Representative) -> Representative:
        """Link a known person to a known project once."""

        if representative.representative_id in self._representatives:
            raise ValueError(f"Representative {representative.representative_id} already exists.")
        self.get_project(representative.project_id)
        self.get_person(representative.person)
        if self.find_representative(representative.project_id, representative.person):
            raise ValueError(f"{representative.person} already represents project {representative.project_id}.")
        self._representatives[representative.representative_id] = representative
        return representative

    def add_income_distribution(self, distribution: IncomeDistribution) -> IncomeDistribution:
        """Register an entitlement on a known income."""

        if distribution.distribution_id in self._distributions:
            raise ValueError(f"Distribution {distribution.distribution_id} already exists.")
        self.get_income(distribution.income_id)
        self._distributions[distribution.distribution_id] = distribution
        return distribution

    # reads --------------------------------------------------------------

    def get_project(self, project_id: str) -> Project:
        if project_id not in self._projects:
            raise NotFound(f"Project {project_id} not found", details={"project_id": project_id})
        return self._projects[project_id]

    def incomes_for(self, project_id: str) -> List[Income]:
        return [income for income in self._incomes.values() if income.project_id == project_id]

    def expenses_for(self, project_id: str) -> List[Expense]:
        return [expense for expense in self._expenses.values() if expense.project_id == project_id]

    def representatives_for(self, project_id: str) -> List[Representative]:
        return sorted(
            (rep for rep in self._representatives.values() if rep.project_id == project_id),
            key=lambda rep: rep.representative_id,
        )

    def get_person(self, person: PersonRef) -> Person:
        if person not in self._people:
            raise NotFound(f"{person.kind.value.capitalize()} {person.person_id} not found", details={"person": person})
        return self._people[person]

    def get_income(self, income_id: str) -> Income:
        if income_id not in self._incomes:
            raise NotFound(f"Income {income_id} not found", details={"income_id": income_id})
        return self._incomes[income_id]

    def get_income_distribution(self, distribution_id: str) -> IncomeDistribution:
        if distribution_id not in self._distributions:
            raise NotFound(
                f"Income distribution {distribution_id} not found",
                details={"distribution_id": distribution_id},
            )
        return self._distributions[distribution_id]

    # demo data ----------------------------------------------------------

    @classmethod
    def with_demo_data(cls) -> "InMemoryProjectDirectory":
        """Build a directory populated with deterministic demo records."""

        directory = cls()
        directory._seed_demo_records(
            people=[
                Person(PersonRef.user("usr_ayse"), "Ayse Demir", "ayse@example.edu", "TR120006200000000012345678"),
                Person(PersonRef.user("usr_mehmet"), "Mehmet Kaya", "mehmet@example.edu", "TR330006100519786457841326"),
                Person(PersonRef.personnel("per_zeynep"), "Zeynep Arslan", "zeynep@example.com", None),
            ],
        )
        return directory

    def _seed_demo_records(self, people: Iterable[Person]) -> None:
        """Register the demo people, project, incomes, expenses and links."""

        for person in people:
            self.add_person(person)
        self.add_project(
            Project(
                project_id="prj_0001",
                code="PRJ-2024-001",
                name="Bridge sensor retrofit",
                commission_rate=Decimal("15"),
                budget=Money.of("250000"),
                stamp_duty_client_deducted=Money.of("759.00"),
            )
        )
        self.add_income(
            Income(
                income_id="inc_0001",
                project_id="prj_0001",
                gross_amount=Money.of("120000"),
                vat_rate=Decimal("20"),
                vat_amount=Money.of("20000"),
                collected_amount=Money.of("120000"),
                description="First milestone invoice",
            )
        )
        self.add_income(
            Income(
                income_id="inc_0002",
                project_id="prj_0001",
                gross_amount=Money.of("60000"),
                vat_rate=Decimal("20"),
                vat_amount=Money.of("10000"),
                collected_amount=Money.of("30000"),
                description="Second milestone invoice",
            )
        )
        self.add_expense(
            Expense(
                expense_id="exp_0001",
                project_id="prj_0001",
                amount=Money.of("4200"),
                expense_share_type=ExpenseShareType.CLIENT,
                description="Field equipment rental",
            )
        )
        self.add_expense(
            Expense(
                expense_id="exp_0002",
                project_id="prj_0001",
                amount=Money.of("2000"),
                expense_share_type=ExpenseShareType.SHARED,
                description="Conference travel",
            )
        )
        self.add_representative(
            Representative("rep_0001", "prj_0001", PersonRef.user("usr_ayse"), RepresentativeRole.PROJECT_LEADER)
        )
        self.add_representative(Representative("rep_0002", "prj_0001", PersonRef.user("usr_mehmet")))
        self.add_representative(Representative("rep_0003", "prj_0001", PersonRef.personnel("per_zeynep")))
        self.add_income_distribution(
            IncomeDistribution("dist_0001", "inc_0001", PersonRef.user("usr_ayse"), Money.of("30000"))
        )
        LOGGER.debug("Seeded demo directory with %s projects", len(self._projects))
