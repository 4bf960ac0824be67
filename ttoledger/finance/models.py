"""Mini README: Domain records read by the ledger engines.

Structure:
    * ProjectStatus / ExpenseType / ExpenseShareType / RepresentativeRole / PersonType - enums.
    * PersonRef - identifies exactly one user or personnel record.
    * Person - recipient details (IBAN, activity flag).
    * Project, Income, Expense, Representative, IncomeDistribution - inputs.

These records are created by finance staff elsewhere and are never mutated
by the engines; they are plain slotted dataclasses holding ``Money`` values.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional

from .money import Money


class ProjectStatus(str, Enum):
    """Lifecycle state of a project."""

    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_closed(self) -> bool:
        """Completed and cancelled projects accept no new distributions."""

        return self is not ProjectStatus.ACTIVE


class ExpenseType(str, Enum):
    """``genel`` expenses belong to the organisation, ``proje`` ones to a project."""

    GENERAL = "genel"
    PROJECT = "proje"


class ExpenseShareType(str, Enum):
    """Who carries a project expense."""

    CLIENT = "client"
    SHARED = "shared"


class RepresentativeRole(str, Enum):
    PROJECT_LEADER = "project_leader"
    RESEARCHER = "researcher"


class PersonType(str, Enum):
    """The two kinds of payable person."""

    USER = "user"
    PERSONNEL = "personnel"

    @classmethod
    def from_str(cls, value: str) -> "PersonType":
        """Coerce arbitrary casing into a valid person type."""

        try:
            return cls(value.strip().lower())
        except (ValueError, AttributeError) as error:
            raise ValueError(f"Unsupported person type: {value}") from error


@dataclass(frozen=True, slots=True)
class PersonRef:
    """Reference to exactly one user or personnel record."""

    kind: PersonType
    person_id: str

    @classmethod
    def user(cls, user_id: str) -> "PersonRef":
        """Reference an academic staff user."""

        return cls(PersonType.USER, user_id)

    @classmethod
    def personnel(cls, personnel_id: str) -> "PersonRef":
        """Reference an external personnel record."""

        return cls(PersonType.PERSONNEL, personnel_id)

    @classmethod
    def from_ids(cls, user_id: Optional[str] = None, personnel_id: Optional[str] = None) -> "PersonRef":
        """Build a reference from the two nullable columns the API accepts."""

        if bool(user_id) == bool(personnel_id):
            raise ValueError("Exactly one of user_id or personnel_id is required")
        if user_id:
            return cls.user(user_id)
        return cls.personnel(personnel_id)  # type: ignore[arg-type]

    @property
    def user_id(self) -> Optional[str]:
        """The id when this is a user reference."""

        return self.person_id if self.kind is PersonType.USER else None

    @property
    def personnel_id(self) -> Optional[str]:
        """The id when this is a personnel reference."""

        return self.person_id if self.kind is PersonType.PERSONNEL else None

    def as_dict(self) -> Dict[str, Optional[str]]:
        """Render as the two nullable id columns."""

        return {"user_id": self.user_id, "personnel_id": self.personnel_id}

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.person_id}"


@dataclass(slots=True)
class Person:
    """A payable person: academic staff user or external personnel."""

    ref: PersonRef
    full_name: str
    email: str = ""
    iban: Optional[str] = None
    is_active: bool = True

    @property
    def has_iban(self) -> bool:
        """True when a non-blank IBAN is on file."""

        return bool(self.iban and self.iban.strip())


@dataclass(slots=True)
class Project:
    """Research project whose collected income is distributed."""

    project_id: str
    code: str
    name: str
    commission_rate: Decimal
    budget: Money
    status: ProjectStatus = ProjectStatus.ACTIVE
    stamp_duty_client_deducted: Money = field(default_factory=Money.zero)
    referee_client_deducted: Money = field(default_factory=Money.zero)


@dataclass(slots=True)
class Income:
    """Invoiced income; ``vat_amount`` is already net of withholding tax."""

    income_id: str
    project_id: str
    gross_amount: Money
    vat_rate: Decimal
    vat_amount: Money
    collected_amount: Money = field(default_factory=Money.zero)
    description: str = ""

    @property
    def collection_ratio(self) -> Decimal:
        """Share of the gross amount actually collected; zero when gross is zero."""

        return self.collected_amount.ratio_of(self.gross_amount)


@dataclass(slots=True)
class Expense:
    """Expense charged to a project or, without a project, to the organisation."""

    expense_id: str
    amount: Money
    project_id: Optional[str] = None
    is_tto_expense: bool = False
    expense_share_type: Optional[ExpenseShareType] = None
    description: str = ""

    @property
    def expense_type(self) -> ExpenseType:
        """``proje`` when linked to a project, ``genel`` otherwise."""

        return ExpenseType.PROJECT if self.project_id else ExpenseType.GENERAL

    @property
    def is_client_expense(self) -> bool:
        """Client expenses reduce the distributable pool in full."""

        if self.is_tto_expense:
            return False
        return self.expense_share_type in (None, ExpenseShareType.CLIENT)

    @property
    def is_shared_expense(self) -> bool:
        """Shared expenses reduce it by the representatives' share only."""

        return not self.is_tto_expense and self.expense_share_type is ExpenseShareType.SHARED


@dataclass(slots=True)
class Representative:
    """Links a person to a project they may receive distributions from."""

    representative_id: str
    project_id: str
    person: PersonRef
    role: RepresentativeRole = RepresentativeRole.RESEARCHER


@dataclass(slots=True)
class IncomeDistribution:
    """Pre-existing entitlement of a person to part of an income."""

    distribution_id: str
    income_id: str
    person: PersonRef
    amount: Money
