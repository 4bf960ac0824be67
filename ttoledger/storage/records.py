"""Mini README: Records the engines write and their in-memory repositories.

Structure:
    * ManualBalanceAllocation - signed credit/debit of a person on a project.
    * PaymentStatus - payment instruction lifecycle states.
    * PaymentInstruction / PaymentInstructionItem - payout request and its lines.
    * AllocationRepository - insert/delete/sum allocations per project.
    * PaymentInstructionRepository - instructions and items kept in separate
      tables so a failed creation can be unwound step by step.

Repositories hand out copies so engines never mutate stored rows in place.
Each repository guards its dictionaries with a lock; serialising whole
business operations is the engines' job.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterable, List, Optional

from ..errors import NotFound
from ..finance.models import PersonRef
from ..finance.money import Money
from ..logging_utils import get_logger

LOGGER = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class ManualBalanceAllocation:
    """Administrator-entered credit (positive) or debit (negative)."""

    allocation_id: str
    project_id: str
    person: PersonRef
    amount: Money
    notes: Optional[str]
    created_by: str
    created_at: datetime = field(default_factory=_utcnow)

    def as_dict(self) -> Dict[str, object]:
        """Render the allocation for JSON responses."""

        return {
            "allocation_id": self.allocation_id,
            "project_id": self.project_id,
            **self.person.as_dict(),
            "amount": str(self.amount),
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat(),
        }


class PaymentStatus(str, Enum):
    """Lifecycle states of a payment instruction."""

    PENDING = "pending"
    APPROVED = "approved"
    PROCESSING = "processing"
    COMPLETED = "completed"
    REJECTED = "rejected"

    @classmethod
    def from_str(cls, value: str) -> "PaymentStatus":
        """Coerce arbitrary casing into a valid status."""

        try:
            return cls(value.strip().lower())
        except (ValueError, AttributeError) as error:
            raise ValueError(f"Unsupported payment status: {value}") from error


@dataclass(slots=True)
class PaymentInstructionItem:
    """One line of a payment instruction."""

    item_id: str
    instruction_id: str
    amount: Money
    description: str = ""
    income_distribution_id: Optional[str] = None

    def as_dict(self) -> Dict[str, object]:
        """Render the item for JSON responses."""

        return {
            "item_id": self.item_id,
            "amount": str(self.amount),
            "description": self.description,
            "income_distribution_id": self.income_distribution_id,
        }


@dataclass(slots=True)
class PaymentInstruction:
    """Request to pay ``total_amount`` from the recipient's balance."""

    instruction_id: str
    instruction_number: str
    recipient: PersonRef
    total_amount: Money
    status: PaymentStatus
    notes: Optional[str]
    created_by: str
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: Optional[datetime] = None
    items: List[PaymentInstructionItem] = field(default_factory=list)

    def as_dict(self) -> Dict[str, object]:
        """Render the instruction and its items for JSON responses."""

        return {
            "instruction_id": self.instruction_id,
            "instruction_number": self.instruction_number,
            **self.recipient.as_dict(),
            "total_amount": str(self.total_amount),
            "status": self.status.value,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "items": [item.as_dict() for item in self.items],
        }


class AllocationRepository:
    """Manual allocations keyed by id."""

    def __init__(self, allocations: Optional[Iterable[ManualBalanceAllocation]] = None) -> None:
        self._allocations: Dict[str, ManualBalanceAllocation] = {}
        self._sequence = 0
        self._guard = threading.Lock()
        for allocation in allocations or []:
            self.insert(allocation)

    def next_id(self) -> str:
        """Allocate the next ``alloc_`` id."""

        with self._guard:
            self._sequence += 1
            return f"alloc_{self._sequence:06d}"

    def insert(self, allocation: ManualBalanceAllocation) -> ManualBalanceAllocation:
        """Store a copy of ``allocation``; ids must be unique."""

        with self._guard:
            if allocation.allocation_id in self._allocations:
                raise ValueError(f"Allocation {allocation.allocation_id} already exists.")
            self._allocations[allocation.allocation_id] = replace(allocation)
        LOGGER.debug("Inserted allocation %s", allocation.allocation_id)
        return allocation

    def delete(self, allocation_id: str) -> None:
        """Remove an allocation; unknown ids are ignored."""

        with self._guard:
            self._allocations.pop(allocation_id, None)
        LOGGER.debug("Deleted allocation %s", allocation_id)

    def get(self, allocation_id: str) -> ManualBalanceAllocation:
        """Return a copy of the allocation or raise ``NotFound``."""

        with self._guard:
            if allocation_id not in self._allocations:
                raise NotFound(f"Allocation {allocation_id} not found")
            return replace(self._allocations[allocation_id])

    def list_for_project(self, project_id: str) -> List[ManualBalanceAllocation]:
        """Return the project's allocations ordered by id."""

        with self._guard:
            rows = [replace(row) for row in self._allocations.values() if row.project_id == project_id]
        return sorted(rows, key=lambda row: row.allocation_id)

    def sum_for_project(self, project_id: str) -> Money:
        """Total of all signed allocations on the project."""

        return Money.sum(row.amount for row in self.list_for_project(project_id))

    def sums_by_person(self, project_id: str) -> Dict[PersonRef, Money]:
        """Signed allocation totals per person on the project."""

        totals: Dict[PersonRef, Money] = {}
        for row in self.list_for_project(project_id):
            totals[row.person] = totals.get(row.person, Money.zero()) + row.amount
        return totals


class PaymentInstructionRepository:
    """Instructions and their items, stored separately."""

    def __init__(self, *, number_prefix: str = "PAY") -> None:
        self.number_prefix = number_prefix
        self._instructions: Dict[str, PaymentInstruction] = {}
        self._items: Dict[str, List[PaymentInstructionItem]] = {}
        self._sequence = 0
        self._item_sequence = 0
        self._yearly_numbers: Dict[int, int] = {}
        self._guard = threading.Lock()

    def next_id(self) -> str:
        """Allocate the next ``pi_`` id."""

        with self._guard:
            self._sequence += 1
            return f"pi_{self._sequence:06d}"

    def next_item_id(self) -> str:
        """Allocate the next ``pii_`` id."""

        with self._guard:
            self._item_sequence += 1
            return f"pii_{self._item_sequence:06d}"

    def next_instruction_number(self, year: Optional[int] = None) -> str:
        """Return ``PAY-<year>-<sequence>`` with a per-year counter."""

        year = year or _utcnow().year
        with self._guard:
            sequence = self._yearly_numbers.get(year, 0) + 1
            self._yearly_numbers[year] = sequence
        return f"{self.number_prefix}-{year}-{sequence:03d}"

    def insert_instruction(self, instruction: PaymentInstruction) -> PaymentInstruction:
        """Store the instruction row without its items."""

        with self._guard:
            if instruction.instruction_id in self._instructions:
                raise ValueError(f"Payment instruction {instruction.instruction_id} already exists.")
            self._instructions[instruction.instruction_id] = replace(instruction, items=[])
        LOGGER.debug("Inserted payment instruction %s", instruction.instruction_id)
        return instruction

    def insert_items(self, instruction_id: str, items: Iterable[PaymentInstructionItem]) -> List[PaymentInstructionItem]:
        """Append item rows to an existing instruction."""

        rows = [replace(item) for item in items]
        with self._guard:
            if instruction_id not in self._instructions:
                raise NotFound(f"Payment instruction {instruction_id} not found")
            self._items.setdefault(instruction_id, []).extend(rows)
        LOGGER.debug("Inserted %s items for payment instruction %s", len(rows), instruction_id)
        return rows

    def delete_items(self, instruction_id: str) -> None:
        """Remove every item row of the instruction."""

        with self._guard:
            self._items.pop(instruction_id, None)

    def delete_instruction(self, instruction_id: str) -> None:
        """Remove the instruction together with its items."""

        with self._guard:
            self._items.pop(instruction_id, None)
            self._instructions.pop(instruction_id, None)
        LOGGER.debug("Deleted payment instruction %s", instruction_id)

    def get(self, instruction_id: str) -> PaymentInstruction:
        """Return a copy of the instruction with its items or raise ``NotFound``."""

        with self._guard:
            if instruction_id not in self._instructions:
                raise NotFound(
                    f"Payment instruction {instruction_id} not found",
                    details={"instruction_id": instruction_id},
                )
            instruction = replace(self._instructions[instruction_id])
            instruction.items = [replace(item) for item in self._items.get(instruction_id, [])]
        return instruction

    def items_for(self, instruction_id: str) -> List[PaymentInstructionItem]:
        """Return copies of the instruction's item rows."""

        with self._guard:
            return [replace(item) for item in self._items.get(instruction_id, [])]

    def update_status(self, instruction_id: str, status: PaymentStatus) -> PaymentInstruction:
        """Set a new status and return the refreshed instruction."""

        with self._guard:
            if instruction_id not in self._instructions:
                raise NotFound(f"Payment instruction {instruction_id} not found")
            stored = self._instructions[instruction_id]
            stored.status = status
            stored.updated_at = _utcnow()
        return self.get(instruction_id)

    def list_instructions(
        self,
        recipient: Optional[PersonRef] = None,
        status: Optional[PaymentStatus] = None,
    ) -> List[PaymentInstruction]:
        """Return matching instructions with their items, newest first."""

        rows: List[PaymentInstruction] = []
        with self._guard:
            for key in sorted(self._instructions, reverse=True):
                stored = self._instructions[key]
                if recipient is not None and stored.recipient != recipient:
                    continue
                if status is not None and stored.status is not status:
                    continue
                row = replace(stored)
                row.items = [replace(item) for item in self._items.get(key, [])]
                rows.append(row)
        return rows

    def __len__(self) -> int:
        return len(self._instructions)

    def item_count(self) -> int:
        """Number of item rows across all instructions."""

        with self._guard:
            return sum(len(rows) for rows in self._items.values())
