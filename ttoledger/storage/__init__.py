"""Mini README: Storage layer for the TTO ledger.

``directory`` is the read side (projects, incomes, expenses, people,
representative links). ``records`` holds what the engines write: manual
allocations and payment instructions. Both are in-memory so they can be
replaced by database-backed implementations exposing the same methods.
"""

from .directory import InMemoryProjectDirectory, ProjectDirectory
from .records import (
    AllocationRepository,
    ManualBalanceAllocation,
    PaymentInstruction,
    PaymentInstructionItem,
    PaymentInstructionRepository,
    PaymentStatus,
)

__all__ = [
    "AllocationRepository",
    "InMemoryProjectDirectory",
    "ManualBalanceAllocation",
    "PaymentInstruction",
    "PaymentInstructionItem",
    "PaymentInstructionRepository",
    "PaymentStatus",
    "ProjectDirectory",
]
