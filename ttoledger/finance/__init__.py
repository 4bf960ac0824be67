"""Mini README: Finance primitives for the TTO ledger.

This package groups the money value type, the project/income/expense input
records and the pure financial summary calculator. Nothing here writes;
engines in ``balances``, ``allocations`` and ``payments`` build on it.
"""

from .models import (
    Expense,
    ExpenseShareType,
    ExpenseType,
    Income,
    IncomeDistribution,
    Person,
    PersonRef,
    PersonType,
    Project,
    ProjectStatus,
    Representative,
    RepresentativeRole,
)
from .money import CENT, Money
from .summary import FinancialSummary, calculate_financial_summary, ensure_income_within_budget

__all__ = [
    "CENT",
    "Expense",
    "ExpenseShareType",
    "ExpenseType",
    "FinancialSummary",
    "Income",
    "IncomeDistribution",
    "Money",
    "Person",
    "PersonRef",
    "PersonType",
    "Project",
    "ProjectStatus",
    "Representative",
    "RepresentativeRole",
    "calculate_financial_summary",
    "ensure_income_within_budget",
]
