"""Mini README: Collected-basis financial summary for a single project.

Structure:
    * FinancialSummary - reported figures, quantised to cents.
    * calculate_financial_summary - pure derivation from project, incomes, expenses.
    * ensure_income_within_budget - ceiling check applied when incomes are recorded.

Accounting policy encoded here:
    1. VAT is apportioned to what was collected, not what was invoiced:
       ``collected_vat = sum(vat_amount * collected / gross)``. An income with a
       zero gross amount contributes a zero ratio instead of failing.
    2. Commission is taken from the collected net amount.
    3. Client expenses reduce the pool in full; shared expenses only by the
       representatives' share ``(100 - commission_rate) / 100``. TTO expenses
       and the TTO share of shared expenses are settled elsewhere.
    4. Stamp duty and referee-board fees paid by the counter-party reduce the pool.
    5. The distributable amount never goes below zero.

Every intermediate value is exact; rounding happens once per reported field.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from decimal import Decimal
from typing import Dict, Iterable, Sequence

from ..errors import BudgetExceeded
from ..logging_utils import get_logger
from .models import Expense, Income, Project
from .money import Money

LOGGER = get_logger(__name__)

HUNDRED = Decimal(100)


@dataclass(frozen=True, slots=True)
class FinancialSummary:
    """Distributable amount and the figures it was derived from."""

    project_id: str
    commission_rate: Decimal
    # invoiced, informational only
    total_gross: Money
    total_vat: Money
    net_amount: Money
    # collected basis
    total_collected: Money
    collected_vat: Money
    collected_net: Money
    collected_commission: Money
    # deductions
    client_expenses: Money
    shared_expenses: Money
    shared_expenses_rep_portion: Money
    total_expense_deduction: Money
    stamp_duty_client_deducted: Money
    referee_client_deducted: Money
    total_stamp_referee_deduction: Money
    distributable_amount: Money

    def as_dict(self) -> Dict[str, str]:
        """Export figures as strings so JSON never sees a float."""

        payload: Dict[str, str] = {}
        for summary_field in fields(self):
            value = getattr(self, summary_field.name)
            payload[summary_field.name] = str(value)
        return payload


def _total(values: Iterable[Money]) -> Money:
    return Money.sum(values)


def calculate_financial_summary(
    project: Project,
    incomes: Sequence[Income],
    expenses: Sequence[Expense],
) -> FinancialSummary:
    """Derive the collected-basis distributable amount for ``project``."""

    rate = Decimal(project.commission_rate)

    total_gross = _total(income.gross_amount for income in incomes)
    total_vat = _total(income.vat_amount for income in incomes)
    total_collected = _total(income.collected_amount for income in incomes)
    collected_vat = _total(income.vat_amount * income.collection_ratio for income in incomes)

    collected_net = total_collected - collected_vat
    collected_commission = collected_net.percent(rate)
    distributable = collected_net - collected_commission

    client_expenses = _total(expense.amount for expense in expenses if expense.is_client_expense)
    shared_expenses = _total(expense.amount for expense in expenses if expense.is_shared_expense)
    shared_rep_portion = shared_expenses.percent(HUNDRED - rate)
    total_expense_deduction = client_expenses + shared_rep_portion
    distributable = distributable - total_expense_deduction

    stamp_referee = project.stamp_duty_client_deducted + project.referee_client_deducted
    distributable = distributable - stamp_referee

    if distributable.is_negative:
        LOGGER.debug(
            "Project %s deductions exceed collected net by %s; clamping to zero",
            project.project_id,
            -distributable,
        )
    distributable = distributable.clamp_non_negative()

    return FinancialSummary(
        project_id=project.project_id,
        commission_rate=rate,
        total_gross=total_gross.quantize(),
        total_vat=total_vat.quantize(),
        net_amount=(total_gross - total_vat).quantize(),
        total_collected=total_collected.quantize(),
        collected_vat=collected_vat.quantize(),
        collected_net=collected_net.quantize(),
        collected_commission=collected_commission.quantize(),
        client_expenses=client_expenses.quantize(),
        shared_expenses=shared_expenses.quantize(),
        shared_expenses_rep_portion=shared_rep_portion.quantize(),
        total_expense_deduction=total_expense_deduction.quantize(),
        stamp_duty_client_deducted=project.stamp_duty_client_deducted.quantize(),
        referee_client_deducted=project.referee_client_deducted.quantize(),
        total_stamp_referee_deduction=stamp_referee.quantize(),
        distributable_amount=distributable.quantize(),
    )


def ensure_income_within_budget(
    project: Project,
    existing_incomes: Iterable[Income],
    gross_amount: Money,
) -> None:
    """Reject an income that would push cumulative gross past the budget."""

    cumulative = _total(income.gross_amount for income in existing_incomes) + gross_amount
    if cumulative > project.budget:
        raise BudgetExceeded(
            f"Income of {gross_amount} would raise project {project.code} gross to "
            f"{cumulative}, above its budget of {project.budget}",
            details={"project_id": project.project_id, "budget": project.budget, "cumulative_gross": cumulative},
        )
