"""Mini README: Balance store package.

``store`` holds the per-person balances, the movement journal and the
``adjust_balance`` primitive every engine writes through. ``locks`` provides
the keyed locks that serialise work on one balance or one project.
"""

from .locks import KeyedLockRegistry
from .store import (
    Balance,
    BalanceStore,
    BalanceTransaction,
    BalanceTransactionType,
    split_income_against_debt,
)

__all__ = [
    "Balance",
    "BalanceStore",
    "BalanceTransaction",
    "BalanceTransactionType",
    "KeyedLockRegistry",
    "split_income_against_debt",
]
