"""Mini README: Core package initializer for the TTO ledger.

The ledger computes project financial summaries, lets project staff
allocate distributable money to representatives' balances and turns those
balances into payment instructions. This module re-exports the handful of
names most callers need so the package layout can stay an implementation
detail.
"""

from .finance import Money
from .logging_utils import get_logger
from .service import LedgerService, build_demo_service

__all__ = ["LedgerService", "Money", "build_demo_service", "get_logger"]
