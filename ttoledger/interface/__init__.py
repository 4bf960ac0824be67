"""Mini README: Interfaces (HTTP) for the TTO ledger.

Exports the FastAPI application factory that exposes financial summaries,
manual allocations, payment instructions and balances as JSON.
"""

from .web_app import create_application

__all__ = ["create_application"]
