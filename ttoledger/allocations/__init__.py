"""Mini README: Manual allocation engine package.

``engine`` exposes ``AllocationEngine`` which summarises a project's team
allocations and records new credits or debits without ever letting the sum
of a project's allocations pass its distributable amount.
"""

from .engine import AllocationEngine, ProjectAllocationSummary, TeamMember

__all__ = ["AllocationEngine", "ProjectAllocationSummary", "TeamMember"]
