"""
Check orchestration: fan-out across engines, run leases, atomic commit.

Usage:
    from src.checks import CheckOrchestrator, InMemoryLeaseManager

    orchestrator = CheckOrchestrator(registry, store, projects, InMemoryLeaseManager())
    observations = await orchestrator.run_check(keyword_id, requester_user_id)
"""

from .lease import (
    Lease,
    RunLeaseManager,
    InMemoryLeaseManager,
    RedisLeaseManager,
    create_lease_manager,
)
from .orchestrator import CheckOrchestrator, UNAVAILABLE_TAG

__all__ = [
    "Lease",
    "RunLeaseManager",
    "InMemoryLeaseManager",
    "RedisLeaseManager",
    "create_lease_manager",
    "CheckOrchestrator",
    "UNAVAILABLE_TAG",
]
