"""
Visibility Service

Wires the pipeline together from settings:
1. Engine registry (configured engines + entry-point plugins)
2. Observation store and project repository on the shared database
3. Run leases (Redis when REDIS_URL is set)
4. Check orchestrator, analytics aggregator, recommendation engine

Module-level run_check / get_kpis / get_trend / get_recommendations use the
process-wide service.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from functools import lru_cache
from typing import List, Optional, Union
from uuid import UUID

from sqlalchemy.orm import sessionmaker

from src.analytics import (
    AnalyticsAggregator,
    KpiSnapshot,
    Recommendation,
    RecommendationEngine,
    TrendPoint,
)
from src.checks import CheckOrchestrator, RunLeaseManager, create_lease_manager
from src.database.repository import ProjectRepository
from src.engines import EngineRegistry, build_registry
from src.observations import ObservationRecord, ObservationStore
from src.utils.config import Settings, get_settings

logger = logging.getLogger(__name__)


@dataclass
class VisibilityService:
    """Everything a caller needs, built once."""
    registry: EngineRegistry
    store: ObservationStore
    projects: ProjectRepository
    leases: RunLeaseManager
    orchestrator: CheckOrchestrator
    aggregator: AnalyticsAggregator
    recommendations: RecommendationEngine


def create_visibility_service(
    settings: Optional[Settings] = None,
    session_factory: Optional[sessionmaker] = None,
    registry: Optional[EngineRegistry] = None,
    leases: Optional[RunLeaseManager] = None,
) -> VisibilityService:
    """
    Build the pipeline.

    Args:
        settings: Application settings (defaults to environment)
        session_factory: Database sessions (defaults to the global factory)
        registry: Engine registry (defaults to build_registry(settings))
        leases: Run lease backend (defaults to create_lease_manager(REDIS_URL))
    """
    settings = settings or get_settings()
    registry = registry or build_registry(settings)
    leases = leases or create_lease_manager(settings.REDIS_URL)

    store = ObservationStore(session_factory)
    projects = ProjectRepository(session_factory)

    orchestrator = CheckOrchestrator(
        registry=registry,
        store=store,
        projects=projects,
        leases=leases,
        timeout=settings.ENGINE_TIMEOUT,
        max_retries=settings.ENGINE_MAX_RETRIES,
        retry_delay=settings.ENGINE_RETRY_DELAY,
        lease_ttl=settings.lease_ttl,
    )
    aggregator = AnalyticsAggregator(
        store,
        projects,
        kpi_window=timedelta(hours=settings.KPI_WINDOW_HOURS),
        trend_days=settings.TREND_DAYS,
    )
    recommendations = RecommendationEngine(
        store,
        projects,
        registry=registry,
        window=timedelta(hours=settings.KPI_WINDOW_HOURS),
        missing_limit=settings.MISSING_SCAN_LIMIT,
        uncited_limit=settings.UNCITED_SCAN_LIMIT,
    )

    logger.info(f"Visibility service ready with {len(registry)} engines")
    return VisibilityService(
        registry=registry,
        store=store,
        projects=projects,
        leases=leases,
        orchestrator=orchestrator,
        aggregator=aggregator,
        recommendations=recommendations,
    )


@lru_cache(maxsize=1)
def get_visibility_service() -> VisibilityService:
    """Get the process-wide service."""
    return create_visibility_service()


# =============================================================================
# CALLABLE QUERY INTERFACES
# =============================================================================

async def run_check(keyword_id: Union[str, UUID], requester_user_id: Union[str, UUID]) -> List[ObservationRecord]:
    return await get_visibility_service().orchestrator.run_check(keyword_id, requester_user_id)


def get_kpis(project_id: UUID) -> KpiSnapshot:
    return get_visibility_service().aggregator.get_kpis(project_id)


def get_trend(project_id: UUID) -> List[TrendPoint]:
    return get_visibility_service().aggregator.get_trend(project_id)


def get_recommendations(project_id: UUID) -> List[Recommendation]:
    return get_visibility_service().recommendations.get_recommendations(project_id)
