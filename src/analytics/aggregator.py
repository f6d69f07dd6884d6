"""
Analytics Aggregator

Derives a project's headline KPIs and its daily visibility trend from the
observation log. Nothing here is persisted; every call reads the store.

KPIs (trailing 24h window):
- visibility_score: % of observations with presence, 0 for an empty window
- total_keywords: keywords tracked under the project
- engines_covered: distinct engines seen in the window

Trend (trailing 30 UTC calendar days, today included):
- one point per day that has observations, ascending; empty days are omitted
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID

from src.database.models import utcnow
from src.database.repository import ProjectInfo, ProjectRepository
from src.errors import NotFoundError
from src.observations.models import ObservationFilter, as_utc
from src.observations.store import ObservationStore

logger = logging.getLogger(__name__)


def visibility_percentage(present: int, total: int) -> float:
    """100 * present / total, rounded to one decimal; 0 when total is 0."""
    if total <= 0:
        return 0.0
    return round(100.0 * present / total, 1)


@dataclass(frozen=True)
class KpiSnapshot:
    visibility_score: float
    total_keywords: int
    engines_covered: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "visibility_score": self.visibility_score,
            "total_keywords": self.total_keywords,
            "engines_covered": self.engines_covered,
        }


@dataclass(frozen=True)
class TrendPoint:
    day: date
    visibility: float

    def to_dict(self) -> Dict[str, Any]:
        return {"day": self.day.isoformat(), "visibility": self.visibility}


class AnalyticsAggregator:
    """
    Usage:
        aggregator = AnalyticsAggregator(store, projects)
        kpis = aggregator.get_kpis(project_id)
        trend = aggregator.get_trend(project_id)
    """

    def __init__(
        self,
        store: ObservationStore,
        projects: ProjectRepository,
        kpi_window: timedelta = timedelta(hours=24),
        trend_days: int = 30,
        clock: Callable[[], datetime] = utcnow,
    ):
        if trend_days < 1:
            raise ValueError(f"trend_days must be >= 1, got {trend_days}")
        self.store = store
        self.projects = projects
        self.kpi_window = kpi_window
        self.trend_days = trend_days
        self._clock = clock

    def _require_project(self, project_id: UUID) -> ProjectInfo:
        project = self.projects.get_project(project_id)
        if project is None:
            raise NotFoundError(f"Project {project_id} not found")
        return project

    def get_kpis(self, project_id: UUID, now: Optional[datetime] = None) -> KpiSnapshot:
        """Headline KPIs over the trailing KPI window."""
        self._require_project(project_id)
        now = as_utc(now or self._clock())

        total = 0
        present = 0
        engines = set()
        window = ObservationFilter(since=now - self.kpi_window, through=now)
        for obs in self.store.query(project_id, window):
            total += 1
            if obs.presence:
                present += 1
            engines.add(obs.engine)

        snapshot = KpiSnapshot(
            visibility_score=visibility_percentage(present, total),
            total_keywords=self.projects.count_keywords(project_id),
            engines_covered=len(engines),
        )
        logger.debug(f"KPIs for project {project_id}: {snapshot} from {total} observations")
        return snapshot

    def trend_start(self, now: datetime) -> datetime:
        """Midnight UTC of the oldest day in the trend window."""
        first_day = as_utc(now).date() - timedelta(days=self.trend_days - 1)
        return datetime.combine(first_day, time.min, tzinfo=timezone.utc)

    def get_trend(self, project_id: UUID, now: Optional[datetime] = None) -> List[TrendPoint]:
        """Daily visibility over the trailing trend window, oldest day first."""
        self._require_project(project_id)
        now = as_utc(now or self._clock())

        totals: Dict[date, int] = defaultdict(int)
        present: Dict[date, int] = defaultdict(int)
        window = ObservationFilter(since=self.trend_start(now), through=now)
        for obs in self.store.query(project_id, window):
            day = obs.timestamp.date()
            totals[day] += 1
            if obs.presence:
                present[day] += 1

        return [
            TrendPoint(day=day, visibility=visibility_percentage(present[day], totals[day]))
            for day in sorted(totals)
        ]
