"""
Recommendation Engine

Heuristic action items from the last 24 hours of observations. Best effort,
not authoritative.

Rules (in output order):
1. missing: the brand was absent on an engine (newest first, capped at 5)
2. uncited: the brand was present but the tracked domain was not among the
   observed URLs (newest first, scan capped at 10)
3. all clear: a single fallback entry when both rules come back empty

Each rule deduplicates its own results on (keyword, engine, kind). Buckets are
never interleaved or re-ranked.
"""

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import UUID

from src.database.models import utcnow
from src.database.repository import ProjectRepository
from src.engines.registry import EngineRegistry, KNOWN_ENGINES
from src.errors import NotFoundError
from src.observations.models import ObservationFilter, ObservationRecord, as_utc
from src.observations.store import ObservationStore
from src.utils.domain_filter import is_domain_cited

logger = logging.getLogger(__name__)

# Scan caps; starting defaults, overridable per engine instance
DEFAULT_MISSING_LIMIT = 5
DEFAULT_UNCITED_LIMIT = 10

ALL_CLEAR_ID = "all-clear"
UNKNOWN_KEYWORD = "Unknown"


class RecommendationKind(enum.Enum):
    MISSING = "missing"
    UNCITED = "uncited"


@dataclass(frozen=True)
class Recommendation:
    id: str
    message: str
    kind: RecommendationKind

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "message": self.message, "kind": self.kind.value}


class RecommendationEngine:
    """
    Usage:
        engine = RecommendationEngine(store, projects)
        for rec in engine.get_recommendations(project_id):
            print(rec.kind.value, rec.message)
    """

    def __init__(
        self,
        store: ObservationStore,
        projects: ProjectRepository,
        registry: Optional[EngineRegistry] = None,
        window: timedelta = timedelta(hours=24),
        missing_limit: int = DEFAULT_MISSING_LIMIT,
        uncited_limit: int = DEFAULT_UNCITED_LIMIT,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.projects = projects
        self.registry = registry
        self.window = window
        self.missing_limit = missing_limit
        self.uncited_limit = uncited_limit
        self._clock = clock

    def _engine_name(self, engine_id: str) -> str:
        if self.registry is not None:
            return self.registry.display_name(engine_id)
        return KNOWN_ENGINES.get(engine_id, engine_id)

    def get_recommendations(self, project_id: UUID, now: Optional[datetime] = None) -> List[Recommendation]:
        """Missing entries, then uncited entries, or a single all-clear entry."""
        project = self.projects.get_project(project_id)
        if project is None:
            raise NotFoundError(f"Project {project_id} not found")

        now = as_utc(now or self._clock())
        since = now - self.window

        missing = list(self.store.query(
            project_id,
            ObservationFilter(since=since, through=now, presence=False, limit=self.missing_limit),
        ))
        present = list(self.store.query(
            project_id,
            ObservationFilter(since=since, through=now, presence=True, limit=self.uncited_limit),
        ))
        uncited = [obs for obs in present if not is_domain_cited(obs.observed_urls, project.domain)]

        keywords = self.projects.get_keywords({obs.keyword_id for obs in missing + uncited})

        def keyword_text(obs: ObservationRecord) -> str:
            keyword = keywords.get(obs.keyword_id)
            return keyword.text if keyword else UNKNOWN_KEYWORD

        recommendations: List[Recommendation] = []

        for obs in _dedupe(missing, RecommendationKind.MISSING):
            recommendations.append(Recommendation(
                id=f"miss-{obs.keyword_id}-{obs.engine}",
                message=(
                    f"Your brand is missing on {self._engine_name(obs.engine)} "
                    f'for the keyword: "{keyword_text(obs)}"'
                ),
                kind=RecommendationKind.MISSING,
            ))

        for obs in _dedupe(uncited, RecommendationKind.UNCITED):
            recommendations.append(Recommendation(
                id=f"cite-{obs.keyword_id}-{obs.engine}",
                message=(
                    f"You are present on {self._engine_name(obs.engine)} for "
                    f'"{keyword_text(obs)}" but your domain {project.domain} was not cited.'
                ),
                kind=RecommendationKind.UNCITED,
            ))

        if not recommendations:
            recommendations.append(Recommendation(
                id=ALL_CLEAR_ID,
                message=(
                    "Great job! Your brand has strong visibility across all AI engines. "
                    "Keep monitoring for changes."
                ),
                kind=RecommendationKind.UNCITED,
            ))

        logger.debug(
            f"Recommendations for project {project_id}: "
            f"{len(missing)} missing scanned, {len(present)} present scanned, {len(recommendations)} emitted"
        )
        return recommendations


def _dedupe(observations: List[ObservationRecord], kind: RecommendationKind) -> List[ObservationRecord]:
    """Keep the first (newest) observation per (keyword, engine, kind)."""
    seen = set()
    unique = []
    for obs in observations:
        key: Tuple[UUID, str, RecommendationKind] = (obs.keyword_id, obs.engine, kind)
        if key in seen:
            continue
        seen.add(key)
        unique.append(obs)
    return unique
