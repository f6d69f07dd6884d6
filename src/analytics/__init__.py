"""
Read-side analytics over the observation log.

Usage:
    from src.analytics import AnalyticsAggregator, RecommendationEngine

    kpis = AnalyticsAggregator(store, projects).get_kpis(project_id)
    recs = RecommendationEngine(store, projects).get_recommendations(project_id)
"""

from .aggregator import (
    AnalyticsAggregator,
    KpiSnapshot,
    TrendPoint,
    visibility_percentage,
)
from .recommendations import (
    ALL_CLEAR_ID,
    DEFAULT_MISSING_LIMIT,
    DEFAULT_UNCITED_LIMIT,
    Recommendation,
    RecommendationEngine,
    RecommendationKind,
)

__all__ = [
    "AnalyticsAggregator",
    "KpiSnapshot",
    "TrendPoint",
    "visibility_percentage",
    "ALL_CLEAR_ID",
    "DEFAULT_MISSING_LIMIT",
    "DEFAULT_UNCITED_LIMIT",
    "Recommendation",
    "RecommendationEngine",
    "RecommendationKind",
]
