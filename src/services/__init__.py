"""Service layer wiring the visibility pipeline together."""

from .visibility import (
    VisibilityService,
    create_visibility_service,
    get_visibility_service,
    run_check,
    get_kpis,
    get_trend,
    get_recommendations,
)

__all__ = [
    "VisibilityService",
    "create_visibility_service",
    "get_visibility_service",
    "run_check",
    "get_kpis",
    "get_trend",
    "get_recommendations",
]
