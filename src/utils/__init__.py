"""Utility modules for the AI visibility tracker."""

from .config import Settings, get_settings
from .domain_filter import (
    normalize_domain,
    url_matches_domain,
    is_domain_cited,
    first_citation_position,
)

__all__ = [
    "Settings",
    "get_settings",
    # Domain matching
    "normalize_domain",
    "url_matches_domain",
    "is_domain_cited",
    "first_citation_position",
]
