"""
Observation log: immutable records and the append-only store.

Usage:
    from src.observations import ObservationStore, ObservationFilter

    store = ObservationStore()
    for obs in store.query(project_id, ObservationFilter(presence=False, limit=5)):
        ...
"""

from .models import ObservationRecord, ObservationFilter, as_utc
from .store import ObservationStore

__all__ = [
    "ObservationRecord",
    "ObservationFilter",
    "ObservationStore",
    "as_utc",
]
