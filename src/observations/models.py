"""
Observation Data Models

ObservationRecord is the immutable fact unit handed between the orchestrator,
the store and the analytics readers. ORM rows never leave the store.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo), convert aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class ObservationRecord:
    """Did the brand appear for a keyword on an engine at an instant."""

    id: UUID
    keyword_id: UUID
    project_id: UUID
    owner_user_id: UUID
    engine: str
    presence: bool
    timestamp: datetime
    position: Optional[int] = None
    answer_snippet: str = ""
    citations_count: int = 0
    observed_urls: Tuple[str, ...] = ()
    is_degraded: bool = False

    def invariant_violations(self) -> List[str]:
        """Describe every broken field invariant (empty when valid)."""
        problems = []
        if self.presence and self.position is None:
            problems.append("position is required when presence is true")
        if not self.presence and self.position is not None:
            problems.append("position must be null when presence is false")
        if self.position is not None and self.position < 1:
            problems.append(f"position must be >= 1 (got {self.position})")
        if self.citations_count < 0:
            problems.append(f"citations_count must be >= 0 (got {self.citations_count})")
        if not self.presence and self.citations_count != 0:
            problems.append("citations_count must be 0 when presence is false")
        if not self.engine:
            problems.append("engine is required")
        return problems

    @classmethod
    def from_row(cls, row) -> "ObservationRecord":
        """Build a record from an ORM Observation row."""
        return cls(
            id=row.id,
            keyword_id=row.keyword_id,
            project_id=row.project_id,
            owner_user_id=row.owner_user_id,
            engine=row.engine,
            presence=bool(row.presence),
            position=row.position,
            answer_snippet=row.answer_snippet or "",
            citations_count=row.citations_count or 0,
            observed_urls=tuple(row.observed_urls or ()),
            is_degraded=bool(row.is_degraded),
            timestamp=as_utc(row.timestamp),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with the persisted-schema field names."""
        return {
            "id": str(self.id),
            "keyword_id": str(self.keyword_id),
            "project_id": str(self.project_id),
            "owner_user_id": str(self.owner_user_id),
            "engine": self.engine,
            "presence": self.presence,
            "position": self.position,
            "answer_snippet": self.answer_snippet,
            "citations_count": self.citations_count,
            "observed_urls": list(self.observed_urls),
            "is_degraded": self.is_degraded,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class ObservationFilter:
    """
    Query filters for the observation store.

    since and through are inclusive, until is exclusive. None means unfiltered.
    Trailing windows read "since <= timestamp <= through" with through = now.
    """

    since: Optional[datetime] = None
    until: Optional[datetime] = None
    through: Optional[datetime] = None
    engine: Optional[str] = None
    presence: Optional[bool] = None
    keyword_id: Optional[UUID] = None
    limit: Optional[int] = None
