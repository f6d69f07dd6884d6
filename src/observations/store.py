"""
Observation Store

Append-only persistence of observations; the source of truth for every KPI,
trend and recommendation.

Write path (used only by the check orchestrator, after its ownership check):
- append_batch() writes a whole run in one transaction or nothing
- Rows whose project/owner copies disagree with their keyword are rejected

Read path:
- query() lazily streams records, newest first
"""

import logging
from typing import Iterator, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from src.database.models import Keyword, Observation
from src.database.session import get_db_context
from src.errors import ObservationIntegrityError, PersistenceError
from src.observations.models import ObservationFilter, ObservationRecord, as_utc

logger = logging.getLogger(__name__)

# Rows fetched per round-trip while streaming query results
QUERY_BATCH_SIZE = 500


class ObservationStore:
    """
    SQLAlchemy-backed observation log.

    Appends to different keywords need no coordination; appends to the same
    keyword are serialized by the run lease, not here.
    """

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self.session_factory = session_factory

    # =========================================================================
    # Write path
    # =========================================================================

    def append_batch(self, records: Sequence[ObservationRecord]) -> List[ObservationRecord]:
        """
        Atomically append a batch of observations.

        Raises:
            ObservationIntegrityError: A record broke a field or denormalization invariant
            PersistenceError: The database write failed; nothing was committed
        """
        records = list(records)
        if not records:
            return []

        for record in records:
            problems = record.invariant_violations()
            if problems:
                raise ObservationIntegrityError(
                    f"Observation {record.id} ({record.engine}) rejected: {'; '.join(problems)}"
                )

        try:
            with get_db_context(self.session_factory) as db:
                keyword_ids = {r.keyword_id for r in records}
                keywords = {
                    k.id: k
                    for k in db.scalars(select(Keyword).where(Keyword.id.in_(keyword_ids)))
                }

                for record in records:
                    keyword = keywords.get(record.keyword_id)
                    if keyword is None:
                        raise ObservationIntegrityError(
                            f"Observation {record.id} references unknown keyword {record.keyword_id}"
                        )
                    if record.project_id != keyword.project_id:
                        raise ObservationIntegrityError(
                            f"Observation {record.id} project {record.project_id} does not match "
                            f"keyword project {keyword.project_id}"
                        )
                    if record.owner_user_id != keyword.owner_user_id:
                        raise ObservationIntegrityError(
                            f"Observation {record.id} owner does not match keyword owner"
                        )

                db.add_all([self._to_row(r) for r in records])

        except ObservationIntegrityError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Failed to append batch of {len(records)} observations: {e}")
            raise PersistenceError(f"Failed to store observations: {e}") from e

        logger.debug(f"Appended {len(records)} observations")
        return records

    @staticmethod
    def _to_row(record: ObservationRecord) -> Observation:
        return Observation(
            id=record.id,
            keyword_id=record.keyword_id,
            project_id=record.project_id,
            owner_user_id=record.owner_user_id,
            engine=record.engine,
            presence=record.presence,
            position=record.position,
            answer_snippet=record.answer_snippet,
            citations_count=record.citations_count,
            observed_urls=list(record.observed_urls),
            is_degraded=record.is_degraded,
            timestamp=as_utc(record.timestamp),
        )

    # =========================================================================
    # Read path
    # =========================================================================

    def query(
        self,
        project_id: UUID,
        filters: Optional[ObservationFilter] = None,
    ) -> Iterator[ObservationRecord]:
        """
        Stream a project's observations, newest first.

        Observations of one run share a timestamp; they are ordered by engine id
        so repeated reads return an identical sequence.

        The session stays open while the iterator is consumed.
        """
        filters = filters or ObservationFilter()

        stmt = select(Observation).where(Observation.project_id == project_id)
        if filters.since is not None:
            stmt = stmt.where(Observation.timestamp >= as_utc(filters.since))
        if filters.until is not None:
            stmt = stmt.where(Observation.timestamp < as_utc(filters.until))
        if filters.through is not None:
            stmt = stmt.where(Observation.timestamp <= as_utc(filters.through))
        if filters.engine is not None:
            stmt = stmt.where(Observation.engine == filters.engine)
        if filters.presence is not None:
            stmt = stmt.where(Observation.presence == filters.presence)
        if filters.keyword_id is not None:
            stmt = stmt.where(Observation.keyword_id == filters.keyword_id)

        stmt = stmt.order_by(
            Observation.timestamp.desc(),
            Observation.engine.asc(),
            Observation.id.asc(),
        )
        if filters.limit is not None:
            stmt = stmt.limit(filters.limit)

        with get_db_context(self.session_factory) as db:
            result = db.execute(stmt.execution_options(yield_per=QUERY_BATCH_SIZE))
            for row in result.scalars():
                yield ObservationRecord.from_row(row)
