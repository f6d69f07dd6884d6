"""
Check Orchestrator

Runs one visibility check for one keyword across every registered engine:

1. Resolve the keyword and verify the requester owns it
2. Take the keyword's run lease (one run per keyword at a time)
3. Fan out to all engine adapters concurrently, sharing one timestamp
4. Retry a failed or timed-out engine once, then record it as degraded
5. Commit the whole run to the observation store in one atomic append
6. Release the lease and return the committed observations

A run either commits one observation per engine or commits nothing.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, List, Optional, Set, Union
from uuid import UUID, uuid4

from src.database.models import utcnow
from src.database.repository import KeywordInfo, ProjectInfo, ProjectRepository
from src.checks.lease import Lease, RunLeaseManager
from src.engines.base import BrandContext, EngineResult
from src.engines.registry import EngineRegistry, EngineSpec
from src.errors import (
    EngineAdapterError,
    ForbiddenError,
    NotFoundError,
    PersistenceError,
    UnauthorizedError,
    ValidationError,
)
from src.observations.models import ObservationRecord
from src.observations.store import ObservationStore

logger = logging.getLogger(__name__)

UNAVAILABLE_TAG = "[unavailable]"


def _parse_id(value: Union[str, UUID, None], name: str) -> UUID:
    if isinstance(value, UUID):
        return value
    if value is None or not str(value).strip():
        raise ValidationError(f"{name} is required")
    try:
        return UUID(str(value).strip())
    except ValueError:
        raise ValidationError(f"{name} is not a valid id: {value!r}")


class CheckOrchestrator:
    """
    Coordinates a check run.

    Usage:
        orchestrator = CheckOrchestrator(registry, store, projects, leases)
        observations = await orchestrator.run_check(keyword_id, requester_user_id)

    The observation store's write path is only reached from here, after the
    ownership check.
    """

    def __init__(
        self,
        registry: EngineRegistry,
        store: ObservationStore,
        projects: ProjectRepository,
        leases: RunLeaseManager,
        timeout: float = 30.0,
        max_retries: int = 1,
        retry_delay: float = 0.5,
        lease_ttl: Optional[float] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        if not len(registry):
            raise ValueError("CheckOrchestrator needs at least one registered engine")
        if timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")
        if max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {max_retries}")

        self.registry = registry
        self.store = store
        self.projects = projects
        self.leases = leases
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.lease_ttl = lease_ttl or 3 * (timeout * (max_retries + 1) + retry_delay * max_retries)
        self._clock = clock

        # Runs that outlive a cancelled caller stay referenced until they finish
        self._inflight: Set[asyncio.Task] = set()

    async def run_check(
        self,
        keyword_id: Union[str, UUID, None],
        requester_user_id: Union[str, UUID, None],
    ) -> List[ObservationRecord]:
        """
        Run a check for a keyword on behalf of a requester.

        Returns:
            The committed observations, one per registered engine

        Raises:
            ValidationError: keyword_id missing or malformed
            UnauthorizedError: No requester
            NotFoundError: Keyword (or its project) does not exist
            ForbiddenError: Requester does not own the keyword
            AlreadyRunningError: A run for this keyword is in progress
            PersistenceError: The batch could not be committed
        """
        if requester_user_id is None or not str(requester_user_id).strip():
            raise UnauthorizedError("Not authenticated")
        keyword_uuid = _parse_id(keyword_id, "keywordId")
        try:
            requester = _parse_id(requester_user_id, "requester")
        except ValidationError:
            raise ForbiddenError("Requester does not own this keyword")

        keyword = self.projects.get_keyword(keyword_uuid)
        if keyword is None:
            raise NotFoundError(f"Keyword {keyword_uuid} not found")
        if keyword.owner_user_id != requester:
            logger.info(f"Rejected check for keyword {keyword.id}: requester is not the owner")
            raise ForbiddenError("Requester does not own this keyword")

        project = self.projects.get_project(keyword.project_id)
        if project is None:
            raise NotFoundError(f"Project {keyword.project_id} not found")

        lease = await self.leases.acquire(str(keyword.id), self.lease_ttl)

        # Shielded so a disconnecting caller never abandons a run mid-commit
        task = asyncio.ensure_future(self._execute(keyword, project, lease))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        task.add_done_callback(self._collect_result)
        return await asyncio.shield(task)

    @staticmethod
    def _collect_result(task: asyncio.Task) -> None:
        """Retrieve the run's outcome even when its caller has gone away."""
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Check run ended with {type(error).__name__}: {error}")

    async def _execute(
        self,
        keyword: KeywordInfo,
        project: ProjectInfo,
        lease: Lease,
    ) -> List[ObservationRecord]:
        try:
            timestamp = self._clock()
            brand = BrandContext(
                project_id=project.id,
                domain=project.domain,
                brand_name=project.brand_name,
            )
            logger.info(
                f"Running check for keyword {keyword.id} ('{keyword.text}') "
                f"on {len(self.registry)} engines"
            )

            records = await asyncio.gather(
                *(self._observe(spec, keyword, brand, timestamp) for spec in self.registry)
            )

            try:
                committed = self.store.append_batch(records)
            except PersistenceError as e:
                logger.error(f"Check for keyword {keyword.id} failed to commit: {e}")
                raise

            degraded = sum(1 for r in committed if r.is_degraded)
            present = sum(1 for r in committed if r.presence)
            logger.info(
                f"Committed {len(committed)} observations for keyword {keyword.id} "
                f"({present} present, {degraded} degraded)"
            )
            return committed
        finally:
            await self.leases.release(lease)

    async def _observe(
        self,
        spec: EngineSpec,
        keyword: KeywordInfo,
        brand: BrandContext,
        timestamp: datetime,
    ) -> ObservationRecord:
        """Query one engine with retry. Never raises: failures become degraded records."""
        last_error = "no attempt made"

        for attempt in range(self.max_retries + 1):
            if attempt and self.retry_delay:
                await asyncio.sleep(self.retry_delay)

            try:
                result = await asyncio.wait_for(
                    spec.adapter.run(keyword, brand), timeout=self.timeout
                )
                if not isinstance(result, EngineResult):
                    raise EngineAdapterError(spec.engine_id, f"returned {type(result).__name__}")

                record = self._to_record(spec, keyword, result, timestamp)
                problems = record.invariant_violations()
                if problems:
                    raise EngineAdapterError(spec.engine_id, f"invalid result: {'; '.join(problems)}")
                return record

            except asyncio.TimeoutError:
                last_error = f"timed out after {self.timeout:g}s"
            except EngineAdapterError as e:
                last_error = str(e)
            except Exception as e:
                # Adapter bugs degrade that engine, never the run
                last_error = f"{type(e).__name__}: {e}"

            logger.warning(
                f"Engine {spec.engine_id} attempt {attempt + 1}/{self.max_retries + 1} "
                f"failed for keyword {keyword.id}: {last_error}"
            )

        return self._degraded_record(spec, keyword, timestamp, last_error)

    @staticmethod
    def _to_record(
        spec: EngineSpec,
        keyword: KeywordInfo,
        result: EngineResult,
        timestamp: datetime,
    ) -> ObservationRecord:
        return ObservationRecord(
            id=uuid4(),
            keyword_id=keyword.id,
            project_id=keyword.project_id,
            owner_user_id=keyword.owner_user_id,
            engine=spec.engine_id,
            presence=bool(result.presence),
            position=result.position,
            answer_snippet=result.answer_snippet or "",
            citations_count=result.citations_count,
            observed_urls=tuple(result.observed_urls or ()),
            timestamp=timestamp,
        )

    @staticmethod
    def _degraded_record(
        spec: EngineSpec,
        keyword: KeywordInfo,
        timestamp: datetime,
        reason: str,
    ) -> ObservationRecord:
        return ObservationRecord(
            id=uuid4(),
            keyword_id=keyword.id,
            project_id=keyword.project_id,
            owner_user_id=keyword.owner_user_id,
            engine=spec.engine_id,
            presence=False,
            position=None,
            answer_snippet=f"{UNAVAILABLE_TAG} {spec.display_name} did not return a result: {reason}",
            citations_count=0,
            observed_urls=(),
            is_degraded=True,
            timestamp=timestamp,
        )
