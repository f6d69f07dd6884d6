"""
Tests for the check orchestrator.

These tests verify:
- One observation per engine, all sharing the run timestamp
- Timeouts and errors retry once, then degrade that engine only
- Ownership is checked before anything is written or leased
- One run per keyword at a time
- A failed commit writes nothing and frees the lease
"""

import asyncio
import logging
import pytest
from unittest.mock import patch
from uuid import uuid4

from src.checks import CheckOrchestrator, InMemoryLeaseManager, UNAVAILABLE_TAG
from src.engines import EngineResult
from src.errors import (
    AlreadyRunningError,
    ForbiddenError,
    NotFoundError,
    PersistenceError,
    UnauthorizedError,
    ValidationError,
)


@pytest.fixture
def leases():
    return InMemoryLeaseManager()


@pytest.fixture
def build_orchestrator(store, projects, leases, now):
    """Orchestrator with short timeouts and a fixed clock."""
    def _build(registry, **kwargs):
        kwargs.setdefault("timeout", 0.05)
        kwargs.setdefault("max_retries", 1)
        kwargs.setdefault("retry_delay", 0)
        return CheckOrchestrator(registry, store, projects, leases, clock=lambda: now, **kwargs)
    return _build


def _stored(store, project):
    return list(store.query(project.id))


class TestSuccessfulRun:

    @pytest.mark.asyncio
    async def test_one_observation_per_engine(
        self, build_orchestrator, make_registry, scripted_adapter, keyword, owner_id,
        present_cited, absent, store, project, now,
    ):
        registry = make_registry({
            "gemini": scripted_adapter(present_cited),
            "perplexity": scripted_adapter(present_cited),
            "chatgpt": scripted_adapter(absent),
        })
        orchestrator = build_orchestrator(registry)

        checks = await orchestrator.run_check(str(keyword.id), owner_id)

        assert sorted(c.engine for c in checks) == ["chatgpt", "gemini", "perplexity"]
        assert {c.timestamp for c in checks} == {now}
        assert all(c.keyword_id == keyword.id for c in checks)
        assert all(c.project_id == project.id for c in checks)
        assert all(c.owner_user_id == owner_id for c in checks)
        assert not any(c.is_degraded for c in checks)
        assert {c.id for c in _stored(store, project)} == {c.id for c in checks}

    @pytest.mark.asyncio
    async def test_accepts_uuid_and_string_ids(
        self, build_orchestrator, make_registry, scripted_adapter, keyword, owner_id,
    ):
        orchestrator = build_orchestrator(make_registry({"gemini": scripted_adapter()}))
        assert len(await orchestrator.run_check(keyword.id, str(owner_id))) == 1

    @pytest.mark.asyncio
    async def test_engines_run_concurrently(
        self, build_orchestrator, make_registry, scripted_adapter, keyword, owner_id, present_cited,
    ):
        adapters = {e: scripted_adapter(present_cited, delay=0.2) for e in ("gemini", "perplexity", "chatgpt")}
        orchestrator = build_orchestrator(make_registry(adapters), timeout=1.0)

        loop = asyncio.get_running_loop()
        started = loop.time()
        await orchestrator.run_check(keyword.id, owner_id)

        assert loop.time() - started < 0.5

    @pytest.mark.asyncio
    async def test_lease_released_after_run(
        self, build_orchestrator, make_registry, scripted_adapter, keyword, owner_id, leases,
    ):
        orchestrator = build_orchestrator(make_registry({"gemini": scripted_adapter()}))
        await orchestrator.run_check(keyword.id, owner_id)

        assert not leases.is_held(str(keyword.id))
        await orchestrator.run_check(keyword.id, owner_id)


class TestEngineFailures:

    @pytest.mark.asyncio
    async def test_timeout_twice_degrades_engine(
        self, build_orchestrator, make_registry, scripted_adapter, keyword, owner_id,
        present_cited, absent, store, project,
    ):
        hanging = scripted_adapter("hang")
        registry = make_registry({
            "gemini": scripted_adapter(present_cited),
            "perplexity": hanging,
            "chatgpt": scripted_adapter(absent),
        })
        orchestrator = build_orchestrator(registry)

        checks = await orchestrator.run_check(keyword.id, owner_id)

        assert hanging.calls == 2
        by_engine = {c.engine: c for c in checks}
        degraded = by_engine["perplexity"]
        assert degraded.is_degraded
        assert degraded.presence is False
        assert degraded.position is None
        assert degraded.citations_count == 0
        assert degraded.answer_snippet.startswith(UNAVAILABLE_TAG)
        assert "Perplexity" in degraded.answer_snippet
        assert "timed out" in degraded.answer_snippet
        assert by_engine["gemini"].presence is True
        assert len(_stored(store, project)) == 3

    @pytest.mark.asyncio
    async def test_retry_then_success(
        self, build_orchestrator, make_registry, scripted_adapter, keyword, owner_id,
        engine_failure, present_cited,
    ):
        flaky = scripted_adapter(engine_failure, present_cited)
        orchestrator = build_orchestrator(make_registry({"gemini": flaky}))

        [check] = await orchestrator.run_check(keyword.id, owner_id)

        assert flaky.calls == 2
        assert check.presence is True
        assert not check.is_degraded

    @pytest.mark.asyncio
    async def test_no_retry_when_disabled(
        self, build_orchestrator, make_registry, scripted_adapter, keyword, owner_id, engine_failure,
    ):
        failing = scripted_adapter(engine_failure)
        orchestrator = build_orchestrator(make_registry({"gemini": failing}), max_retries=0)

        [check] = await orchestrator.run_check(keyword.id, owner_id)

        assert failing.calls == 1
        assert check.is_degraded
        assert "upstream 503" in check.answer_snippet

    @pytest.mark.asyncio
    async def test_adapter_bug_degrades_engine(
        self, build_orchestrator, make_registry, scripted_adapter, keyword, owner_id, present_cited,
    ):
        registry = make_registry({
            "gemini": scripted_adapter(KeyError("choices")),
            "chatgpt": scripted_adapter(present_cited),
        })
        checks = await build_orchestrator(registry).run_check(keyword.id, owner_id)

        by_engine = {c.engine: c for c in checks}
        assert by_engine["gemini"].is_degraded
        assert "KeyError" in by_engine["gemini"].answer_snippet
        assert not by_engine["chatgpt"].is_degraded

    @pytest.mark.asyncio
    async def test_invalid_result_degrades_engine(
        self, build_orchestrator, make_registry, scripted_adapter, keyword, owner_id,
    ):
        # Absent but claims a position
        bad = EngineResult(presence=False, position=2)
        [check] = await build_orchestrator(make_registry({"gemini": scripted_adapter(bad)})).run_check(
            keyword.id, owner_id
        )

        assert check.is_degraded
        assert check.position is None
        assert "position must be null" in check.answer_snippet

    @pytest.mark.asyncio
    async def test_all_engines_failing_still_commits(
        self, build_orchestrator, make_registry, scripted_adapter, keyword, owner_id,
        engine_failure, store, project,
    ):
        registry = make_registry({e: scripted_adapter(engine_failure) for e in ("gemini", "chatgpt")})
        checks = await build_orchestrator(registry).run_check(keyword.id, owner_id)

        assert all(c.is_degraded for c in checks)
        assert len(_stored(store, project)) == 2


class TestAuthorization:

    @pytest.mark.asyncio
    async def test_non_owner_is_forbidden(
        self, build_orchestrator, make_registry, scripted_adapter, keyword, other_user_id,
        store, project, leases,
    ):
        adapter = scripted_adapter()
        orchestrator = build_orchestrator(make_registry({"gemini": adapter}))

        with patch.object(leases, "acquire", wraps=leases.acquire) as acquire:
            with pytest.raises(ForbiddenError):
                await orchestrator.run_check(keyword.id, other_user_id)
            acquire.assert_not_called()

        assert adapter.calls == 0
        assert _stored(store, project) == []

    @pytest.mark.asyncio
    async def test_missing_requester_is_unauthorized(
        self, build_orchestrator, make_registry, scripted_adapter, keyword,
    ):
        orchestrator = build_orchestrator(make_registry({"gemini": scripted_adapter()}))
        with pytest.raises(UnauthorizedError):
            await orchestrator.run_check(keyword.id, None)

    @pytest.mark.asyncio
    async def test_malformed_requester_is_forbidden(
        self, build_orchestrator, make_registry, scripted_adapter, keyword,
    ):
        orchestrator = build_orchestrator(make_registry({"gemini": scripted_adapter()}))
        with pytest.raises(ForbiddenError):
            await orchestrator.run_check(keyword.id, "not-a-user")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("keyword_id", [None, "", "   ", "not-a-uuid"])
    async def test_bad_keyword_id(
        self, build_orchestrator, make_registry, scripted_adapter, owner_id, keyword_id,
    ):
        orchestrator = build_orchestrator(make_registry({"gemini": scripted_adapter()}))
        with pytest.raises(ValidationError):
            await orchestrator.run_check(keyword_id, owner_id)

    @pytest.mark.asyncio
    async def test_unknown_keyword(
        self, build_orchestrator, make_registry, scripted_adapter, owner_id, project,
    ):
        orchestrator = build_orchestrator(make_registry({"gemini": scripted_adapter()}))
        with pytest.raises(NotFoundError):
            await orchestrator.run_check(uuid4(), owner_id)


class TestConcurrency:

    @pytest.mark.asyncio
    async def test_second_run_for_same_keyword_rejected(
        self, build_orchestrator, make_registry, scripted_adapter, keyword, owner_id,
        present_cited, store, project,
    ):
        slow = scripted_adapter(present_cited, delay=0.1)
        orchestrator = build_orchestrator(make_registry({"gemini": slow}), timeout=1.0)

        first = asyncio.ensure_future(orchestrator.run_check(keyword.id, owner_id))
        await slow.started.wait()

        with pytest.raises(AlreadyRunningError):
            await orchestrator.run_check(keyword.id, owner_id)

        assert len(await first) == 1
        assert len(_stored(store, project)) == 1

    @pytest.mark.asyncio
    async def test_different_keywords_run_in_parallel(
        self, build_orchestrator, make_registry, scripted_adapter, keyword, add_keyword, owner_id,
        present_cited,
    ):
        other = add_keyword("managed kubernetes")
        orchestrator = build_orchestrator(
            make_registry({"gemini": scripted_adapter(present_cited, delay=0.05)}), timeout=1.0
        )

        results = await asyncio.gather(
            orchestrator.run_check(keyword.id, owner_id),
            orchestrator.run_check(other.id, owner_id),
        )
        assert [len(r) for r in results] == [1, 1]

    @pytest.mark.asyncio
    async def test_cancelled_caller_still_commits(
        self, build_orchestrator, make_registry, scripted_adapter, keyword, owner_id,
        present_cited, store, project, leases,
    ):
        slow = scripted_adapter(present_cited, delay=0.1)
        orchestrator = build_orchestrator(make_registry({"gemini": slow}), timeout=1.0)

        caller = asyncio.ensure_future(orchestrator.run_check(keyword.id, owner_id))
        await slow.started.wait()
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller

        await asyncio.gather(*orchestrator._inflight)

        assert len(_stored(store, project)) == 1
        assert not leases.is_held(str(keyword.id))


    @pytest.mark.asyncio
    async def test_failure_after_caller_left_is_logged(
        self, build_orchestrator, make_registry, scripted_adapter, keyword, owner_id,
        present_cited, store, leases, caplog,
    ):
        slow = scripted_adapter(present_cited, delay=0.1)
        orchestrator = build_orchestrator(make_registry({"gemini": slow}), timeout=1.0)

        with patch.object(store, "append_batch", side_effect=PersistenceError("disk full")):
            caller = asyncio.ensure_future(orchestrator.run_check(keyword.id, owner_id))
            await slow.started.wait()
            [run] = list(orchestrator._inflight)
            caller.cancel()
            with pytest.raises(asyncio.CancelledError):
                await caller

            with caplog.at_level(logging.ERROR, logger="src.checks.orchestrator"):
                await asyncio.wait([run])
                await asyncio.sleep(0)

        assert isinstance(run.exception(), PersistenceError)
        assert any("Check run ended with PersistenceError" in r.getMessage() for r in caplog.records)
        assert not leases.is_held(str(keyword.id))


class TestCommitFailure:

    @pytest.mark.asyncio
    async def test_persistence_failure_writes_nothing_and_frees_lease(
        self, build_orchestrator, make_registry, scripted_adapter, keyword, owner_id,
        store, project, leases,
    ):
        orchestrator = build_orchestrator(make_registry({
            "gemini": scripted_adapter(),
            "chatgpt": scripted_adapter(),
        }))

        with patch.object(store, "append_batch", side_effect=PersistenceError("disk full")):
            with pytest.raises(PersistenceError):
                await orchestrator.run_check(keyword.id, owner_id)

        assert _stored(store, project) == []
        assert not leases.is_held(str(keyword.id))


class TestConstruction:

    def test_empty_registry_rejected(self, store, projects, leases, make_registry):
        with pytest.raises(ValueError, match="at least one"):
            CheckOrchestrator(make_registry({}), store, projects, leases)

    def test_lease_ttl_covers_worst_case(self, store, projects, leases, make_registry, scripted_adapter):
        orchestrator = CheckOrchestrator(
            make_registry({"gemini": scripted_adapter()}), store, projects, leases,
            timeout=30, max_retries=1, retry_delay=0.5,
        )
        assert orchestrator.lease_ttl == pytest.approx(3 * (60 + 0.5))
