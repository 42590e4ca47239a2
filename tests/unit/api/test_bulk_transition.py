"""
Tests for per-item bulk transitions.
"""

import asyncio

import pytest

from api.services.bulk import BulkItemResult, run_bulk, unique_ids
from core.errors import NotFound
from core.security import Actor, ActorRole


@pytest.fixture
def make_application(engine, seed, advance, resume_id):
    async def run(name, stages):
        job = await seed.job(title=f"Job for {name}")
        candidate = await seed.candidate(full_name=name, email=f"{name.split()[0].lower()}@example.com")
        app = await engine.submit_application(
            Actor(candidate.id, ActorRole.CANDIDATE),
            candidate.id,
            job.id,
            primary_resume_id=resume_id,
        )
        await advance(app["id"], stages)
        return app["id"]

    return run


class TestBulkTransition:
    @pytest.mark.asyncio
    async def test_mixed_outcomes(self, engine, make_application, company_actor):
        """Each item succeeds or fails on its own."""
        screening = await make_application("Ann Able", ["ai_review", "screen"])
        withdrawn = await make_application("Ben Baker", ["ai_review", "withdrawn"])

        results = await engine.bulk_transition(
            [screening, withdrawn, 98765], "rejected", company_actor, reason="Role filled"
        )

        by_id = {r["application_id"]: r for r in results}
        assert [r["application_id"] for r in results] == [screening, withdrawn, 98765]
        assert by_id[screening]["success"] is True
        assert by_id[screening]["stage"] == "rejected"
        assert by_id[withdrawn]["success"] is False
        assert by_id[withdrawn]["error_code"] == "INVALID_TRANSITION"
        assert by_id[98765]["error_code"] == "NOT_FOUND"

        assert (await engine.get_application(screening))["stage"] == "rejected"
        assert (await engine.get_application(withdrawn))["stage"] == "withdrawn"

    @pytest.mark.asyncio
    async def test_duplicates_run_once(self, engine, make_application, company_actor):
        application_id = await make_application("Cal Cole", ["ai_review"])

        results = await engine.bulk_transition(
            [application_id, application_id], "screen", company_actor
        )

        assert len(results) == 1
        assert results[0]["changed"] is True

    @pytest.mark.asyncio
    async def test_reason_is_recorded(self, engine, make_application, company_actor):
        application_id = await make_application("Dee Dunn", ["ai_review"])

        await engine.bulk_transition([application_id], "rejected", company_actor, reason="Role filled")

        history = (await engine.get_application_history(application_id))["stage_history"]
        assert history[-1]["reason"] == "Role filled"


class TestRunBulk:
    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self):
        in_flight = 0
        peak = 0

        async def handler(item_id):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return BulkItemResult(application_id=item_id, success=True)

        results = await run_bulk(range(10), handler, max_concurrency=3)

        assert peak <= 3
        assert [r.application_id for r in results] == list(range(10))

    @pytest.mark.asyncio
    async def test_engine_errors_become_failures(self):
        async def handler(item_id):
            if item_id == 2:
                raise NotFound("Application", item_id)
            return BulkItemResult(application_id=item_id, success=True)

        results = await run_bulk([1, 2, 3], handler, max_concurrency=2)

        assert [r.success for r in results] == [True, False, True]
        assert results[1].error_code == "NOT_FOUND"

    def test_unique_ids_keeps_order(self):
        assert unique_ids([3, 1, 3, 2, 1]) == [3, 1, 2]
