"""
Tests for pre-screen routing of direct applications.
"""

import pytest

from api.services.prescreen import pick_least_loaded
from core.errors import PreconditionFailed
from core.events import APPLICATION_PRESCREEN_REQUESTED
from core.security import Actor, ActorRole
from database.models.recruiters import RecruiterStatus

TO_SUBMITTED = ["ai_review", "screen", "submitted"]


@pytest.fixture
def submit_direct(engine, seed, advance, resume_id):
    """Create a direct application for a fresh candidate, optionally advanced."""

    async def run(job_id, stages=TO_SUBMITTED, name="Jane Doe"):
        candidate = await seed.candidate(full_name=name, email=f"{name.split()[0].lower()}@example.com")
        app = await engine.submit_application(
            Actor(candidate.id, ActorRole.CANDIDATE),
            candidate.id,
            job_id,
            primary_resume_id=resume_id,
        )
        if stages:
            await advance(app["id"], stages)
        return app["id"]

    return run


class TestAutoMode:
    @pytest.mark.asyncio
    async def test_picks_least_loaded_recruiter(self, engine, seed, submit_direct, company_actor):
        job = await seed.job()
        busy = await seed.recruiter(name="Busy", job_id=job.id)
        idle = await seed.recruiter(name="Idle", job_id=job.id)
        other = await seed.candidate(full_name="Other Person", email="other@example.com")
        await engine.submit_application(
            Actor(busy.id, ActorRole.RECRUITER),
            other.id,
            job.id,
            recruiter_id=busy.id,
            consent_source="email",
        )
        application_id = await submit_direct(job.id)

        result = await engine.request_pre_screen(application_id, company_actor)

        assert result["application"]["recruiter_id"] == idle.id
        assert result["application"]["stage"] == "submitted"
        assert result["relationship"]["recruiter_id"] == idle.id
        assert result["relationship"]["job_id"] == job.id
        assert result["relationship"]["consent_given"] is False

    @pytest.mark.asyncio
    async def test_tie_goes_to_lowest_id(self, engine, seed, submit_direct, company_actor):
        job = await seed.job()
        first = await seed.recruiter(name="First", job_id=job.id)
        await seed.recruiter(name="Second", job_id=job.id)
        application_id = await submit_direct(job.id)

        result = await engine.request_pre_screen(application_id, company_actor)

        assert result["application"]["recruiter_id"] == first.id

    @pytest.mark.asyncio
    async def test_inactive_recruiters_are_skipped(self, engine, seed, submit_direct, company_actor):
        job = await seed.job()
        await seed.recruiter(name="Paused", status=RecruiterStatus.SUSPENDED, job_id=job.id)
        active = await seed.recruiter(name="Active", job_id=job.id)
        application_id = await submit_direct(job.id)

        result = await engine.request_pre_screen(application_id, company_actor)

        assert result["application"]["recruiter_id"] == active.id

    @pytest.mark.asyncio
    async def test_nobody_eligible(self, engine, seed, submit_direct, company_actor):
        job = await seed.job()
        application_id = await submit_direct(job.id)

        with pytest.raises(PreconditionFailed):
            await engine.request_pre_screen(application_id, company_actor)

    @pytest.mark.asyncio
    async def test_publishes_event(self, engine, seed, submit_direct, company_actor, events):
        job = await seed.job()
        recruiter = await seed.recruiter(job_id=job.id)
        application_id = await submit_direct(job.id)

        await engine.request_pre_screen(application_id, company_actor)

        published = events.of_type(APPLICATION_PRESCREEN_REQUESTED)
        assert [(e.payload["recruiter_id"], e.payload["mode"]) for e in published] == [(recruiter.id, "auto")]


class TestManualMode:
    @pytest.mark.asyncio
    async def test_named_recruiter(self, engine, seed, submit_direct, company_actor):
        job = await seed.job()
        await seed.recruiter(name="Unpicked", job_id=job.id)
        chosen = await seed.recruiter(name="Chosen", job_id=job.id)
        application_id = await submit_direct(job.id)

        result = await engine.request_pre_screen(application_id, company_actor, recruiter_id=chosen.id)

        assert result["application"]["recruiter_id"] == chosen.id

    @pytest.mark.asyncio
    async def test_recruiter_without_job_access(self, engine, seed, submit_direct, company_actor):
        job = await seed.job()
        outsider = await seed.recruiter(name="Outsider")
        application_id = await submit_direct(job.id)

        with pytest.raises(PreconditionFailed):
            await engine.request_pre_screen(application_id, company_actor, recruiter_id=outsider.id)

        assert (await engine.get_application(application_id))["recruiter_id"] is None


class TestGuards:
    @pytest.mark.asyncio
    async def test_only_submitted_applications(self, engine, seed, submit_direct, company_actor):
        job = await seed.job()
        await seed.recruiter(job_id=job.id)
        application_id = await submit_direct(job.id, stages=["ai_review", "screen"])

        with pytest.raises(PreconditionFailed):
            await engine.request_pre_screen(application_id, company_actor)

    @pytest.mark.asyncio
    async def test_already_assigned(self, engine, seed, submit_direct, company_actor):
        job = await seed.job()
        await seed.recruiter(name="First", job_id=job.id)
        await seed.recruiter(name="Second", job_id=job.id)
        application_id = await submit_direct(job.id)
        await engine.request_pre_screen(application_id, company_actor)

        with pytest.raises(PreconditionFailed):
            await engine.request_pre_screen(application_id, company_actor)


class TestPickLeastLoaded:
    def test_fewest_open(self):
        assert pick_least_loaded([3, 5, 9], {3: 4, 5: 1, 9: 2}) == 5

    def test_missing_counts_are_zero(self):
        assert pick_least_loaded([3, 5], {3: 1}) == 5

    def test_ties_by_id(self):
        assert pick_least_loaded([9, 4, 6], {9: 0, 4: 0, 6: 0}) == 4
