"""
End-to-end hire: representation, pipeline, acceptance, placement.
"""

from decimal import Decimal

import pytest

from api.services.applications import HireDetails
from core.events import (
    APPLICATION_ACCEPTED,
    APPLICATION_PRESCREEN_REQUESTED,
    APPLICATION_STAGE_CHANGED,
    PLACEMENT_CREATED,
    RELATIONSHIP_ESTABLISHED,
    RELATIONSHIP_EXPIRED,
)
from core.security import Actor, ActorRole
from database.models.recruiters import RecruiterTier


class TestRecruiterSourcedHire:
    @pytest.mark.asyncio
    async def test_full_pipeline(self, engine, seed, advance, resume_id, company_actor, events, tiers):
        job = await seed.job(fee_percentage="18")
        question = await seed.question(job.id)
        candidate = await seed.candidate()
        recruiter = await seed.recruiter(job_id=job.id)
        rival = await seed.recruiter(name="Rival", job_id=job.id)
        tiers.tiers[recruiter.id] = RecruiterTier.PRO
        recruiter_actor = Actor(recruiter.id, ActorRole.RECRUITER)

        app = await engine.submit_application(
            recruiter_actor,
            candidate.id,
            job.id,
            primary_resume_id=resume_id,
            answers={question.id: "Ten years"},
            recruiter_id=recruiter.id,
            consent_source="signed form",
        )
        await advance(app["id"], ["ai_review", "screen", "submitted"])

        masked = await engine.get_application(app["id"], viewer=company_actor)
        assert masked["candidate"]["full_name"] == "J.D."

        await engine.accept_application(app["id"], company_actor)
        await advance(app["id"], ["interview", "offer"], actor=company_actor)
        hired = await engine.transition(
            app["id"], "hired", company_actor, hire=HireDetails(salary=Decimal("150000"))
        )

        placement = hired["placement"]
        assert placement["recruiter_id"] == recruiter.id
        assert placement["recruiter_tier"] == "pro"
        assert placement["fee_amount"] == "27000.00"
        assert placement["recruiter_amount"] == "20250.00"
        assert placement["platform_amount"] == "6750.00"

        # the hire closed the relationship, so the rival may now claim the candidate
        claimed = await engine.establish_relationship(rival.id, candidate.id, job.id, "email")
        assert claimed["created"] is True

        assert [e.event_type for e in events.events if e.event_type != APPLICATION_STAGE_CHANGED] == [
            RELATIONSHIP_ESTABLISHED,
            APPLICATION_ACCEPTED,
            PLACEMENT_CREATED,
            RELATIONSHIP_EXPIRED,
            RELATIONSHIP_ESTABLISHED,
        ]

        history = await engine.get_application_history(app["id"])
        assert [h["to_stage"] for h in history["stage_history"]] == [
            "draft", "ai_review", "screen", "submitted", "interview", "offer", "hired",
        ]
        actions = [entry["action"] for entry in history["audit_log"]]
        assert actions == ["application.accepted", "placement.created", "relationship.expired"]


class TestDirectApplicationHire:
    @pytest.mark.asyncio
    async def test_pre_screen_then_hire(self, engine, seed, advance, resume_id, company_actor, events):
        """A direct applicant routed to a recruiter is credited to that recruiter at hire."""
        job = await seed.job(fee_percentage="20")
        candidate = await seed.candidate()
        recruiter = await seed.recruiter(job_id=job.id)

        app = await engine.submit_application(
            Actor(candidate.id, ActorRole.CANDIDATE), candidate.id, job.id, primary_resume_id=resume_id
        )
        await advance(app["id"], ["ai_review", "screen", "submitted"])
        routed = await engine.request_pre_screen(app["id"], company_actor)
        await advance(app["id"], ["interview", "offer"], actor=company_actor)
        hired = await engine.transition(
            app["id"], "hired", company_actor, hire=HireDetails(salary="100000")
        )

        assert routed["application"]["recruiter_id"] == recruiter.id
        assert hired["placement"]["recruiter_id"] == recruiter.id
        assert hired["placement"]["relationship_id"] == routed["relationship"]["id"]
        assert hired["placement"]["recruiter_amount"] == "13000.00"
        assert len(events.of_type(APPLICATION_PRESCREEN_REQUESTED)) == 1
