"""
Tests for candidate masking and company acceptance.
"""

import pytest

from api.services.visibility import mask_candidate
from core.events import APPLICATION_ACCEPTED
from core.security import Actor, ActorRole
from database.security import MASKED_EMAIL, initials


@pytest.fixture
async def application(engine, seed):
    job = await seed.job()
    candidate = await seed.candidate(full_name="Jane Doe", email="jane@example.com")
    app = await engine.submit_application(
        Actor(candidate.id, ActorRole.CANDIDATE), candidate.id, job.id
    )
    return app


class TestMasking:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("role", [ActorRole.COMPANY_ADMIN, ActorRole.HIRING_MANAGER])
    async def test_company_sees_masked_candidate(self, engine, application, role):
        """Before acceptance a company sees initials and a placeholder email."""
        view = await engine.get_application(application["id"], viewer=Actor(900, role))

        candidate = view["candidate"]
        assert candidate["full_name"] == "J.D."
        assert candidate["email"] == MASKED_EMAIL
        assert candidate["masked"] is True
        assert candidate["id"] == application["candidate_id"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("viewer", [
        Actor(1, ActorRole.CANDIDATE),
        Actor(2, ActorRole.RECRUITER),
        Actor(3, ActorRole.PLATFORM_ADMIN),
        None,
    ])
    async def test_other_viewers_see_identity(self, engine, application, viewer):
        view = await engine.get_application(application["id"], viewer=viewer)

        assert view["candidate"]["full_name"] == "Jane Doe"
        assert view["candidate"]["email"] == "jane@example.com"

    @pytest.mark.asyncio
    async def test_listing_is_masked_too(self, engine, application, company_actor):
        page = await engine.list_applications(viewer=company_actor)

        assert [item["candidate"]["full_name"] for item in page["items"]] == ["J.D."]

    @pytest.mark.asyncio
    async def test_masking_never_alters_stored_data(self, engine, application, company_actor):
        await engine.get_application(application["id"], viewer=company_actor)

        unmasked = await engine.get_application(application["id"])
        assert unmasked["candidate"]["full_name"] == "Jane Doe"


class TestAcceptance:
    @pytest.mark.asyncio
    async def test_accept_unmasks(self, engine, application, company_actor, events):
        accepted = await engine.accept_application(application["id"], company_actor)

        assert accepted["accepted_by_company"] is True
        assert accepted["changed"] is True
        assert accepted["accepted_at"] == "2026-01-15T12:00:00+00:00"
        view = await engine.get_application(application["id"], viewer=company_actor)
        assert view["candidate"]["full_name"] == "Jane Doe"
        assert view["candidate"]["masked"] is False
        assert len(events.of_type(APPLICATION_ACCEPTED)) == 1

    @pytest.mark.asyncio
    async def test_accept_is_idempotent(self, engine, application, company_actor, clock, events):
        """A second acceptance keeps the first timestamp and emits nothing."""
        await engine.accept_application(application["id"], company_actor)
        clock.advance(hours=5)

        again = await engine.accept_application(application["id"], company_actor)

        assert again["changed"] is False
        assert again["accepted_at"] == "2026-01-15T12:00:00+00:00"
        assert len(events.of_type(APPLICATION_ACCEPTED)) == 1

    @pytest.mark.asyncio
    async def test_accept_leaves_stage_alone(self, engine, application, company_actor):
        accepted = await engine.accept_application(application["id"], company_actor)

        assert accepted["stage"] == "draft"


class TestMaskHelpers:
    @pytest.mark.parametrize("name,expected", [
        ("Jane Doe", "J.D."),
        ("mary ann smith", "M.A.S."),
        ("  Cher  ", "C."),
        ("", ""),
        (None, ""),
    ])
    def test_initials(self, name, expected):
        assert initials(name) == expected

    def test_mask_candidate_keeps_id(self):
        masked = mask_candidate({"id": 7, "full_name": "Jane Doe", "email": "jane@example.com"})

        assert masked == {"id": 7, "full_name": "J.D.", "email": MASKED_EMAIL, "masked": True}
