"""
Tests for the engine's unit of work: retries, error mapping, event delivery.
"""

import logging

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError
from sqlalchemy.orm.exc import StaleDataError

from api.services.engine import parse_stage
from core.errors import Busy, ConflictError, Internal, InvalidInput
from core.events import RELATIONSHIP_ESTABLISHED
from core.integrations.documents import DocumentStoreError
from database.models.applications import ApplicationStage


def flaky(engine, failures):
    """Wrap ``engine._attempt`` so the first calls raise the given errors."""
    original = engine._attempt
    calls = {"count": 0}

    async def attempt(lock_keys, work):
        calls["count"] += 1
        if failures:
            raise failures.pop(0)
        return await original(lock_keys, work)

    engine._attempt = attempt
    return calls


def locked():
    return OperationalError("INSERT", {}, Exception("database is locked"))


@pytest.fixture
async def parties(seed):
    candidate = await seed.candidate()
    recruiter = await seed.recruiter()
    return candidate.id, recruiter.id


class TestRetries:
    @pytest.mark.asyncio
    async def test_transient_error_is_retried(self, engine, parties):
        candidate_id, recruiter_id = parties
        calls = flaky(engine, [locked()])

        result = await engine.establish_relationship(recruiter_id, candidate_id, None, "email")

        assert result["created"] is True
        assert calls["count"] == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, engine, parties):
        """max_retries=2 means three attempts in total."""
        candidate_id, recruiter_id = parties
        calls = flaky(engine, [locked(), locked(), locked(), locked()])

        with pytest.raises(Internal):
            await engine.establish_relationship(recruiter_id, candidate_id, None, "email")

        assert calls["count"] == 3

    @pytest.mark.asyncio
    async def test_non_transient_error_is_not_retried(self, engine, parties):
        candidate_id, recruiter_id = parties
        calls = flaky(engine, [ProgrammingError("SELECT", {}, Exception("syntax"))])

        with pytest.raises(Internal):
            await engine.establish_relationship(recruiter_id, candidate_id, None, "email")

        assert calls["count"] == 1


class TestErrorMapping:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("error,expected", [
        (IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed")), ConflictError),
        (StaleDataError("version mismatch"), Busy),
        (DocumentStoreError("document service down"), Internal),
    ])
    async def test_mapping(self, engine, parties, error, expected):
        candidate_id, recruiter_id = parties
        flaky(engine, [error])

        with pytest.raises(expected):
            await engine.establish_relationship(recruiter_id, candidate_id, None, "email")


class TestEventDelivery:
    @pytest.mark.asyncio
    async def test_publisher_failure_does_not_fail_the_write(self, engine, parties, caplog):
        candidate_id, recruiter_id = parties

        async def broken(event):
            raise RuntimeError("broker unreachable")

        engine.events.publish = broken

        with caplog.at_level(logging.ERROR, logger="api.services.engine"):
            result = await engine.establish_relationship(recruiter_id, candidate_id, None, "email")

        assert result["created"] is True
        assert "Failed to publish relationship.established" in caplog.text

    @pytest.mark.asyncio
    async def test_no_events_on_rollback(self, engine, parties, events):
        candidate_id, recruiter_id = parties
        await engine.establish_relationship(recruiter_id, candidate_id, None, "email")
        events.clear()

        with pytest.raises(InvalidInput):
            await engine.establish_relationship(recruiter_id, candidate_id, None, " ")

        assert events.events == []

    @pytest.mark.asyncio
    async def test_events_follow_commit(self, engine, parties, events):
        candidate_id, recruiter_id = parties

        result = await engine.establish_relationship(recruiter_id, candidate_id, None, "email")

        published = events.of_type(RELATIONSHIP_ESTABLISHED)
        assert published[0].payload["relationship_id"] == result["relationship"]["id"]
        assert published[0].to_dict()["source_service"] == "rights-engine"


class TestParseStage:
    @pytest.mark.parametrize("value", ["offer", "OFFER", " Offer ", ApplicationStage.OFFER])
    def test_accepts(self, value):
        assert parse_stage(value) is ApplicationStage.OFFER

    def test_rejects(self):
        with pytest.raises(InvalidInput):
            parse_stage("pending")
