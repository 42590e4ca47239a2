"""Shared fixtures and utilities for tests."""

import os
import tempfile
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

# Settings are read at import time, so the environment must be in place first.
_TMP_DIR = tempfile.mkdtemp(prefix="rights-engine-tests-")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_TMP_DIR}/default.db")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-key-min-32-chars-long-for-security")
os.environ.setdefault("JWT_ALGORITHM", "HS256")
os.environ.setdefault("LOCK_BACKEND", "local")
os.environ.setdefault("JSON_LOGS", "false")
os.environ.pop("NOTIFICATION_WEBHOOK_URL", None)
os.environ.pop("DOCUMENT_SERVICE_URL", None)
os.environ.pop("BILLING_SERVICE_URL", None)

import pytest

from api.services.engine import RepresentationEngine
from core.events import InMemoryEventPublisher
from core.integrations.documents import InMemoryDocumentStore
from core.integrations.subscriptions import StaticTierService
from core.locks import LocalLockManager
from core.security import Actor, ActorRole
from core.utils.datetime import FrozenClock
from database.engine import create_engine_for_url, create_session_factory, init_db
from database.models.candidates import Candidate
from database.models.jobs import Job, JobPreScreenQuestion, JobStatus, RoleAssignment
from database.models.recruiters import Recruiter, RecruiterStatus

START = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)

RESUME_ID = "doc-resume-1"


class Seeder:
    """Inserts reference rows (jobs, candidates, recruiters) the engine reads."""

    def __init__(self, session_factory, clock):
        self.session_factory = session_factory
        self.clock = clock

    async def _add(self, row):
        async with self.session_factory() as session:
            async with session.begin():
                session.add(row)
            return row

    async def job(
        self,
        fee_percentage: str = "20",
        status: JobStatus = JobStatus.ACTIVE,
        company_id: int = 1,
        title: str = "Staff Engineer",
    ) -> Job:
        return await self._add(
            Job(
                company_id=company_id,
                title=title,
                fee_percentage=Decimal(fee_percentage),
                status=status,
                created_at=self.clock.now(),
            )
        )

    async def question(self, job_id: int, text: str = "Years of experience?", required: bool = True):
        return await self._add(
            JobPreScreenQuestion(job_id=job_id, question=text, is_required=required, sort_order=0)
        )

    async def candidate(self, full_name: str = "Jane Doe", email: str = "jane@example.com") -> Candidate:
        return await self._add(
            Candidate(full_name=full_name, email=email, created_at=self.clock.now())
        )

    async def recruiter(
        self,
        name: str = "Rae Recruiter",
        status: RecruiterStatus = RecruiterStatus.ACTIVE,
        job_id: Optional[int] = None,
    ) -> Recruiter:
        recruiter = await self._add(Recruiter(name=name, status=status, created_at=self.clock.now()))
        if job_id is not None:
            await self.assign(job_id, recruiter.id)
        return recruiter

    async def assign(self, job_id: int, recruiter_id: int) -> RoleAssignment:
        return await self._add(
            RoleAssignment(job_id=job_id, recruiter_id=recruiter_id, assigned_at=self.clock.now())
        )


@pytest.fixture
def clock():
    return FrozenClock(START)


@pytest.fixture
async def db_engine(tmp_path):
    """File-backed SQLite database, fresh per test."""
    engine = create_engine_for_url(f"sqlite+aiosqlite:///{tmp_path}/engine.db")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture
def documents():
    return InMemoryDocumentStore([RESUME_ID, "doc-cover-1"])


@pytest.fixture
def tiers():
    return StaticTierService()


@pytest.fixture
def events():
    return InMemoryEventPublisher()


@pytest.fixture
def locks():
    return LocalLockManager(timeout=5.0)


@pytest.fixture
def engine(session_factory, locks, documents, tiers, events, clock):
    return RepresentationEngine(
        session_factory=session_factory,
        locks=locks,
        documents=documents,
        tiers=tiers,
        events=events,
        clock=clock,
        operation_timeout=10.0,
        max_retries=2,
        retry_backoff=0.01,
        relationship_duration_months=12,
        bulk_max_concurrency=4,
    )


@pytest.fixture
def seed(session_factory, clock):
    return Seeder(session_factory, clock)


@pytest.fixture
def system_actor():
    return Actor.system()


@pytest.fixture
def company_actor():
    return Actor(actor_id=900, role=ActorRole.COMPANY_ADMIN)


@pytest.fixture
def advance(engine):
    """Walk an application through stages in order; returns the last result."""

    async def run(application_id: int, stages, actor=None, **kwargs):
        actor = actor or Actor.system()
        result = None
        for stage in stages:
            result = await engine.transition(application_id, stage, actor, **kwargs)
        return result

    return run


@pytest.fixture
def resume_id():
    return RESUME_ID
