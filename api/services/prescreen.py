"""
Pre-screen router: hands an unclaimed direct application to a recruiter.

Auto mode picks the least-loaded eligible recruiter (fewest open
applications), breaking ties by lowest recruiter id, so the choice is
reproducible for a given database state.
"""

from datetime import datetime
from typing import List, Optional, Tuple
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.services import relationships as relationship_service
from api.services.applications import count_open_applications
from api.services.audit import add_audit_entry
from core.errors import PreconditionFailed
from core.events import APPLICATION_PRESCREEN_REQUESTED, DomainEvent
from core.security import Actor
from database.models.applications import Application, ApplicationStage
from database.models.audit import AuditAction, AuditEntityType
from database.models.jobs import RoleAssignment
from database.models.recruiters import Recruiter, RecruiterStatus
from database.models.relationships import Relationship

logger = logging.getLogger(__name__)

AUTO = "auto"
MANUAL = "manual"


async def recruiters_with_job_access(session: AsyncSession, job_id: int) -> List[int]:
    """Active recruiters assigned to the job, ascending by id."""
    result = await session.execute(
        select(Recruiter.id)
        .join(RoleAssignment, RoleAssignment.recruiter_id == Recruiter.id)
        .where(
            RoleAssignment.job_id == job_id,
            Recruiter.status == RecruiterStatus.ACTIVE,
        )
        .order_by(Recruiter.id)
    )
    return list(result.scalars().all())


def pick_least_loaded(candidates: List[int], open_counts: dict) -> int:
    return min(candidates, key=lambda recruiter_id: (open_counts.get(recruiter_id, 0), recruiter_id))


async def select_recruiter(
    session: AsyncSession,
    application: Application,
    active: List[Relationship],
) -> int:
    """Choose a recruiter for auto mode or raise PreconditionFailed."""
    eligible = [
        recruiter_id
        for recruiter_id in await recruiters_with_job_access(session, application.job_id)
        if relationship_service.resolve_scope(active, recruiter_id, application.job_id)[1] is None
    ]
    if not eligible:
        raise PreconditionFailed(
            "No eligible recruiter is available for this job",
            application_id=application.id,
            job_id=application.job_id,
        )
    open_counts = await count_open_applications(session, eligible)
    chosen = pick_least_loaded(eligible, open_counts)
    logger.info(
        f"Auto pre-screen for application {application.id}: picked recruiter {chosen} "
        f"from {len(eligible)} eligible (open counts {open_counts})"
    )
    return chosen


async def request_pre_screen(
    session: AsyncSession,
    application: Application,
    actor: Actor,
    at: datetime,
    outbox: List[DomainEvent],
    relationship_duration_months: int,
    recruiter_id: Optional[int] = None,
) -> Tuple[Application, Relationship]:
    """
    Assign a recruiter to a direct application in ``submitted``.

    Creates (or reuses) a job-scoped relationship and sets
    ``application.recruiter_id``. The stage does not change.

    Raises:
        PreconditionFailed: Application already assigned, not submitted,
            recruiter lacks job access, or nobody is eligible
        ConflictError: The requested recruiter is blocked by another's relationship
    """
    if application.recruiter_id is not None:
        raise PreconditionFailed(
            "Application is already assigned to a recruiter",
            application_id=application.id,
            recruiter_id=application.recruiter_id,
        )
    if application.stage != ApplicationStage.SUBMITTED:
        raise PreconditionFailed(
            "Pre-screen is only available for submitted applications",
            application_id=application.id,
            stage=application.stage.value,
        )

    await relationship_service.expire_stale_relationships(
        session, at, actor, outbox, candidate_id=application.candidate_id
    )

    if recruiter_id is not None:
        mode = MANUAL
        if recruiter_id not in await recruiters_with_job_access(session, application.job_id):
            raise PreconditionFailed(
                f"Recruiter {recruiter_id} is not an active recruiter on job {application.job_id}",
                recruiter_id=recruiter_id,
                job_id=application.job_id,
            )
    else:
        mode = AUTO
        active = await relationship_service.active_relationships_for_candidate(
            session, application.candidate_id
        )
        recruiter_id = await select_recruiter(session, application, active)

    relationship, _ = await relationship_service.establish_relationship(
        session,
        recruiter_id=recruiter_id,
        candidate_id=application.candidate_id,
        job_id=application.job_id,
        consent_source=None,
        actor=actor,
        at=at,
        duration_months=relationship_duration_months,
        outbox=outbox,
        application_id=application.id,
    )

    application.recruiter_id = recruiter_id
    add_audit_entry(
        session,
        actor,
        AuditAction.PRESCREEN_REQUESTED,
        AuditEntityType.APPLICATION,
        application.id,
        at=at,
        application_id=application.id,
        changes={"recruiter_id": recruiter_id, "mode": mode, "relationship_id": relationship.id},
    )
    await session.flush()

    outbox.append(
        DomainEvent(
            event_type=APPLICATION_PRESCREEN_REQUESTED,
            payload={
                "application_id": application.id,
                "job_id": application.job_id,
                "candidate_id": application.candidate_id,
                "recruiter_id": recruiter_id,
                "relationship_id": relationship.id,
                "mode": mode,
            },
            timestamp=at,
        )
    )
    return application, relationship
