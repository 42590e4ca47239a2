"""
Application service functions: intake, the stage state machine and reads.

``apply_transition`` is the only code path that writes ``Application.stage``.
All functions run inside a transaction owned by ``api.services.engine``.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple
import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from api.services import relationships as relationship_service
from api.services.audit import add_audit_entry
from api.services.fee_split import compute_split, round_money, to_decimal
from api.services.placements import create_placement
from api.services.visibility import candidate_view
from core.errors import (
    ConflictError,
    InvalidInput,
    InvalidTransition,
    NotFound,
    PreconditionFailed,
)
from core.events import APPLICATION_STAGE_CHANGED, DomainEvent
from core.integrations.documents import DocumentStore
from core.integrations.subscriptions import TierService
from core.security import Actor
from core.utils.datetime import ensure_utc, format_datetime
from database.models.applications import (
    APPLICATION_STAGE_CLOSED,
    APPLICATION_STAGE_TERMINALS,
    Application,
    ApplicationAnswer,
    ApplicationDocument,
    ApplicationStage,
    ApplicationStageHistory,
    DocumentType,
)
from database.models.audit import AuditAction, AuditEntityType
from database.models.candidates import Candidate
from database.models.jobs import Job, JobPreScreenQuestion, JobStatus
from database.models.placements import Placement

logger = logging.getLogger(__name__)


@dataclass
class HireDetails:
    """Terms supplied when moving an application to hired."""

    salary: Any
    fee_percentage: Any = None
    hired_at: Optional[datetime] = None


@dataclass
class TransitionOutcome:
    application: Application
    from_stage: ApplicationStage
    changed: bool
    placement: Optional[Placement] = None


# ==================== Serialization ==================== #


def application_to_dict(
    application: Application,
    candidate: Optional[Candidate] = None,
    viewer: Optional[Actor] = None,
) -> Dict[str, Any]:
    return {
        "id": application.id,
        "candidate_id": application.candidate_id,
        "job_id": application.job_id,
        "recruiter_id": application.recruiter_id,
        "stage": application.stage.value,
        "accepted_by_company": application.accepted_by_company,
        "primary_resume_id": application.primary_resume_id,
        "notes": application.notes,
        "recruiter_notes": application.recruiter_notes,
        "created_at": format_datetime(application.created_at),
        "updated_at": format_datetime(application.updated_at),
        "accepted_at": format_datetime(application.accepted_at),
        "candidate": candidate_view(candidate, application, viewer),
    }


def stage_history_to_dict(entry: ApplicationStageHistory) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "from_stage": entry.from_stage.value if entry.from_stage else None,
        "to_stage": entry.to_stage.value,
        "actor_id": entry.actor_id,
        "actor_role": entry.actor_role,
        "reason": entry.reason,
        "created_at": format_datetime(entry.created_at),
    }


# ==================== Reads ==================== #


async def load_application(
    session: AsyncSession,
    application_id: int,
    for_update: bool = False,
) -> Application:
    """Fetch an application, optionally row-locked for the rest of the transaction."""
    query = (
        select(Application)
        .where(Application.id == application_id)
        .execution_options(populate_existing=True)
    )
    if for_update:
        query = query.with_for_update()
    application = (await session.execute(query)).scalar_one_or_none()
    if application is None:
        raise NotFound("Application", application_id)
    return application


async def get_application_with_candidate(
    session: AsyncSession,
    application_id: int,
) -> Tuple[Application, Optional[Candidate]]:
    application = await load_application(session, application_id)
    candidate = await session.get(Candidate, application.candidate_id)
    return application, candidate


async def list_applications(
    session: AsyncSession,
    job_id: Optional[int] = None,
    recruiter_id: Optional[int] = None,
    candidate_id: Optional[int] = None,
    stage: Optional[ApplicationStage] = None,
    limit: int = 20,
    offset: int = 0,
) -> Tuple[List[Tuple[Application, Candidate]], int]:
    """
    List applications with their candidates.

    Returns:
        ``(rows, total)`` where rows are ``(application, candidate)`` pairs
    """
    query = select(Application, Candidate).join(
        Candidate, Candidate.id == Application.candidate_id
    )
    if job_id is not None:
        query = query.where(Application.job_id == job_id)
    if recruiter_id is not None:
        query = query.where(Application.recruiter_id == recruiter_id)
    if candidate_id is not None:
        query = query.where(Application.candidate_id == candidate_id)
    if stage is not None:
        query = query.where(Application.stage == stage)

    count_query = select(func.count()).select_from(query.subquery())
    total = (await session.execute(count_query)).scalar() or 0

    result = await session.execute(
        query.order_by(Application.created_at.desc(), Application.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return [(row[0], row[1]) for row in result.all()], total


async def get_stage_history(
    session: AsyncSession,
    application_id: int,
) -> List[Dict[str, Any]]:
    result = await session.execute(
        select(ApplicationStageHistory)
        .where(ApplicationStageHistory.application_id == application_id)
        .order_by(ApplicationStageHistory.created_at, ApplicationStageHistory.id)
    )
    return [stage_history_to_dict(entry) for entry in result.scalars().all()]


async def count_open_applications(
    session: AsyncSession,
    recruiter_ids: Iterable[int],
) -> Dict[int, int]:
    """Open (not hired/rejected/withdrawn) applications per recruiter."""
    ids = list(recruiter_ids)
    if not ids:
        return {}
    result = await session.execute(
        select(Application.recruiter_id, func.count(Application.id))
        .where(
            Application.recruiter_id.in_(ids),
            Application.stage.notin_(list(APPLICATION_STAGE_TERMINALS)),
        )
        .group_by(Application.recruiter_id)
    )
    counts = {recruiter_id: 0 for recruiter_id in ids}
    counts.update({recruiter_id: count for recruiter_id, count in result.all()})
    return counts


# ==================== Intake ==================== #


async def find_open_application(
    session: AsyncSession,
    candidate_id: int,
    job_id: int,
) -> Optional[Application]:
    result = await session.execute(
        select(Application).where(
            Application.candidate_id == candidate_id,
            Application.job_id == job_id,
            Application.stage.notin_(list(APPLICATION_STAGE_CLOSED)),
        )
    )
    return result.scalars().first()


async def _job_questions(session: AsyncSession, job_id: int) -> List[JobPreScreenQuestion]:
    result = await session.execute(
        select(JobPreScreenQuestion)
        .where(JobPreScreenQuestion.job_id == job_id)
        .order_by(JobPreScreenQuestion.sort_order, JobPreScreenQuestion.id)
    )
    return list(result.scalars().all())


def _record_stage(
    session: AsyncSession,
    application: Application,
    from_stage: Optional[ApplicationStage],
    to_stage: ApplicationStage,
    actor: Actor,
    at: datetime,
    reason: Optional[str],
) -> None:
    session.add(
        ApplicationStageHistory(
            application_id=application.id,
            actor_id=actor.actor_id,
            actor_role=actor.role.value,
            from_stage=from_stage,
            to_stage=to_stage,
            reason=reason,
            created_at=at,
        )
    )


async def submit_application(
    session: AsyncSession,
    *,
    candidate_id: int,
    job_id: int,
    actor: Actor,
    at: datetime,
    outbox: List[DomainEvent],
    relationship_duration_months: int,
    primary_resume_id: Optional[str] = None,
    document_ids: Optional[List[str]] = None,
    answers: Optional[Dict[int, str]] = None,
    notes: Optional[str] = None,
    recruiter_id: Optional[int] = None,
    consent_source: Optional[str] = None,
) -> Application:
    """
    Create an application in draft.

    A recruiter submitting with the candidate's consent establishes a
    job-scoped relationship in the same transaction. Without a recruiter the
    application is attributed to whoever currently governs (candidate, job).

    Raises:
        NotFound: Job or candidate does not exist
        PreconditionFailed: Job closed, or recruiter lacks representation rights
        ConflictError: Open application already exists, or another recruiter
            represents the candidate
        InvalidInput: Answers reference questions of another job
    """
    job = await session.get(Job, job_id)
    if job is None:
        raise NotFound("Job", job_id)
    if job.status != JobStatus.ACTIVE:
        raise PreconditionFailed(
            f"Job {job_id} is not accepting applications",
            job_id=job_id,
            job_status=job.status.value,
        )
    if await session.get(Candidate, candidate_id) is None:
        raise NotFound("Candidate", candidate_id)

    existing = await find_open_application(session, candidate_id, job_id)
    if existing is not None:
        raise ConflictError(
            "Candidate already has an open application for this job",
            existing_application_id=existing.id,
            candidate_id=candidate_id,
            job_id=job_id,
        )

    answers = answers or {}
    if answers:
        question_ids = {q.id for q in await _job_questions(session, job_id)}
        unknown = sorted(set(answers) - question_ids)
        if unknown:
            raise InvalidInput(
                "Answers reference questions that do not belong to this job",
                question_ids=unknown,
            )

    if recruiter_id is not None:
        if consent_source is not None:
            await relationship_service.establish_relationship(
                session,
                recruiter_id=recruiter_id,
                candidate_id=candidate_id,
                job_id=job_id,
                consent_source=consent_source,
                actor=actor,
                at=at,
                duration_months=relationship_duration_months,
                outbox=outbox,
            )
        else:
            governing = await relationship_service.find_governing_relationship(
                session, candidate_id, job_id, at
            )
            if governing is None:
                raise PreconditionFailed(
                    "Recruiter has no right to represent this candidate; consent is required",
                    recruiter_id=recruiter_id,
                    candidate_id=candidate_id,
                )
            if governing.recruiter_id != recruiter_id:
                raise ConflictError(
                    "Candidate is already represented by another recruiter",
                    conflicting_relationship_id=governing.id,
                    candidate_id=candidate_id,
                    job_id=job_id,
                )
    else:
        governing = await relationship_service.find_governing_relationship(
            session, candidate_id, job_id, at
        )
        if governing is not None:
            recruiter_id = governing.recruiter_id

    application = Application(
        candidate_id=candidate_id,
        job_id=job_id,
        recruiter_id=recruiter_id,
        stage=ApplicationStage.DRAFT,
        primary_resume_id=primary_resume_id,
        notes=notes,
        created_at=at,
        updated_at=at,
    )
    session.add(application)
    await session.flush()

    attached = list(dict.fromkeys(document_ids or []))
    if primary_resume_id and primary_resume_id not in attached:
        attached.insert(0, primary_resume_id)
    for document_id in attached:
        session.add(
            ApplicationDocument(
                application_id=application.id,
                document_id=document_id,
                document_type=DocumentType.RESUME
                if document_id == primary_resume_id
                else DocumentType.OTHER,
                is_primary=document_id == primary_resume_id,
                created_at=at,
            )
        )
    for question_id, answer in answers.items():
        session.add(
            ApplicationAnswer(
                application_id=application.id,
                question_id=question_id,
                answer=answer,
                created_at=at,
            )
        )

    _record_stage(session, application, None, ApplicationStage.DRAFT, actor, at, "submitted")
    await session.flush()

    logger.info(
        f"Application {application.id} created for candidate {candidate_id} "
        f"on job {job_id} (recruiter {recruiter_id})"
    )
    return application


async def update_recruiter_notes(
    session: AsyncSession,
    application: Application,
    actor: Actor,
    notes: Optional[str],
    at: datetime,
) -> Application:
    application.recruiter_notes = notes
    add_audit_entry(
        session,
        actor,
        AuditAction.APPLICATION_NOTES_UPDATED,
        AuditEntityType.APPLICATION,
        application.id,
        at=at,
        application_id=application.id,
    )
    return application


# ==================== State Machine ==================== #


async def check_submission_requirements(
    session: AsyncSession,
    application: Application,
    documents: DocumentStore,
) -> None:
    """
    Gate for entering ``submitted``.

    Needs a primary resume the document store knows about, at least one
    attached document, and an answer to every required job question.
    """
    if not application.primary_resume_id:
        raise PreconditionFailed(
            "A primary resume is required before submission",
            application_id=application.id,
            missing="primary_resume_id",
        )

    document_count = (
        await session.execute(
            select(func.count(ApplicationDocument.id)).where(
                ApplicationDocument.application_id == application.id
            )
        )
    ).scalar() or 0
    if document_count == 0:
        raise PreconditionFailed(
            "At least one document must be attached before submission",
            application_id=application.id,
            missing="documents",
        )

    if not await documents.exists(application.primary_resume_id):
        raise PreconditionFailed(
            "Primary resume was not found in the document store",
            application_id=application.id,
            primary_resume_id=application.primary_resume_id,
        )

    required = [q.id for q in await _job_questions(session, application.job_id) if q.is_required]
    if required:
        answered = set(
            (
                await session.execute(
                    select(ApplicationAnswer.question_id).where(
                        ApplicationAnswer.application_id == application.id
                    )
                )
            ).scalars().all()
        )
        missing = [question_id for question_id in required if question_id not in answered]
        if missing:
            raise PreconditionFailed(
                "Required pre-screen questions are unanswered",
                application_id=application.id,
                missing_question_ids=missing,
            )


async def _hire(
    session: AsyncSession,
    application: Application,
    actor: Actor,
    at: datetime,
    hire: Optional[HireDetails],
    tiers: TierService,
    outbox: List[DomainEvent],
) -> Placement:
    if hire is None or hire.salary is None:
        raise PreconditionFailed(
            "Hire details with a salary are required to mark an application hired",
            application_id=application.id,
            missing="salary",
        )
    if application.recruiter_id is None:
        raise PreconditionFailed(
            "Application has no recruiter; a placement cannot be created",
            application_id=application.id,
            missing="recruiter_id",
        )

    job = await session.get(Job, application.job_id)
    if job is None:
        raise NotFound("Job", application.job_id)

    governing = await relationship_service.find_governing_relationship(
        session, application.candidate_id, application.job_id, at
    )
    if governing is not None and governing.recruiter_id != application.recruiter_id:
        raise PreconditionFailed(
            "Candidate is now represented by a different recruiter than the one on the application",
            application_id=application.id,
            recruiter_id=application.recruiter_id,
            conflicting_relationship_id=governing.id,
        )

    fee_percentage = hire.fee_percentage if hire.fee_percentage is not None else job.fee_percentage
    hired_at = ensure_utc(hire.hired_at) if hire.hired_at else at

    salary = round_money(to_decimal(hire.salary, "salary"))
    fee_percentage = to_decimal(fee_percentage, "fee_percentage")
    tier = await tiers.get_recruiter_tier(application.recruiter_id)
    split = compute_split(salary, fee_percentage, tier)

    placement = await create_placement(
        session,
        application,
        split,
        salary=salary,
        fee_percentage=fee_percentage,
        recruiter_tier=tier,
        hired_at=hired_at,
        actor=actor,
        outbox=outbox,
        relationship_id=governing.id if governing else None,
    )

    if governing is not None:
        relationship_service.expire_for_hire(
            session, governing, hired_at, actor, application.id, outbox
        )
    else:
        logger.warning(
            f"Application {application.id} hired with no governing relationship "
            f"for candidate {application.candidate_id}"
        )
    return placement


async def apply_transition(
    session: AsyncSession,
    application: Application,
    target: ApplicationStage,
    actor: Actor,
    at: datetime,
    documents: DocumentStore,
    tiers: TierService,
    outbox: List[DomainEvent],
    reason: Optional[str] = None,
    hire: Optional[HireDetails] = None,
) -> TransitionOutcome:
    """
    Move an application to ``target``.

    Requesting the current stage is a no-op (no history entry, no event).

    Raises:
        InvalidTransition: ``target`` is not reachable from the current stage
        PreconditionFailed: Resume, documents, answers, salary or recruiter missing
    """
    current = application.stage
    if target == current:
        return TransitionOutcome(application=application, from_stage=current, changed=False)

    if not current.can_transition_to(target):
        raise InvalidTransition(current.value, target.value)

    if current == ApplicationStage.DRAFT and not application.primary_resume_id:
        raise PreconditionFailed(
            "A primary resume is required before leaving draft",
            application_id=application.id,
            missing="primary_resume_id",
        )

    if target == ApplicationStage.SUBMITTED:
        await check_submission_requirements(session, application, documents)

    placement = None
    if target == ApplicationStage.HIRED:
        placement = await _hire(session, application, actor, at, hire, tiers, outbox)

    application.stage = target
    _record_stage(session, application, current, target, actor, at, reason)
    await session.flush()

    outbox.append(
        DomainEvent(
            event_type=APPLICATION_STAGE_CHANGED,
            payload={
                "application_id": application.id,
                "job_id": application.job_id,
                "candidate_id": application.candidate_id,
                "recruiter_id": application.recruiter_id,
                "from_stage": current.value,
                "to_stage": target.value,
                "reason": reason,
                "changed_by": actor.actor_id,
            },
            timestamp=at,
        )
    )
    logger.info(
        f"Application {application.id} moved {current.value} -> {target.value} "
        f"by {actor.role.value}:{actor.actor_id}"
    )
    return TransitionOutcome(
        application=application,
        from_stage=current,
        changed=True,
        placement=placement,
    )
