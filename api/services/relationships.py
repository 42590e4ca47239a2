"""
Relationship ledger: who holds the right to represent a candidate.

Functions here run inside a caller-owned transaction and under the caller's
``candidate:<id>`` lock; ``api.services.engine`` provides both. Events are
appended to the caller's outbox and published after commit.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from api.services.audit import add_audit_entry
from core.errors import ConflictError, InvalidInput, NotFound, PreconditionFailed
from core.events import (
    DomainEvent,
    RELATIONSHIP_ESTABLISHED,
    RELATIONSHIP_EXPIRED,
    RELATIONSHIP_TERMINATED,
)
from core.security import Actor
from core.utils.datetime import add_months, ensure_utc, format_datetime
from database.models.audit import AuditAction, AuditEntityType
from database.models.candidates import Candidate
from database.models.jobs import Job
from database.models.recruiters import Recruiter, RecruiterStatus
from database.models.relationships import (
    Relationship,
    RelationshipStatus,
    scope_key_for,
)

logger = logging.getLogger(__name__)


def relationship_to_dict(relationship: Relationship) -> Dict[str, Any]:
    return {
        "id": relationship.id,
        "recruiter_id": relationship.recruiter_id,
        "candidate_id": relationship.candidate_id,
        "job_id": relationship.job_id,
        "status": relationship.status.value,
        "relationship_start_date": format_datetime(relationship.relationship_start_date),
        "relationship_end_date": format_datetime(relationship.relationship_end_date),
        "consent_given": relationship.consent_given,
        "consent_source": relationship.consent_source,
        "expired_at": format_datetime(relationship.expired_at),
        "terminated_at": format_datetime(relationship.terminated_at),
        "terminated_by": relationship.terminated_by,
        "termination_reason": relationship.termination_reason,
    }


def _event(event_type: str, relationship: Relationship, at: datetime, **extra) -> DomainEvent:
    payload = {
        "relationship_id": relationship.id,
        "recruiter_id": relationship.recruiter_id,
        "candidate_id": relationship.candidate_id,
        "job_id": relationship.job_id,
        "status": relationship.status.value,
        **extra,
    }
    return DomainEvent(event_type=event_type, payload=payload, timestamp=at)


def is_past_end(relationship: Relationship, at: datetime) -> bool:
    return ensure_utc(relationship.relationship_end_date) <= at


# ==================== Reads ==================== #


async def get_relationship(session: AsyncSession, relationship_id: int) -> Relationship:
    relationship = await session.get(Relationship, relationship_id)
    if relationship is None:
        raise NotFound("Relationship", relationship_id)
    return relationship


async def list_relationships(
    session: AsyncSession,
    candidate_id: Optional[int] = None,
    recruiter_id: Optional[int] = None,
    status: Optional[RelationshipStatus] = None,
) -> List[Relationship]:
    query = select(Relationship)
    if candidate_id is not None:
        query = query.where(Relationship.candidate_id == candidate_id)
    if recruiter_id is not None:
        query = query.where(Relationship.recruiter_id == recruiter_id)
    if status is not None:
        query = query.where(Relationship.status == status)
    result = await session.execute(query.order_by(Relationship.id))
    return list(result.scalars().all())


async def active_relationships_for_candidate(
    session: AsyncSession,
    candidate_id: int,
) -> List[Relationship]:
    result = await session.execute(
        select(Relationship)
        .where(
            Relationship.candidate_id == candidate_id,
            Relationship.status == RelationshipStatus.ACTIVE,
        )
        .order_by(Relationship.id)
    )
    return list(result.scalars().all())


async def active_relationship_for_scope(
    session: AsyncSession,
    candidate_id: int,
    job_id: Optional[int],
) -> Optional[Relationship]:
    """The active relationship occupying exactly this (candidate, scope) slot."""
    result = await session.execute(
        select(Relationship).where(
            Relationship.candidate_id == candidate_id,
            Relationship.scope_key == scope_key_for(job_id),
            Relationship.status == RelationshipStatus.ACTIVE,
        )
    )
    return result.scalars().first()


async def find_governing_relationship(
    session: AsyncSession,
    candidate_id: int,
    job_id: int,
    at: datetime,
) -> Optional[Relationship]:
    """
    Relationship that governs (candidate, job) at ``at``.

    A job-scoped relationship wins over a general one. Relationships past
    their end date do not govern, whether or not they were swept yet.
    """
    general = None
    for relationship in await active_relationships_for_candidate(session, candidate_id):
        if is_past_end(relationship, at):
            continue
        if relationship.job_id == job_id:
            return relationship
        if relationship.is_general:
            general = relationship
    return general


def resolve_scope(
    active: List[Relationship],
    recruiter_id: int,
    job_id: Optional[int],
) -> Tuple[Optional[Relationship], Optional[Relationship]]:
    """
    Decide how a new claim on a scope relates to the live relationships.

    Returns ``(existing, conflicting)``. ``existing`` is a relationship the
    same recruiter already holds that covers the scope; ``conflicting`` is one
    held by another recruiter. At most one of them is set.
    """
    general = next((r for r in active if r.is_general), None)

    if job_id is not None:
        same_scope = next((r for r in active if r.job_id == job_id), None)
        if same_scope is not None:
            if same_scope.recruiter_id == recruiter_id:
                return same_scope, None
            return None, same_scope
        if general is not None:
            if general.recruiter_id == recruiter_id:
                return general, None
            return None, general
        return None, None

    if general is not None:
        if general.recruiter_id == recruiter_id:
            return general, None
        return None, general
    other = next((r for r in active if r.recruiter_id != recruiter_id), None)
    return None, other


# ==================== Expiry ==================== #


def _mark_expired(relationship: Relationship, at: datetime) -> None:
    relationship.status = RelationshipStatus.EXPIRED
    relationship.expired_at = at


async def expire_stale_relationships(
    session: AsyncSession,
    at: datetime,
    actor: Actor,
    outbox: List[DomainEvent],
    candidate_id: Optional[int] = None,
) -> List[Relationship]:
    """Flip active relationships whose end date has passed to expired."""
    query = select(Relationship).where(
        Relationship.status == RelationshipStatus.ACTIVE,
        Relationship.relationship_end_date <= at,
    )
    if candidate_id is not None:
        query = query.where(Relationship.candidate_id == candidate_id)
    result = await session.execute(query.order_by(Relationship.id))
    expired = list(result.scalars().all())

    for relationship in expired:
        _mark_expired(relationship, at)
        add_audit_entry(
            session,
            actor,
            AuditAction.RELATIONSHIP_EXPIRED,
            AuditEntityType.RELATIONSHIP,
            relationship.id,
            at=at,
            changes={"reason": "end_date_reached"},
        )
        outbox.append(_event(RELATIONSHIP_EXPIRED, relationship, at, reason="end_date_reached"))

    if expired:
        logger.info(f"Expired {len(expired)} relationship(s) past their end date")
        await session.flush()
    return expired


def expire_for_hire(
    session: AsyncSession,
    relationship: Relationship,
    hired_at: datetime,
    actor: Actor,
    application_id: int,
    outbox: List[DomainEvent],
) -> None:
    """Close the governing relationship once its candidate is hired into the job."""
    _mark_expired(relationship, hired_at)
    if hired_at < ensure_utc(relationship.relationship_end_date):
        relationship.relationship_end_date = hired_at
    add_audit_entry(
        session,
        actor,
        AuditAction.RELATIONSHIP_EXPIRED,
        AuditEntityType.RELATIONSHIP,
        relationship.id,
        at=hired_at,
        application_id=application_id,
        changes={"reason": "hired", "application_id": application_id},
    )
    outbox.append(
        _event(
            RELATIONSHIP_EXPIRED,
            relationship,
            hired_at,
            reason="hired",
            application_id=application_id,
        )
    )


# ==================== Writes ==================== #


async def _require_recruiter(session: AsyncSession, recruiter_id: int) -> Recruiter:
    recruiter = await session.get(Recruiter, recruiter_id)
    if recruiter is None:
        raise NotFound("Recruiter", recruiter_id)
    if recruiter.status != RecruiterStatus.ACTIVE:
        raise PreconditionFailed(
            f"Recruiter {recruiter_id} is not active",
            recruiter_id=recruiter_id,
            recruiter_status=recruiter.status.value,
        )
    return recruiter


async def establish_relationship(
    session: AsyncSession,
    *,
    recruiter_id: int,
    candidate_id: int,
    job_id: Optional[int],
    consent_source: Optional[str],
    actor: Actor,
    at: datetime,
    duration_months: int,
    outbox: List[DomainEvent],
    application_id: Optional[int] = None,
) -> Tuple[Relationship, bool]:
    """
    Grant ``recruiter_id`` the right to represent ``candidate_id``.

    Returns ``(relationship, created)``. Repeating a grant the recruiter
    already holds returns the live relationship with ``created=False``.

    Raises:
        ConflictError: Another recruiter holds the scope (or a general
            relationship covering it); carries ``conflicting_relationship_id``
        NotFound: Recruiter, candidate or job does not exist
        PreconditionFailed: Recruiter is not active
    """
    if consent_source is not None and not consent_source.strip():
        raise InvalidInput("consent_source cannot be blank", field="consent_source")

    await _require_recruiter(session, recruiter_id)
    if await session.get(Candidate, candidate_id) is None:
        raise NotFound("Candidate", candidate_id)
    if job_id is not None and await session.get(Job, job_id) is None:
        raise NotFound("Job", job_id)

    await expire_stale_relationships(session, at, actor, outbox, candidate_id=candidate_id)
    active = await active_relationships_for_candidate(session, candidate_id)

    existing, conflicting = resolve_scope(active, recruiter_id, job_id)
    if conflicting is not None:
        logger.warning(
            f"Recruiter {recruiter_id} blocked from candidate {candidate_id} "
            f"(job {job_id}) by relationship {conflicting.id}"
        )
        raise ConflictError(
            "Candidate is already represented by another recruiter",
            conflicting_relationship_id=conflicting.id,
            candidate_id=candidate_id,
            job_id=job_id,
        )
    if existing is not None:
        logger.info(
            f"Recruiter {recruiter_id} already holds relationship {existing.id} "
            f"for candidate {candidate_id}"
        )
        return existing, False

    relationship = Relationship(
        recruiter_id=recruiter_id,
        candidate_id=candidate_id,
        job_id=job_id,
        scope_key=scope_key_for(job_id),
        status=RelationshipStatus.ACTIVE,
        relationship_start_date=at,
        relationship_end_date=add_months(at, duration_months),
        consent_given=consent_source is not None,
        consent_source=consent_source,
        consent_given_at=at if consent_source is not None else None,
        created_at=at,
    )
    try:
        async with session.begin_nested():
            session.add(relationship)
            await session.flush()
    except IntegrityError as e:
        # another writer claimed the scope between our read and insert
        holder = await active_relationship_for_scope(session, candidate_id, job_id)
        if holder is not None and holder.recruiter_id == recruiter_id:
            return holder, False
        raise ConflictError(
            "Candidate is already represented by another recruiter",
            conflicting_relationship_id=holder.id if holder is not None else None,
            candidate_id=candidate_id,
            job_id=job_id,
        ) from e

    add_audit_entry(
        session,
        actor,
        AuditAction.RELATIONSHIP_ESTABLISHED,
        AuditEntityType.RELATIONSHIP,
        relationship.id,
        at=at,
        application_id=application_id,
        changes={
            "recruiter_id": recruiter_id,
            "job_id": job_id,
            "consent_source": consent_source,
            "relationship_end_date": format_datetime(relationship.relationship_end_date),
        },
    )
    outbox.append(_event(RELATIONSHIP_ESTABLISHED, relationship, at))
    logger.info(
        f"Relationship {relationship.id} established: recruiter {recruiter_id} -> "
        f"candidate {candidate_id} (job {job_id})"
    )
    return relationship, True


async def terminate_relationship(
    session: AsyncSession,
    relationship_id: int,
    actor: Actor,
    at: datetime,
    outbox: List[DomainEvent],
    reason: Optional[str] = None,
) -> Tuple[Relationship, bool]:
    """
    End a relationship immediately. Placements are never touched.

    Returns ``(relationship, changed)``; terminating a relationship that is
    no longer active is a no-op.
    """
    relationship = await get_relationship(session, relationship_id)
    if relationship.status != RelationshipStatus.ACTIVE:
        return relationship, False

    relationship.status = RelationshipStatus.TERMINATED
    relationship.terminated_at = at
    relationship.terminated_by = actor.actor_id
    relationship.termination_reason = reason

    add_audit_entry(
        session,
        actor,
        AuditAction.RELATIONSHIP_TERMINATED,
        AuditEntityType.RELATIONSHIP,
        relationship.id,
        at=at,
        changes={"reason": reason},
    )
    outbox.append(_event(RELATIONSHIP_TERMINATED, relationship, at, reason=reason))
    logger.info(f"Relationship {relationship.id} terminated by {actor.role.value}:{actor.actor_id}")
    return relationship, True


async def renew_relationship(
    session: AsyncSession,
    relationship_id: int,
    actor: Actor,
    at: datetime,
    duration_months: int,
) -> Relationship:
    """Extend an active relationship to a full term from now."""
    relationship = await get_relationship(session, relationship_id)
    if relationship.status != RelationshipStatus.ACTIVE or is_past_end(relationship, at):
        raise PreconditionFailed(
            "Only active relationships can be renewed",
            relationship_id=relationship_id,
            status=relationship.status.value,
        )

    previous_end = relationship.relationship_end_date
    relationship.relationship_end_date = add_months(at, duration_months)
    add_audit_entry(
        session,
        actor,
        AuditAction.RELATIONSHIP_RENEWED,
        AuditEntityType.RELATIONSHIP,
        relationship.id,
        at=at,
        changes={
            "previous_end_date": format_datetime(previous_end),
            "relationship_end_date": format_datetime(relationship.relationship_end_date),
        },
    )
    return relationship
