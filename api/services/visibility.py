"""
Visibility & masking policy.

Companies see a candidate's identity only after accepting the application.
Masking is applied on read; stored data is never altered.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from api.services.audit import add_audit_entry
from core.events import APPLICATION_ACCEPTED, DomainEvent
from core.security import Actor
from database.models.applications import Application
from database.models.audit import AuditAction, AuditEntityType
from database.models.candidates import Candidate
from database.security import MASKED_EMAIL, initials


def should_mask(viewer: Optional[Actor], application: Application) -> bool:
    return viewer is not None and viewer.is_company and not application.accepted_by_company


def candidate_to_dict(candidate: Candidate) -> Dict[str, Any]:
    return {
        "id": candidate.id,
        "full_name": candidate.full_name,
        "email": candidate.email,
        "masked": False,
    }


def mask_candidate(candidate: Dict[str, Any]) -> Dict[str, Any]:
    """Masked projection of a candidate dict; ``id`` is kept."""
    return {
        **candidate,
        "full_name": initials(candidate.get("full_name")),
        "email": MASKED_EMAIL,
        "masked": True,
    }


def candidate_view(
    candidate: Optional[Candidate],
    application: Application,
    viewer: Optional[Actor],
) -> Optional[Dict[str, Any]]:
    if candidate is None:
        return None
    view = candidate_to_dict(candidate)
    if should_mask(viewer, application):
        return mask_candidate(view)
    return view


def accept_application(
    session: AsyncSession,
    application: Application,
    actor: Actor,
    at: datetime,
    outbox: List[DomainEvent],
) -> Tuple[Application, bool]:
    """
    Company accepts the application, unmasking the candidate.

    One-way and idempotent: returns ``(application, changed)``; a second
    acceptance keeps the original ``accepted_at``. Stage is untouched.
    """
    if application.accepted_by_company:
        return application, False

    application.accepted_by_company = True
    application.accepted_at = at

    add_audit_entry(
        session,
        actor,
        AuditAction.APPLICATION_ACCEPTED,
        AuditEntityType.APPLICATION,
        application.id,
        at=at,
        application_id=application.id,
        changes={"accepted_by_company": True},
    )
    outbox.append(
        DomainEvent(
            event_type=APPLICATION_ACCEPTED,
            payload={
                "application_id": application.id,
                "job_id": application.job_id,
                "candidate_id": application.candidate_id,
                "recruiter_id": application.recruiter_id,
                "accepted_by": actor.actor_id,
            },
            timestamp=at,
        )
    )
    return application, True
