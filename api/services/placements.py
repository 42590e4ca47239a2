"""Placement records: written once at hire, read afterwards."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.services.audit import add_audit_entry
from api.services.fee_split import FeeSplit, round_money
from core.errors import NotFound
from core.events import DomainEvent, PLACEMENT_CREATED
from core.security import Actor
from core.utils.datetime import format_datetime
from database.models.applications import Application
from database.models.audit import AuditAction, AuditEntityType
from database.models.placements import Placement
from database.models.recruiters import RecruiterTier

logger = logging.getLogger(__name__)


def _decimal_text(value) -> str:
    """Two-place text for money and percentages, matching the stored scale."""
    return str(round_money(Decimal(value)))


def placement_to_dict(placement: Placement) -> Dict[str, Any]:
    return {
        "id": placement.id,
        "application_id": placement.application_id,
        "candidate_id": placement.candidate_id,
        "job_id": placement.job_id,
        "recruiter_id": placement.recruiter_id,
        "relationship_id": placement.relationship_id,
        "recruiter_tier": placement.recruiter_tier.value if placement.recruiter_tier else None,
        "recruiter_share_percentage": _decimal_text(placement.recruiter_share_percentage),
        "salary": _decimal_text(placement.salary),
        "fee_percentage": _decimal_text(placement.fee_percentage),
        "fee_amount": _decimal_text(placement.fee_amount),
        "recruiter_amount": _decimal_text(placement.recruiter_amount),
        "platform_amount": _decimal_text(placement.platform_amount),
        "hired_at": format_datetime(placement.hired_at),
    }


async def create_placement(
    session: AsyncSession,
    application: Application,
    split: FeeSplit,
    salary,
    fee_percentage,
    recruiter_tier: Optional[RecruiterTier],
    hired_at: datetime,
    actor: Actor,
    outbox: List[DomainEvent],
    relationship_id: Optional[int] = None,
) -> Placement:
    placement = Placement(
        application_id=application.id,
        candidate_id=application.candidate_id,
        job_id=application.job_id,
        recruiter_id=application.recruiter_id,
        relationship_id=relationship_id,
        recruiter_tier=recruiter_tier,
        recruiter_share_percentage=split.recruiter_share_percentage,
        salary=salary,
        fee_percentage=fee_percentage,
        fee_amount=split.fee_amount,
        recruiter_amount=split.recruiter_amount,
        platform_amount=split.platform_amount,
        hired_at=hired_at,
        created_by=actor.actor_id,
        created_at=hired_at,
    )
    session.add(placement)
    await session.flush()

    add_audit_entry(
        session,
        actor,
        AuditAction.PLACEMENT_CREATED,
        AuditEntityType.PLACEMENT,
        placement.id,
        at=hired_at,
        application_id=application.id,
        changes=split.as_dict(),
    )
    outbox.append(
        DomainEvent(
            event_type=PLACEMENT_CREATED,
            payload=placement_to_dict(placement),
            timestamp=hired_at,
        )
    )
    logger.info(
        f"Placement {placement.id} created for application {application.id}: "
        f"fee {split.fee_amount}, recruiter {split.recruiter_amount}, "
        f"platform {split.platform_amount}"
    )
    return placement


async def get_placement(session: AsyncSession, placement_id: int) -> Placement:
    placement = await session.get(Placement, placement_id)
    if placement is None:
        raise NotFound("Placement", placement_id)
    return placement


async def find_placement_for_application(
    session: AsyncSession,
    application_id: int,
) -> Optional[Placement]:
    result = await session.execute(
        select(Placement).where(Placement.application_id == application_id)
    )
    return result.scalar_one_or_none()
