"""
Audit trail helpers.

Stage changes live in ``application_stage_history``; every other engine action
is written to ``audit_logs`` in the same transaction as the change itself.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.security import Actor
from core.utils.datetime import format_datetime
from database.models.audit import AuditAction, AuditEntityType, AuditLog

logger = logging.getLogger(__name__)


def add_audit_entry(
    session: AsyncSession,
    actor: Actor,
    action: AuditAction,
    entity_type: AuditEntityType,
    entity_id: int,
    at: datetime,
    application_id: Optional[int] = None,
    changes: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    entry = AuditLog(
        actor_id=actor.actor_id,
        actor_role=actor.role.value,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        application_id=application_id,
        changes=changes,
        created_at=at,
    )
    session.add(entry)
    logger.info(
        f"Audit {action.value} on {entity_type.value} {entity_id} "
        f"by {actor.role.value}:{actor.actor_id}"
    )
    return entry


async def list_audit_entries(
    session: AsyncSession,
    application_id: int,
) -> List[Dict[str, Any]]:
    result = await session.execute(
        select(AuditLog)
        .where(AuditLog.application_id == application_id)
        .order_by(AuditLog.created_at, AuditLog.id)
    )
    return [audit_entry_to_dict(entry) for entry in result.scalars().all()]


def audit_entry_to_dict(entry: AuditLog) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "action": entry.action.value,
        "entity_type": entry.entity_type.value,
        "entity_id": entry.entity_id,
        "actor_id": entry.actor_id,
        "actor_role": entry.actor_role,
        "changes": entry.changes,
        "created_at": format_datetime(entry.created_at),
    }
