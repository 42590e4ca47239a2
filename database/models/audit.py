from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import (
    String,
    BigInteger,
    DateTime,
    func,
    JSON,
    Enum as SQLEnum,
    Index,
)
from database.engine import Base, BigIntPK, enum_values
from database.security import immutable_record
from core.utils.datetime import now
from datetime import datetime
from enum import Enum as PyEnum
from typing import Any


# ============ Audit Enums ============ #
class AuditAction(str, PyEnum):
    """Audit action types."""

    APPLICATION_ACCEPTED = "application.accepted"
    APPLICATION_NOTES_UPDATED = "application.recruiter_notes_updated"
    PRESCREEN_REQUESTED = "application.prescreen_requested"
    RELATIONSHIP_ESTABLISHED = "relationship.established"
    RELATIONSHIP_RENEWED = "relationship.renewed"
    RELATIONSHIP_TERMINATED = "relationship.terminated"
    RELATIONSHIP_EXPIRED = "relationship.expired"
    PLACEMENT_CREATED = "placement.created"


class AuditEntityType(str, PyEnum):
    APPLICATION = "application"
    RELATIONSHIP = "relationship"
    PLACEMENT = "placement"


# ==================== Models ===================== #
@immutable_record
class AuditLog(Base):
    """
    Append-only trail for engine actions other than stage changes.
    """

    __tablename__ = "audit_logs"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)

    # Actor
    actor_id: Mapped[int | None] = mapped_column(BigInteger, index=True)
    actor_role: Mapped[str] = mapped_column(String(50), nullable=False)

    # Action
    action: Mapped[AuditAction] = mapped_column(
        SQLEnum(AuditAction, native_enum=False, length=64, values_callable=enum_values),
        nullable=False,
        index=True,
    )
    entity_type: Mapped[AuditEntityType] = mapped_column(
        SQLEnum(AuditEntityType, native_enum=False, length=50, values_callable=enum_values),
        nullable=False,
    )
    entity_id: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # Related application, for history queries
    application_id: Mapped[int | None] = mapped_column(BigInteger, index=True)

    changes: Mapped[dict[str, Any] | None] = mapped_column(JSON)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now, server_default=func.now()
    )

    __table_args__ = (Index("idx_audit_entity", "entity_type", "entity_id"),)
