"""
Relationship Models

The "Right to Represent": a time-boxed exclusivity giving one recruiter the
sole right to submit a candidate, either to one job or to every job (general).
"""

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import (
    String,
    Boolean,
    ForeignKey,
    BigInteger,
    DateTime,
    func,
    Text,
    Enum as SQLEnum,
    Index,
    text,
)
from database.engine import Base, BigIntPK, enum_values
from core.utils.datetime import now
from datetime import datetime
from enum import Enum as PyEnum


GENERAL_SCOPE = "general"


def scope_key_for(job_id: int | None) -> str:
    """Uniqueness key for a relationship's scope; NULL job ids never collide in an index."""
    return GENERAL_SCOPE if job_id is None else f"job:{job_id}"


# ==================== Relationship Enums ===================== #
class RelationshipStatus(str, PyEnum):
    """Status of a recruiter/candidate relationship."""

    ACTIVE = "active"
    EXPIRED = "expired"
    TERMINATED = "terminated"


# ==================== Relationship Model ===================== #
class Relationship(Base):
    """
    Right to represent a candidate.

    At most one active row per (candidate, scope). A general relationship
    (job_id NULL) governs every job unless a job-scoped one exists.
    """

    __tablename__ = "recruiter_candidate_relationships"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    recruiter_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("recruiters.id"), nullable=False, index=True
    )
    candidate_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("candidates.id"), nullable=False, index=True
    )
    job_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("jobs.id"), index=True
    )
    scope_key: Mapped[str] = mapped_column(String(64), nullable=False)

    status: Mapped[RelationshipStatus] = mapped_column(
        SQLEnum(RelationshipStatus, native_enum=False, length=50, values_callable=enum_values),
        nullable=False,
        default=RelationshipStatus.ACTIVE,
        index=True,
    )

    relationship_start_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    relationship_end_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )

    # Consent
    consent_given: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    consent_source: Mapped[str | None] = mapped_column(String(255))
    consent_given_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Closure
    expired_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    terminated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    terminated_by: Mapped[int | None] = mapped_column(BigInteger)
    termination_reason: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=now,
        onupdate=now,
        server_default=func.now(),
    )

    __table_args__ = (
        Index(
            "uq_relationship_active_scope",
            "candidate_id",
            "scope_key",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
        Index("idx_relationship_candidate_status", "candidate_id", "status"),
        Index("idx_relationship_status_end", "status", "relationship_end_date"),
    )

    @property
    def is_general(self) -> bool:
        return self.job_id is None
