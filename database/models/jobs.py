"""
Job Models

Jobs posted by companies, the pre-screen question set applications are
checked against, and the recruiter assignments that grant job access.
These tables are owned by the job-posting service; the engine only reads them.
"""

from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import (
    String,
    Boolean,
    ForeignKey,
    BigInteger,
    DateTime,
    func,
    Text,
    Numeric,
    Enum as SQLEnum,
    Index,
    UniqueConstraint,
)
from database.engine import Base, BigIntPK, enum_values
from core.utils.datetime import now
from datetime import datetime
from decimal import Decimal
from enum import Enum as PyEnum


# ==================== Job Enums ===================== #
class JobStatus(str, PyEnum):
    """Publication status of a job."""

    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    FILLED = "filled"
    CLOSED = "closed"


# ==================== Job Model ===================== #
class Job(Base):
    """
    A role a company is hiring for, with its placement fee percentage.
    """

    __tablename__ = "jobs"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)

    # Percentage of first-year salary charged on hire, e.g. 20.00
    fee_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)

    status: Mapped[JobStatus] = mapped_column(
        SQLEnum(JobStatus, native_enum=False, length=50, values_callable=enum_values),
        nullable=False,
        default=JobStatus.ACTIVE,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now, server_default=func.now()
    )

    # Relationships
    questions: Mapped[list["JobPreScreenQuestion"]] = relationship(
        back_populates="job", cascade="all, delete-orphan"
    )

    __table_args__ = (Index("idx_job_company_status", "company_id", "status"),)


# ==================== Pre-Screen Question Model ===================== #
class JobPreScreenQuestion(Base):
    """
    Question candidates answer when applying. Required questions must be
    answered before the application can be submitted to the company.
    """

    __tablename__ = "job_pre_screen_questions"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    job_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    question: Mapped[str] = mapped_column(Text, nullable=False)
    is_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sort_order: Mapped[int] = mapped_column(default=0, nullable=False)

    job: Mapped["Job"] = relationship(back_populates="questions")


# ==================== Role Assignment Model ===================== #
class RoleAssignment(Base):
    """
    Grants a recruiter access to work a job.
    """

    __tablename__ = "role_assignments"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    job_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    recruiter_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("recruiters.id", ondelete="CASCADE"), nullable=False, index=True
    )
    assigned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("job_id", "recruiter_id", name="uq_role_assignment_job_recruiter"),
    )
