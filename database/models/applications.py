"""
Application Models

A candidate's pursuit of one job: lifecycle stage, attached documents,
pre-screen answers and the immutable stage history. Stage changes go through
``api.services.applications.apply_transition`` only.
"""

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import (
    String,
    Boolean,
    ForeignKey,
    BigInteger,
    DateTime,
    Integer,
    func,
    Text,
    Enum as SQLEnum,
    Index,
    UniqueConstraint,
    text,
)
from database.engine import Base, BigIntPK, enum_values
from database.security import immutable_record
from core.utils.datetime import now
from datetime import datetime
from enum import Enum as PyEnum


# ==================== Application Enums ===================== #
class ApplicationStage(str, PyEnum):
    """Lifecycle stage of an application."""

    DRAFT = "draft"
    AI_REVIEW = "ai_review"
    SCREEN = "screen"
    SUBMITTED = "submitted"
    INTERVIEW = "interview"
    OFFER = "offer"
    HIRED = "hired"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"

    def can_transition_to(self, new: "ApplicationStage") -> bool:
        allowed = APPLICATION_STAGE_TRANSITIONS.get(self, set())
        return new in allowed

    @classmethod
    def try_parse(cls, value: str) -> "ApplicationStage | None":
        if value is None:
            return None
        try:
            normalized = str(value).strip().lower().replace(" ", "_").replace("-", "_")
            return cls(normalized)
        except ValueError:
            return None


class DocumentType(str, PyEnum):
    RESUME = "resume"
    COVER_LETTER = "cover_letter"
    OTHER = "other"


# Helpers
APPLICATION_STAGE_TERMINALS = {
    ApplicationStage.HIRED,
    ApplicationStage.REJECTED,
    ApplicationStage.WITHDRAWN,
}

# Stages that no longer block a new application to the same job
APPLICATION_STAGE_CLOSED = {
    ApplicationStage.REJECTED,
    ApplicationStage.WITHDRAWN,
}

_EXITS = {ApplicationStage.REJECTED, ApplicationStage.WITHDRAWN}

APPLICATION_STAGE_TRANSITIONS = {
    ApplicationStage.DRAFT: {ApplicationStage.AI_REVIEW},
    ApplicationStage.AI_REVIEW: {ApplicationStage.SCREEN} | _EXITS,
    ApplicationStage.SCREEN: {ApplicationStage.SUBMITTED} | _EXITS,
    ApplicationStage.SUBMITTED: {ApplicationStage.INTERVIEW} | _EXITS,
    ApplicationStage.INTERVIEW: {ApplicationStage.OFFER} | _EXITS,
    ApplicationStage.OFFER: {ApplicationStage.HIRED} | _EXITS,
    ApplicationStage.HIRED: set(),
    ApplicationStage.REJECTED: set(),
    ApplicationStage.WITHDRAWN: set(),
}


def _stage_enum():
    return SQLEnum(
        ApplicationStage, native_enum=False, length=50, values_callable=enum_values
    )


# ==================== Application Model ===================== #
class Application(Base):
    """
    One candidate's pursuit of one job.

    At most one application per (candidate, job) may be outside
    rejected/withdrawn; older closed ones are kept for audit.
    """

    __tablename__ = "applications"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    candidate_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("candidates.id"), nullable=False, index=True
    )
    job_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("jobs.id"), nullable=False, index=True
    )
    # null means a direct application nobody represents yet
    recruiter_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("recruiters.id"), index=True
    )

    stage: Mapped[ApplicationStage] = mapped_column(
        _stage_enum(), nullable=False, default=ApplicationStage.DRAFT, index=True
    )
    accepted_by_company: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )

    primary_resume_id: Mapped[str | None] = mapped_column(String(255))
    notes: Mapped[str | None] = mapped_column(Text)
    recruiter_notes: Mapped[str | None] = mapped_column(Text)

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
    accepted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Optimistic concurrency
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index(
            "uq_application_open_candidate_job",
            "candidate_id",
            "job_id",
            unique=True,
            postgresql_where=text("stage NOT IN ('rejected', 'withdrawn')"),
            sqlite_where=text("stage NOT IN ('rejected', 'withdrawn')"),
        ),
        Index("idx_application_job_stage", "job_id", "stage"),
        Index("idx_application_recruiter_stage", "recruiter_id", "stage"),
    )


# ==================== Application Document Model ===================== #
class ApplicationDocument(Base):
    """
    A document (held by the document store) attached to an application.
    """

    __tablename__ = "application_documents"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    application_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("applications.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    document_id: Mapped[str] = mapped_column(String(255), nullable=False)
    document_type: Mapped[DocumentType] = mapped_column(
        SQLEnum(DocumentType, native_enum=False, length=50, values_callable=enum_values),
        nullable=False,
        default=DocumentType.RESUME,
    )
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("application_id", "document_id", name="uq_application_document"),
    )


# ==================== Application Answer Model ===================== #
class ApplicationAnswer(Base):
    """
    Answer to one of the job's pre-screen questions.
    """

    __tablename__ = "application_answers"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    application_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("applications.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    question_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("job_pre_screen_questions.id"), nullable=False
    )
    answer: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("application_id", "question_id", name="uq_application_answer"),
    )


# ==================== Application Stage History ===================== #
@immutable_record
class ApplicationStageHistory(Base):
    """
    Append-only record of every effective stage change.
    """

    __tablename__ = "application_stage_history"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    application_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("applications.id"),
        nullable=False,
        index=True,
    )
    actor_id: Mapped[int | None] = mapped_column(BigInteger)
    actor_role: Mapped[str] = mapped_column(String(50), nullable=False)

    # null for the intake entry
    from_stage: Mapped[ApplicationStage | None] = mapped_column(_stage_enum())
    to_stage: Mapped[ApplicationStage] = mapped_column(_stage_enum(), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now, server_default=func.now()
    )

    __table_args__ = (
        Index("idx_stage_history_application_created", "application_id", "created_at"),
    )
