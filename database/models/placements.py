"""
Placement Models

Financial record written exactly once per hire. Rows are immutable once
written.
"""

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import (
    ForeignKey,
    BigInteger,
    DateTime,
    Numeric,
    func,
    Enum as SQLEnum,
    Index,
)
from database.engine import Base, BigIntPK, enum_values
from database.security import (
    compliance_column,
    immutable_record,
    DataSensitivity,
    GDPRDataCategory,
    DataRetentionPeriod,
)
from database.models.recruiters import RecruiterTier
from core.utils.datetime import now
from datetime import datetime
from decimal import Decimal


_MONEY_INFO = compliance_column(
    sensitivity=DataSensitivity.RESTRICTED,
    gdpr_category=GDPRDataCategory.FINANCIAL,
    retention_period=DataRetentionPeriod.SEVEN_YEARS,
)


# ==================== Placement Model ===================== #
@immutable_record
class Placement(Base):
    """
    Fee split computed at hire time.

    recruiter_amount + platform_amount == fee_amount for every row.
    """

    __tablename__ = "placements"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    application_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("applications.id"), nullable=False, unique=True
    )
    candidate_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("candidates.id"), nullable=False, index=True
    )
    job_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("jobs.id"), nullable=False, index=True
    )
    recruiter_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("recruiters.id"), nullable=False, index=True
    )
    relationship_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("recruiter_candidate_relationships.id")
    )

    # Tier resolved at hire time; never recomputed
    recruiter_tier: Mapped[RecruiterTier | None] = mapped_column(
        SQLEnum(RecruiterTier, native_enum=False, length=50, values_callable=enum_values)
    )
    recruiter_share_percentage: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False
    )

    salary: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, info=_MONEY_INFO)
    fee_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    fee_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, info=_MONEY_INFO)
    recruiter_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, info=_MONEY_INFO
    )
    platform_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, info=_MONEY_INFO
    )

    hired_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_by: Mapped[int | None] = mapped_column(BigInteger)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now, server_default=func.now()
    )

    __table_args__ = (
        Index("idx_placement_recruiter_hired", "recruiter_id", "hired_at"),
    )
