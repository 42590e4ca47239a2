"""
Candidate Models

Candidates are job seekers who can have multiple applications across different jobs.
Identity fields are PII and are masked for companies until an application is accepted.
"""

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import BigInteger, String, DateTime, func
from database.engine import Base, BigIntPK
from database.security import (
    compliance_column,
    DataSensitivity,
    GDPRDataCategory,
    DataRetentionPeriod,
)
from core.utils.datetime import now
from datetime import datetime


# ==================== Candidate Model ===================== #
class Candidate(Base):
    """
    Candidate profile as seen by the engine.
    """

    __tablename__ = "candidates"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int | None] = mapped_column(BigInteger, index=True)

    full_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        info=compliance_column(
            sensitivity=DataSensitivity.CONFIDENTIAL,
            pii=True,
            gdpr_category=GDPRDataCategory.IDENTITY,
            retention_period=DataRetentionPeriod.THREE_YEARS,
        ),
    )
    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
        info=compliance_column(
            sensitivity=DataSensitivity.CONFIDENTIAL,
            pii=True,
            gdpr_category=GDPRDataCategory.IDENTITY,
            retention_period=DataRetentionPeriod.THREE_YEARS,
        ),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now, server_default=func.now()
    )
