"""
Recruiter Models

Independent recruiters who submit candidates to jobs and earn a share of the fee.
"""

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import BigInteger, String, DateTime, func, Enum as SQLEnum
from database.engine import Base, BigIntPK, enum_values
from core.utils.datetime import now
from datetime import datetime
from enum import Enum as PyEnum


# ==================== Recruiter Enums ===================== #
class RecruiterStatus(str, PyEnum):
    """Marketplace status of a recruiter."""

    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"


class RecruiterTier(str, PyEnum):
    """Subscription tier; decides the recruiter's share of a placement fee."""

    STARTER = "starter"
    PRO = "pro"
    PARTNER = "partner"

    @property
    def share_percentage(self) -> int:
        return RECRUITER_TIER_SHARES[self]

    @classmethod
    def try_parse(cls, value: str) -> "RecruiterTier | None":
        if value is None:
            return None
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


RECRUITER_TIER_SHARES = {
    RecruiterTier.STARTER: 65,
    RecruiterTier.PRO: 75,
    RecruiterTier.PARTNER: 85,
}


# ==================== Recruiter Model ===================== #
class Recruiter(Base):
    __tablename__ = "recruiters"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int | None] = mapped_column(BigInteger, index=True)
    name: Mapped[str | None] = mapped_column(String(255))
    status: Mapped[RecruiterStatus] = mapped_column(
        SQLEnum(RecruiterStatus, native_enum=False, length=50, values_callable=enum_values),
        nullable=False,
        default=RecruiterStatus.ACTIVE,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now, server_default=func.now()
    )
