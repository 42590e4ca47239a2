"""Placement and fee split schemas."""

from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field


class SplitPreviewRequest(BaseModel):
    """
    Preview a fee split without writing anything.

    ``recruiter_tier`` takes a tier name (starter, pro, partner) or an
    explicit recruiter share percentage.
    """

    salary: Decimal = Field(gt=0)
    fee_percentage: Decimal = Field(gt=0, le=100)
    recruiter_tier: Decimal | str = Field(description="Tier name or share percentage")


class SplitPreviewResponse(BaseModel):
    fee_amount: str
    recruiter_amount: str
    platform_amount: str
    recruiter_share_percentage: str


class PlacementResponse(BaseModel):
    id: int
    application_id: int
    candidate_id: int
    job_id: int
    recruiter_id: int
    relationship_id: Optional[int] = None
    recruiter_tier: Optional[str] = None
    recruiter_share_percentage: str
    salary: str
    fee_percentage: str
    fee_amount: str
    recruiter_amount: str
    platform_amount: str
    hired_at: Optional[str] = None
