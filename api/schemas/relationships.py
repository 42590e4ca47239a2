"""Relationship-related Pydantic schemas."""

from typing import Optional
from pydantic import BaseModel, Field, field_validator


class RelationshipCreate(BaseModel):
    """Schema for establishing a recruiter-candidate relationship."""

    recruiter_id: int = Field(gt=0)
    candidate_id: int = Field(gt=0)
    job_id: Optional[int] = Field(None, gt=0, description="Omit for a general relationship")
    consent_source: str = Field(min_length=1, max_length=100, description="Where consent was captured")

    @field_validator("consent_source", mode="before")
    @classmethod
    def strip_consent(cls, v):
        if isinstance(v, str):
            return v.strip()
        return v


class RelationshipTerminate(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class RelationshipResponse(BaseModel):
    id: int
    recruiter_id: int
    candidate_id: int
    job_id: Optional[int] = None
    status: str
    relationship_start_date: Optional[str] = None
    relationship_end_date: Optional[str] = None
    consent_given: bool
    consent_source: Optional[str] = None
    expired_at: Optional[str] = None
    terminated_at: Optional[str] = None
    terminated_by: Optional[int] = None
    termination_reason: Optional[str] = None


class RelationshipResult(BaseModel):
    relationship: RelationshipResponse
    created: Optional[bool] = None
    changed: Optional[bool] = None


class SweepResponse(BaseModel):
    expired: int = Field(ge=0, description="Relationships flipped to expired")
