"""Application-related Pydantic schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from pydantic import BaseModel, Field, field_validator

from database.models.applications import ApplicationStage


class ApplicationCreate(BaseModel):
    """Schema for submitting an application (candidate or recruiter on their behalf)."""

    candidate_id: int = Field(gt=0, description="Candidate applying")
    job_id: int = Field(gt=0, description="Job being applied to")
    primary_resume_id: Optional[str] = Field(None, max_length=255, description="Document id of the primary resume")
    document_ids: list[str] = Field(default_factory=list, description="Additional attached document ids")
    answers: dict[int, str] = Field(default_factory=dict, description="Pre-screen answers keyed by question id")
    notes: Optional[str] = Field(None, max_length=5000)
    recruiter_id: Optional[int] = Field(None, gt=0, description="Submitting recruiter, if any")
    consent_source: Optional[str] = Field(
        None, max_length=100, description="Where the candidate's consent came from"
    )

    @field_validator("primary_resume_id", "consent_source", mode="before")
    @classmethod
    def strip_strings(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip()
        return v


class HireTerms(BaseModel):
    """Terms required when moving an application to hired."""

    salary: Decimal = Field(gt=0, description="Annual base salary")
    fee_percentage: Optional[Decimal] = Field(
        None, gt=0, le=100, description="Overrides the job's fee percentage"
    )
    hired_at: Optional[datetime] = None


class TransitionRequest(BaseModel):
    target_stage: str = Field(description="Stage to move to")
    reason: Optional[str] = Field(None, max_length=1000)
    hire: Optional[HireTerms] = None

    @field_validator("target_stage")
    @classmethod
    def validate_stage(cls, v: str) -> str:
        """Reject stage names the state machine does not know."""
        if ApplicationStage.try_parse(v) is None:
            raise ValueError(f"Unknown application stage '{v}'")
        return v.strip().lower()


class BulkTransitionRequest(BaseModel):
    application_ids: list[int] = Field(min_length=1, max_length=500)
    target_stage: str
    reason: Optional[str] = Field(None, max_length=1000)

    @field_validator("target_stage")
    @classmethod
    def validate_stage(cls, v: str) -> str:
        if ApplicationStage.try_parse(v) is None:
            raise ValueError(f"Unknown application stage '{v}'")
        return v.strip().lower()


class PreScreenRequest(BaseModel):
    """Leave ``recruiter_id`` empty to let the router pick one."""

    recruiter_id: Optional[int] = Field(None, gt=0)


class RecruiterNotesUpdate(BaseModel):
    recruiter_notes: Optional[str] = Field(None, max_length=10000)


class CandidateView(BaseModel):
    id: int
    full_name: str
    email: str
    masked: bool = False


class ApplicationResponse(BaseModel):
    """Schema for application response."""

    id: int
    candidate_id: int
    job_id: int
    recruiter_id: Optional[int] = None
    stage: str
    accepted_by_company: bool
    primary_resume_id: Optional[str] = None
    notes: Optional[str] = None
    recruiter_notes: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    accepted_at: Optional[str] = None
    candidate: Optional[CandidateView] = None


class BulkItemResponse(BaseModel):
    application_id: int
    success: bool
    stage: Optional[str] = None
    changed: bool = False
    error_code: Optional[str] = None
    error_message: Optional[str] = None


class BulkTransitionResponse(BaseModel):
    results: list[BulkItemResponse]
    succeeded: int
    failed: int
