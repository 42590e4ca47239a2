"""Import every model so ``Base.metadata`` knows all tables."""

from database.models.jobs import Job, JobPreScreenQuestion, JobStatus, RoleAssignment
from database.models.candidates import Candidate
from database.models.recruiters import (
    Recruiter,
    RecruiterStatus,
    RecruiterTier,
    RECRUITER_TIER_SHARES,
)
from database.models.applications import (
    Application,
    ApplicationAnswer,
    ApplicationDocument,
    ApplicationStage,
    ApplicationStageHistory,
    DocumentType,
)
from database.models.relationships import Relationship, RelationshipStatus
from database.models.placements import Placement
from database.models.audit import AuditAction, AuditEntityType, AuditLog

__all__ = [
    "Job",
    "JobPreScreenQuestion",
    "JobStatus",
    "RoleAssignment",
    "Candidate",
    "Recruiter",
    "RecruiterStatus",
    "RecruiterTier",
    "RECRUITER_TIER_SHARES",
    "Application",
    "ApplicationAnswer",
    "ApplicationDocument",
    "ApplicationStage",
    "ApplicationStageHistory",
    "DocumentType",
    "Relationship",
    "RelationshipStatus",
    "Placement",
    "AuditAction",
    "AuditEntityType",
    "AuditLog",
]
