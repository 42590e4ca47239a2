"""
Application endpoints.

Intake, the stage state machine, company acceptance, pre-screen routing and
the read side. Candidate identity is masked for company viewers until the
application is accepted.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status

from api.dependencies import get_actor, get_engine, require_roles
from api.schemas.applications import (
    ApplicationCreate,
    ApplicationResponse,
    BulkTransitionRequest,
    BulkTransitionResponse,
    PreScreenRequest,
    RecruiterNotesUpdate,
    TransitionRequest,
)
from api.schemas.common import PaginatedResponse
from api.services.applications import HireDetails
from api.services.engine import RepresentationEngine
from core.security import Actor, ActorRole

router = APIRouter(prefix="/applications", tags=["applications"])

COMPANY_OR_ADMIN = (ActorRole.COMPANY_ADMIN, ActorRole.HIRING_MANAGER, ActorRole.PLATFORM_ADMIN)


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=ApplicationResponse,
    summary="Submit Application",
)
async def submit_application(
    body: ApplicationCreate,
    actor: Actor = Depends(
        require_roles(ActorRole.CANDIDATE, ActorRole.RECRUITER, ActorRole.PLATFORM_ADMIN)
    ),
    engine: RepresentationEngine = Depends(get_engine),
):
    """Create a draft application; a recruiter with consent also gains representation rights."""
    return await engine.submit_application(
        actor,
        candidate_id=body.candidate_id,
        job_id=body.job_id,
        primary_resume_id=body.primary_resume_id,
        document_ids=body.document_ids,
        answers=body.answers,
        notes=body.notes,
        recruiter_id=body.recruiter_id,
        consent_source=body.consent_source,
    )


@router.get(
    "",
    response_model=PaginatedResponse[ApplicationResponse],
    summary="List Applications",
)
async def list_applications(
    job_id: Optional[int] = Query(None, description="Filter by job"),
    recruiter_id: Optional[int] = Query(None, description="Filter by recruiter"),
    candidate_id: Optional[int] = Query(None, description="Filter by candidate"),
    stage: Optional[str] = Query(None, description="Filter by stage"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    actor: Actor = Depends(get_actor),
    engine: RepresentationEngine = Depends(get_engine),
):
    return await engine.list_applications(
        viewer=actor,
        job_id=job_id,
        recruiter_id=recruiter_id,
        candidate_id=candidate_id,
        stage=stage,
        page=page,
        page_size=page_size,
    )


@router.post(
    "/bulk-transition",
    response_model=BulkTransitionResponse,
    summary="Bulk Transition Applications",
)
async def bulk_transition(
    body: BulkTransitionRequest,
    actor: Actor = Depends(get_actor),
    engine: RepresentationEngine = Depends(get_engine),
):
    """Apply one stage change to many applications; each item succeeds or fails on its own."""
    results = await engine.bulk_transition(
        body.application_ids, body.target_stage, actor, reason=body.reason
    )
    succeeded = sum(1 for r in results if r["success"])
    return {"results": results, "succeeded": succeeded, "failed": len(results) - succeeded}


@router.get(
    "/{application_id}",
    response_model=ApplicationResponse,
    summary="Get Application Details",
)
async def get_application(
    application_id: int = Path(..., description="Application ID"),
    actor: Actor = Depends(get_actor),
    engine: RepresentationEngine = Depends(get_engine),
):
    return await engine.get_application(application_id, viewer=actor)


@router.get("/{application_id}/history", summary="Get Application History")
async def get_application_history(
    application_id: int = Path(..., description="Application ID"),
    actor: Actor = Depends(get_actor),
    engine: RepresentationEngine = Depends(get_engine),
):
    """Stage history plus audit trail, oldest first."""
    return await engine.get_application_history(application_id)


@router.post("/{application_id}/transition", summary="Move Application Stage")
async def transition_application(
    body: TransitionRequest,
    application_id: int = Path(..., description="Application ID"),
    actor: Actor = Depends(get_actor),
    engine: RepresentationEngine = Depends(get_engine),
):
    hire = None
    if body.hire is not None:
        hire = HireDetails(
            salary=body.hire.salary,
            fee_percentage=body.hire.fee_percentage,
            hired_at=body.hire.hired_at,
        )
    return await engine.transition(
        application_id, body.target_stage, actor, reason=body.reason, hire=hire
    )


@router.post(
    "/{application_id}/accept",
    response_model=ApplicationResponse,
    summary="Accept Application",
)
async def accept_application(
    application_id: int = Path(..., description="Application ID"),
    actor: Actor = Depends(require_roles(*COMPANY_OR_ADMIN)),
    engine: RepresentationEngine = Depends(get_engine),
):
    """Company accepts the application, which unmasks the candidate."""
    return await engine.accept_application(application_id, actor)


@router.post("/{application_id}/pre-screen", summary="Request Pre-Screen")
async def request_pre_screen(
    body: PreScreenRequest,
    application_id: int = Path(..., description="Application ID"),
    actor: Actor = Depends(require_roles(*COMPANY_OR_ADMIN, ActorRole.SYSTEM)),
    engine: RepresentationEngine = Depends(get_engine),
):
    return await engine.request_pre_screen(application_id, actor, recruiter_id=body.recruiter_id)


@router.patch(
    "/{application_id}/recruiter-notes",
    response_model=ApplicationResponse,
    summary="Update Recruiter Notes",
)
async def update_recruiter_notes(
    body: RecruiterNotesUpdate,
    application_id: int = Path(..., description="Application ID"),
    actor: Actor = Depends(require_roles(ActorRole.RECRUITER, ActorRole.PLATFORM_ADMIN)),
    engine: RepresentationEngine = Depends(get_engine),
):
    return await engine.update_recruiter_notes(application_id, actor, body.recruiter_notes)
