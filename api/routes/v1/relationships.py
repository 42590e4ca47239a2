"""Recruiter-candidate relationship endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status

from api.dependencies import get_actor, get_engine, require_roles
from api.schemas.relationships import (
    RelationshipCreate,
    RelationshipResponse,
    RelationshipResult,
    RelationshipTerminate,
    SweepResponse,
)
from api.services.engine import RepresentationEngine
from core.security import Actor, ActorRole

router = APIRouter(prefix="/relationships", tags=["relationships"])


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=RelationshipResult,
    summary="Establish Relationship",
)
async def establish_relationship(
    body: RelationshipCreate,
    actor: Actor = Depends(
        require_roles(ActorRole.RECRUITER, ActorRole.PLATFORM_ADMIN, ActorRole.SYSTEM)
    ),
    engine: RepresentationEngine = Depends(get_engine),
):
    """
    Grant a recruiter the right to represent a candidate.

    Omitting ``job_id`` creates a general relationship covering every job.
    Repeating an existing grant returns it with ``created: false``.
    """
    return await engine.establish_relationship(
        recruiter_id=body.recruiter_id,
        candidate_id=body.candidate_id,
        job_id=body.job_id,
        consent_source=body.consent_source,
        actor=actor,
    )


@router.get("", response_model=list[RelationshipResponse], summary="List Relationships")
async def list_relationships(
    candidate_id: Optional[int] = Query(None),
    recruiter_id: Optional[int] = Query(None),
    status: Optional[str] = Query(None, description="active, expired or terminated"),
    actor: Actor = Depends(get_actor),
    engine: RepresentationEngine = Depends(get_engine),
):
    return await engine.list_relationships(
        candidate_id=candidate_id, recruiter_id=recruiter_id, status=status
    )


@router.post(
    "/sweep",
    response_model=SweepResponse,
    summary="Expire Relationships Past Their End Date",
)
async def sweep_relationships(
    actor: Actor = Depends(require_roles(ActorRole.PLATFORM_ADMIN, ActorRole.SYSTEM)),
    engine: RepresentationEngine = Depends(get_engine),
):
    return {"expired": await engine.sweep_expired_relationships(actor)}


@router.get(
    "/{relationship_id}",
    response_model=RelationshipResponse,
    summary="Get Relationship",
)
async def get_relationship(
    relationship_id: int = Path(...),
    actor: Actor = Depends(get_actor),
    engine: RepresentationEngine = Depends(get_engine),
):
    return await engine.get_relationship(relationship_id)


@router.post(
    "/{relationship_id}/terminate",
    response_model=RelationshipResult,
    summary="Terminate Relationship",
)
async def terminate_relationship(
    body: RelationshipTerminate,
    relationship_id: int = Path(...),
    actor: Actor = Depends(get_actor),
    engine: RepresentationEngine = Depends(get_engine),
):
    """End a relationship now. Existing placements keep their attribution."""
    return await engine.terminate_relationship(relationship_id, actor, reason=body.reason)


@router.post(
    "/{relationship_id}/renew",
    response_model=RelationshipResponse,
    summary="Renew Relationship",
)
async def renew_relationship(
    relationship_id: int = Path(...),
    actor: Actor = Depends(
        require_roles(ActorRole.RECRUITER, ActorRole.PLATFORM_ADMIN, ActorRole.SYSTEM)
    ),
    engine: RepresentationEngine = Depends(get_engine),
):
    return await engine.renew_relationship(relationship_id, actor)
