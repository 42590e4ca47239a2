"""Placement endpoints and the fee split preview."""

from fastapi import APIRouter, Depends, Path

from api.dependencies import get_actor, get_engine
from api.schemas.placements import PlacementResponse, SplitPreviewRequest, SplitPreviewResponse
from api.services.engine import RepresentationEngine
from core.security import Actor

router = APIRouter(prefix="/placements", tags=["placements"])


@router.post(
    "/split-preview",
    response_model=SplitPreviewResponse,
    summary="Preview Fee Split",
)
async def split_preview(
    body: SplitPreviewRequest,
    actor: Actor = Depends(get_actor),
    engine: RepresentationEngine = Depends(get_engine),
):
    """Compute the recruiter/platform split for a salary without recording anything."""
    split = engine.compute_split(body.salary, body.fee_percentage, body.recruiter_tier)
    return split.as_dict()


@router.get(
    "/{placement_id}",
    response_model=PlacementResponse,
    summary="Get Placement",
)
async def get_placement(
    placement_id: int = Path(...),
    actor: Actor = Depends(get_actor),
    engine: RepresentationEngine = Depends(get_engine),
):
    return await engine.get_placement(placement_id)
