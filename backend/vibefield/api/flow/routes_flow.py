"""Flow metric routes for the caller's own trajectory window."""
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel

from vibefield.api.deps import cache_for_read, get_current_identity, get_flow_service
from vibefield.domain.flow.services import FlowService

router = APIRouter(prefix="/flow", tags=["flow"])


class MomentumOut(BaseModel):
    dir: int
    mag: float


class CohesionOut(BaseModel):
    cohesion: float
    nearby: int
    points_checked: int


@router.get("/momentum", response_model=MomentumOut)
async def flow_momentum(
    response: Response,
    window: Optional[int] = Query(None, ge=1, le=16),
    identity_id: str = Depends(get_current_identity),
    service: FlowService = Depends(get_flow_service),
):
    result = await service.momentum(identity_id, window)
    cache_for_read(response)
    return MomentumOut(**result.to_dict())


@router.get("/cohesion", response_model=CohesionOut)
async def flow_cohesion(
    response: Response,
    identity_id: str = Depends(get_current_identity),
    service: FlowService = Depends(get_flow_service),
):
    """Share of the caller's recent path spent near friends."""
    result = await service.cohesion(identity_id)
    cache_for_read(response)
    return CohesionOut(**result.to_dict())
