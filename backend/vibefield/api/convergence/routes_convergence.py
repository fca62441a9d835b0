"""Convergence routes: predictions within the caller's friend circle and meeting venues."""
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel

from vibefield.api.deps import cache_for_read, get_convergence_service, get_current_identity
from vibefield.domain.convergence.services import ConvergenceService
from vibefield.settings import settings

router = APIRouter(prefix="/convergence", tags=["convergence"])


class PredictionOut(BaseModel):
    agent_a: str
    agent_b: str
    meeting_point: dict
    time_to_meet: float
    probability: float
    miss_distance_m: float
    mode_a: str
    mode_b: str


class PairResponse(BaseModel):
    prediction: Optional[PredictionOut] = None


class GroupOut(BaseModel):
    participants: list[str]
    meeting_point: dict
    time_to_meet: float
    probability: float


class RankedVenueOut(BaseModel):
    id: str
    name: Optional[str] = None
    position: dict
    category: str
    open_now: Optional[bool] = None
    crowd: Optional[int] = None
    match: float
    eta_self: float
    eta_peer: float
    components: dict[str, float]


@router.get("/batch", response_model=list[PredictionOut])
async def convergence_batch(
    response: Response,
    identity_id: str = Depends(get_current_identity),
    service: ConvergenceService = Depends(get_convergence_service),
):
    """Likely meetings among the caller and their friends, most likely first."""
    predictions = await service.batch(identity_id)
    cache_for_read(response)
    return [PredictionOut(**p.to_dict()) for p in predictions]


@router.get("/groups", response_model=list[GroupOut])
async def convergence_groups(
    response: Response,
    identity_id: str = Depends(get_current_identity),
    service: ConvergenceService = Depends(get_convergence_service),
):
    groups = await service.groups(identity_id)
    cache_for_read(response)
    return [GroupOut(**g.to_dict()) for g in groups]


@router.get("/pair/{peer_id}", response_model=PairResponse)
async def convergence_pair(
    peer_id: str,
    response: Response,
    identity_id: str = Depends(get_current_identity),
    service: ConvergenceService = Depends(get_convergence_service),
):
    """Prediction for the caller and one friend; prediction is null when they are not converging."""
    prediction = await service.pair(identity_id, peer_id)
    cache_for_read(response)
    return PairResponse(prediction=PredictionOut(**prediction.to_dict()) if prediction else None)


@router.get("/venues/{peer_id}", response_model=list[RankedVenueOut])
async def convergence_venues(
    peer_id: str,
    response: Response,
    limit: int = Query(None, ge=1, le=50),
    identity_id: str = Depends(get_current_identity),
    service: ConvergenceService = Depends(get_convergence_service),
):
    """Meeting venues between the caller and a friend, best match first."""
    ranked = await service.venues(identity_id, peer_id, limit=limit or settings.venue_max_results)
    cache_for_read(response)
    return [RankedVenueOut(**p.to_dict()) for p in ranked]
