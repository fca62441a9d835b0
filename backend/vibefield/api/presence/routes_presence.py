"""Presence routes: gated write and nearby read."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel, Field

from vibefield.api.deps import cache_for_read, get_current_identity, get_presence_service
from vibefield.domain.common.geo import Position
from vibefield.domain.presence.models import PresenceRecord, Vibe, Visibility
from vibefield.domain.presence.services import PresenceService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/presence", tags=["presence"])


class PresenceUpsertRequest(BaseModel):
    """Client presence sample plus the confidence signals the policy ladder needs."""
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    vibe: Vibe
    visibility: Visibility = Visibility.PUBLIC
    confidence: float = Field(..., description="theta: classifier confidence 0..1")
    uncertainty: float = Field(..., description="omega: uncertainty / band width 0..1")
    band: Optional[int] = None
    energy: Optional[float] = Field(default=None, ge=0, le=1)
    venue_safety_suppressed: bool = False
    allow_raw_precision: bool = False


class PresenceOut(BaseModel):
    identity_id: str
    lat: float
    lng: float
    vibe: Vibe
    visibility: Visibility
    updated_at: str
    expires_at: str

    @classmethod
    def from_record(cls, record: PresenceRecord) -> "PresenceOut":
        return cls(
            identity_id=record.identity_id,
            lat=record.position.lat,
            lng=record.position.lng,
            vibe=record.vibe,
            visibility=record.visibility,
            updated_at=record.updated_at.isoformat(),
            expires_at=record.expires_at.isoformat(),
        )


class PresenceUpsertResponse(BaseModel):
    accepted: bool
    decision: dict
    presence: Optional[PresenceOut] = None


class NearbyItem(PresenceOut):
    distance_m: float


@router.post("", response_model=PresenceUpsertResponse)
async def upsert_presence(
    request: PresenceUpsertRequest,
    identity_id: str = Depends(get_current_identity),
    service: PresenceService = Depends(get_presence_service),
):
    """Broadcast the caller's presence. A policy denial is a normal 200 with accepted=false."""
    result = await service.submit(
        identity_id=identity_id,
        position=Position.validated(request.lat, request.lng),
        vibe=request.vibe,
        visibility=request.visibility,
        theta=request.confidence,
        omega=request.uncertainty,
        band=request.band,
        energy=request.energy,
        venue_safety_suppressed=request.venue_safety_suppressed,
        allow_raw_precision=request.allow_raw_precision,
    )
    return PresenceUpsertResponse(
        accepted=result.accepted,
        decision=result.decision.to_dict(),
        presence=PresenceOut.from_record(result.record) if result.record else None,
    )


@router.get("/nearby", response_model=list[NearbyItem])
async def nearby_presence(
    response: Response,
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    radius_m: float = Query(1000.0, gt=0),
    visibility: Optional[list[Visibility]] = Query(None),
    exclude_self: bool = True,
    identity_id: str = Depends(get_current_identity),
    service: PresenceService = Depends(get_presence_service),
):
    """Live presence around a point that the caller is allowed to see, nearest first."""
    results = await service.nearby(
        viewer_id=identity_id,
        center=Position.validated(lat, lng),
        radius_m=radius_m,
        visibility_filter=set(visibility) if visibility else None,
        exclude_self=exclude_self,
    )
    cache_for_read(response)
    return [
        NearbyItem(**PresenceOut.from_record(r.record).model_dump(), distance_m=round(r.distance_m, 1))
        for r in results
    ]
