"""Field tile routes."""
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel

from vibefield.api.deps import cache_for_read, get_current_identity, get_tile_service
from vibefield.domain.common.geo import BBox, MAX_RESOLUTION, MIN_RESOLUTION
from vibefield.domain.tiles.services import TileService
from vibefield.settings import settings

router = APIRouter(prefix="/field", tags=["field"])


class TileOut(BaseModel):
    tile_id: str
    center: dict
    resolution: int
    crowd_count: int
    vibe_mix: dict[str, int]
    energy: float
    slope: float
    volatility: float
    updated_at: str


@router.get("/tiles", response_model=list[TileOut])
async def field_tiles(
    response: Response,
    min_lat: float = Query(...),
    min_lng: float = Query(...),
    max_lat: float = Query(...),
    max_lng: float = Query(...),
    resolution: Optional[int] = Query(None, ge=MIN_RESOLUTION, le=MAX_RESOLUTION),
    identity_id: str = Depends(get_current_identity),
    service: TileService = Depends(get_tile_service),
):
    """Crowd tiles for a bounding box. Empty cells are not returned."""
    bbox = BBox.validated(min_lat, min_lng, max_lat, max_lng)
    tiles = await service.tiles(bbox, resolution or settings.tile_default_resolution)
    cache_for_read(response)
    return [TileOut(**t.to_dict()) for t in tiles]
