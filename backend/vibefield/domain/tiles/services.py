"""Tile query service: bounded read-through over the presence store."""
import logging
from datetime import datetime
from typing import Callable, Iterable, Optional

from vibefield.domain.common.cache import TimeBoxedCache
from vibefield.domain.common.errors import ValidationError
from vibefield.domain.common.geo import BBox, Position, check_resolution
from vibefield.domain.common.types import utcnow
from vibefield.domain.presence.repositories import PresenceRepository
from vibefield.domain.tiles.aggregator import TileAggregator
from vibefield.domain.tiles.models import SpatialTile

logger = logging.getLogger(__name__)

TileCacheKey = tuple[int, BBox]


class TileService:
    def __init__(
        self,
        presence_repo: PresenceRepository,
        aggregator: Optional[TileAggregator] = None,
        cache: Optional[TimeBoxedCache[TileCacheKey, list[SpatialTile]]] = None,
        max_bbox_km2: float = 100.0,
        max_records_per_query: int = 5000,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.presence_repo = presence_repo
        self.aggregator = aggregator or TileAggregator()
        self.cache = cache
        self.max_bbox_km2 = max_bbox_km2
        self.max_records_per_query = max_records_per_query
        self.clock = clock

    async def tiles(self, bbox: BBox, resolution: int, now: Optional[datetime] = None) -> list[SpatialTile]:
        check_resolution(resolution)
        area = bbox.area_km2()
        if area > self.max_bbox_km2:
            raise ValidationError(
                f"Bounding box too large: {area:.1f} km2 (max {self.max_bbox_km2:.1f} km2)"
            )

        key: TileCacheKey = (resolution, bbox)
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                return cached

        now = now or self.clock()
        records = await self.presence_repo.list_live_in_bbox(bbox, now, self.max_records_per_query)
        if len(records) >= self.max_records_per_query:
            logger.warning(
                f"[TILES] Record cap {self.max_records_per_query} reached for bbox {bbox}; tiles are partial"
            )
        result = self.aggregator.compute(records, bbox, resolution, now)
        if self.cache is not None:
            self.cache.set(key, result)
        return result

    def invalidate(self, positions: Iterable[Position]) -> int:
        """Evict cached tile sets whose bbox covers any of the given positions."""
        if self.cache is None:
            return 0
        touched = list(positions)
        if not touched:
            return 0
        return self.cache.evict_where(lambda key: any(key[1].contains(p) for p in touched))
