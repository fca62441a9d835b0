"""Spatial tile models."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from vibefield.domain.common.geo import Position


@dataclass(frozen=True)
class SpatialTile:
    """Summary of the live presence inside one geohash cell. Always derived, never stored."""

    tile_id: str
    center: Position
    resolution: int
    crowd_count: int
    vibe_mix: dict[str, int]
    energy: float
    slope: float
    volatility: float
    updated_at: datetime

    def to_dict(self) -> dict:
        return {
            "tile_id": self.tile_id,
            "center": self.center.to_dict(),
            "resolution": self.resolution,
            "crowd_count": self.crowd_count,
            "vibe_mix": dict(self.vibe_mix),
            "energy": self.energy,
            "slope": self.slope,
            "volatility": self.volatility,
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class TileParams:
    """Tunable aggregation constants. Heuristic defaults meant to be calibrated."""

    energy_k: float = 10.0
    staleness_window_s: float = 90.0
    volatility_crowd_threshold: int = 5
    volatility_bonus: float = 0.2
    slope_scale: float = 0.4
    max_records_per_cell: int = 200

    @classmethod
    def from_settings(cls, settings) -> "TileParams":
        return cls(
            energy_k=settings.tile_energy_k,
            staleness_window_s=settings.tile_staleness_window_seconds,
            volatility_crowd_threshold=settings.tile_volatility_crowd_threshold,
            volatility_bonus=settings.tile_volatility_bonus,
            slope_scale=settings.tile_slope_scale,
            max_records_per_cell=settings.tile_max_records_per_cell,
        )


@dataclass
class CellAccumulator:
    """Running totals for one cell while folding records."""

    tile_id: str
    crowd_count: int = 0
    vibe_mix: dict[str, int] = field(default_factory=dict)
    latest_update: Optional[datetime] = None
