"""Fold live presence into fixed-resolution geohash tiles.

For each non-empty cell:
    energy     = min(1, crowd / K) * (1 - 0.5 * min(1, age / staleness_window))
    slope      = clamp((entropy - 0.5) * slope_scale, -1, 1)
    volatility = clamp01(entropy + bonus if crowd > threshold)
where entropy is the Shannon entropy of the vibe mix normalized to 0..1 and
age is the time since the cell's newest contributing update.
"""
from __future__ import annotations

import math
from datetime import datetime
from typing import Iterable

from vibefield.domain.common.geo import BBox, geohash_center, geohash_encode, check_resolution
from vibefield.domain.common.types import clamp, clamp01
from vibefield.domain.presence.models import PresenceRecord, Vibe
from vibefield.domain.tiles.models import CellAccumulator, SpatialTile, TileParams

VIBE_COUNT = len(Vibe)


def normalized_entropy(counts: Iterable[int]) -> float:
    """Shannon entropy of a count distribution scaled by the maximum reachable for that crowd."""
    values = [c for c in counts if c > 0]
    total = sum(values)
    if total <= 0:
        return 0.0
    categories = min(total, VIBE_COUNT)
    if categories <= 1:
        return 0.0
    h = -sum((c / total) * math.log(c / total) for c in values)
    return clamp01(h / math.log(categories))


def staleness_factor(age_s: float, window_s: float) -> float:
    if window_s <= 0:
        return 0.5
    return 1.0 - 0.5 * min(1.0, max(0.0, age_s) / window_s)


class TileAggregator:
    """Pure tile computation over an already-fetched presence snapshot."""

    def __init__(self, params: TileParams | None = None):
        self.params = params or TileParams()

    def compute(
        self,
        records: Iterable[PresenceRecord],
        bbox: BBox,
        resolution: int,
        now: datetime,
    ) -> list[SpatialTile]:
        check_resolution(resolution)
        live = [r for r in records if r.is_live(now) and bbox.contains(r.position)]
        # Newest first so the per-cell cap keeps the freshest records
        live.sort(key=lambda r: r.updated_at, reverse=True)

        cells: dict[str, CellAccumulator] = {}
        for record in live:
            tile_id = geohash_encode(record.position, resolution)
            acc = cells.get(tile_id)
            if acc is None:
                acc = cells[tile_id] = CellAccumulator(tile_id=tile_id)
            if acc.crowd_count >= self.params.max_records_per_cell:
                continue
            acc.crowd_count += 1
            vibe = record.vibe.value
            acc.vibe_mix[vibe] = acc.vibe_mix.get(vibe, 0) + 1
            if acc.latest_update is None or record.updated_at > acc.latest_update:
                acc.latest_update = record.updated_at

        return [self._summarize(acc, resolution, now) for _, acc in sorted(cells.items())]

    def _summarize(self, acc: CellAccumulator, resolution: int, now: datetime) -> SpatialTile:
        p = self.params
        age_s = (now - acc.latest_update).total_seconds()
        crowd_energy = min(1.0, acc.crowd_count / p.energy_k) if p.energy_k > 0 else 1.0
        energy = clamp01(crowd_energy * staleness_factor(age_s, p.staleness_window_s))

        entropy = normalized_entropy(acc.vibe_mix.values())
        slope = clamp((entropy - 0.5) * p.slope_scale, -1.0, 1.0)
        bonus = p.volatility_bonus if acc.crowd_count > p.volatility_crowd_threshold else 0.0
        volatility = clamp01(entropy + bonus)

        return SpatialTile(
            tile_id=acc.tile_id,
            center=geohash_center(acc.tile_id),
            resolution=resolution,
            crowd_count=acc.crowd_count,
            vibe_mix=dict(acc.vibe_mix),
            energy=energy,
            slope=slope,
            volatility=volatility,
            updated_at=acc.latest_update,
        )
