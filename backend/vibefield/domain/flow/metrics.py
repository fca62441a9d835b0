"""Flow metrics: momentum of an energy series and cohesion of a path with friends.

Both are stateless reads over bounded recent windows.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from vibefield.domain.common.geo import haversine_m
from vibefield.domain.trajectory.models import FriendHead, TrajectorySample

MOMENTUM_THRESHOLD = 0.03
MOMENTUM_GAIN = 3.0
COHESION_MAX_POINTS = 24


@dataclass(frozen=True)
class Momentum:
    dir: int
    mag: float

    def to_dict(self) -> dict:
        return {"dir": self.dir, "mag": self.mag}


@dataclass(frozen=True)
class Cohesion:
    cohesion: float
    nearby: int
    points_checked: int = 0

    def to_dict(self) -> dict:
        return {"cohesion": self.cohesion, "nearby": self.nearby, "points_checked": self.points_checked}


NO_MOMENTUM = Momentum(dir=0, mag=0.0)


def box_smooth(values: Sequence[float], window: int) -> np.ndarray:
    """Centered moving average over exactly `window` samples.

    Edges average over the part of the window that exists. Even windows lean one
    sample toward the past.
    """
    arr = np.asarray(values, dtype=np.float64)
    if window <= 1 or arr.size == 0:
        return arr
    kernel = np.ones(window)
    sums = np.convolve(arr, kernel, mode="same")
    counts = np.convolve(np.ones_like(arr), kernel, mode="same")
    return sums / counts


def momentum(
    energy_samples: Sequence[float],
    window: int = 3,
    threshold: float = MOMENTUM_THRESHOLD,
) -> Momentum:
    """Direction and magnitude of the smoothed energy trend.

    Compares the latest smoothed value with the one `window` steps earlier.
    Fewer than window + 1 samples yields no momentum.
    """
    if window < 1 or len(energy_samples) < window + 1:
        return NO_MOMENTUM
    smoothed = box_smooth(energy_samples, window)
    delta = float(smoothed[-1] - smoothed[-1 - window])
    if not np.isfinite(delta):
        return NO_MOMENTUM
    if delta > threshold:
        direction = 1
    elif delta < -threshold:
        direction = -1
    else:
        direction = 0
    if direction == 0:
        return NO_MOMENTUM
    return Momentum(dir=direction, mag=min(1.0, abs(delta) * MOMENTUM_GAIN))


def cohesion(
    my_path: Sequence[TrajectorySample],
    friend_heads: Sequence[FriendHead],
    distance_m: float = 150.0,
    time_min: float = 12.0,
    max_points: int = COHESION_MAX_POINTS,
) -> Cohesion:
    """Share of recent path points that had a friend close by in both space and time."""
    if not my_path or not friend_heads or max_points <= 0:
        return Cohesion(cohesion=0.0, nearby=0)

    points = sorted(my_path, key=lambda s: s.t)[-max_points:]
    time_window_s = time_min * 60.0
    hits = 0
    nearby_ids: set[str] = set()
    for point in points:
        matched = [
            head.identity_id
            for head in friend_heads
            if abs((head.t - point.t).total_seconds()) <= time_window_s
            and haversine_m(point.position, head.position) <= distance_m
        ]
        if matched:
            hits += 1
            nearby_ids.update(matched)

    return Cohesion(
        cohesion=hits / len(points),
        nearby=len(nearby_ids),
        points_checked=len(points),
    )
