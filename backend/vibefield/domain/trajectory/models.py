"""Trajectory samples and rolling windows."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

from vibefield.domain.common.geo import Position


@dataclass(frozen=True)
class TrajectorySample:
    t: datetime
    position: Position
    energy: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "t": self.t.isoformat(),
            "lat": self.position.lat,
            "lng": self.position.lng,
            "energy": self.energy,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TrajectorySample":
        energy = data.get("energy")
        return cls(
            t=datetime.fromisoformat(data["t"]),
            position=Position(lat=float(data["lat"]), lng=float(data["lng"])),
            energy=float(energy) if energy is not None else None,
        )


@dataclass(frozen=True)
class FriendHead:
    """Latest known sample of a friend."""
    identity_id: str
    t: datetime
    position: Position


def trim_window(
    samples: Iterable[TrajectorySample],
    max_samples: int,
    max_age: timedelta,
    now: datetime,
) -> list[TrajectorySample]:
    """Sort by time and keep only the last max_samples no older than max_age."""
    cutoff = now - max_age
    ordered = sorted((s for s in samples if s.t >= cutoff), key=lambda s: s.t)
    if max_samples <= 0:
        return []
    return ordered[-max_samples:]


def head_of(identity_id: str, samples: list[TrajectorySample]) -> Optional[FriendHead]:
    if not samples:
        return None
    last = max(samples, key=lambda s: s.t)
    return FriendHead(identity_id=identity_id, t=last.t, position=last.position)
