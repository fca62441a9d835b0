"""Trajectory window storage protocol."""
from typing import Protocol

from vibefield.domain.trajectory.models import TrajectorySample


class TrajectoryStore(Protocol):
    """Per-identity rolling window of recent samples. Never long-term history."""

    async def append(self, identity_id: str, sample: TrajectorySample) -> None:
        ...

    async def window(self, identity_id: str) -> list[TrajectorySample]:
        """Samples oldest-first, already trimmed to the rolling window."""
        ...
