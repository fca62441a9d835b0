"""Redis-backed per-identity state: trajectory windows and policy ladder memory."""
from datetime import datetime, timedelta
from typing import Callable, Optional

from vibefield.domain.common.types import utcnow
from vibefield.domain.policy.models import PolicyStateRecord
from vibefield.domain.policy.repositories import PolicyStateStore
from vibefield.domain.trajectory.models import TrajectorySample, trim_window
from vibefield.domain.trajectory.repositories import TrajectoryStore
from vibefield.infra.messaging.redis_bus import RedisBus


def trajectory_key(identity_id: str) -> str:
    return f"trajectory:{identity_id}"


def policy_key(identity_id: str, class_key: str) -> str:
    return f"policy:{identity_id}:{class_key}"


class RedisTrajectoryStore(TrajectoryStore):
    """Capped Redis list per identity; the key expires with the window so history never piles up."""

    def __init__(
        self,
        bus: RedisBus,
        max_samples: int = 32,
        max_age_minutes: float = 15.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.bus = bus
        self.max_samples = max_samples
        self.max_age = timedelta(minutes=max_age_minutes)
        self.clock = clock

    async def append(self, identity_id: str, sample: TrajectorySample) -> None:
        await self.bus.push_capped(
            trajectory_key(identity_id),
            sample.to_dict(),
            max_len=self.max_samples,
            ttl_seconds=int(self.max_age.total_seconds()),
        )

    async def window(self, identity_id: str) -> list[TrajectorySample]:
        raw = await self.bus.list_range(trajectory_key(identity_id), self.max_samples)
        samples = [TrajectorySample.from_dict(item) for item in raw]
        return trim_window(samples, self.max_samples, self.max_age, self.clock())


class RedisPolicyStateStore(PolicyStateStore):
    def __init__(self, bus: RedisBus, ttl_seconds: int = 24 * 60 * 60):
        self.bus = bus
        self.ttl_seconds = ttl_seconds

    async def get(self, identity_id: str, class_key: str) -> Optional[PolicyStateRecord]:
        data = await self.bus.hash_get(policy_key(identity_id, class_key))
        if not data or not data.get("last_change_at"):
            return None
        band = data.get("band")
        return PolicyStateRecord(
            last_change_at=datetime.fromisoformat(data["last_change_at"]),
            band=int(band) if band not in (None, "") else None,
        )

    async def record_change(
        self, identity_id: str, class_key: str, at: datetime, band: Optional[int] = None
    ) -> None:
        await self.bus.hash_set(
            policy_key(identity_id, class_key),
            {"last_change_at": at.isoformat(), "band": "" if band is None else str(band)},
            self.ttl_seconds,
        )
