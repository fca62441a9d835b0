"""Presence domain services."""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, Optional

from vibefield.domain.common.errors import ValidationError
from vibefield.domain.common.geo import BBox, Position, haversine_m
from vibefield.domain.common.types import utcnow
from vibefield.domain.policy.ladder import evaluate
from vibefield.domain.policy.models import PolicyConfig, PolicyDecision, PolicyInput
from vibefield.domain.policy.redaction import redact_position
from vibefield.domain.policy.repositories import PolicyStateStore
from vibefield.domain.presence.models import PresenceChange, PresenceRecord, Vibe, Visibility
from vibefield.domain.presence.repositories import (
    FriendshipResolver,
    PresenceEventPublisher,
    PresenceRepository,
)
from vibefield.domain.trajectory.models import TrajectorySample
from vibefield.domain.trajectory.repositories import TrajectoryStore

logger = logging.getLogger(__name__)

PRESENCE_POLICY_CLASS = "presence"


@dataclass(frozen=True)
class NearbyPresence:
    record: PresenceRecord
    distance_m: float


@dataclass(frozen=True)
class PresenceWriteResult:
    decision: PolicyDecision
    record: Optional[PresenceRecord] = None
    superseded: bool = False

    @property
    def accepted(self) -> bool:
        return self.decision.allowed and self.record is not None and not self.superseded


class PresenceService:
    """Presence lifecycle: gated write, read-time expiry, nearby fan-out reads."""

    def __init__(
        self,
        presence_repo: PresenceRepository,
        friendship_resolver: FriendshipResolver,
        policy_store: Optional[PolicyStateStore] = None,
        publisher: Optional[PresenceEventPublisher] = None,
        trajectory_store: Optional[TrajectoryStore] = None,
        invalidate_tiles: Optional[Callable[[Iterable[Position]], int]] = None,
        policy_config: Optional[PolicyConfig] = None,
        ttl_seconds: float = 90,
        max_radius_m: float = 5000.0,
        max_nearby_records: int = 500,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.presence_repo = presence_repo
        self.friendship_resolver = friendship_resolver
        self.policy_store = policy_store
        self.publisher = publisher
        self.trajectory_store = trajectory_store
        self.invalidate_tiles = invalidate_tiles
        self.policy_config = policy_config or PolicyConfig()
        self.ttl_seconds = ttl_seconds
        self.max_radius_m = max_radius_m
        self.max_nearby_records = max_nearby_records
        self.clock = clock

    async def upsert(
        self,
        identity_id: str,
        position: Position,
        vibe: Vibe,
        visibility: Visibility,
        ttl: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> PresenceRecord:
        """Overwrite the identity's single record. Raises InvalidPositionError for bad coordinates."""
        if not identity_id:
            raise ValidationError("identity_id is required")
        position = Position.validated(position.lat, position.lng)
        ttl_seconds = self.ttl_seconds if ttl is None else ttl
        if ttl_seconds <= 0:
            raise ValidationError("ttl must be positive")
        now = now or self.clock()

        previous = await self.presence_repo.get(identity_id)
        record = PresenceRecord.create(
            identity_id=identity_id,
            position=position,
            vibe=vibe,
            visibility=visibility,
            ttl_seconds=ttl_seconds,
            now=now,
        )
        stored = await self.presence_repo.upsert(record)
        if stored.updated_at != record.updated_at:
            logger.info(f"[PRESENCE] Ignored stale write for {identity_id} (stored {stored.updated_at.isoformat()})")
            return stored

        previous_position = previous.position if previous else None
        if self.invalidate_tiles:
            touched = [position] + ([previous_position] if previous_position else [])
            self.invalidate_tiles(touched)

        if self.publisher:
            await self.publisher.publish(
                PresenceChange(identity_id=identity_id, record=stored, previous_position=previous_position)
            )
        return stored

    async def submit(
        self,
        identity_id: str,
        position: Position,
        vibe: Vibe,
        visibility: Visibility,
        theta: float,
        omega: float,
        band: Optional[int] = None,
        energy: Optional[float] = None,
        venue_safety_suppressed: bool = False,
        allow_raw_precision: bool = False,
        now: Optional[datetime] = None,
    ) -> PresenceWriteResult:
        """Client write path: policy ladder first, then upsert. Denials are results, not errors."""
        position = Position.validated(position.lat, position.lng)
        now = now or self.clock()

        state = None
        if self.policy_store:
            state = await self.policy_store.get(identity_id, PRESENCE_POLICY_CLASS)

        decision = evaluate(
            PolicyInput(
                class_key=PRESENCE_POLICY_CLASS,
                now=now,
                theta=theta,
                omega=omega,
                last_change_at=state.last_change_at if state else None,
                band=band,
                prev_band=state.band if state else None,
                venue_safety_suppressed=venue_safety_suppressed,
                allow_raw_precision=allow_raw_precision,
            ),
            self.policy_config,
        )
        if not decision.allowed:
            logger.info(f"[POLICY] Presence update denied for {identity_id}: {decision.reason.value}")
            return PresenceWriteResult(decision=decision)

        broadcast_position = redact_position(position, decision.redaction_level)
        record = await self.upsert(identity_id, broadcast_position, vibe, visibility, now=now)
        if record.updated_at != now:
            # A newer write already landed and owns the policy state and trajectory
            return PresenceWriteResult(decision=decision, record=record, superseded=True)

        if self.policy_store:
            await self.policy_store.record_change(identity_id, PRESENCE_POLICY_CLASS, now, band)
        if self.trajectory_store:
            await self.trajectory_store.append(
                identity_id, TrajectorySample(t=now, position=broadcast_position, energy=energy)
            )
        return PresenceWriteResult(decision=decision, record=record)

    async def nearby(
        self,
        viewer_id: str,
        center: Position,
        radius_m: float,
        visibility_filter: Optional[set[Visibility]] = None,
        exclude_self: bool = True,
        now: Optional[datetime] = None,
    ) -> list[NearbyPresence]:
        """Live records within radius_m visible to viewer_id, nearest first."""
        center = Position.validated(center.lat, center.lng)
        if not (0 < radius_m <= self.max_radius_m):
            raise ValidationError(f"radius must be in (0, {self.max_radius_m}] meters")
        allowed = visibility_filter or {Visibility.PUBLIC, Visibility.FRIENDS}
        now = now or self.clock()

        candidates = await self.presence_repo.list_live_in_bbox(
            BBox.around(center, radius_m), now, self.max_nearby_records
        )

        friend_ids: Optional[set[str]] = None
        results: list[NearbyPresence] = []
        for record in candidates:
            # Read-time expiry is the invariant; a sweep is only hygiene
            if not record.is_live(now):
                continue
            if exclude_self and record.identity_id == viewer_id:
                continue
            if record.visibility not in allowed:
                continue
            if record.visibility == Visibility.FRIENDS and record.identity_id != viewer_id:
                if friend_ids is None:
                    friend_ids = await self.friendship_resolver.accepted_friend_ids(viewer_id)
                if record.identity_id not in friend_ids:
                    continue
            distance = haversine_m(center, record.position)
            if distance <= radius_m:
                results.append(NearbyPresence(record=record, distance_m=distance))

        results.sort(key=lambda r: (r.distance_m, r.record.identity_id))
        return results
