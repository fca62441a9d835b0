"""Convergence service: fetch trajectory windows and venues, then run the pure predictors."""
import logging
from datetime import datetime
from typing import Callable, Optional

from vibefield.domain.common.errors import AuthorizationError
from vibefield.domain.common.geo import BBox, haversine_m, midpoint
from vibefield.domain.common.types import utcnow
from vibefield.domain.convergence.models import (
    ConvergenceParams,
    ConvergencePrediction,
    GroupConvergence,
    PeerContext,
    RankedPoint,
    VenueWeights,
)
from vibefield.domain.convergence.predictor import (
    detect_batch,
    detect_convergence,
    detect_group_convergences,
)
from vibefield.domain.convergence.venues import EtaProvider, VenueCatalog, rank_convergence_venues
from vibefield.domain.flow.metrics import momentum
from vibefield.domain.presence.repositories import FriendshipResolver, PresenceRepository
from vibefield.domain.trajectory.models import TrajectorySample
from vibefield.domain.trajectory.repositories import TrajectoryStore

logger = logging.getLogger(__name__)


class ConvergenceService:
    def __init__(
        self,
        trajectory_store: TrajectoryStore,
        friendship_resolver: FriendshipResolver,
        presence_repo: Optional[PresenceRepository] = None,
        venue_catalog: Optional[VenueCatalog] = None,
        eta_provider: Optional[EtaProvider] = None,
        params: Optional[ConvergenceParams] = None,
        weights: Optional[VenueWeights] = None,
        venue_search_margin_m: float = 500.0,
        momentum_window: int = 3,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.trajectory_store = trajectory_store
        self.friendship_resolver = friendship_resolver
        self.presence_repo = presence_repo
        self.venue_catalog = venue_catalog
        self.eta_provider = eta_provider
        self.params = params or ConvergenceParams()
        self.weights = weights or VenueWeights()
        self.venue_search_margin_m = venue_search_margin_m
        self.momentum_window = momentum_window
        self.clock = clock

    async def _require_friend(self, viewer_id: str, peer_id: str) -> None:
        friends = await self.friendship_resolver.accepted_friend_ids(viewer_id)
        if peer_id not in friends:
            raise AuthorizationError(f"{peer_id} is not an accepted friend")

    async def _circle(self, viewer_id: str) -> dict[str, list[TrajectorySample]]:
        """Viewer plus accepted friends, capped at the batch size."""
        friends = sorted(await self.friendship_resolver.accepted_friend_ids(viewer_id))
        members = [viewer_id] + [f for f in friends if f != viewer_id]
        if len(members) > self.params.max_agents:
            logger.warning(
                f"[CONVERGENCE] Friend circle of {viewer_id} has {len(members)} members; "
                f"only the first {self.params.max_agents} are evaluated"
            )
            members = members[: self.params.max_agents]
        return {member: await self.trajectory_store.window(member) for member in members}

    async def pair(self, viewer_id: str, peer_id: str) -> Optional[ConvergencePrediction]:
        await self._require_friend(viewer_id, peer_id)
        mine = await self.trajectory_store.window(viewer_id)
        theirs = await self.trajectory_store.window(peer_id)
        return detect_convergence(mine, theirs, self.params, agent_a=viewer_id, agent_b=peer_id)

    async def batch(self, viewer_id: str) -> list[ConvergencePrediction]:
        return detect_batch(await self._circle(viewer_id), self.params)

    async def groups(self, viewer_id: str) -> list[GroupConvergence]:
        return detect_group_convergences(await self._circle(viewer_id), self.params)

    async def venues(
        self, viewer_id: str, peer_id: str, limit: int = 10, now: Optional[datetime] = None
    ) -> list[RankedPoint]:
        """Ranked meeting venues between viewer and peer; empty when either position is unknown.

        The peer's vibe only counts while their presence record is live.
        """
        await self._require_friend(viewer_id, peer_id)
        if self.venue_catalog is None:
            return []
        mine = await self.trajectory_store.window(viewer_id)
        theirs = await self.trajectory_store.window(peer_id)
        if not mine or not theirs:
            return []
        self_position = mine[-1].position
        peer_position = theirs[-1].position

        energies = [s.energy for s in theirs if s.energy is not None]
        vibe = None
        if self.presence_repo is not None:
            record = await self.presence_repo.get(peer_id)
            if record is not None and record.is_live(now or self.clock()):
                vibe = record.vibe
        peer = PeerContext(
            identity_id=peer_id,
            position=peer_position,
            energy=energies[-1] if energies else None,
            momentum=momentum(energies, self.momentum_window) if energies else None,
            vibe=vibe,
        )

        radius = haversine_m(self_position, peer_position) / 2 + self.venue_search_margin_m
        candidates = await self.venue_catalog.venues_in_bbox(
            BBox.around(midpoint(self_position, peer_position), radius)
        )
        if not candidates:
            return []

        overrides = None
        if self.eta_provider is not None:
            overrides = await self.eta_provider.etas(self_position, peer_position, candidates)

        ranked = rank_convergence_venues(self_position, peer, candidates, self.weights, overrides)
        return ranked[:limit]
