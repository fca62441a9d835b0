"""Flow metrics over stored trajectory windows."""
from typing import Optional

from vibefield.domain.flow.metrics import Cohesion, Momentum, cohesion, momentum
from vibefield.domain.presence.repositories import FriendshipResolver
from vibefield.domain.trajectory.models import head_of
from vibefield.domain.trajectory.repositories import TrajectoryStore


class FlowService:
    def __init__(
        self,
        trajectory_store: TrajectoryStore,
        friendship_resolver: FriendshipResolver,
        momentum_window: int = 3,
        momentum_threshold: float = 0.03,
        cohesion_distance_m: float = 150.0,
        cohesion_time_min: float = 12.0,
        cohesion_max_points: int = 24,
        max_friends: int = 50,
    ):
        self.trajectory_store = trajectory_store
        self.friendship_resolver = friendship_resolver
        self.momentum_window = momentum_window
        self.momentum_threshold = momentum_threshold
        self.cohesion_distance_m = cohesion_distance_m
        self.cohesion_time_min = cohesion_time_min
        self.cohesion_max_points = cohesion_max_points
        self.max_friends = max_friends

    async def momentum(self, identity_id: str, window: Optional[int] = None) -> Momentum:
        samples = await self.trajectory_store.window(identity_id)
        energies = [s.energy for s in samples if s.energy is not None]
        return momentum(energies, window or self.momentum_window, self.momentum_threshold)

    async def cohesion(self, identity_id: str) -> Cohesion:
        path = await self.trajectory_store.window(identity_id)
        if not path:
            return Cohesion(cohesion=0.0, nearby=0)
        friends = sorted(await self.friendship_resolver.accepted_friend_ids(identity_id))[: self.max_friends]
        heads = []
        for friend_id in friends:
            head = head_of(friend_id, await self.trajectory_store.window(friend_id))
            if head is not None:
                heads.append(head)
        return cohesion(
            path,
            heads,
            distance_m=self.cohesion_distance_m,
            time_min=self.cohesion_time_min,
            max_points=self.cohesion_max_points,
        )
