"""Convergence prediction and venue ranking models."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from vibefield.domain.common.geo import Position
from vibefield.domain.flow.metrics import Momentum
from vibefield.domain.presence.models import Vibe


class MovementMode(str, enum.Enum):
    STATIONARY = "stationary"
    WALKING = "walking"
    CYCLING = "cycling"
    DRIVING = "driving"
    TRANSIT = "transit"


@dataclass(frozen=True)
class Kinematics:
    """Last known position and local ENU velocity of one agent."""

    position: Position
    t: datetime
    vx: float
    vy: float

    @property
    def speed(self) -> float:
        return (self.vx ** 2 + self.vy ** 2) ** 0.5


@dataclass(frozen=True)
class ConvergencePrediction:
    agent_a: str
    agent_b: str
    meeting_point: Position
    time_to_meet: float
    probability: float
    miss_distance_m: float
    mode_a: MovementMode
    mode_b: MovementMode

    def to_dict(self) -> dict:
        return {
            "agent_a": self.agent_a,
            "agent_b": self.agent_b,
            "meeting_point": self.meeting_point.to_dict(),
            "time_to_meet": self.time_to_meet,
            "probability": self.probability,
            "miss_distance_m": self.miss_distance_m,
            "mode_a": self.mode_a.value,
            "mode_b": self.mode_b.value,
        }


@dataclass(frozen=True)
class GroupConvergence:
    participants: tuple[str, str, str]
    meeting_point: Position
    time_to_meet: float
    probability: float

    def to_dict(self) -> dict:
        return {
            "participants": list(self.participants),
            "meeting_point": self.meeting_point.to_dict(),
            "time_to_meet": self.time_to_meet,
            "probability": self.probability,
        }


@dataclass(frozen=True)
class ConvergenceParams:
    horizon_s: float = 600.0
    meet_distance_m: float = 50.0
    distance_decay_m: float = 30.0
    time_decay_s: float = 120.0
    min_probability: float = 0.6
    max_agents: int = 50
    max_speed_mps: float = 15.0
    velocity_window: int = 3
    group_max_spread_m: float = 30.0
    group_max_time_spread_s: float = 30.0
    group_bonus: float = 1.2

    @classmethod
    def from_settings(cls, settings) -> "ConvergenceParams":
        return cls(
            horizon_s=settings.convergence_horizon_seconds,
            meet_distance_m=settings.convergence_meet_distance_m,
            distance_decay_m=settings.convergence_distance_decay_m,
            time_decay_s=settings.convergence_time_decay_seconds,
            min_probability=settings.convergence_min_probability,
            max_agents=settings.convergence_max_agents,
            max_speed_mps=settings.convergence_max_speed_mps,
            velocity_window=settings.convergence_velocity_window,
            group_max_spread_m=settings.convergence_group_max_spread_m,
            group_max_time_spread_s=settings.convergence_group_max_time_spread_s,
            group_bonus=settings.convergence_group_bonus,
        )


class VenueCandidate(BaseModel):
    """Venue row from the catalog collaborator, validated at the boundary."""

    id: str
    position: Position
    category: str = "general"
    open_now: Optional[bool] = None
    crowd: Optional[int] = Field(default=None, ge=0)
    name: Optional[str] = None


@dataclass(frozen=True)
class RankedPoint:
    venue: VenueCandidate
    match: float
    eta_self: float
    eta_peer: float
    components: dict[str, float] = field(default_factory=dict)

    @property
    def total_eta(self) -> float:
        return self.eta_self + self.eta_peer

    def to_dict(self) -> dict:
        return {
            "id": self.venue.id,
            "name": self.venue.name,
            "position": self.venue.position.to_dict(),
            "category": self.venue.category,
            "open_now": self.venue.open_now,
            "crowd": self.venue.crowd,
            "match": self.match,
            "eta_self": self.eta_self,
            "eta_peer": self.eta_peer,
            "components": dict(self.components),
        }


@dataclass(frozen=True)
class PeerContext:
    """What the ranker knows about the peer: where they are and how their energy is trending."""

    identity_id: str
    position: Position
    energy: Optional[float] = None
    momentum: Optional[Momentum] = None
    vibe: Optional[Vibe] = None


@dataclass(frozen=True)
class VenueWeights:
    compat: float = 0.45
    proximity: float = 0.30
    open_now: float = 0.15
    symmetry: float = 0.10
    walking_speed_mps: float = 1.4
    eta_cap_s: float = 30 * 60.0

    @classmethod
    def from_settings(cls, settings) -> "VenueWeights":
        return cls(
            compat=settings.venue_weight_compat,
            proximity=settings.venue_weight_proximity,
            open_now=settings.venue_weight_open,
            symmetry=settings.venue_weight_symmetry,
            walking_speed_mps=settings.venue_walking_speed_mps,
            eta_cap_s=settings.venue_eta_cap_seconds,
        )

    def total(self) -> float:
        return self.compat + self.proximity + self.open_now + self.symmetry
