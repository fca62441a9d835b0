"""Venue ranking for a pair of agents about to meet.

match = w_compat * compatibility
      + w_proximity * (1 - min(max(eta_self, eta_peer), cap) / cap)
      + w_open * open_score
      + w_symmetry * (1 - |eta_self - eta_peer| / max(eta_self, eta_peer))

Compatibility compares the venue type's typical energy with where the peer's
energy is heading, blended with how often the peer's vibe shows up at that
venue type. Every term and the total are clamped to [0, 1].
"""
from __future__ import annotations

import re
from typing import Mapping, Optional, Protocol, Sequence

from vibefield.domain.common.errors import ValidationError
from vibefield.domain.common.geo import BBox, Position, haversine_m
from vibefield.domain.common.types import clamp01
from vibefield.domain.convergence.models import PeerContext, RankedPoint, VenueCandidate, VenueWeights
from vibefield.domain.presence.models import Vibe

DEFAULT_WEIGHTS = VenueWeights()
NEUTRAL_ENERGY = 0.5
MOMENTUM_LOOKAHEAD = 0.25
VIBE_BLEND = 0.3

VENUE_TYPE_ENERGY: dict[str, float] = {
    "nightclub": 0.95,
    "stadium": 0.9,
    "music_venue": 0.85,
    "gym": 0.8,
    "bar": 0.75,
    "restaurant": 0.55,
    "store": 0.5,
    "general": 0.5,
    "park": 0.45,
    "theater": 0.4,
    "coffee": 0.35,
    "museum": 0.3,
    "school": 0.3,
    "hotel": 0.3,
    "office": 0.2,
    "transit": 0.2,
    "home": 0.1,
}

VENUE_TYPE_VIBES: dict[str, dict[str, float]] = {
    "nightclub": {"hype": 0.55, "energetic": 0.25, "social": 0.15},
    "bar": {"social": 0.55, "hype": 0.15, "chill": 0.15, "romantic": 0.1},
    "coffee": {"focused": 0.5, "chill": 0.25, "curious": 0.15},
    "restaurant": {"romantic": 0.4, "social": 0.25, "chill": 0.2},
    "gym": {"energetic": 0.6, "flowing": 0.2, "focused": 0.15},
    "park": {"flowing": 0.4, "open": 0.25, "chill": 0.2},
    "office": {"focused": 0.6, "solo": 0.2, "chill": 0.1},
    "school": {"curious": 0.5, "social": 0.2, "focused": 0.2},
    "museum": {"curious": 0.45, "chill": 0.2, "romantic": 0.15},
    "theater": {"romantic": 0.45, "chill": 0.2, "social": 0.15},
    "music_venue": {"excited": 0.5, "hype": 0.3, "social": 0.15},
    "stadium": {"energetic": 0.55, "excited": 0.25, "social": 0.15},
    "hotel": {"chill": 0.45, "romantic": 0.2, "solo": 0.15},
    "store": {"open": 0.35, "curious": 0.25, "social": 0.15},
    "transit": {"down": 0.5, "solo": 0.2, "chill": 0.15},
    "home": {"solo": 0.55, "chill": 0.25, "focused": 0.1},
    "general": {"chill": 0.3, "open": 0.2, "social": 0.2},
}

# Catalog keyword -> (venue type, weight)
_KEYWORDS: dict[str, tuple[str, float]] = {
    "night": ("nightclub", 0.8), "club": ("nightclub", 1.0), "nightclub": ("nightclub", 1.0),
    "dance": ("nightclub", 0.6),
    "bar": ("bar", 1.0), "pub": ("bar", 1.0), "beer": ("bar", 0.6), "cocktail": ("bar", 0.6),
    "brewery": ("bar", 0.7),
    "coffee": ("coffee", 1.0), "cafe": ("coffee", 1.0), "cafeteria": ("coffee", 0.7),
    "restaurant": ("restaurant", 1.0), "diner": ("restaurant", 0.8), "bistro": ("restaurant", 0.8),
    "gym": ("gym", 1.0), "fitness": ("gym", 1.0), "yoga": ("gym", 0.7),
    "park": ("park", 1.0), "trail": ("park", 0.8), "garden": ("park", 0.7),
    "office": ("office", 1.0), "cowork": ("office", 1.0), "coworking": ("office", 1.0),
    "school": ("school", 1.0), "university": ("school", 0.9), "college": ("school", 0.9),
    "library": ("school", 0.7),
    "museum": ("museum", 1.0), "gallery": ("museum", 0.7),
    "theater": ("theater", 1.0), "theatre": ("theater", 1.0), "cinema": ("theater", 0.8),
    "music": ("music_venue", 0.9), "concert": ("music_venue", 0.9),
    "arena": ("stadium", 0.9), "stadium": ("stadium", 1.0),
    "hotel": ("hotel", 1.0), "motel": ("hotel", 0.9), "lodging": ("hotel", 0.9),
    "airport": ("transit", 1.0), "station": ("transit", 0.8), "bus": ("transit", 0.7),
    "train": ("transit", 0.8), "transit": ("transit", 1.0),
    "shopping": ("store", 0.8), "mall": ("store", 1.0), "market": ("store", 0.8),
    "supermarket": ("store", 1.0),
    "home": ("home", 1.0), "residential": ("home", 0.7),
}


class VenueCatalog(Protocol):
    async def venues_in_bbox(self, bbox: BBox) -> list[VenueCandidate]:
        ...


class EtaProvider(Protocol):
    """Optional travel-time override. Returns {venue_id: (eta_self_s, eta_peer_s)} for what it knows."""

    async def etas(
        self, self_position: Position, peer_position: Position, venues: Sequence[VenueCandidate]
    ) -> dict[str, tuple[float, float]]:
        ...


def venue_type(category: Optional[str]) -> str:
    """Map a free-form catalog category ("Night_Club", "coffee shop") onto the venue taxonomy."""
    if not category:
        return "general"
    normalized = category.strip().lower()
    if normalized in VENUE_TYPE_ENERGY:
        return normalized
    scores: dict[str, float] = {}
    for token in re.split(r"[\s_\-/,]+", normalized):
        hit = _KEYWORDS.get(token)
        if hit:
            scores[hit[0]] = scores.get(hit[0], 0.0) + hit[1]
    if not scores:
        return "general"
    return max(sorted(scores), key=lambda k: scores[k])


def target_energy(peer: PeerContext) -> float:
    """Where the peer's energy is heading: last energy nudged along its momentum."""
    base = NEUTRAL_ENERGY if peer.energy is None else clamp01(peer.energy)
    if peer.momentum is not None:
        base += peer.momentum.dir * peer.momentum.mag * MOMENTUM_LOOKAHEAD
    return clamp01(base)


def vibe_affinity(kind: str, vibe: Vibe) -> float:
    dist = VENUE_TYPE_VIBES.get(kind, VENUE_TYPE_VIBES["general"])
    top = max(dist.values())
    return clamp01(dist.get(vibe.value, 0.0) / top) if top > 0 else 0.0


def compatibility(category: Optional[str], peer: PeerContext) -> float:
    kind = venue_type(category)
    energy_fit = clamp01(1.0 - abs(VENUE_TYPE_ENERGY[kind] - target_energy(peer)))
    if peer.vibe is None:
        return energy_fit
    return clamp01((1 - VIBE_BLEND) * energy_fit + VIBE_BLEND * vibe_affinity(kind, peer.vibe))


def walking_eta(a: Position, b: Position, speed_mps: float) -> float:
    return haversine_m(a, b) / speed_mps if speed_mps > 0 else float("inf")


def proximity_score(eta_self: float, eta_peer: float, cap_s: float) -> float:
    worst = min(max(eta_self, eta_peer), cap_s)
    return clamp01(1.0 - worst / cap_s) if cap_s > 0 else 0.0


def open_score(open_now: Optional[bool]) -> float:
    if open_now is None:
        return 0.5
    return 1.0 if open_now else 0.0


def symmetry_score(eta_self: float, eta_peer: float) -> float:
    longest = max(eta_self, eta_peer)
    if longest <= 0:
        return 1.0
    return clamp01(1.0 - abs(eta_self - eta_peer) / longest)


def rank_convergence_venues(
    self_position: Position,
    peer: PeerContext,
    candidates: Sequence[VenueCandidate],
    weights: VenueWeights = DEFAULT_WEIGHTS,
    eta_overrides: Optional[Mapping[str, tuple[float, float]]] = None,
) -> list[RankedPoint]:
    """Score every candidate and sort by (match desc, total eta asc). Empty in, empty out."""
    if abs(weights.total() - 1.0) > 1e-6:
        raise ValidationError(f"Venue weights must sum to 1, got {weights.total():.3f}")
    overrides = eta_overrides or {}
    compat_cache: dict[Optional[str], float] = {}

    ranked: list[RankedPoint] = []
    for venue in candidates:
        if venue.id in overrides:
            eta_self, eta_peer = (max(0.0, float(v)) for v in overrides[venue.id])
        else:
            eta_self = walking_eta(self_position, venue.position, weights.walking_speed_mps)
            eta_peer = walking_eta(peer.position, venue.position, weights.walking_speed_mps)

        if venue.category not in compat_cache:
            compat_cache[venue.category] = compatibility(venue.category, peer)
        components = {
            "compat": compat_cache[venue.category],
            "proximity": proximity_score(eta_self, eta_peer, weights.eta_cap_s),
            "open": open_score(venue.open_now),
            "symmetry": symmetry_score(eta_self, eta_peer),
        }
        match = clamp01(
            clamp01(weights.compat * components["compat"])
            + clamp01(weights.proximity * components["proximity"])
            + clamp01(weights.open_now * components["open"])
            + clamp01(weights.symmetry * components["symmetry"])
        )
        ranked.append(
            RankedPoint(venue=venue, match=match, eta_self=eta_self, eta_peer=eta_peer, components=components)
        )

    ranked.sort(key=lambda p: (-p.match, p.total_eta, p.venue.id))
    return ranked
