"""Pairwise and group convergence prediction by linear extrapolation.

Each agent's velocity comes from its last few trajectory samples. Both agents
are projected to a common reference time (the newer of the two last samples)
and relative motion is solved in a local east/north frame in meters.

    probability = exp(-miss / distance_decay) * exp(-time_to_meet / time_decay)

Batch and group modes are quadratic/cubic in the number of agents and are
capped at a friends-list-sized N.
"""
from __future__ import annotations

import itertools
import logging
import math
from datetime import datetime, timedelta
from typing import Mapping, Optional, Sequence

from vibefield.domain.common.geo import Position, displace, haversine_m, local_offset_m, midpoint
from vibefield.domain.common.types import clamp01
from vibefield.domain.convergence.models import (
    ConvergenceParams,
    ConvergencePrediction,
    GroupConvergence,
    Kinematics,
    MovementMode,
)
from vibefield.domain.trajectory.models import TrajectorySample

logger = logging.getLogger(__name__)

DEFAULT_PARAMS = ConvergenceParams()
_EPS = 1e-9


def kinematics(samples: Sequence[TrajectorySample], velocity_window: int = 3) -> Optional[Kinematics]:
    """Last position and mean velocity over the last velocity_window samples. None with < 2 samples."""
    if len(samples) < 2:
        return None
    ordered = sorted(samples, key=lambda s: s.t)
    recent = ordered[-max(2, velocity_window):]
    first, last = recent[0], recent[-1]
    dt = (last.t - first.t).total_seconds()
    if dt <= 0:
        return None
    east, north = local_offset_m(first.position, last.position)
    return Kinematics(position=last.position, t=last.t, vx=east / dt, vy=north / dt)


def movement_mode(speed_mps: float) -> MovementMode:
    if speed_mps < 0.5:
        return MovementMode.STATIONARY
    if speed_mps <= 2.0:
        return MovementMode.WALKING
    if speed_mps <= 8.0:
        return MovementMode.CYCLING
    if speed_mps <= 30.0:
        return MovementMode.DRIVING
    return MovementMode.TRANSIT


def extrapolate(k: Kinematics, at: datetime) -> Position:
    dt = (at - k.t).total_seconds()
    return displace(k.position, k.vx * dt, k.vy * dt)


def _first_entry_time(d: tuple[float, float], dv: tuple[float, float], radius: float) -> Optional[float]:
    """Earliest t >= 0 with |d + dv*t| <= radius, or None."""
    dd = d[0] * d[0] + d[1] * d[1]
    if dd <= radius * radius:
        return 0.0
    a = dv[0] * dv[0] + dv[1] * dv[1]
    if a < _EPS:
        return None
    b = 2 * (d[0] * dv[0] + d[1] * dv[1])
    c = dd - radius * radius
    disc = b * b - 4 * a * c
    if disc < 0:
        return None
    t = (-b - math.sqrt(disc)) / (2 * a)
    return t if t >= 0 else None


def _pair(
    a_id: str,
    ka: Kinematics,
    b_id: str,
    kb: Kinematics,
    params: ConvergenceParams,
) -> Optional[ConvergencePrediction]:
    ref_t = max(ka.t, kb.t)
    origin = ka.position
    dta = (ref_t - ka.t).total_seconds()
    dtb = (ref_t - kb.t).total_seconds()
    bx, by = local_offset_m(origin, kb.position)
    d = (bx + kb.vx * dtb - ka.vx * dta, by + kb.vy * dtb - ka.vy * dta)
    dv = (kb.vx - ka.vx, kb.vy - ka.vy)

    closing = d[0] * dv[0] + d[1] * dv[1]
    if closing > 0:
        return None

    dv2 = dv[0] * dv[0] + dv[1] * dv[1]
    t_closest = -closing / dv2 if dv2 > _EPS else 0.0
    miss = math.hypot(d[0] + dv[0] * t_closest, d[1] + dv[1] * t_closest)
    if miss > params.meet_distance_m:
        return None

    time_to_meet = _first_entry_time(d, dv, params.meet_distance_m)
    if time_to_meet is None or time_to_meet > params.horizon_s:
        return None

    distance_term = clamp01(math.exp(-miss / params.distance_decay_m))
    time_term = clamp01(math.exp(-time_to_meet / params.time_decay_s))
    probability = clamp01(distance_term * time_term)

    at = ref_t + timedelta(seconds=time_to_meet)
    return ConvergencePrediction(
        agent_a=a_id,
        agent_b=b_id,
        meeting_point=midpoint(extrapolate(ka, at), extrapolate(kb, at)),
        time_to_meet=time_to_meet,
        probability=probability,
        miss_distance_m=miss,
        mode_a=movement_mode(ka.speed),
        mode_b=movement_mode(kb.speed),
    )


def detect_convergence(
    trajectory_a: Sequence[TrajectorySample],
    trajectory_b: Sequence[TrajectorySample],
    params: ConvergenceParams = DEFAULT_PARAMS,
    agent_a: str = "a",
    agent_b: str = "b",
) -> Optional[ConvergencePrediction]:
    """Predict whether two agents come within meet distance inside the horizon.

    None when either trajectory has fewer than 2 samples, the agents are
    diverging, the closest approach misses, or the meeting is past the horizon.
    """
    ka = kinematics(trajectory_a, params.velocity_window)
    kb = kinematics(trajectory_b, params.velocity_window)
    if ka is None or kb is None:
        return None
    return _pair(agent_a, ka, agent_b, kb, params)


def predict_meeting_point(
    trajectory_a: Sequence[TrajectorySample],
    trajectory_b: Sequence[TrajectorySample],
    time_to_meet: float,
    velocity_window: int = 3,
) -> Optional[Position]:
    """Midpoint of both agents' extrapolated positions time_to_meet seconds after the newer sample."""
    ka = kinematics(trajectory_a, velocity_window)
    kb = kinematics(trajectory_b, velocity_window)
    if ka is None or kb is None:
        return None
    at = max(ka.t, kb.t) + timedelta(seconds=max(0.0, time_to_meet))
    return midpoint(extrapolate(ka, at), extrapolate(kb, at))


def _plausible_agents(
    agents: Mapping[str, Sequence[TrajectorySample]],
    params: ConvergenceParams,
) -> dict[str, Kinematics]:
    ids = sorted(agents)
    if len(ids) > params.max_agents:
        logger.warning(f"[CONVERGENCE] {len(ids)} agents exceeds cap {params.max_agents}; truncating")
        ids = ids[: params.max_agents]
    result: dict[str, Kinematics] = {}
    for agent_id in ids:
        k = kinematics(agents[agent_id], params.velocity_window)
        if k is None:
            continue
        if k.speed > params.max_speed_mps:
            logger.debug(f"[CONVERGENCE] Dropping {agent_id}: implausible speed {k.speed:.1f} m/s")
            continue
        result[agent_id] = k
    return result


def _sort_key(p: ConvergencePrediction):
    return (-p.probability, p.time_to_meet, p.agent_a, p.agent_b)


def detect_batch(
    agents: Mapping[str, Sequence[TrajectorySample]],
    params: ConvergenceParams = DEFAULT_PARAMS,
) -> list[ConvergencePrediction]:
    """All pairs above the probability floor, most likely and soonest first."""
    kin = _plausible_agents(agents, params)
    results = []
    for a_id, b_id in itertools.combinations(kin, 2):
        prediction = _pair(a_id, kin[a_id], b_id, kin[b_id], params)
        if prediction is not None and prediction.probability > params.min_probability:
            results.append(prediction)
    results.sort(key=_sort_key)
    return results


def detect_group_convergences(
    agents: Mapping[str, Sequence[TrajectorySample]],
    params: ConvergenceParams = DEFAULT_PARAMS,
) -> list[GroupConvergence]:
    """Triples whose pairwise meetings coincide in space and time."""
    kin = _plausible_agents(agents, params)
    pairs: dict[tuple[str, str], ConvergencePrediction] = {}
    for a_id, b_id in itertools.combinations(kin, 2):
        prediction = _pair(a_id, kin[a_id], b_id, kin[b_id], params)
        if prediction is not None:
            pairs[(a_id, b_id)] = prediction

    groups = []
    for trio in itertools.combinations(kin, 3):
        legs = [pairs.get(pair) for pair in itertools.combinations(trio, 2)]
        if any(leg is None for leg in legs):
            continue
        points = [leg.meeting_point for leg in legs]
        spread = max(haversine_m(p, q) for p, q in itertools.combinations(points, 2))
        if spread > params.group_max_spread_m:
            continue
        times = [leg.time_to_meet for leg in legs]
        if max(times) - min(times) > params.group_max_time_spread_s:
            continue
        mean_probability = sum(leg.probability for leg in legs) / 3
        probability = clamp01(mean_probability * params.group_bonus)
        if probability <= params.min_probability:
            continue
        groups.append(
            GroupConvergence(
                participants=trio,
                meeting_point=Position(
                    lat=sum(p.lat for p in points) / 3,
                    lng=sum(p.lng for p in points) / 3,
                ),
                time_to_meet=sum(times) / 3,
                probability=probability,
            )
        )
    groups.sort(key=lambda g: (-g.probability, g.time_to_meet, g.participants))
    return groups
