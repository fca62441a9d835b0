"""Tests for pairwise, batch and group convergence prediction."""
from datetime import timedelta

import pytest

from vibefield.domain.common.geo import Position, displace, haversine_m
from vibefield.domain.convergence.models import ConvergenceParams, MovementMode
from vibefield.domain.convergence.predictor import (
    detect_batch,
    detect_convergence,
    detect_group_convergences,
    kinematics,
    movement_mode,
    predict_meeting_point,
)

from fakes import walk

ORIGIN = Position(37.7749, -122.4194)


def test_kinematics_needs_two_samples(t0):
    assert kinematics([]) is None
    assert kinematics(walk(ORIGIN, t0, 0, 1.2, count=1)) is None


def test_kinematics_velocity(t0):
    k = kinematics(walk(ORIGIN, t0, 3.0, 4.0, count=4))
    assert k.vx == pytest.approx(3.0, abs=0.01)
    assert k.vy == pytest.approx(4.0, abs=0.01)
    assert k.speed == pytest.approx(5.0, abs=0.01)


@pytest.mark.parametrize(
    "speed,mode",
    [(0.1, MovementMode.STATIONARY), (1.4, MovementMode.WALKING), (5, MovementMode.CYCLING),
     (20, MovementMode.DRIVING), (40, MovementMode.TRANSIT)],
)
def test_movement_mode(speed, mode):
    assert movement_mode(speed) == mode


def test_friends_forty_meters_apart_converge_now(t0):
    walker = walk(ORIGIN, t0, 0.0, 1.2)
    stationary = walk(displace(ORIGIN, 0, 42.4), t0, 0.0, 0.0)
    prediction = detect_convergence(walker, stationary, agent_a="me", agent_b="friend")
    assert prediction is not None
    assert prediction.time_to_meet == pytest.approx(0.0)
    assert prediction.probability > 0.95
    assert prediction.agent_a == "me"
    assert 0.0 <= prediction.probability <= 1.0
    assert prediction.mode_a == MovementMode.WALKING
    assert prediction.mode_b == MovementMode.STATIONARY
    assert prediction.to_dict()["mode_a"] == "walking"


def test_approach_from_farther_away(t0):
    walker = walk(ORIGIN, t0, 0.0, 1.4)
    stationary = walk(displace(ORIGIN, 0, 200), t0, 0.0, 0.0)
    prediction = detect_convergence(walker, stationary)
    assert prediction is not None
    # The walker is at 2.8 m after the last sample, the meet circle starts 50 m short of 200 m
    assert prediction.time_to_meet == pytest.approx((200 - 2.8 - 50) / 1.4, rel=0.01)
    assert prediction.miss_distance_m == pytest.approx(0.0, abs=0.5)
    assert 0.0 < prediction.probability < 0.5


def test_five_km_apart_returns_none(t0):
    walker = walk(ORIGIN, t0, 0.0, 1.2)
    stationary = walk(displace(ORIGIN, 0, 5000), t0, 0.0, 0.0)
    assert detect_convergence(walker, stationary) is None


def test_diverging_returns_none(t0):
    a = walk(ORIGIN, t0, 0.0, -1.5)
    b = walk(displace(ORIGIN, 0, 80), t0, 0.0, 1.5)
    assert detect_convergence(a, b) is None


def test_short_trajectory_returns_none(t0):
    a = walk(ORIGIN, t0, 0.0, 1.2, count=1)
    b = walk(displace(ORIGIN, 0, 40), t0, 0.0, 0.0)
    assert detect_convergence(a, b) is None


def test_passing_wide_returns_none(t0):
    a = walk(ORIGIN, t0, 0.0, 1.4)
    b = walk(displace(ORIGIN, 120, 200), t0, 0.0, 0.0)
    assert detect_convergence(a, b) is None


def test_beyond_horizon_returns_none(t0):
    params = ConvergenceParams(horizon_s=60)
    a = walk(ORIGIN, t0, 0.0, 1.0)
    b = walk(displace(ORIGIN, 0, 300), t0, 0.0, 0.0)
    assert detect_convergence(a, b, params) is None


def test_meeting_point_is_midpoint_of_extrapolations(t0):
    a = walk(ORIGIN, t0, 0.0, 1.0)
    b = walk(displace(ORIGIN, 0, 100), t0, 0.0, -1.0)
    # After the last sample they are 96 m apart and closing at 2 m/s
    point = predict_meeting_point(a, b, 48.0)
    expected = displace(ORIGIN, 0, 50)
    assert haversine_m(point, expected) < 0.5


def test_meeting_point_none_without_kinematics(t0):
    assert predict_meeting_point([], walk(ORIGIN, t0, 0, 0), 10) is None


def test_batch_filters_and_sorts(t0):
    agents = {
        "a": walk(ORIGIN, t0, 0.0, 1.2),
        "b": walk(displace(ORIGIN, 0, 30), t0, 0.0, 0.0),
        "c": walk(displace(ORIGIN, 0, 45), t0, 0.0, 0.0),
        "far": walk(displace(ORIGIN, 4000, 0), t0, 0.0, 0.0),
    }
    results = detect_batch(agents)
    pairs = [(p.agent_a, p.agent_b) for p in results]
    assert ("a", "far") not in pairs
    assert all(p.probability > 0.6 for p in results)
    keys = [(-p.probability, p.time_to_meet) for p in results]
    assert keys == sorted(keys)


def test_batch_drops_implausible_speed(t0):
    agents = {
        "car": walk(ORIGIN, t0, 0.0, 40.0),
        "b": walk(displace(ORIGIN, 0, 30), t0, 0.0, 0.0),
    }
    assert detect_batch(agents) == []


def test_batch_caps_agent_count(t0):
    params = ConvergenceParams(max_agents=2)
    agents = {
        "a": walk(ORIGIN, t0, 0.0, 0.0),
        "b": walk(displace(ORIGIN, 0, 10), t0, 0.0, 0.0),
        "c": walk(displace(ORIGIN, 0, 20), t0, 0.0, 0.0),
    }
    results = detect_batch(agents, params)
    assert {(p.agent_a, p.agent_b) for p in results} <= {("a", "b")}


def test_group_convergence_triple(t0):
    # Three friends 60 m out at 120 degree spacing, all walking at 1 m/s toward the same corner
    target = ORIGIN
    agents = {
        "a": walk(displace(target, 0, 60), t0, 0.0, -1.0),
        "b": walk(displace(target, -51.96, -30), t0, 0.866, 0.5),
        "c": walk(displace(target, 51.96, -30), t0, -0.866, 0.5),
    }
    groups = detect_group_convergences(agents)
    assert len(groups) == 1
    group = groups[0]
    assert group.participants == ("a", "b", "c")
    assert 0.6 < group.probability <= 1.0
    assert haversine_m(group.meeting_point, target) < 30


def test_group_needs_every_pair(t0):
    agents = {
        "a": walk(ORIGIN, t0, 0.0, 0.0),
        "b": walk(displace(ORIGIN, 0, 20), t0, 0.0, 0.0),
        "far": walk(displace(ORIGIN, 3000, 0), t0, 0.0, 0.0),
    }
    assert detect_group_convergences(agents) == []


def test_agents_with_different_clocks(t0):
    a = walk(ORIGIN, t0, 0.0, 1.2)
    b = walk(displace(ORIGIN, 0, 45), t0 + timedelta(seconds=5), 0.0, 0.0)
    prediction = detect_convergence(a, b)
    assert prediction is not None
    assert prediction.time_to_meet == pytest.approx(0.0)
