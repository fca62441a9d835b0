"""Tests for momentum and cohesion."""
from datetime import timedelta

import pytest

from vibefield.domain.common.geo import Position, displace
from vibefield.domain.flow.metrics import box_smooth, cohesion, momentum
from vibefield.domain.flow.services import FlowService
from vibefield.domain.trajectory.models import FriendHead, TrajectorySample

from fakes import walk

HOME = Position(40.7128, -74.0060)


def test_box_smooth_partial_edges():
    smoothed = box_smooth([0.2, 0.3, 0.8, 0.6, 0.4], 3)
    assert list(smoothed) == pytest.approx([0.25, 1.3 / 3, 1.7 / 3, 0.6, 0.5])


def test_box_smooth_even_window_spans_exactly_window_samples():
    smoothed = box_smooth([0.0, 0.0, 0.0, 1.0, 0.0, 0.0, 0.0], 2)
    assert sorted(smoothed)[-2:] == pytest.approx([0.5, 0.5])
    assert sum(1 for v in smoothed if v > 0) == 2
    assert list(smoothed[:3]) == [0.0, 0.0, 0.0]


def test_flat_series_has_no_momentum():
    result = momentum([0.3, 0.3, 0.3, 0.3])
    assert result.dir == 0
    assert result.mag == 0


def test_rising_series():
    result = momentum([0.2, 0.3, 0.8, 0.6, 0.4])
    assert result.dir == 1
    assert result.mag == pytest.approx((0.5 - 1.3 / 3) * 3)


def test_falling_series_saturates():
    result = momentum([1.0, 1.0, 1.0, 0.0, 0.0, 0.0, 0.0])
    assert result.dir == -1
    assert result.mag == pytest.approx(1.0)


def test_too_few_samples():
    assert momentum([0.1, 0.9, 0.1]).to_dict() == {"dir": 0, "mag": 0.0}
    assert momentum([]).dir == 0


def test_small_delta_below_threshold():
    assert momentum([0.50, 0.51, 0.52, 0.53]).dir == 0


def path(t0, count=4, step_min=2):
    return [
        TrajectorySample(t=t0 + timedelta(minutes=i * step_min), position=displace(HOME, i * 40.0, 0))
        for i in range(count)
    ]


def test_cohesion_counts_one_hit_per_point(t0):
    my_path = path(t0)
    heads = [
        FriendHead("f1", t0 + timedelta(minutes=1), displace(HOME, 10, 0)),
        FriendHead("f2", t0 + timedelta(minutes=1), displace(HOME, 0, 20)),
    ]
    result = cohesion(my_path, heads)
    assert result.points_checked == 4
    assert result.cohesion == 1.0
    assert result.nearby == 2


def test_cohesion_respects_distance_and_time(t0):
    my_path = path(t0)
    heads = [
        FriendHead("far", t0, displace(HOME, 2000, 0)),
        FriendHead("late", t0 + timedelta(minutes=60), HOME),
        FriendHead("near_start", t0, displace(HOME, 0, 130)),
    ]
    result = cohesion(my_path, heads, distance_m=150, time_min=12)
    # near_start is 130 m from point 0 and ~136 m from point 1; later points are out of range
    assert result.nearby == 1
    assert result.cohesion == pytest.approx(2 / 4)


def test_cohesion_empty_inputs(t0):
    assert cohesion([], [FriendHead("f", t0, HOME)]).cohesion == 0.0
    assert cohesion(path(t0), []).to_dict() == {"cohesion": 0.0, "nearby": 0, "points_checked": 0}


def test_cohesion_uses_last_points_only(t0):
    long_path = path(t0, count=30, step_min=1)
    result = cohesion(long_path, [FriendHead("f", t0, HOME)], max_points=24)
    assert result.points_checked == 24
    # Only the earliest points sit near the friend and they fall outside the checked window
    assert result.cohesion == 0.0


async def test_flow_service_momentum_from_window(trajectory_store, friendships, t0):
    for s in walk(HOME, t0, 0, 0, count=5, energies=[0.2, 0.3, 0.8, 0.6, 0.4]):
        await trajectory_store.append("me", s)
    service = FlowService(trajectory_store, friendships)
    assert (await service.momentum("me")).dir == 1
    assert (await service.momentum("nobody")).dir == 0


async def test_flow_service_cohesion_uses_friend_heads(trajectory_store, friendships, t0):
    friendships.befriend("me", "f1")
    for s in walk(HOME, t0, 0, 0, count=3):
        await trajectory_store.append("me", s)
    for s in walk(displace(HOME, 30, 0), t0, 0, 0, count=2):
        await trajectory_store.append("f1", s)
    for s in walk(HOME, t0, 0, 0, count=2):
        await trajectory_store.append("stranger", s)

    result = await FlowService(trajectory_store, friendships).cohesion("me")
    assert result.cohesion == 1.0
    assert result.nearby == 1
