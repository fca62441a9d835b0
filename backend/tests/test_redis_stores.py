"""Tests for the Redis-backed trajectory/policy stores and the presence publisher."""
from datetime import timedelta

import pytest

from vibefield.domain.common.errors import StorageUnavailableError
from vibefield.domain.common.geo import Position
from vibefield.domain.presence.models import PresenceChange, PresenceRecord, Vibe, Visibility
from vibefield.domain.trajectory.models import TrajectorySample, head_of, trim_window
from vibefield.infra.messaging.presence_publisher import RedisPresencePublisher
from vibefield.infra.state.redis_stores import (
    RedisPolicyStateStore,
    RedisTrajectoryStore,
    policy_key,
    trajectory_key,
)

SPOT = Position(52.52, 13.405)


class FakeBus:
    """Mimics the RedisBus list/hash/publish surface in memory."""

    def __init__(self):
        self.lists: dict[str, list[dict]] = {}
        self.hashes: dict[str, dict[str, str]] = {}
        self.ttls: dict[str, int] = {}
        self.published: list[tuple[str, dict]] = []
        self.down = False

    async def push_capped(self, key, value, max_len, ttl_seconds):
        items = self.lists.setdefault(key, [])
        items.insert(0, value)
        del items[max_len:]
        self.ttls[key] = ttl_seconds

    async def list_range(self, key, count):
        return list(self.lists.get(key, []))[:count]

    async def hash_set(self, key, mapping, ttl_seconds):
        self.hashes.setdefault(key, {}).update(mapping)
        self.ttls[key] = ttl_seconds

    async def hash_get(self, key):
        return dict(self.hashes.get(key, {}))

    async def publish(self, channel, message):
        if self.down:
            raise StorageUnavailableError(f"publish {channel}")
        self.published.append((channel, message))


def sample(t, energy=None, lat=52.52):
    return TrajectorySample(t=t, position=Position(lat, 13.405), energy=energy)


async def test_trajectory_window_oldest_first_and_capped(t0):
    bus = FakeBus()
    store = RedisTrajectoryStore(bus, max_samples=3, max_age_minutes=15, clock=lambda: t0 + timedelta(seconds=10))
    for i in range(5):
        await store.append("alice", sample(t0 + timedelta(seconds=i), energy=i / 10))
    window = await store.window("alice")
    assert [s.t for s in window] == [t0 + timedelta(seconds=i) for i in (2, 3, 4)]
    assert window[-1].energy == pytest.approx(0.4)
    assert bus.ttls[trajectory_key("alice")] == 15 * 60


async def test_trajectory_window_drops_old_samples(t0):
    bus = FakeBus()
    store = RedisTrajectoryStore(bus, max_samples=10, max_age_minutes=1, clock=lambda: t0 + timedelta(minutes=5))
    await store.append("alice", sample(t0))
    await store.append("alice", sample(t0 + timedelta(minutes=4, seconds=30)))
    window = await store.window("alice")
    assert len(window) == 1


async def test_trajectory_empty_window(t0):
    store = RedisTrajectoryStore(FakeBus(), clock=lambda: t0)
    assert await store.window("nobody") == []


async def test_policy_state_roundtrip(t0):
    bus = FakeBus()
    store = RedisPolicyStateStore(bus, ttl_seconds=3600)
    assert await store.get("alice", "presence") is None

    await store.record_change("alice", "presence", t0, band=4)
    state = await store.get("alice", "presence")
    assert state.last_change_at == t0
    assert state.band == 4
    assert bus.ttls[policy_key("alice", "presence")] == 3600

    await store.record_change("alice", "music_switch", t0)
    assert (await store.get("alice", "music_switch")).band is None


def test_trim_window_and_head(t0):
    samples = [sample(t0 + timedelta(seconds=s)) for s in (30, 0, 10, 20)]
    trimmed = trim_window(samples, 2, timedelta(minutes=1), t0 + timedelta(seconds=40))
    assert [s.t for s in trimmed] == [t0 + timedelta(seconds=20), t0 + timedelta(seconds=30)]
    assert trim_window(samples, 0, timedelta(minutes=1), t0) == []
    head = head_of("bob", samples)
    assert head.t == t0 + timedelta(seconds=30)
    assert head_of("bob", []) is None


def test_sample_dict_roundtrip(t0):
    s = sample(t0, energy=0.25)
    assert TrajectorySample.from_dict(s.to_dict()) == s


def change(t0) -> PresenceChange:
    record = PresenceRecord.create("alice", SPOT, Vibe.SOCIAL, Visibility.FRIENDS, 90, t0)
    return PresenceChange(identity_id="alice", record=record)


async def test_publisher_sends_change_message(t0):
    bus = FakeBus()
    await RedisPresencePublisher(bus, "presence:changes").publish(change(t0))
    channel, message = bus.published[0]
    assert channel == "presence:changes"
    assert message["identity_id"] == "alice"
    assert message["visibility"] == "friends"
    assert message["previous_position"] is None


async def test_publisher_swallows_outage_after_commit(t0):
    bus = FakeBus()
    bus.down = True
    await RedisPresencePublisher(bus, "presence:changes").publish(change(t0))
    assert bus.published == []
