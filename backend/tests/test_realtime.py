"""Tests for the WebSocket session manager and presence fan-out."""
from vibefield.infra.db.models.friendship import FriendState
from vibefield.infra.db.repositories.friendship_repo import FriendshipRepositoryImpl
from vibefield.infra.realtime.presence_fanout import PresenceFanout
from vibefield.infra.realtime.ws_manager import WebSocketSessionManager


class FakeSocket:
    def __init__(self, broken: bool = False):
        self.sent: list[dict] = []
        self.accepted = False
        self.broken = broken

    async def accept(self):
        self.accepted = True

    async def send_json(self, message):
        if self.broken:
            raise RuntimeError("socket closed")
        self.sent.append(message)


async def test_connect_accepts_unless_already_accepted():
    manager = WebSocketSessionManager()
    fresh, accepted = FakeSocket(), FakeSocket()
    await manager.connect("alice", fresh)
    await manager.connect("alice", accepted, already_accepted=True)
    assert fresh.accepted is True
    assert accepted.accepted is False
    assert len(manager.connections["alice"]) == 2


async def test_send_to_identity_reaches_every_device():
    manager = WebSocketSessionManager()
    phone, laptop = FakeSocket(), FakeSocket()
    await manager.connect("alice", phone, already_accepted=True)
    await manager.connect("alice", laptop, already_accepted=True)
    assert await manager.send_to_identity("alice", {"type": "x"}) == 2
    assert phone.sent == laptop.sent == [{"type": "x"}]
    assert await manager.send_to_identity("nobody", {"type": "x"}) == 0


async def test_dead_sockets_are_dropped():
    manager = WebSocketSessionManager()
    await manager.connect("alice", FakeSocket(broken=True), already_accepted=True)
    assert await manager.send_to_identity("alice", {"type": "x"}) == 0
    assert not manager.is_connected("alice")


async def test_disconnect_last_socket_removes_identity():
    manager = WebSocketSessionManager()
    socket = FakeSocket()
    await manager.connect("alice", socket, already_accepted=True)
    await manager.disconnect("alice", socket)
    await manager.disconnect("alice", socket)
    assert manager.connections == {}


async def test_fanout_goes_to_connected_friends_only(session_factory):
    async with session_factory() as session:
        repo = FriendshipRepositoryImpl(session)
        await repo.set_state("alice", "bob", FriendState.ACCEPTED)
        await repo.set_state("alice", "carol", FriendState.ACCEPTED)
        await repo.set_state("alice", "dave", FriendState.PENDING)

    manager = WebSocketSessionManager()
    bob, dave, stranger = FakeSocket(), FakeSocket(), FakeSocket()
    await manager.connect("bob", bob, already_accepted=True)
    await manager.connect("dave", dave, already_accepted=True)
    await manager.connect("stranger", stranger, already_accepted=True)

    fanout = PresenceFanout(manager, session_factory)
    message = {"type": "presence_changed", "identity_id": "alice", "position": {"lat": 1.0, "lng": 2.0}}
    assert await fanout.handle(message) == 1
    assert bob.sent == [message]
    assert dave.sent == [] and stranger.sent == []


async def test_fanout_ignores_other_messages(session_factory):
    fanout = PresenceFanout(WebSocketSessionManager(), session_factory)
    assert await fanout.handle({"type": "something_else"}) == 0
    assert await fanout.handle({"type": "presence_changed"}) == 0
