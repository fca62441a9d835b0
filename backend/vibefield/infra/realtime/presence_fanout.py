"""Push presence-changed events from Redis to the writer's connected friends."""
import logging
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from vibefield.infra.db.repositories.friendship_repo import FriendshipRepositoryImpl
from vibefield.infra.realtime.ws_manager import WebSocketSessionManager

logger = logging.getLogger(__name__)


class PresenceFanout:
    """Handler for the presence channel. Every instance receives every event and delivers to its own sockets."""

    def __init__(self, manager: WebSocketSessionManager, session_factory: Callable[[], AsyncSession]):
        self.manager = manager
        self.session_factory = session_factory

    async def handle(self, message: dict) -> int:
        if message.get("type") != "presence_changed":
            return 0
        identity_id = message.get("identity_id")
        if not identity_id:
            return 0

        # Friends-only and public records both go only to friends over the socket;
        # strangers see public presence through the nearby query
        async with self.session_factory() as session:
            friends = await FriendshipRepositoryImpl(session).accepted_friend_ids(identity_id)

        recipients = sorted(f for f in friends if self.manager.is_connected(f))
        if not recipients:
            return 0
        delivered = await self.manager.send_to_many(recipients, message)
        logger.debug(f"[FANOUT] {identity_id} -> {delivered} sockets across {len(recipients)} friends")
        return delivered
