"""Presence change events on Redis pub/sub."""
import logging

from vibefield.domain.common.errors import StorageUnavailableError
from vibefield.domain.presence.models import PresenceChange
from vibefield.domain.presence.repositories import PresenceEventPublisher
from vibefield.infra.messaging.redis_bus import RedisBus

logger = logging.getLogger(__name__)


class RedisPresencePublisher(PresenceEventPublisher):
    """Publishes accepted presence changes for notification dispatch and WebSocket fan-out."""

    def __init__(self, bus: RedisBus, channel: str):
        self.bus = bus
        self.channel = channel

    async def publish(self, change: PresenceChange) -> None:
        # The row is already committed; a lost event only delays friends' live view
        try:
            await self.bus.publish(self.channel, change.to_message())
        except StorageUnavailableError as e:
            logger.error(f"[PRESENCE] Change event for {change.identity_id} not published: {e.message}")
