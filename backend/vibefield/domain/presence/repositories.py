"""Presence domain repository protocols."""
from datetime import datetime
from typing import Optional, Protocol

from vibefield.domain.common.geo import BBox
from vibefield.domain.presence.models import PresenceChange, PresenceRecord


class PresenceRepository(Protocol):
    """Keyed presence table: one row per identity."""

    async def get(self, identity_id: str) -> Optional[PresenceRecord]:
        """Get the stored record for an identity, live or not."""
        ...

    async def upsert(self, record: PresenceRecord) -> PresenceRecord:
        """Replace the identity's record. Older writes than the stored one are ignored."""
        ...

    async def list_live_in_bbox(self, bbox: BBox, now: datetime, limit: int) -> list[PresenceRecord]:
        """Non-expired records inside bbox, newest first, at most limit."""
        ...

    async def delete_expired(self, now: datetime) -> int:
        """Purge expired rows. Returns rows deleted."""
        ...


class FriendshipResolver(Protocol):
    """Identity collaborator: resolves accepted friendships."""

    async def accepted_friend_ids(self, identity_id: str) -> set[str]:
        """Identities with an accepted friendship with identity_id."""
        ...


class PresenceEventPublisher(Protocol):
    """Publish interface for presence changes (notification dispatch subscribes)."""

    async def publish(self, change: PresenceChange) -> None:
        ...
