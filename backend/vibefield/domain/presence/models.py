"""Presence domain models."""
import enum
from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel

from vibefield.domain.common.geo import Position


class Vibe(str, enum.Enum):
    """Vibe a user broadcasts with their presence."""
    CHILL = "chill"
    HYPE = "hype"
    CURIOUS = "curious"
    SOCIAL = "social"
    SOLO = "solo"
    ROMANTIC = "romantic"
    WEIRD = "weird"
    DOWN = "down"
    FLOWING = "flowing"
    OPEN = "open"
    ENERGETIC = "energetic"
    EXCITED = "excited"
    FOCUSED = "focused"


class Visibility(str, enum.Enum):
    """Who may see a presence record."""
    PUBLIC = "public"
    FRIENDS = "friends"


class PresenceRecord(BaseModel):
    """Current position of one identity. Absent once now > expires_at."""

    identity_id: str
    position: Position
    vibe: Vibe
    visibility: Visibility
    updated_at: datetime
    expires_at: datetime

    @classmethod
    def create(
        cls,
        identity_id: str,
        position: Position,
        vibe: Vibe,
        visibility: Visibility,
        ttl_seconds: float,
        now: datetime,
    ) -> "PresenceRecord":
        """Create a fresh record expiring ttl_seconds after now."""
        return cls(
            identity_id=identity_id,
            position=position,
            vibe=vibe,
            visibility=visibility,
            updated_at=now,
            expires_at=now + timedelta(seconds=ttl_seconds),
        )

    def is_live(self, now: datetime) -> bool:
        return not (now > self.expires_at)


class PresenceChange(BaseModel):
    """Event emitted after an accepted upsert."""

    identity_id: str
    record: PresenceRecord
    previous_position: Optional[Position] = None

    def to_message(self) -> dict:
        return {
            "type": "presence_changed",
            "identity_id": self.identity_id,
            "position": self.record.position.to_dict(),
            "vibe": self.record.vibe.value,
            "visibility": self.record.visibility.value,
            "updated_at": self.record.updated_at.isoformat(),
            "expires_at": self.record.expires_at.isoformat(),
            "previous_position": self.previous_position.to_dict() if self.previous_position else None,
        }
