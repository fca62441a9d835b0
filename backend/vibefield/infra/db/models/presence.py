"""Presence database model."""
from sqlalchemy import Column, DateTime, Float, Index, String

from vibefield.domain.common.geo import Position
from vibefield.domain.presence.models import PresenceRecord, Vibe, Visibility
from vibefield.infra.db.base import Base


class PresenceModel(Base):
    """One row per identity; overwritten on every accepted upsert."""

    __tablename__ = "presence"

    identity_id = Column(String, primary_key=True)
    lat = Column(Float, nullable=False)
    lng = Column(Float, nullable=False)
    vibe = Column(String, nullable=False)
    visibility = Column(String, nullable=False, default=Visibility.PUBLIC.value)
    updated_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)

    __table_args__ = (Index("ix_presence_lat_lng", "lat", "lng"),)

    def to_entity(self) -> PresenceRecord:
        """Convert to domain entity."""
        return PresenceRecord(
            identity_id=self.identity_id,
            position=Position(lat=self.lat, lng=self.lng),
            vibe=Vibe(self.vibe),
            visibility=Visibility(self.visibility),
            updated_at=self.updated_at,
            expires_at=self.expires_at,
        )

    @classmethod
    def from_entity(cls, entity: PresenceRecord) -> "PresenceModel":
        """Create from domain entity."""
        return cls(
            identity_id=entity.identity_id,
            lat=entity.position.lat,
            lng=entity.position.lng,
            vibe=entity.vibe.value,
            visibility=entity.visibility.value,
            updated_at=entity.updated_at,
            expires_at=entity.expires_at,
        )
