"""Friendship database model.

Owned by the social graph service; this backend only reads it. Each pair is
stored once with profile_low < profile_high.
"""
import enum

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Index, String

from vibefield.domain.common.types import utcnow
from vibefield.infra.db.base import Base


class FriendState(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    BLOCKED = "blocked"


class FriendshipModel(Base):
    __tablename__ = "friendships"

    profile_low = Column(String, primary_key=True)
    profile_high = Column(String, primary_key=True)
    friend_state = Column(String, nullable=False, default=FriendState.PENDING.value)
    is_close = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("profile_low < profile_high", name="ck_friendships_ordered_pair"),
        Index("ix_friendships_high", "profile_high"),
    )

    @staticmethod
    def ordered(a: str, b: str) -> tuple[str, str]:
        return (a, b) if a < b else (b, a)
