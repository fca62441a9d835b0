"""Database models."""
from vibefield.infra.db.models.presence import PresenceModel
from vibefield.infra.db.models.friendship import FriendshipModel, FriendState

__all__ = [
    "PresenceModel",
    "FriendshipModel",
    "FriendState",
]
