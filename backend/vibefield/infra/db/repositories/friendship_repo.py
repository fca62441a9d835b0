"""Friendship repository implementation (read side of the social graph)."""
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from vibefield.domain.common.errors import ValidationError
from vibefield.domain.presence.repositories import FriendshipResolver
from vibefield.infra.db.models.friendship import FriendshipModel, FriendState
from vibefield.infra.db.repositories.presence_repo import storage_guard


class FriendshipRepositoryImpl(FriendshipResolver):
    def __init__(self, session: AsyncSession):
        self.session = session

    async def accepted_friend_ids(self, identity_id: str) -> set[str]:
        """Ids of everyone with an accepted friendship to identity_id."""
        with storage_guard("friendships.accepted_friend_ids"):
            result = await self.session.execute(
                select(FriendshipModel.profile_low, FriendshipModel.profile_high).where(
                    FriendshipModel.friend_state == FriendState.ACCEPTED.value,
                    or_(
                        FriendshipModel.profile_low == identity_id,
                        FriendshipModel.profile_high == identity_id,
                    ),
                )
            )
            return {high if low == identity_id else low for low, high in result.all()}

    async def set_state(self, a: str, b: str, state: FriendState, is_close: bool = False) -> None:
        """Insert or update the friendship between a and b."""
        if a == b:
            raise ValidationError("An identity cannot befriend itself")
        low, high = FriendshipModel.ordered(a, b)
        with storage_guard("friendships.set_state"):
            model = await self.session.get(FriendshipModel, (low, high))
            if model is None:
                model = FriendshipModel(profile_low=low, profile_high=high)
                self.session.add(model)
            model.friend_state = state.value
            model.is_close = is_close
            await self.session.commit()
