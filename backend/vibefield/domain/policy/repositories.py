"""Policy state storage protocol."""
from datetime import datetime
from typing import Optional, Protocol

from vibefield.domain.policy.models import PolicyStateRecord


class PolicyStateStore(Protocol):
    """Remembers the last accepted change per (identity, class)."""

    async def get(self, identity_id: str, class_key: str) -> Optional[PolicyStateRecord]:
        ...

    async def record_change(
        self, identity_id: str, class_key: str, at: datetime, band: Optional[int] = None
    ) -> None:
        ...
