"""Background purge of expired presence rows.

Storage hygiene only: reads filter expiry themselves, so a stalled sweeper
never leaks stale presence.
"""
import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from vibefield.domain.common.errors import StorageUnavailableError
from vibefield.domain.common.types import utcnow
from vibefield.infra.db.repositories.presence_repo import PresenceRepositoryImpl

logger = logging.getLogger(__name__)


class ExpirySweeper:
    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        interval_seconds: float = 60.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds
        self.clock = clock

    async def run_once(self, now: Optional[datetime] = None) -> int:
        async with self.session_factory() as session:
            deleted = await PresenceRepositoryImpl(session).delete_expired(now or self.clock())
        if deleted:
            logger.info(f"[SWEEP] Purged {deleted} expired presence rows")
        return deleted

    async def run_forever(self) -> None:
        """Sweep every interval until cancelled. Storage outages are logged and retried next tick."""
        logger.info(f"[SWEEP] Expiry sweeper started (every {self.interval_seconds:.0f}s)")
        while True:
            try:
                await self.run_once()
            except StorageUnavailableError as e:
                logger.warning(f"[SWEEP] Skipped: {e.message}")
            await asyncio.sleep(self.interval_seconds)
