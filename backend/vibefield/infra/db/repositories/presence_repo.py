"""Presence repository implementation."""
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import InterfaceError, OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession

from vibefield.domain.common.errors import StorageUnavailableError
from vibefield.domain.common.geo import BBox
from vibefield.domain.presence.models import PresenceRecord
from vibefield.domain.presence.repositories import PresenceRepository
from vibefield.infra.db.models.presence import PresenceModel

logger = logging.getLogger(__name__)

_TRANSIENT = (OperationalError, InterfaceError, PoolTimeoutError, ConnectionError, TimeoutError)


@contextmanager
def storage_guard(operation: str):
    """Surface connection loss / timeouts as a retryable StorageUnavailableError."""
    try:
        yield
    except _TRANSIENT as e:
        logger.warning(f"[PRESENCE] Storage unavailable during {operation}: {e}")
        raise StorageUnavailableError(operation, cause=e) from e


class PresenceRepositoryImpl(PresenceRepository):
    """Presence repository backed by the presence table."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _insert(self):
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert(PresenceModel)
        if dialect == "sqlite":
            return sqlite.insert(PresenceModel)
        raise NotImplementedError(f"Presence upsert not supported on {dialect}")

    async def get(self, identity_id: str) -> Optional[PresenceRecord]:
        with storage_guard("presence.get"):
            result = await self.session.execute(
                select(PresenceModel).where(PresenceModel.identity_id == identity_id)
            )
            model = result.scalar_one_or_none()
            return model.to_entity() if model else None

    async def upsert(self, record: PresenceRecord) -> PresenceRecord:
        """Single-row atomic upsert. A write older than the stored row leaves it untouched."""
        values = {
            "identity_id": record.identity_id,
            "lat": record.position.lat,
            "lng": record.position.lng,
            "vibe": record.vibe.value,
            "visibility": record.visibility.value,
            "updated_at": record.updated_at,
            "expires_at": record.expires_at,
        }
        with storage_guard("presence.upsert"):
            stmt = self._insert().values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=[PresenceModel.identity_id],
                set_={k: getattr(stmt.excluded, k) for k in values if k != "identity_id"},
                where=PresenceModel.__table__.c.updated_at <= stmt.excluded.updated_at,
            )
            await self.session.execute(stmt)
            await self.session.commit()
            result = await self.session.execute(
                select(PresenceModel)
                .where(PresenceModel.identity_id == record.identity_id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one().to_entity()

    async def list_live_in_bbox(self, bbox: BBox, now: datetime, limit: int) -> list[PresenceRecord]:
        """Rows inside bbox whose expiry has not passed, newest first, at most limit."""
        with storage_guard("presence.list_live_in_bbox"):
            result = await self.session.execute(
                select(PresenceModel)
                .where(
                    PresenceModel.lat >= bbox.min_lat,
                    PresenceModel.lat <= bbox.max_lat,
                    PresenceModel.lng >= bbox.min_lng,
                    PresenceModel.lng <= bbox.max_lng,
                    PresenceModel.expires_at >= now,
                )
                .order_by(PresenceModel.updated_at.desc())
                .limit(limit)
            )
            return [m.to_entity() for m in result.scalars().all()]

    async def delete_expired(self, now: datetime) -> int:
        with storage_guard("presence.delete_expired"):
            result = await self.session.execute(
                delete(PresenceModel).where(PresenceModel.expires_at < now)
            )
            await self.session.commit()
            return result.rowcount or 0
