"""API dependencies."""
from typing import Optional

from fastapi import Depends, HTTPException, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from vibefield.domain.common.cache import TimeBoxedCache
from vibefield.domain.convergence.models import ConvergenceParams, VenueWeights
from vibefield.domain.convergence.services import ConvergenceService
from vibefield.domain.convergence.venues import EtaProvider, VenueCatalog
from vibefield.domain.flow.services import FlowService
from vibefield.domain.policy.models import PolicyConfig
from vibefield.domain.policy.repositories import PolicyStateStore
from vibefield.domain.presence.repositories import FriendshipResolver, PresenceEventPublisher
from vibefield.domain.presence.services import PresenceService
from vibefield.domain.tiles.aggregator import TileAggregator
from vibefield.domain.tiles.models import TileParams
from vibefield.domain.tiles.services import TileService
from vibefield.domain.trajectory.repositories import TrajectoryStore
from vibefield.infra.db.repositories.friendship_repo import FriendshipRepositoryImpl
from vibefield.infra.db.repositories.presence_repo import PresenceRepositoryImpl
from vibefield.infra.db.session import get_db
from vibefield.infra.messaging.presence_publisher import RedisPresencePublisher
from vibefield.infra.messaging.redis_bus import RedisBus, redis_bus
from vibefield.infra.state.redis_stores import RedisPolicyStateStore, RedisTrajectoryStore
from vibefield.infra.vendors.eta_client import HttpEtaProvider
from vibefield.infra.vendors.venue_catalog import HttpVenueCatalog
from vibefield.settings import settings

__all__ = ["get_db"]

# Process-wide read caches; each instance keeps its own
_tile_cache: Optional[TimeBoxedCache] = None
_venue_cache: Optional[TimeBoxedCache] = None


async def get_current_identity(request: Request) -> str:
    """Verified identity id, set by the auth gateway in front of this service."""
    identity_id = (request.headers.get(settings.identity_header) or "").strip()
    if not identity_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Missing {settings.identity_header} header",
        )
    return identity_id


def cache_for_read(response: Response) -> None:
    """Mark a read response as cacheable for the configured short TTL."""
    response.headers["Cache-Control"] = f"private, max-age={settings.read_cache_max_age_seconds}"


def get_redis_bus() -> RedisBus:
    return redis_bus


def get_policy_store(bus: RedisBus = Depends(get_redis_bus)) -> PolicyStateStore:
    return RedisPolicyStateStore(bus, ttl_seconds=settings.policy_state_ttl_seconds)


def get_trajectory_store(bus: RedisBus = Depends(get_redis_bus)) -> TrajectoryStore:
    return RedisTrajectoryStore(
        bus,
        max_samples=settings.trajectory_max_samples,
        max_age_minutes=settings.trajectory_max_age_minutes,
    )


def get_presence_publisher(bus: RedisBus = Depends(get_redis_bus)) -> PresenceEventPublisher:
    return RedisPresencePublisher(bus, settings.presence_events_channel)


def get_friendship_resolver(db: AsyncSession = Depends(get_db)) -> FriendshipResolver:
    return FriendshipRepositoryImpl(db)


def get_tile_cache() -> TimeBoxedCache:
    global _tile_cache
    if _tile_cache is None:
        _tile_cache = TimeBoxedCache(ttl_seconds=settings.tile_cache_ttl_seconds, max_entries=512)
    return _tile_cache


def get_venue_catalog() -> Optional[VenueCatalog]:
    global _venue_cache
    url = (settings.venue_catalog_url or "").strip()
    if not url:
        return None
    if _venue_cache is None:
        _venue_cache = TimeBoxedCache(ttl_seconds=settings.venue_catalog_cache_ttl_seconds, max_entries=256)
    return HttpVenueCatalog(url, timeout=settings.venue_catalog_timeout_s, cache=_venue_cache)


def get_eta_provider() -> Optional[EtaProvider]:
    url = (settings.eta_override_url or "").strip()
    if not url:
        return None
    return HttpEtaProvider(url, timeout=settings.eta_override_timeout_s)


def get_policy_config() -> PolicyConfig:
    return PolicyConfig.from_settings(settings)


def get_tile_service(
    db: AsyncSession = Depends(get_db),
    cache: TimeBoxedCache = Depends(get_tile_cache),
) -> TileService:
    return TileService(
        PresenceRepositoryImpl(db),
        aggregator=TileAggregator(TileParams.from_settings(settings)),
        cache=cache,
        max_bbox_km2=settings.tile_max_bbox_km2,
        max_records_per_query=settings.tile_max_records_per_query,
    )


def get_presence_service(
    db: AsyncSession = Depends(get_db),
    friendships: FriendshipResolver = Depends(get_friendship_resolver),
    policy_store: PolicyStateStore = Depends(get_policy_store),
    publisher: PresenceEventPublisher = Depends(get_presence_publisher),
    trajectory_store: TrajectoryStore = Depends(get_trajectory_store),
    tile_service: TileService = Depends(get_tile_service),
    policy_config: PolicyConfig = Depends(get_policy_config),
) -> PresenceService:
    return PresenceService(
        PresenceRepositoryImpl(db),
        friendships,
        policy_store=policy_store,
        publisher=publisher,
        trajectory_store=trajectory_store,
        invalidate_tiles=tile_service.invalidate,
        policy_config=policy_config,
        ttl_seconds=settings.presence_ttl_seconds,
        max_radius_m=settings.presence_nearby_max_radius_m,
        max_nearby_records=settings.presence_nearby_max_records,
    )


def get_convergence_service(
    db: AsyncSession = Depends(get_db),
    friendships: FriendshipResolver = Depends(get_friendship_resolver),
    trajectory_store: TrajectoryStore = Depends(get_trajectory_store),
    catalog: Optional[VenueCatalog] = Depends(get_venue_catalog),
    eta_provider: Optional[EtaProvider] = Depends(get_eta_provider),
) -> ConvergenceService:
    return ConvergenceService(
        trajectory_store,
        friendships,
        presence_repo=PresenceRepositoryImpl(db),
        venue_catalog=catalog,
        eta_provider=eta_provider,
        params=ConvergenceParams.from_settings(settings),
        weights=VenueWeights.from_settings(settings),
        venue_search_margin_m=settings.venue_search_margin_m,
        momentum_window=settings.flow_momentum_window,
    )


def get_flow_service(
    friendships: FriendshipResolver = Depends(get_friendship_resolver),
    trajectory_store: TrajectoryStore = Depends(get_trajectory_store),
) -> FlowService:
    return FlowService(
        trajectory_store,
        friendships,
        momentum_window=settings.flow_momentum_window,
        momentum_threshold=settings.flow_momentum_threshold,
        cohesion_distance_m=settings.flow_cohesion_distance_m,
        cohesion_time_min=settings.flow_cohesion_time_min,
        cohesion_max_points=settings.flow_cohesion_max_points,
        max_friends=settings.convergence_max_agents,
    )
