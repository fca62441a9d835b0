"""Readiness checks.

Settings, packages and the presence schema gate rotation. Redis and the venue
catalog only degrade individual endpoints to 503, so they are reported but
never take the instance out of rotation.
"""
import asyncio
import importlib
import logging
import math
from typing import Optional

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from vibefield.domain.common.errors import StorageUnavailableError, ValidationError
from vibefield.domain.common.geo import BBox, Position, check_resolution
from vibefield.domain.convergence.venues import VenueCatalog
from vibefield.infra.db.base import (
    Base,
    async_pg_connect_args,
    async_pg_url_without_sslmode,
    normalize_async_pg_url,
)
from vibefield.infra.db.models import FriendshipModel, PresenceModel  # noqa: F401
from vibefield.infra.messaging.redis_bus import RedisBus
from vibefield.settings import Settings, get_settings

logger = logging.getLogger(__name__)

# Result: (passed: bool, message: str)
CheckResult = tuple[bool, str]
ChecksDict = dict[str, CheckResult]

REQUIRED_CHECKS = frozenset({"settings", "packages", "database"})

_RUNTIME_MODULES = ("uvicorn", "sqlalchemy", "asyncpg", "redis", "httpx", "numpy", "pygeohash", "vibefield.main")

# A ~1 m box around null island; any catalog can answer it cheaply
_CATALOG_CANARY = BBox.around(Position(lat=0.0, lng=0.0), 1.0)


def check_settings(s: Settings) -> CheckResult:
    """Values that would make every tile, policy or ranking request fail or lie."""
    problems = []
    try:
        check_resolution(s.tile_default_resolution)
    except ValidationError as e:
        problems.append(f"tile_default_resolution: {e}")
    if s.presence_ttl_seconds <= 0:
        problems.append("presence_ttl_seconds must be positive")
    bad_intervals = sorted(k for k, v in s.policy_min_intervals.items() if v < 0)
    if bad_intervals:
        problems.append(f"negative policy_min_intervals: {', '.join(bad_intervals)}")
    weights = (s.venue_weight_compat, s.venue_weight_proximity, s.venue_weight_open, s.venue_weight_symmetry)
    if not math.isclose(sum(weights), 1.0, abs_tol=1e-6):
        problems.append(f"venue weights sum to {sum(weights):.3f}, not 1")
    if not 0.0 <= s.convergence_min_probability <= 1.0:
        problems.append("convergence_min_probability must be within [0, 1]")
    if problems:
        return False, "; ".join(problems)
    return True, "ok"


def check_packages() -> CheckResult:
    missing = []
    for name in _RUNTIME_MODULES:
        try:
            importlib.import_module(name)
        except ImportError as e:
            missing.append(f"{name} ({e})" if name.startswith("vibefield") else name)
    if missing:
        return False, f"missing: {', '.join(missing)}"
    return True, "ok"


async def check_schema(engine: AsyncEngine) -> CheckResult:
    """The tables the presence and friendship repositories write to must exist."""
    async with engine.connect() as conn:
        present = set(await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names()))
    missing = sorted(set(Base.metadata.tables) - present)
    if missing:
        return False, f"missing tables: {', '.join(missing)}"
    return True, "ok"


async def check_database(database_url: str) -> CheckResult:
    url = normalize_async_pg_url(database_url)
    engine = create_async_engine(
        async_pg_url_without_sslmode(url),
        connect_args=async_pg_connect_args(url),
        pool_pre_ping=True,
    )
    try:
        return await check_schema(engine)
    except Exception as e:
        logger.warning(f"[READY] Database check failed: {e}")
        return False, str(e)
    finally:
        await engine.dispose()


async def check_redis(bus: RedisBus) -> CheckResult:
    """Presence fan-out and trajectory windows both live on the bus."""
    try:
        await bus.ping()
        return True, "ok"
    except StorageUnavailableError as e:
        return False, str(e)


async def check_venue_catalog(catalog: Optional[VenueCatalog]) -> CheckResult:
    if catalog is None:
        return True, "skipped (not configured)"
    try:
        await catalog.venues_in_bbox(_CATALOG_CANARY)
        return True, "ok"
    except StorageUnavailableError as e:
        return False, str(e)


async def run_all_checks(s: Optional[Settings] = None) -> ChecksDict:
    """Run every check against the given (or current) settings."""
    from vibefield.infra.vendors.venue_catalog import HttpVenueCatalog

    s = s or get_settings()
    catalog_url = (s.venue_catalog_url or "").strip()
    catalog = HttpVenueCatalog(catalog_url, timeout=s.venue_catalog_timeout_s) if catalog_url else None
    bus = RedisBus(s.redis_url)
    try:
        redis_result = await check_redis(bus)
    finally:
        await bus.disconnect()
    return {
        "settings": check_settings(s),
        "packages": check_packages(),
        "database": await check_database(s.database_url),
        "redis": redis_result,
        "venue_catalog": await check_venue_catalog(catalog),
    }


def run_all_checks_sync(s: Optional[Settings] = None) -> ChecksDict:
    """For scripts outside an event loop."""
    return asyncio.run(run_all_checks(s))


def is_ready(checks: ChecksDict) -> tuple[bool, dict[str, str]]:
    """(ready, name -> message). Only the required checks decide readiness."""
    summary = {name: msg for name, (_, msg) in checks.items()}
    ready = all(checks[n][0] for n in REQUIRED_CHECKS if n in checks)
    return ready, summary
