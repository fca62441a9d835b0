"""Readiness: settings, packages and the schema gate rotation; redis and the venue catalog only degrade endpoints."""
import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from vibefield.domain.common.errors import StorageUnavailableError
from vibefield.readiness import (
    check_packages,
    check_redis,
    check_schema,
    check_settings,
    check_venue_catalog,
    is_ready,
    run_all_checks_sync,
)
from vibefield.settings import Settings

from fakes import DownVenueCatalog, StaticVenueCatalog


class StubBus:
    def __init__(self, up: bool):
        self.up = up

    async def ping(self) -> bool:
        if not self.up:
            raise StorageUnavailableError("ping")
        return True


def test_default_settings_pass():
    assert check_settings(Settings()) == (True, "ok")


def test_settings_report_every_problem():
    ok, msg = check_settings(
        Settings(
            tile_default_resolution=12,
            venue_weight_compat=0.9,
            policy_min_intervals={"presence": -1.0, "work_status": 1800.0},
        )
    )
    assert not ok
    assert "tile_default_resolution" in msg
    assert "venue weights" in msg
    assert "presence" in msg
    assert "work_status" not in msg


def test_packages_load():
    ok, msg = check_packages()
    assert ok, msg


async def test_schema_present(db_engine):
    assert await check_schema(db_engine) == (True, "ok")


async def test_schema_missing_tables():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    try:
        ok, msg = await check_schema(engine)
    finally:
        await engine.dispose()
    assert not ok
    assert msg == "missing tables: friendships, presence"


async def test_redis_check():
    assert await check_redis(StubBus(up=True)) == (True, "ok")
    ok, _ = await check_redis(StubBus(up=False))
    assert not ok


async def test_venue_catalog_check():
    ok, msg = await check_venue_catalog(None)
    assert ok
    assert msg.startswith("skipped")
    assert await check_venue_catalog(StaticVenueCatalog([])) == (True, "ok")
    ok, _ = await check_venue_catalog(DownVenueCatalog())
    assert not ok


def test_is_ready_requires_core_checks_only():
    checks = {
        "settings": (True, "ok"),
        "packages": (True, "ok"),
        "database": (True, "ok"),
        "redis": (False, "Connection refused"),
        "venue_catalog": (False, "status 502"),
    }
    ready, summary = is_ready(checks)
    assert ready is True
    assert summary["redis"] == "Connection refused"

    checks["database"] = (False, "missing tables: presence")
    ready, summary = is_ready(checks)
    assert ready is False
    assert summary["database"] == "missing tables: presence"


@pytest.mark.integration
def test_readiness_all_checks_pass():
    """Settings and packages must pass; database and redis may be unavailable (e.g. sandbox)."""
    checks = run_all_checks_sync()
    for name in ("settings", "packages"):
        ok, msg = checks.get(name, (False, "missing"))
        assert ok, f"readiness {name}: {msg}"
    ready, summary = is_ready(checks)
    if not ready:
        report = "\n".join(f"  {name}: {msg}" for name, msg in summary.items())
        pytest.fail(f"Readiness checks failed:\n{report}")
