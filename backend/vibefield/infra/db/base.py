"""Database base configuration."""
import os
import ssl
import sys
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase


def normalize_async_pg_url(url: str) -> str:
    """Ensure URL uses asyncpg driver; cloud often gives postgresql:// (sync)."""
    u = (url or "").strip()
    if u.startswith("postgresql://"):
        return u.replace("postgresql://", "postgresql+asyncpg://", 1)
    return u


def _ssl_context_no_verify() -> ssl.SSLContext:
    ctx = ssl.create_default_context()
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    return ctx


def async_pg_connect_args(url: str) -> dict:
    """connect_args for asyncpg: ssl when the URL asks for sslmode=require.
    Set DATABASE_SSL_VERIFY=true for strict certificate verification."""
    qs = parse_qs(urlparse(url).query, keep_blank_values=True)
    if qs.get("sslmode") != ["require"]:
        return {}
    verify = os.environ.get("DATABASE_SSL_VERIFY", "false").strip().lower()
    if verify in ("true", "1"):
        return {"ssl": True}
    return {"ssl": _ssl_context_no_verify()}


def async_pg_url_without_sslmode(url: str) -> str:
    """asyncpg rejects sslmode as a kwarg; strip it from the query string."""
    parsed = urlparse(url)
    qs = parse_qs(parsed.query, keep_blank_values=True)
    qs.pop("sslmode", None)
    return urlunparse(parsed._replace(query=urlencode(qs, doseq=True)))


# Check if we're running in pytest (during collection or execution)
_is_pytest = "pytest" in sys.modules or "PYTEST_CURRENT_TEST" in os.environ

if not _is_pytest:
    from vibefield.settings import settings

    _db_url = normalize_async_pg_url(settings.database_url)
    # Presence writes are many and tiny; keep a warm pool and drop dead connections early
    engine = create_async_engine(
        async_pg_url_without_sslmode(_db_url),
        connect_args=async_pg_connect_args(_db_url),
        echo=settings.database_echo,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )

    AsyncSessionLocal = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
else:
    # In test mode, create dummy objects that will be overridden
    engine = None
    AsyncSessionLocal = None


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


# Models are imported in vibefield/main.py; importing them here would be circular
