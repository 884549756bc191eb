"""Database engines and session factories.

WHAT:
    Provides the async SQLAlchemy engine and session factory used by the
    reporting store.

WHY:
    Qualification issues independent queries concurrently (one session per
    query, joined with asyncio.gather), so every store call opens its own
    AsyncSession from a shared async_sessionmaker.

ARCHITECTURE:
    ┌────────────────────────┐
    │  Async Engine          │
    │  (asyncpg / aiosqlite) │
    └───────────┬────────────┘
                │
    ┌───────────▼────────────┐
    │  get_session_factory() │
    └───────────┬────────────┘
                │
    ┌───────────▼────────────┐
    │  ReportStore           │
    └────────────────────────┘

USAGE:
    from leadreport.database import get_session_factory
    from leadreport.services.store import ReportStore

    store = ReportStore(get_session_factory())

REFERENCES:
    - https://docs.sqlalchemy.org/en/20/orm/extensions/asyncio.html
    - leadreport/services/store.py (consumer of the session factory)
"""

from functools import lru_cache

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine


# =============================================================================
# ENVIRONMENT CONFIGURATION
# =============================================================================

def get_async_database_url(sync_url: str) -> str:
    """Convert a sync DATABASE_URL to its async driver form.

    postgresql:// and postgres:// become postgresql+asyncpg://,
    sqlite:// becomes sqlite+aiosqlite://. URLs that already name a driver
    are returned unchanged.
    """
    if sync_url.startswith("postgresql://"):
        return sync_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    elif sync_url.startswith("postgres://"):
        # Heroku-style URL
        return sync_url.replace("postgres://", "postgresql+asyncpg://", 1)
    elif sync_url.startswith("sqlite://"):
        return sync_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return sync_url


def build_async_engine(database_url: str, pool_size: int = 10, max_overflow: int = 20) -> AsyncEngine:
    """Create an async engine for the given (sync or async) URL.

    NOTE: SQLite engines do not support pool_size/max_overflow.
    """
    async_url = get_async_database_url(database_url)
    if async_url.startswith("sqlite"):
        return create_async_engine(async_url)
    return create_async_engine(
        async_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_recycle=3600,      # Recycle connections every hour to prevent stale connections
        pool_pre_ping=True,     # Validate connections before use
        echo=False,             # Set True for SQL debugging
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,  # Prevent lazy load issues after commit
        autoflush=False,
    )


# =============================================================================
# ASYNC ENGINE (reporting queries)
# =============================================================================

@lru_cache()
def get_async_engine() -> AsyncEngine:
    """Return the process-wide async engine, created on first use."""
    from leadreport.deps import get_settings

    settings = get_settings()
    return build_async_engine(
        settings.DATABASE_URL,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
    )


@lru_cache()
def get_session_factory() -> async_sessionmaker:
    """Return the process-wide async session factory."""
    return build_session_factory(get_async_engine())


# =============================================================================
# BASE MODEL (imported from models for single registry)
# =============================================================================

# Base is defined in leadreport.models to ensure a single registry across the app
from .models import Base  # noqa: E402,F401
