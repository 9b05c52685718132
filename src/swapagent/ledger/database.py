"""Engine and session factory for the ledger database.

One engine per process. Wallet creation and audit writes run from concurrent
swaps, so SQLite files are opened in WAL mode with a busy timeout.
"""

import logging
from pathlib import Path
from typing import Optional

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from swapagent.config import Settings, get_settings
from swapagent.ledger.models import Base

logger = logging.getLogger(__name__)

SQLITE_BUSY_TIMEOUT_MS = 5000

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def normalize_database_url(url: str) -> str:
    """Use the async SQLite driver for plain sqlite:/// URLs."""
    if url.startswith("sqlite:///") and "aiosqlite" not in url:
        return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    return url


def _is_memory(database: Optional[str]) -> bool:
    return not database or database == ":memory:"


def create_ledger_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an engine for the ledger.

    SQLite files get their parent directory created and WAL pragmas applied.
    In-memory databases share one connection so every session sees the same
    tables.
    """
    url = make_url(normalize_database_url(database_url))
    if not url.drivername.startswith("sqlite"):
        return create_async_engine(url, echo=echo, pool_pre_ping=True)

    if _is_memory(url.database):
        return create_async_engine(
            url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )

    Path(url.database).expanduser().parent.mkdir(parents=True, exist_ok=True)
    engine = create_async_engine(url, echo=echo)

    @event.listens_for(engine.sync_engine, "connect")
    def _sqlite_pragmas(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")
        cursor.close()

    return engine


def get_engine(settings: Optional[Settings] = None) -> AsyncEngine:
    """Get or create the process-wide engine."""
    global _engine
    if _engine is None:
        settings = settings or get_settings()
        _engine = create_ledger_engine(
            settings.database_url,
            echo=settings.debug and not settings.is_production,
        )
    return _engine


def get_session_factory(settings: Optional[Settings] = None) -> async_sessionmaker[AsyncSession]:
    """Get or create the session factory bound to the process-wide engine."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            bind=get_engine(settings),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _session_factory


async def init_db(settings: Optional[Settings] = None) -> None:
    """Create the wallet and financial action tables if missing."""
    engine = get_engine(settings)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Ledger ready at {engine.url.render_as_string(hide_password=True)}")


async def close_db() -> None:
    """Dispose of the engine on shutdown."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
