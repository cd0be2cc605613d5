"""
Async SQLAlchemy engine for the settings store.

The engine is created lazily from an explicit URL (the composition root
passes ``DATABASE_URL``) and shared by every session handed to
SettingsStore. Local runs fall back to a SQLite file next to the process.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

logger = logging.getLogger(__name__)

DEFAULT_DB_URL = "sqlite+aiosqlite:///./alertcore.db"

_engine: Optional[AsyncEngine] = None
_session_maker: Optional[async_sessionmaker[AsyncSession]] = None


def get_engine(url: Optional[str] = None) -> AsyncEngine:
    """Return the shared engine, creating it on first use.

    ``url`` only matters for the first call; later calls reuse the engine
    until dispose_engine() resets it.
    """
    global _engine
    if _engine is None:
        db_url = url or os.getenv("DATABASE_URL") or DEFAULT_DB_URL
        _engine = create_async_engine(db_url, future=True, echo=False)
        logger.info("Settings database engine created (%s)", _engine.url.get_backend_name())
    return _engine


def async_session_factory() -> AsyncSession:
    """New AsyncSession bound to the shared engine.

    SettingsStore calls this as ``async with factory() as session``.
    """
    global _session_maker
    if _session_maker is None:
        _session_maker = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _session_maker()


async def dispose_engine() -> None:
    global _engine, _session_maker
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_maker = None
