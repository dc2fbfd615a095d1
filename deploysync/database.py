"""Database engine construction."""

import logging
from pathlib import Path

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import DeclarativeBase

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def _ensure_sqlite_directory(database_url: str) -> None:
    if not database_url.startswith("sqlite+aiosqlite:///"):
        return
    sqlite_path = database_url.removeprefix("sqlite+aiosqlite:///")
    if sqlite_path in {"", ":memory:"}:
        return
    db_file = Path(sqlite_path)
    if db_file.parent and str(db_file.parent) != ".":
        db_file.parent.mkdir(parents=True, exist_ok=True)


def _set_sqlite_pragmas(dbapi_connection, _connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA synchronous=NORMAL;")
    cursor.execute("PRAGMA busy_timeout=30000;")
    cursor.close()


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Build an async engine, tuning SQLite for a single-process writer."""
    _ensure_sqlite_directory(database_url)
    if "sqlite" not in database_url:
        return create_async_engine(database_url, echo=echo)

    engine = create_async_engine(
        database_url,
        echo=echo,
        connect_args={"timeout": 30},
    )
    event.listen(engine.sync_engine, "connect", _set_sqlite_pragmas)
    return engine
