from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool, StaticPool


@dataclass(frozen=True)
class DBRuntime:
    engine: Engine
    SessionLocal: sessionmaker

    def dispose(self) -> None:
        self.engine.dispose()


def create_engine_and_sessionmaker(database_url: str, *, echo: bool = False) -> DBRuntime:
    """Build the engine and session factory behind the sqlalchemy storage backend.

    ``sqlite:///:memory:`` shares one connection (StaticPool) so every session
    sees the same database. File SQLite opens a connection per save (NullPool)
    in WAL mode; the tracker writes whole collections from a single thread.
    """
    is_sqlite = database_url.startswith("sqlite")
    is_memory = is_sqlite and (database_url in ("sqlite://", "sqlite:///:memory:") or ":memory:" in database_url)

    connect_args: dict = {"timeout": 5} if is_sqlite else {}

    engine_kwargs = dict(
        echo=echo,
        future=True,
        connect_args=connect_args,
    )
    if is_memory:
        engine_kwargs["poolclass"] = StaticPool
    elif is_sqlite:
        engine_kwargs["poolclass"] = NullPool
    else:
        engine_kwargs["pool_pre_ping"] = True

    engine = create_engine(database_url, **engine_kwargs)

    if is_sqlite and not is_memory:

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_connection, connection_record):  # pragma: no cover
            try:
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA journal_mode=WAL")
                cursor.execute("PRAGMA synchronous=NORMAL")
                cursor.execute("PRAGMA busy_timeout=5000")
                cursor.close()
            except Exception:
                # Read-only or locked files still work without the pragmas.
                pass

    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    return DBRuntime(engine=engine, SessionLocal=SessionLocal)
