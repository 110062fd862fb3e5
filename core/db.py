"""
core/db.py -- Engine construction shared by TrackerStore and UserStore.

Both stores may point at the same database URL. Each builds its own Engine
through make_engine() so the SQLite connection settings stay identical.
"""

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine


def _on_sqlite_connect(dbapi_conn, connection_record) -> None:
    # PRAGMAs are per connection, so they go on every new pooled connection.
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA busy_timeout=5000")


def make_engine(db_url: str) -> Engine:
    """Create an Engine; SQLite URLs get WAL mode and cross-thread access.

    The sweep runs in a worker thread while routes run in FastAPI's
    threadpool, and both draw from the same pool.
    """
    if not db_url.startswith("sqlite"):
        return create_engine(db_url, pool_pre_ping=True)
    engine = create_engine(db_url, connect_args={"check_same_thread": False})
    event.listen(engine, "connect", _on_sqlite_connect)
    return engine
