import logging

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)


def _report_connection_failure(engine: Engine, exc: Exception) -> None:
    """Log where we tried to connect without leaking the password."""
    url = engine.url
    logger.warning(
        "Could not connect to database %s (dialect=%s, host=%s, database=%s): %s",
        url.render_as_string(hide_password=True),
        url.get_backend_name(),
        url.host or "localhost",
        url.database,
        exc,
    )
    logger.warning("Imports will fail at the persist step until the connection succeeds.")


def build_engine(database_url: str) -> Engine:
    """Create an engine, keeping in-memory SQLite databases on a single shared connection."""
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        kwargs = {"connect_args": {"check_same_thread": False}}
        if not url.database or url.database == ":memory:":
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)
    return create_engine(database_url, pool_pre_ping=True)


def check_connection(engine: Engine) -> bool:
    """Run a trivial query so connection problems show up at startup rather than mid-import."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as e:
        _report_connection_failure(engine, e)
        return False
    return True


Base = declarative_base()


def get_session_factory(engine: Engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)
