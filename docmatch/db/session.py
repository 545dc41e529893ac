"""Engine and session management for the document store."""

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from docmatch.utils.config import DatabaseConfig
from docmatch.utils.logger import get_logger

from .models import Base

logger = get_logger(__name__)


def _sqlite_on_connect(dbapi_connection, connection_record) -> None:
    # SQLAlchemy emits BEGIN itself (see _sqlite_on_begin) so that
    # SAVEPOINTs nest inside the outer transaction.
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _sqlite_on_begin(conn) -> None:
    conn.exec_driver_sql("BEGIN")


def create_db_engine(config: DatabaseConfig) -> Engine:
    """Create an engine for the configured URL.

    In-memory SQLite databases share a single connection so every session
    sees the same data.
    """
    kwargs: dict = {"echo": config.echo}
    if config.url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in config.url or config.url in ("sqlite://", "sqlite+pysqlite://"):
            kwargs["poolclass"] = StaticPool

    engine = create_engine(config.url, **kwargs)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _sqlite_on_connect)
        event.listen(engine, "begin", _sqlite_on_begin)
    return engine


class Database:
    """Owns the engine and hands out transactional sessions.

    Args:
        config: Database URL and echo flag.
    """

    def __init__(self, config: DatabaseConfig | None = None) -> None:
        self.config = config or DatabaseConfig()
        self.engine = create_db_engine(self.config)
        self.session_factory = sessionmaker(
            bind=self.engine, expire_on_commit=False
        )

    def create_all(self) -> None:
        """Create any missing tables."""
        Base.metadata.create_all(self.engine)
        logger.debug("Schema ready on %s", self.engine.url.render_as_string(hide_password=True))

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Session whose transaction commits on success and rolls back on error."""
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()
