"""
Database connection and session management for the application.
Provides utilities for database initialization and session handling.
"""

from contextlib import contextmanager
from typing import Any, Dict, Generator, Optional

from sqlalchemy import create_engine, event, Engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from config.settings import get_settings
from src.core.models import Base, AuctionRecord, AnalysisResult
from src.utils.logger import get_logger

logger = get_logger(__name__)


# ============================================================================
# ENGINE FACTORY
# ============================================================================

def build_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 5,
    max_overflow: int = 10,
    timeout_seconds: Optional[int] = None,
) -> Engine:
    """
    Create an engine for PostgreSQL (production) or SQLite (tests, local runs).

    Every statement carries a timeout: statement_timeout on PostgreSQL, the
    busy timeout on SQLite. SQLite engines are patched so SAVEPOINTs behave,
    which the per-record ingestion path depends on.
    """
    is_sqlite = database_url.startswith("sqlite")
    kwargs: Dict[str, Any] = {"echo": echo, "pool_pre_ping": True}
    connect_args: Dict[str, Any] = {}

    if is_sqlite:
        connect_args["check_same_thread"] = False
        if timeout_seconds:
            connect_args["timeout"] = timeout_seconds
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
    else:
        kwargs.update(
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_recycle=3600,  # Recycle connections after 1 hour
        )
        if timeout_seconds:
            connect_args["options"] = f"-c statement_timeout={int(timeout_seconds * 1000)}"

    engine = create_engine(database_url, connect_args=connect_args, **kwargs)

    if is_sqlite:
        _enable_sqlite_savepoints(engine)

    return engine


def _enable_sqlite_savepoints(engine: Engine) -> None:
    """
    pysqlite's own transaction handling breaks SAVEPOINT; take it over so
    session.begin_nested() works and foreign keys are enforced.
    """

    @event.listens_for(engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


# ============================================================================
# DATABASE ENGINE & SESSION FACTORY
# ============================================================================

class Database:
    """
    Singleton database manager that handles engine creation and session management.
    The engine is created on first use, not at import.
    """

    _instance = None
    _engine: Engine = None
    _session_factory: sessionmaker = None

    def __new__(cls):
        """Ensure only one instance of Database exists."""
        if cls._instance is None:
            cls._instance = super(Database, cls).__new__(cls)
        return cls._instance

    def _initialize_engine(self) -> None:
        settings = get_settings()

        self._engine = build_engine(
            settings.database_url,
            echo=settings.db_echo,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            timeout_seconds=settings.db_timeout_seconds,
        )
        self._session_factory = build_session_factory(self._engine)
        logger.debug(f"Database engine initialized for dialect '{self._engine.dialect.name}'")

    @property
    def engine(self) -> Engine:
        """Get the SQLAlchemy engine."""
        if self._engine is None:
            self._initialize_engine()
        return self._engine

    @property
    def session_factory(self) -> sessionmaker:
        """Get the session factory."""
        if self._session_factory is None:
            self._initialize_engine()
        return self._session_factory

    def create_all_tables(self) -> None:
        """
        Create all tables in the database.
        Intended for initial setup and local runs.
        """
        Base.metadata.create_all(bind=self.engine)

    def get_session(self) -> Session:
        """
        Get a new database session.
        Remember to close the session after use or use the session context manager.
        """
        return self.session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Provide a transactional scope for database operations.

        Usage:
            with db.session_scope() as session:
                session.add(record)
                # Commit happens automatically if no exception
                # Rollback happens automatically on exception
        """
        session = self.get_session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def close(self) -> None:
        """Close the database engine and dispose of the connection pool."""
        if self._engine:
            self._engine.dispose()
            self._engine = None
            self._session_factory = None


# ============================================================================
# GLOBAL DATABASE INSTANCE
# ============================================================================

# Singleton instance for application-wide use
db = Database()


# ============================================================================
# CONVENIENCE FUNCTIONS
# ============================================================================

@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """
    Get a database session with automatic commit/rollback and cleanup.

    Usage:
        with get_db_context() as session:
            records = session.query(AuctionRecord).all()
    """
    with db.session_scope() as session:
        yield session


def init_database() -> None:
    """Create all tables."""
    db.create_all_tables()


# ============================================================================
# DATABASE UTILITIES
# ============================================================================

def check_connection(session: Optional[Session] = None) -> bool:
    """Return True if a trivial query succeeds."""
    try:
        if session is not None:
            session.execute(text("SELECT 1"))
        else:
            with db.session_scope() as scoped:
                scoped.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as e:
        logger.error(f"Database connection failed: {e}")
        return False


def get_table_counts(session: Optional[Session] = None) -> dict:
    """
    Get the count of records in each table.
    Useful for debugging and monitoring.
    """
    if session is not None:
        return {
            'auction_records': session.query(AuctionRecord).count(),
            'analysis_results': session.query(AnalysisResult).count(),
        }

    with db.session_scope() as scoped:
        return get_table_counts(scoped)


if __name__ == "__main__":

    print(get_table_counts())
