from typing import Optional
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from branchbill.core.config import settings
import logging

logger = logging.getLogger(__name__)

Base = declarative_base()

# Session factory is configured once the engine exists
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False)

# Process-wide engine, created on first use and reused by every request
_engine: Optional[Engine] = None


def _enable_sqlite_immediate_transactions(engine: Engine) -> None:
    """
    Make SQLite start every transaction with BEGIN IMMEDIATE.

    pysqlite defers the write lock until the first write, which lets two
    writers deadlock on lock promotion. Taking the lock up front makes
    concurrent writers wait on the busy timeout instead.
    """

    @event.listens_for(engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def init_engine(database_url: Optional[str] = None, **engine_kwargs) -> Engine:
    """Create the shared engine once and bind the session factory to it."""
    global _engine
    if _engine is not None:
        return _engine

    url = database_url or settings.database_url
    if url.startswith("sqlite"):
        engine_kwargs.setdefault("connect_args", {"check_same_thread": False, "timeout": 30})
        engine = create_engine(url, echo=settings.DEBUG and settings.ENVIRONMENT == "development", **engine_kwargs)
        _enable_sqlite_immediate_transactions(engine)
    else:
        engine = create_engine(
            url,
            pool_pre_ping=True,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            echo=settings.DEBUG and settings.ENVIRONMENT == "development",
            **engine_kwargs
        )

    SessionLocal.configure(bind=engine)
    _engine = engine
    logger.info(f"Database engine initialised ({engine.dialect.name})")
    return _engine


def get_engine() -> Engine:
    return _engine if _engine is not None else init_engine()


def dispose_engine() -> None:
    """Dispose the shared engine so the next init_engine() starts fresh."""
    global _engine
    if _engine is not None:
        _engine.dispose()
        _engine = None


def get_db():
    """Yield a database session scoped to one request."""
    get_engine()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
