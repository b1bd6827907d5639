"""
Engine and session management for the CLI and the hosting application.

PostgreSQL (psycopg2) is the production backend: every idempotency rule
(one invoice per lease and month, one reminder per lease, type and day,
one distribution per payment) is a UNIQUE constraint, and sessions run
at READ COMMITTED.  SQLite is accepted for tests and local replays.

Services never open sessions; the caller wraps a run in
``session_scope()`` and it commits or rolls back as a whole.

Kernel > DB: may import db/base.py only.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from rental_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def enable_sqlite_savepoints(engine: Engine) -> Engine:
    """
    Let SQLAlchemy own SQLite transactions.

    pysqlite only emits BEGIN before DML, so a SAVEPOINT opened first
    would run outside any transaction and its release would commit.
    With the driver's own handling disabled, every transaction starts
    with an explicit BEGIN and rolls back as a whole.
    """

    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(connection):
        connection.exec_driver_sql("BEGIN")

    return engine


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 5,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Create the process-wide engine; a second call replaces the first.

    Pool settings apply to server databases only.

    Raises:
        sqlalchemy.exc.ArgumentError: ``database_url`` cannot be parsed.
    """
    global _engine, _SessionFactory

    url = make_url(database_url)
    dialect = url.get_backend_name()

    options: dict = {"echo": echo}
    if dialect != "sqlite":
        options.update(
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=True,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
        )

    _engine = create_engine(url, **options)
    if dialect == "sqlite":
        enable_sqlite_savepoints(_engine)
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info("engine_initialized", extra={"dialect": dialect, "database": url.database})
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session() -> Session:
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    One transaction: committed on normal exit, rolled back (and the
    exception re-raised) otherwise.  The session is always closed.
    """
    session = get_session()
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables() -> None:
    """
    Create every table registered on ``Base.metadata``.

    Import the model modules first; see
    ``rental_modules._orm_registry.create_all_tables()``.
    """
    from rental_kernel.db.base import Base

    Base.metadata.create_all(get_engine())
    logger.info("tables_created", extra={"table_count": len(Base.metadata.tables)})


def drop_tables() -> None:
    """Drop every registered table.  For tests and local replays only."""
    from rental_kernel.db.base import Base

    Base.metadata.drop_all(get_engine())
    logger.warning("tables_dropped", extra={"table_count": len(Base.metadata.tables)})


def reset_engine() -> None:
    """Dispose the engine so the next run starts from scratch."""
    global _engine, _SessionFactory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None
