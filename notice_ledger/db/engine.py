"""
Module: notice_ledger.db.engine
Responsibility: SQLAlchemy engine initialization, session factory management,
    and the explicit transaction boundary used by every ledger operation.
Architecture position: Ledger > DB.  May import from db/base.py.
    MUST NOT import from services/, selectors/, gateway/ or api/.

Invariants enforced:
    - One ``Database`` object per process, built by the composition root and
      passed to each service.  There is no module-level engine.
    - PostgreSQL (production) runs READ COMMITTED; services take an
      exclusive row lock (SELECT ... FOR UPDATE) on the Notice row before
      validating any ledger invariant.
    - SQLite (tests, local runs) ignores FOR UPDATE, so every transaction
      is opened with BEGIN IMMEDIATE: writers serialize on the database
      lock and a transaction always reads the latest committed state.

Failure modes:
    - OperationalError ("database is locked") on SQLite if a writer waits
      longer than ``busy_timeout`` seconds.
    - Connection pool exhaustion if pool_size + max_overflow is exceeded.

Audit relevance:
    ``transaction()`` guarantees commit-or-rollback for every operation:
    no Payment row without its ledger update, and vice versa.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import Session, sessionmaker

from notice_ledger.db.base import Base
from notice_ledger.logging_config import get_logger

logger = get_logger("db.engine")


class Database:
    """
    Engine plus session factory for one database.

    Contract:
        Constructed once (see ``notice_ledger.container.build_container``)
        and injected into every service and selector.

    Guarantees:
        - ``transaction()`` commits on normal exit and rolls back on any
          exception, re-raising it.
        - Sessions use ``expire_on_commit=False`` so results remain readable
          after the transaction closes.
    """

    def __init__(self, engine: Engine):
        self._engine = engine
        self._session_factory: sessionmaker[Session] = sessionmaker(
            bind=engine, expire_on_commit=False
        )

    @classmethod
    def from_url(
        cls,
        database_url: str,
        echo: bool = False,
        pool_size: int = 10,
        max_overflow: int = 10,
        pool_timeout: int = 30,
        busy_timeout: int = 30,
    ) -> "Database":
        """
        Create a Database from a SQLAlchemy URL.

        Args:
            database_url: PostgreSQL or SQLite connection URL.
            echo: If True, log all SQL statements.
            pool_size: Connections kept in the pool (server backends).
            max_overflow: Max connections beyond pool_size.
            pool_timeout: Seconds to wait for a pooled connection.
            busy_timeout: SQLite only - seconds a writer waits for the lock.
        """
        url = make_url(database_url)
        if url.get_backend_name() == "sqlite":
            engine = create_engine(
                url,
                echo=echo,
                connect_args={"check_same_thread": False, "timeout": busy_timeout},
            )
            _install_sqlite_serialization(engine)
        else:
            engine = create_engine(
                url,
                echo=echo,
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_timeout=pool_timeout,
                pool_pre_ping=True,
                isolation_level="READ COMMITTED",
            )

        logger.info(
            "engine_initialized",
            extra={
                "dialect": engine.dialect.name,
                "echo": echo,
            },
        )
        return cls(engine)

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def dialect_name(self) -> str:
        return self._engine.dialect.name

    @contextmanager
    def transaction(self) -> Generator[Session, None, None]:
        """
        Provide a transactional scope around a series of operations.

        Usage:
            with database.transaction() as session:
                session.add(entity)
                # Commits on successful exit, rolls back on exception
        """
        session = self._session_factory()
        logger.debug("transaction_started")
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

    def create_tables(self) -> None:
        """Create every table registered on ``Base.metadata``."""
        import notice_ledger.models  # noqa: F401  (registers all tables)

        Base.metadata.create_all(self._engine)

    def drop_tables(self) -> None:
        """Drop all tables. Use with caution - primarily for testing."""
        import notice_ledger.models  # noqa: F401

        Base.metadata.drop_all(self._engine)

    def dispose(self) -> None:
        """Release all pooled connections."""
        self._engine.dispose()


def _install_sqlite_serialization(engine: Engine) -> None:
    """Make every SQLite transaction take the write lock up front."""

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        # pysqlite's implicit BEGIN would defer the lock to the first write
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")
