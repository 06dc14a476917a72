"""
BlockLedger - Database Storage Layer
======================================
Persistent storage on SQLAlchemy (SQLite by default, any SQLAlchemy URL
such as PostgreSQL in production).

Features:
- Explicit engine handle, no module-level connection
- Structured transaction scope: commit on success, rollback on every
  exception path
- Driver errors mapped onto the ledger error hierarchy
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError, OperationalError, DBAPIError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from block_ledger.storage.models_orm import Base
from block_ledger.errors import (
    LedgerException,
    DatabaseError,
    DatabaseConnectionError,
    SerializationConflictError,
)
from block_ledger.logging_setup import get_logger
from block_ledger.config import LedgerSettings


# ============================================================================
# MODULE LOGGER
# ============================================================================

logger = get_logger("storage")


# SQLSTATE codes for serialization failure and deadlock
_RETRYABLE_SQLSTATES = {"40001", "40P01"}


def _is_serialization_failure(error: DBAPIError) -> bool:
    orig = getattr(error, "orig", None)
    sqlstate = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if sqlstate in _RETRYABLE_SQLSTATES:
        return True
    return "database is locked" in str(orig or error).lower()


def _build_engine(database_url: str, echo: bool) -> Engine:
    url = make_url(database_url)

    if url.get_backend_name() != "sqlite":
        return create_engine(url, echo=echo, pool_pre_ping=True, future=True)

    in_memory = not url.database or url.database == ":memory:"

    if in_memory:
        engine = create_engine(
            url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
            future=True,
        )
    else:
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": 30.0},
            future=True,
        )

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Let SQLAlchemy own BEGIN so reads share the write transaction
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys = ON")
        if not in_memory:
            cursor.execute("PRAGMA journal_mode = WAL")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


# ============================================================================
# DATABASE CLASS
# ============================================================================

class LedgerDatabase:
    """
    Handle on the ledger's relational store.

    Every ledger component receives this handle at construction.

    Attributes:
        config: Ledger configuration
        engine: SQLAlchemy engine

    Examples:
        >>> db = LedgerDatabase(config)
        >>> db.create_tables()
        >>> with db.transaction() as session:
        ...     session.add(row)
    """

    def __init__(self, config: LedgerSettings, database_url: Optional[str] = None):
        self.config = config
        self.database_url = database_url or config.database_url

        try:
            self.engine = _build_engine(self.database_url, config.database_echo)
        except (SQLAlchemyError, OSError) as e:
            raise DatabaseConnectionError(
                f"Failed to create database engine: {e}",
                code="DB_CONNECTION_FAILED"
            ) from e

        self._session_factory = sessionmaker(
            bind=self.engine,
            autoflush=False,
            expire_on_commit=False,
            future=True,
        )

        logger.info(
            "Database engine created",
            extra_data={"url": make_url(self.database_url).render_as_string(hide_password=True)}
        )

    @property
    def is_shared_connection(self) -> bool:
        """True when every session shares one connection (in-memory SQLite)"""
        return isinstance(self.engine.pool, StaticPool)

    # ========================================================================
    # SCHEMA
    # ========================================================================

    def create_tables(self) -> None:
        """Create ledger tables if missing"""
        try:
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise DatabaseError(
                f"Failed to initialize database: {e}",
                code="DB_INIT_FAILED"
            ) from e

        logger.info("Database schema initialized")

    def drop_tables(self) -> None:
        """Drop every ledger table"""
        try:
            Base.metadata.drop_all(self.engine)
        except SQLAlchemyError as e:
            raise DatabaseError(f"Failed to drop tables: {e}", code="DB_DROP_FAILED") from e

        logger.warning("Database schema dropped")

    def table_names(self) -> list:
        return sorted(inspect(self.engine).get_table_names())

    # ========================================================================
    # TRANSACTION SCOPE
    # ========================================================================

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Scoped read-write transaction.

        Commits when the block exits normally. Any exception rolls the
        whole transaction back; driver errors are re-raised as
        DatabaseError (or SerializationConflictError when retryable),
        ledger errors propagate unchanged.
        """
        session = self._session_factory()
        try:
            with session.begin():
                yield session
        except LedgerException:
            raise
        except OperationalError as e:
            if _is_serialization_failure(e):
                raise SerializationConflictError(
                    f"Transaction aborted by a concurrent writer: {e.orig}",
                    code="SERIALIZATION_CONFLICT"
                ) from e
            raise DatabaseError(f"Database operation failed: {e.orig}", code="DB_OPERATION_FAILED") from e
        except SQLAlchemyError as e:
            if isinstance(e, DBAPIError) and _is_serialization_failure(e):
                raise SerializationConflictError(
                    f"Transaction aborted by a concurrent writer: {e.orig}",
                    code="SERIALIZATION_CONFLICT"
                ) from e
            raise DatabaseError(f"Database operation failed: {e}", code="DB_OPERATION_FAILED") from e
        finally:
            session.close()

    @contextmanager
    def read_session(self) -> Iterator[Session]:
        """Scoped read-only session, always rolled back"""
        session = self._session_factory()
        try:
            yield session
        except LedgerException:
            raise
        except SQLAlchemyError as e:
            raise DatabaseError(f"Database read failed: {e}", code="DB_READ_FAILED") from e
        finally:
            session.rollback()
            session.close()

    # ========================================================================
    # UTILITY
    # ========================================================================

    def close(self) -> None:
        """Dispose engine connections"""
        self.engine.dispose()
        logger.info("Database closed")


# ============================================================================
# EXPORT
# ============================================================================

__all__ = [
    "LedgerDatabase",
]
