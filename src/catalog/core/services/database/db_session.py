"""Database engine and session factory used across the application."""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from loguru import logger
from sqlalchemy import StaticPool, text
from sqlmodel import Session, create_engine

from src.catalog.core.services.database.deadline import Deadline
from src.catalog.runtime.config.config_data import DatabaseConfig
from src.catalog.runtime.context import get_config

# SQLite checks the progress handler every N virtual machine instructions
_SQLITE_PROGRESS_STEPS = 1000


class DbSessionService:
    def __init__(self, db_config: DatabaseConfig | None = None):
        """Initialize the shared database engine and its connection pool."""

        logger.info("Setting up database engine and session factory")
        self._config = db_config or get_config().database

        engine_kwargs: dict[str, Any] = {
            "echo": False,
            "echo_pool": False,
            "connect_args": self._get_connect_args(),
        }
        engine_kwargs.update(self._get_pool_args())

        logger.info(
            "Initializing {} database engine with pool args {}",
            self._config.backend,
            {k: v for k, v in engine_kwargs.items() if k != "connect_args"},
        )
        self._engine = create_engine(self._config.connection_string, **engine_kwargs)

    @property
    def engine(self):
        return self._engine

    @property
    def backend(self) -> str:
        return self._config.backend

    @property
    def query_timeout(self) -> float:
        return self._config.query_timeout_seconds

    def _get_pool_args(self) -> dict[str, Any]:
        if self._config.is_memory_sqlite:
            # A private in-memory database lives and dies with its connection
            return {"poolclass": StaticPool}

        return {
            "pool_size": self._config.pool_size,
            "max_overflow": self._config.max_overflow,
            # Waiting for a free connection counts against the per-operation budget
            "pool_timeout": min(
                self._config.pool_timeout, self._config.query_timeout_seconds
            ),
            "pool_recycle": self._config.pool_recycle,
            "pool_pre_ping": True,  # Validate connections before use
        }

    def _get_connect_args(self) -> dict[str, Any]:
        """Get database-specific connection arguments."""
        connect_args: dict[str, Any] = {}

        if self._config.backend == "postgresql":
            connect_args.update(
                {
                    "application_name": f"{self._config.environment_mode}_book_catalog",
                    "connect_timeout": max(1, int(self._config.query_timeout_seconds)),
                }
            )

        elif self._config.backend == "sqlite":
            connect_args.update(
                {
                    "check_same_thread": False,  # Connections move between worker threads
                    "timeout": self._config.query_timeout_seconds,  # Busy/lock timeout
                }
            )

            if self._config.environment_mode == "production":
                logger.warning(
                    "SQLite is not recommended for production use. "
                    "Consider PostgreSQL for better performance and reliability."
                )

        return connect_args

    def get_session(self) -> Session:
        """Return a new SQLModel session bound to the shared engine."""
        return Session(
            self._engine,
            expire_on_commit=False,  # Prevent lazy loading issues
            autoflush=True,
        )

    @contextmanager
    def session_scope(self, deadline: Deadline | None = None) -> Iterator[Session]:
        """Yield a transactional session bounded by ``deadline``.

        Commits on success, rolls back on any error and always returns the
        connection to the pool.
        """
        if deadline is not None:
            deadline.check()

        db = self.get_session()
        release_deadline = None
        try:
            if deadline is not None:
                release_deadline = self._bind_deadline(db, deadline)
            yield db
            db.commit()
        except Exception as e:
            db.rollback()
            logger.debug(
                "Database transaction rolled back",
                error_type=type(e).__name__,
            )
            raise
        finally:
            if release_deadline is not None:
                release_deadline()
            db.close()

    def _bind_deadline(self, db: Session, deadline: Deadline):
        """Apply ``deadline`` to the session's connection.

        Returns a callable that detaches everything installed here.
        """
        remaining = deadline.remaining()
        raw_connection = db.connection().connection.dbapi_connection
        backend = self._config.backend

        if backend == "postgresql":
            if remaining is not None:
                timeout_ms = max(1, int(remaining * 1000))
                # SET does not take bind parameters; the value is an int we computed
                db.connection().execute(text(f"SET LOCAL statement_timeout = {timeout_ms}"))
            cancel = getattr(raw_connection, "cancel", None)
            if cancel is None:
                return None
            return deadline.on_cancel(cancel)

        if backend == "sqlite":
            raw_connection.set_progress_handler(
                lambda: 1 if deadline.done else 0, _SQLITE_PROGRESS_STEPS
            )

            def release() -> None:
                raw_connection.set_progress_handler(None, _SQLITE_PROGRESS_STEPS)

            return release

        return None

    def health_check(self) -> bool:
        """Perform a health check on the database connection."""
        try:
            with self._engine.connect() as connection:
                connection.execute(text("SELECT 1"))
                return True
        except Exception as e:
            logger.error(
                "Database health check failed",
                error_type=type(e).__name__,
                error_message=str(e),
            )
            return False

    def get_pool_status(self) -> dict:
        """Get current connection pool status for monitoring."""
        pool = self._engine.pool
        return {
            "size": getattr(pool, "size", lambda: 0)(),
            "checked_in": getattr(pool, "checkedin", lambda: 0)(),
            "checked_out": getattr(pool, "checkedout", lambda: 0)(),
            "overflow": getattr(pool, "overflow", lambda: 0)(),
        }

    def dispose(self) -> None:
        """Close every pooled connection."""
        self._engine.dispose()
