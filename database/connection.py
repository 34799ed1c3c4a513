"""Database connection management with pooling and retry logic."""

import logging
import asyncio
import time
from typing import Dict, Any, Optional, Callable
from functools import wraps

from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine
from sqlalchemy.exc import DisconnectionError, OperationalError, SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlalchemy import event, text

from shared.exceptions import DatabaseException, ErrorCode

logger = logging.getLogger(__name__)


def retry_on_database_error(max_retries: int = 3, delay: float = 1.0, backoff: float = 2.0):
    """Decorator to retry database operations on connection errors.

    Args:
        max_retries: Maximum number of retry attempts
        delay: Initial delay between retries in seconds
        backoff: Backoff multiplier for delay
    """
    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            last_exception = None
            current_delay = delay

            for attempt in range(max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except (DisconnectionError, OperationalError, ConnectionError) as e:
                    last_exception = e
                    if attempt == max_retries:
                        logger.error(f"Database operation failed after {max_retries} retries: {e}")
                        break

                    logger.warning(f"Database operation failed (attempt {attempt + 1}/{max_retries + 1}): {e}")
                    await asyncio.sleep(current_delay)
                    current_delay *= backoff

            raise DatabaseException(
                message="Database operation failed after retries",
                error_code=ErrorCode.DATABASE_CONNECTION_FAILED,
                details=str(last_exception)
            )
        return wrapper
    return decorator


class DatabaseManager:
    """Owns the async engine and hands out storage objects."""

    def __init__(self, config: Dict[str, Any]):
        """Initialize database manager with configuration.

        Args:
            config: Engine options; ``url`` is required, pool settings are
                ignored for SQLite.
        """
        self.config = config
        self._url = config['url']
        self._engine: Optional[AsyncEngine] = None
        self._last_health_check = 0.0
        self._is_healthy = True

        self._initialize_engine()
        self._setup_pool_events()

    @classmethod
    def from_settings(cls, settings) -> "DatabaseManager":
        """Build a manager from application settings."""
        return cls({
            'url': settings.get_database_url(),
            'echo': settings.database_echo,
            'pool_size': settings.database_pool_size,
            'max_overflow': settings.database_max_overflow,
            'pool_timeout': settings.database_pool_timeout,
            'pool_recycle': settings.database_pool_recycle,
        })

    @property
    def is_sqlite(self) -> bool:
        return self._url.startswith('sqlite')

    def _initialize_engine(self):
        """Initialize the database engine."""
        engine_config: Dict[str, Any] = {
            'echo': self.config.get('echo', False),
        }

        if self.is_sqlite:
            # One shared connection keeps an in-memory database alive.
            engine_config['poolclass'] = StaticPool
            engine_config['connect_args'] = {'check_same_thread': False}
        else:
            engine_config.update({
                'pool_size': self.config.get('pool_size', 10),
                'max_overflow': self.config.get('max_overflow', 20),
                'pool_timeout': self.config.get('pool_timeout', 30),
                'pool_recycle': self.config.get('pool_recycle', 3600),
                'pool_pre_ping': self.config.get('pool_pre_ping', True),
            })

        self._engine = create_async_engine(self._url, **engine_config)
        logger.info(f"Database engine initialized for {self._engine.url.render_as_string(hide_password=True)}")

    def _setup_pool_events(self):
        """Setup connection pool event listeners for monitoring."""

        @event.listens_for(self._engine.sync_engine, "invalidate")
        def receive_invalidate(dbapi_connection, connection_record, exception):
            """Log connection invalidation."""
            logger.warning(f"Connection invalidated: {exception}")

    @property
    def engine(self) -> AsyncEngine:
        """Get the database engine."""
        return self._engine

    def storage(self):
        """Return a Storage bound to this manager's engine."""
        from .storage import SQLAlchemyStorage
        return SQLAlchemyStorage(self._engine)

    async def create_schema(self):
        """Create all tables known to the ORM metadata."""
        from .models import Base
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database schema created")

    @retry_on_database_error(max_retries=3, delay=0.5)
    async def _ping(self):
        async with self._engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def health_check(self) -> bool:
        """Check database health and connectivity.

        Returns:
            True if database is healthy, False otherwise
        """
        try:
            await self._ping()
            self._is_healthy = True
        except (DatabaseException, SQLAlchemyError) as e:
            logger.error(f"Database health check failed: {e}")
            self._is_healthy = False
        self._last_health_check = time.time()
        return self._is_healthy

    async def close(self):
        """Close database connections and cleanup resources."""
        if self._engine:
            await self._engine.dispose()
            logger.info("Database connections closed")

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
