"""Storage capability used by the fraud review services.

The services only depend on the :class:`Storage` protocol. Statements may be
plain SQL strings (executed through ``text()`` with named parameters) or
SQLAlchemy Core constructs built against the tables in ``database.models``.
"""

import logging
from contextlib import asynccontextmanager, contextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol, Union, runtime_checkable

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError, DisconnectionError, OperationalError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine
from sqlalchemy.sql import Executable

from shared.exceptions import DatabaseException, ErrorCode
from .connection import retry_on_database_error

logger = logging.getLogger(__name__)

Statement = Union[str, Executable]
Params = Optional[Dict[str, Any]]
Row = Dict[str, Any]


@runtime_checkable
class Storage(Protocol):
    """Parameterized read/write capability."""

    async def query(self, statement: Statement, params: Params = None) -> List[Row]:
        ...

    async def query_one(self, statement: Statement, params: Params = None) -> Optional[Row]:
        ...

    async def execute(self, statement: Statement, params: Params = None) -> int:
        """Run a write and return the number of affected rows."""
        ...

    def transaction(self) -> "AsyncIterator[Storage]":
        """Async context manager yielding a storage bound to one transaction."""
        ...


def _compile(statement: Statement) -> Executable:
    if isinstance(statement, str):
        return text(statement)
    return statement


async def _run(conn: AsyncConnection, statement: Statement, params: Params):
    if params:
        return await conn.execute(_compile(statement), params)
    return await conn.execute(_compile(statement))


async def _fetch_all(conn: AsyncConnection, statement: Statement, params: Params) -> List[Row]:
    result = await _run(conn, statement, params)
    return [dict(row._mapping) for row in result]


async def _fetch_one(conn: AsyncConnection, statement: Statement, params: Params) -> Optional[Row]:
    result = await _run(conn, statement, params)
    row = result.first()
    return dict(row._mapping) if row is not None else None


async def _write(conn: AsyncConnection, statement: Statement, params: Params) -> int:
    result = await _run(conn, statement, params)
    return result.rowcount if result.rowcount is not None and result.rowcount >= 0 else 0


@contextmanager
def _translate_errors(operation: str):
    """Surface driver errors as DatabaseException."""
    try:
        yield
    except DatabaseException:
        raise
    except (DisconnectionError, OperationalError) as e:
        logger.error(f"Database {operation} failed on connection: {e}")
        raise DatabaseException(
            message=f"Database {operation} failed",
            error_code=ErrorCode.DATABASE_CONNECTION_FAILED,
            operation=operation,
            details=str(e)
        ) from e
    except SQLAlchemyError as e:
        logger.error(f"Database {operation} failed: {e}")
        raise DatabaseException(
            message=f"Database {operation} failed",
            error_code=ErrorCode.DATABASE_QUERY_FAILED,
            operation=operation,
            details=str(e)
        ) from e


class _ConnectionStorage:
    """Storage bound to a single open connection inside a transaction."""

    def __init__(self, connection: AsyncConnection):
        self._connection = connection

    async def query(self, statement: Statement, params: Params = None) -> List[Row]:
        with _translate_errors("query"):
            return await _fetch_all(self._connection, statement, params)

    async def query_one(self, statement: Statement, params: Params = None) -> Optional[Row]:
        with _translate_errors("query"):
            return await _fetch_one(self._connection, statement, params)

    async def execute(self, statement: Statement, params: Params = None) -> int:
        with _translate_errors("execute"):
            return await _write(self._connection, statement, params)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["_ConnectionStorage"]:
        # Already inside a transaction; nest with a savepoint.
        with _translate_errors("transaction"):
            async with self._connection.begin_nested():
                yield self


class SQLAlchemyStorage:
    """Storage implementation on top of an SQLAlchemy ``AsyncEngine``."""

    def __init__(self, engine: AsyncEngine):
        self._engine = engine

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def query(self, statement: Statement, params: Params = None) -> List[Row]:
        with _translate_errors("query"):
            return await self._query(statement, params)

    async def query_one(self, statement: Statement, params: Params = None) -> Optional[Row]:
        with _translate_errors("query"):
            return await self._query_one(statement, params)

    async def execute(self, statement: Statement, params: Params = None) -> int:
        with _translate_errors("execute"):
            return await self._execute(statement, params)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[_ConnectionStorage]:
        """Yield a storage whose statements commit or roll back together."""
        with _translate_errors("transaction"):
            async with self._engine.begin() as conn:
                yield _ConnectionStorage(conn)

    @retry_on_database_error(max_retries=2, delay=0.1)
    async def _query(self, statement: Statement, params: Params) -> List[Row]:
        async with self._engine.connect() as conn:
            return await _fetch_all(conn, statement, params)

    @retry_on_database_error(max_retries=2, delay=0.1)
    async def _query_one(self, statement: Statement, params: Params) -> Optional[Row]:
        async with self._engine.connect() as conn:
            return await _fetch_one(conn, statement, params)

    @retry_on_database_error(max_retries=2, delay=0.1)
    async def _execute(self, statement: Statement, params: Params) -> int:
        async with self._engine.begin() as conn:
            return await _write(conn, statement, params)
