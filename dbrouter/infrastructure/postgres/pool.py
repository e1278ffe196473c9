"""Async connection pool for one router role, backed by asyncpg.

The pool is created lazily on first use. Every operation that can block
(pool creation, acquire, statement execution, close) is bounded by a
timeout taken from the role's `PoolDescriptor`, and every driver error is
translated through `classify_error` before it leaves this module.
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, Self

import asyncpg
from asyncpg import Pool, Record

from ...logger import get_logger
from .exceptions import PoolNotInitializedError, classify_error
from .models import QueryResult

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Sequence
    from types import TracebackType

    from asyncpg.pool import PoolConnectionProxy

    from ...core.enums import Role
    from .config import PoolDescriptor

logger = get_logger(__name__)


class AsyncConnectionPool:
    """Async connection pool for the server behind one role.

    Examples
    --------
    >>> async with AsyncConnectionPool(descriptor) as pool:
    ...     result = await pool.aexecute_query("SELECT * FROM products WHERE id = $1", (7,))
    """

    __slots__ = ("_descriptor", "_init_lock", "_pool")

    def __init__(self, descriptor: PoolDescriptor) -> None:
        self._descriptor = descriptor
        self._pool: Pool[Record] | None = None
        self._init_lock = asyncio.Lock()

    async def __aenter__(self) -> Self:
        await self.ainitialize()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_type is not None and exc_val is not None:
            logger.error(
                "AsyncConnectionPool context manager exiting with exception",
                role=str(self.role),
                exc_type=exc_type.__name__,
                exc_val=str(exc_val),
            )
        await self.aclose()

    @property
    def descriptor(self) -> PoolDescriptor:
        return self._descriptor

    @property
    def role(self) -> Role:
        return self._descriptor.role

    @property
    def host(self) -> str:
        return self._descriptor.connection.host

    @property
    def port(self) -> int:
        return self._descriptor.connection.port

    @property
    def initialized(self) -> bool:
        return self._pool is not None

    @property
    def pool(self) -> Pool[Record]:
        """Access the underlying asyncpg pool.

        Raises
        ------
        PoolNotInitializedError
            If the pool has not been created yet.
        """
        if self._pool is None:
            msg = f"{self.role} pool not initialized. Call ainitialize() first."
            raise PoolNotInitializedError(msg)
        return self._pool

    async def ainitialize(self) -> None:
        """Create the asyncpg pool if it does not exist yet.

        Idempotent and safe for concurrent first callers: an asyncio lock
        serializes creation so two tasks racing through the first query do
        not both create a pool and orphan one of them. A failed attempt
        leaves the pool unset so the next caller tries again.

        Each caller's ``connect_timeout`` covers waiting for the lock as well
        as its own creation attempt, so callers queued behind a hanging
        connect fail on their own deadline instead of one after another.

        Raises
        ------
        ConnectivityError
            If the server cannot be reached within ``connect_timeout``.
        """
        if self._pool is not None:
            return

        try:
            async with asyncio.timeout(self._descriptor.pool.connect_timeout), self._init_lock:
                if self._pool is not None:
                    return
                self._pool = await asyncpg.create_pool(**self._descriptor.to_pool_params())
                logger.info("AsyncConnectionPool initialized", **self._descriptor.log_params())
        except Exception as e:
            classified = classify_error(e, self.role)
            if classified is e:
                raise
            raise classified from e

    async def aclose(self, drain_timeout: float = 10.0) -> None:
        """Close the pool, waiting up to ``drain_timeout`` for checked-out connections.

        Connections still busy after the deadline are terminated.
        """
        if self._pool is None:
            return

        pool, self._pool = self._pool, None
        try:
            async with asyncio.timeout(drain_timeout):
                await pool.close()
        except TimeoutError:
            logger.warning(
                "Pool drain timed out, terminating connections",
                role=str(self.role),
                drain_timeout=drain_timeout,
            )
            pool.terminate()
        logger.info("AsyncConnectionPool closed", role=str(self.role))

    @asynccontextmanager
    async def aacquire(self) -> AsyncIterator[PoolConnectionProxy[Record]]:
        """Acquire a connection, creating the pool first if needed.

        Acquisition waits at most ``connect_timeout``.
        """
        await self.ainitialize()
        async with self.pool.acquire(timeout=self._descriptor.pool.connect_timeout) as conn:
            yield conn

    async def aexecute_query(
        self,
        query: str,
        args: Sequence[object] = (),
        timeout: float | None = None,
    ) -> QueryResult:
        """Execute a statement and return its rows and command tag.

        Parameters
        ----------
        query
            SQL passed to the server untouched.
        args
            Positional parameters for ``$1..$n`` placeholders.
        timeout
            Statement time limit in seconds; defaults to the descriptor's
            ``statement_timeout``.

        Returns
        -------
        QueryResult
            Returned rows (empty for statements without output) and the
            command tag, e.g. ``INSERT 0 1``.

        Raises
        ------
        ConnectivityError
            Connect, acquire or connection loss.
        QueryTimeoutError
            A time limit was exceeded.
        QueryFailedError
            The server rejected the statement.
        """
        statement_timeout = timeout if timeout is not None else self._descriptor.pool.statement_timeout
        try:
            async with self.aacquire() as conn, asyncio.timeout(statement_timeout):
                stmt = await conn.prepare(query)
                rows = await stmt.fetch(*args)
                return QueryResult(rows=tuple(rows), status=stmt.get_statusmsg())
        except Exception as e:
            classified = classify_error(e, self.role)
            if classified is e:
                raise
            raise classified from e

    async def afetchrow(self, query: str, *args: object, timeout: float | None = None) -> Record | None:
        """Execute a query and return its first row, with the same bounds as `aexecute_query`."""
        result = await self.aexecute_query(query, args, timeout=timeout)
        return result.rows[0] if result.rows else None

    async def aprobe(self, timeout: float) -> float:
        """Run a liveness round trip and return its latency in milliseconds.

        The whole probe, including lazy pool creation and acquisition, is
        bounded by ``timeout``.
        """
        started = time.perf_counter()
        try:
            async with asyncio.timeout(timeout), self.aacquire() as conn:
                await conn.fetchval("SELECT 1")
        except Exception as e:
            classified = classify_error(e, self.role)
            if classified is e:
                raise
            raise classified from e
        return (time.perf_counter() - started) * 1000

    def stats(self) -> dict[str, Any]:
        """Current pool occupancy, zeros before initialization."""
        if self._pool is None:
            return {"pool_size": 0, "pool_idle_size": 0, "pool_max_size": self._descriptor.pool.max_size}
        return {
            "pool_size": self._pool.get_size(),
            "pool_idle_size": self._pool.get_idle_size(),
            "pool_max_size": self._pool.get_max_size(),
        }
