"""Error taxonomy for routed queries.

Every failure the router surfaces is a `DatabaseRouterError`. The split that
matters for routing is between `ConnectivityError` (the server could not be
reached or did not answer in time: flips health and allows one read retry)
and `QueryFailedError` (the server answered with an error: never retried,
never touches health).
"""

from __future__ import annotations

import asyncpg
from asyncpg import exceptions as pg_exc

from ...core.enums import Role

_CONNECTIVITY_ERRORS: tuple[type[BaseException], ...] = (
    OSError,
    asyncpg.PostgresConnectionError,
    pg_exc.AdminShutdownError,
    pg_exc.CrashShutdownError,
    pg_exc.CannotConnectNowError,
    pg_exc.TooManyConnectionsError,
)

_TIMEOUT_ERRORS: tuple[type[BaseException], ...] = (
    TimeoutError,
    pg_exc.QueryCanceledError,
)

# asyncpg also raises InterfaceError for caller mistakes (bad argument types or
# counts, concurrent use of one connection). Only these messages mean the
# connection itself is gone.
_CLOSED_CONNECTION_MARKERS: tuple[str, ...] = (
    "connection is closed",
    "connection was closed",
    "pool is closing",
    "pool is closed",
)


class DatabaseRouterError(Exception):
    """Base exception for all router errors."""


class ServiceUnavailableError(DatabaseRouterError):
    """No pool can serve the request; callers map this to HTTP 503."""


class PrimaryUnavailableError(ServiceUnavailableError):
    """A write was attempted while the primary is unhealthy or unreachable."""

    def __init__(self, message: str = "Primary database is not available for write operations") -> None:
        super().__init__(message)


class NoPoolAvailableError(ServiceUnavailableError):
    """A read was attempted while no role is healthy."""

    def __init__(self, message: str = "No database connections available") -> None:
        super().__init__(message)


class ConnectivityError(DatabaseRouterError):
    """The server for ``role`` could not be reached."""

    def __init__(self, role: Role, message: str) -> None:
        super().__init__(f"{role} connectivity failure: {message}")
        self.role = role


class QueryTimeoutError(ConnectivityError):
    """Connect, acquire or statement time limit exceeded."""


class QueryFailedError(DatabaseRouterError):
    """The server rejected the statement (syntax, constraint, permission...)."""

    def __init__(self, role: Role, message: str, sqlstate: str | None = None) -> None:
        super().__init__(message)
        self.role = role
        self.sqlstate = sqlstate


class PoolNotInitializedError(DatabaseRouterError):
    """The underlying asyncpg pool has not been created yet."""


def classify_error(exc: BaseException, role: Role) -> BaseException:
    """Map a driver exception raised while talking to ``role`` onto the taxonomy.

    Exceptions that are already router errors, and exceptions the driver
    did not produce, are returned unchanged.

    Parameters
    ----------
    exc
        The exception raised by asyncpg or by a timeout guard.
    role
        The role whose pool raised it.

    Returns
    -------
    BaseException
        A `ConnectivityError`, `QueryTimeoutError` or `QueryFailedError`,
        or ``exc`` itself.
    """
    if isinstance(exc, DatabaseRouterError):
        return exc
    if isinstance(exc, _TIMEOUT_ERRORS):
        return QueryTimeoutError(role, str(exc) or type(exc).__name__)
    if isinstance(exc, _CONNECTIVITY_ERRORS):
        return ConnectivityError(role, str(exc) or type(exc).__name__)
    if isinstance(exc, asyncpg.InterfaceError):
        if any(marker in str(exc) for marker in _CLOSED_CONNECTION_MARKERS):
            return ConnectivityError(role, str(exc))
        return QueryFailedError(role, str(exc))
    if isinstance(exc, asyncpg.PostgresError):
        return QueryFailedError(role, str(exc), sqlstate=getattr(exc, "sqlstate", None))
    return exc
