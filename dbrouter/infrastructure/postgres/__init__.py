"""PostgreSQL primary/replica routing with asyncpg.

This module provides:

- `DatabaseRouter`: routes each query by read/write intent and role health
- `AsyncConnectionPool`: lazily created pool for one role
- `HealthMonitor`: background, non-overlapping health probes
- `DatabaseRouterConfig` / `RouterSettings`: topology from code or ``DB_*`` env vars

Usage
-----
::

    async with DatabaseRouter.from_env() as router:
        result, decision = await router.aroute(QueryIntent.read("SELECT * FROM products"))
        await router.aroute(QueryIntent.write("INSERT INTO orders (product_id) VALUES ($1)", 7))
        health = await router.acheck_health()
"""

from .config import (
    DatabaseRouterConfig,
    HealthCheckSettings,
    PoolConnectionSettings,
    PoolDescriptor,
    PoolSizingSettings,
    RouterSettings,
)
from .exceptions import (
    ConnectivityError,
    DatabaseRouterError,
    NoPoolAvailableError,
    PoolNotInitializedError,
    PrimaryUnavailableError,
    QueryFailedError,
    QueryTimeoutError,
    ServiceUnavailableError,
    classify_error,
)
from .health import DatabaseHealth, HealthRegistry, HealthSnapshot, HealthState, ProbeResult
from .models import QueryIntent, QueryResult, RoutingDecision
from .monitor import HealthMonitor
from .pool import AsyncConnectionPool
from .replication import ReplicationStatus
from .router import ConnectivityReport, DatabaseRouter, DiagnosticLeg

__all__ = [
    "AsyncConnectionPool",
    "ConnectivityError",
    "ConnectivityReport",
    "DatabaseHealth",
    "DatabaseRouter",
    "DatabaseRouterConfig",
    "DatabaseRouterError",
    "DiagnosticLeg",
    "HealthCheckSettings",
    "HealthMonitor",
    "HealthRegistry",
    "HealthSnapshot",
    "HealthState",
    "NoPoolAvailableError",
    "PoolConnectionSettings",
    "PoolDescriptor",
    "PoolNotInitializedError",
    "PoolSizingSettings",
    "PrimaryUnavailableError",
    "ProbeResult",
    "QueryFailedError",
    "QueryIntent",
    "QueryResult",
    "QueryTimeoutError",
    "ReplicationStatus",
    "RouterSettings",
    "RoutingDecision",
    "ServiceUnavailableError",
    "classify_error",
]
