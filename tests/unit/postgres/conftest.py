"""Shared fixtures for router unit tests.

`FakePool` stands in for `AsyncConnectionPool`: queries and probes follow a
script set by the test, and every call is recorded.
"""

from __future__ import annotations

import asyncio
from typing import Any

import pytest
import structlog

from dbrouter.core.enums import Role
from dbrouter.infrastructure.postgres import (
    DatabaseRouter,
    DatabaseRouterConfig,
    HealthCheckSettings,
    HealthRegistry,
    PoolConnectionSettings,
    PoolDescriptor,
    QueryResult,
)

PRIMARY_HOST = "10.0.0.4"
REPLICA_HOST = "10.0.0.5"


class FakePool:
    """Scriptable stand-in for `AsyncConnectionPool`."""

    def __init__(self, role: Role, host: str, port: int = 5432) -> None:
        self.descriptor = PoolDescriptor(role=role, connection=PoolConnectionSettings(host=host, port=port))
        self.role = role
        self.host = host
        self.port = port
        self.queries: list[tuple[str, tuple[object, ...]]] = []
        self.log_contexts: list[dict[str, Any]] = []
        self.query_errors: list[BaseException] = []
        self.query_result = QueryResult(status="SELECT 1")
        self.block_queries: asyncio.Event | None = None
        self.probe_error: BaseException | None = None
        self.probe_calls = 0
        self.probe_delay = 0.0
        self.row: dict[str, Any] | None = None
        self.closed = False
        self.drain_timeout: float | None = None

    async def aexecute_query(
        self,
        query: str,
        args: tuple[object, ...] = (),
        timeout: float | None = None,
    ) -> QueryResult:
        self.queries.append((query, tuple(args)))
        self.log_contexts.append(structlog.contextvars.get_contextvars())
        if self.block_queries is not None:
            await self.block_queries.wait()
        if self.query_errors:
            raise self.query_errors.pop(0)
        return self.query_result

    async def afetchrow(self, query: str, *args: object, timeout: float | None = None) -> dict[str, Any] | None:
        self.queries.append((query, args))
        if self.query_errors:
            raise self.query_errors.pop(0)
        return self.row

    async def aprobe(self, timeout: float) -> float:
        self.probe_calls += 1
        if self.probe_delay:
            await asyncio.sleep(self.probe_delay)
        if self.probe_error is not None:
            raise self.probe_error
        return 1.5

    def stats(self) -> dict[str, int]:
        return {"pool_size": 1, "pool_idle_size": 1, "pool_max_size": 10}

    async def aclose(self, drain_timeout: float = 10.0) -> None:
        self.closed = True
        self.drain_timeout = drain_timeout


@pytest.fixture
def primary_pool() -> FakePool:
    return FakePool(Role.PRIMARY, PRIMARY_HOST)


@pytest.fixture
def replica_pool() -> FakePool:
    return FakePool(Role.REPLICA, REPLICA_HOST)


@pytest.fixture
def health() -> HealthRegistry:
    return HealthRegistry()


@pytest.fixture
def router_config() -> DatabaseRouterConfig:
    primary = PoolDescriptor(role=Role.PRIMARY, connection=PoolConnectionSettings(host=PRIMARY_HOST))
    return DatabaseRouterConfig.with_replica_host(
        primary,
        REPLICA_HOST,
        health=HealthCheckSettings(enabled=False, interval=0.05, timeout=0.5),
        drain_timeout=2.0,
    )


@pytest.fixture
def router(
    primary_pool: FakePool,
    replica_pool: FakePool,
    health: HealthRegistry,
    router_config: DatabaseRouterConfig,
) -> DatabaseRouter:
    pools = {Role.PRIMARY: primary_pool, Role.REPLICA: replica_pool}
    return DatabaseRouter(pools, health, router_config)  # type: ignore[arg-type]
