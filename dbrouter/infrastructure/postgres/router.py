"""Primary/replica query router with health-driven failover.

Routing rules
-------------
- Writes go to the primary and nowhere else. If the primary is unhealthy the
  write fails with `PrimaryUnavailableError`; the replica is never contacted.
- Reads prefer the primary while it is healthy, which keeps read-your-writes
  consistency, and fall back to the replica only when the primary is down.
- A read that hits a connectivity failure marks that role unhealthy and is
  retried exactly once, against the other role, if that role is healthy.
  A second failure is returned to the caller; there is no third attempt.
- Errors in the statement itself (bad SQL, constraint violations, wrong
  parameter types or counts) are raised as `QueryFailedError` without
  retry and without touching health. Running a malformed statement on
  another server would only hide the real error.

Health
------
`aroute()` can only take a role from healthy to unhealthy. Restoring a role
is the job of `acheck_health()`, run on demand or by the background
`HealthMonitor` started when the router is entered as a context manager.

Usage
-----
>>> async with DatabaseRouter.from_env() as router:
...     result, decision = await router.aroute(
...         QueryIntent.read("SELECT * FROM products WHERE category = $1", "books")
...     )
...     print(decision.describe())  # Primary DB: 10.0.0.4:5432 - 3ms
...     await router.aroute(QueryIntent.write("UPDATE products SET stock = stock - 1 WHERE id = $1", 7))
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Literal, Self

from pydantic import BaseModel, ConfigDict

from ...core.enums import Role
from ...logger import bound_context, get_logger
from ...resilience import RetryConfig, RetryLogicError, build_async_retrying
from .config import DatabaseRouterConfig, HealthCheckSettings, RouterSettings
from .exceptions import (
    ConnectivityError,
    DatabaseRouterError,
    NoPoolAvailableError,
    PrimaryUnavailableError,
    QueryFailedError,
)
from .health import DatabaseHealth, HealthRegistry, HealthSnapshot, ProbeResult
from .models import QueryIntent, QueryResult, RoutingDecision
from .monitor import HealthMonitor
from .pool import AsyncConnectionPool
from .replication import ReplicationStatus, aread_replication_status

if TYPE_CHECKING:
    import types
    from collections.abc import Mapping

    from tenacity import RetryCallState

logger = get_logger(__name__)

_READ_RETRY = RetryConfig(max_attempts=2, retry_on_exceptions=(ConnectivityError,))
_WRITE_RETRY = RetryConfig(max_attempts=1)


class DiagnosticLeg(BaseModel):
    """Outcome of one diagnostic round trip."""

    model_config = ConfigDict(frozen=True)

    status: Literal["connected", "error"]
    latency_ms: float | None = None
    address: str | None = None
    role: Role | None = None
    error: str | None = None


class ConnectivityReport(BaseModel):
    """Result of `DatabaseRouter.adiagnose()`: one write-path and one read-path round trip."""

    model_config = ConfigDict(frozen=True)

    write_path: DiagnosticLeg
    read_path: DiagnosticLeg

    @property
    def success(self) -> bool:
        return self.write_path.status == "connected" or self.read_path.status == "connected"


class DatabaseRouter:
    """Routes each query to the primary or replica pool by intent and health.

    Parameters
    ----------
    pools
        One pool per role. Both roles are required.
    health
        Shared health state; a fresh all-healthy registry when omitted.
    config
        Supplies health-check and drain settings; defaults when omitted.
    """

    __slots__ = ("_drain_timeout", "_health", "_health_settings", "_last_decision", "_monitor", "_pools")

    def __init__(
        self,
        pools: Mapping[Role, AsyncConnectionPool],
        health: HealthRegistry | None = None,
        config: DatabaseRouterConfig | None = None,
    ) -> None:
        missing = [str(role) for role in Role if role not in pools]
        if missing:
            msg = f"missing pool for role(s): {', '.join(missing)}"
            raise ValueError(msg)
        for role, pool in pools.items():
            if pool.role is not role:
                msg = f"pool registered as {role} serves role {pool.role}"
                raise ValueError(msg)

        self._pools = dict(pools)
        self._health = health or HealthRegistry()
        self._health_settings = config.health if config is not None else HealthCheckSettings()
        self._drain_timeout = config.drain_timeout if config is not None else 10.0
        self._monitor = HealthMonitor(
            self.acheck_health,
            interval=self._health_settings.interval,
            jitter=self._health_settings.jitter,
        )
        self._last_decision: RoutingDecision | None = None

    async def __aenter__(self) -> Self:
        if self._health_settings.enabled:
            self.start_monitoring()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        if exc_type is not None and exc_val is not None:
            logger.error(
                "DatabaseRouter exiting with exception",
                exc_type=exc_type.__name__,
                exc_val=str(exc_val),
            )
        await self.aclose()

    @classmethod
    def from_config(cls, config: DatabaseRouterConfig) -> Self:
        """Create a router with asyncpg pools for both roles.

        Pools are not connected here; each one connects on first use.
        """
        pools = {role: AsyncConnectionPool(config.descriptor(role)) for role in Role}
        return cls(pools, HealthRegistry(), config)

    @classmethod
    def from_env(cls, settings: RouterSettings | None = None) -> Self:
        """Create a router from ``DB_*`` environment variables."""
        return cls.from_config((settings or RouterSettings()).to_router_config())

    @property
    def health(self) -> HealthRegistry:
        return self._health

    @property
    def monitor(self) -> HealthMonitor:
        return self._monitor

    @property
    def last_decision(self) -> RoutingDecision | None:
        """The most recent successful routing decision (best effort, for display)."""
        return self._last_decision

    def health_snapshot(self) -> dict[Role, HealthSnapshot]:
        return self._health.snapshot()

    def start_monitoring(self) -> None:
        self._monitor.start()

    async def aclose(self) -> None:
        """Stop health monitoring and close both pools.

        Each pool gets ``drain_timeout`` seconds to finish in-flight work.
        Close failures are logged, not raised.
        """
        await self._monitor.stop()

        roles = list(self._pools)
        results = await asyncio.gather(
            *(self._pools[role].aclose(self._drain_timeout) for role in roles),
            return_exceptions=True,
        )
        for role, result in zip(roles, results, strict=True):
            if isinstance(result, BaseException):
                logger.warning("Pool failed to close", role=str(role), error=str(result))

        logger.info("Database pools closed")

    def _select(self, *, for_write: bool, exclude: Role | None = None) -> AsyncConnectionPool:
        if for_write:
            if self._health.is_healthy(Role.PRIMARY):
                return self._pools[Role.PRIMARY]
            raise PrimaryUnavailableError()

        for role in (Role.PRIMARY, Role.REPLICA):
            if role is not exclude and self._health.is_healthy(role):
                if role is Role.REPLICA:
                    logger.info("Using replica database for read operation (primary unavailable)")
                return self._pools[role]
        raise NoPoolAvailableError()

    def _mark_unhealthy(self, role: Role, error: BaseException, *, checked: bool = False) -> None:
        was_healthy = self._health.get(role).mark_unhealthy(str(error), checked=checked)
        if was_healthy:
            logger.warning("Marking database role unhealthy", role=str(role), error=str(error))

    def _log_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(error, ConnectivityError):
            logger.warning(
                "Read failed on connectivity error, retrying on alternate role",
                failed_role=str(error.role),
                alternate_role=str(error.role.other),
                error=str(error),
            )

    async def _execute(
        self,
        pool: AsyncConnectionPool,
        intent: QueryIntent,
        attempt: int,
    ) -> tuple[QueryResult, RoutingDecision]:
        started = time.perf_counter()
        result = await pool.aexecute_query(intent.sql, intent.parameters)
        decision = RoutingDecision(
            role=pool.role,
            host=pool.host,
            port=pool.port,
            latency_ms=(time.perf_counter() - started) * 1000,
            attempts=attempt,
            failed_over=attempt > 1,
        )
        self._last_decision = decision
        logger.debug("Query routed", role=str(decision.role), address=decision.address, latency_ms=decision.latency_ms)
        return result, decision

    async def aroute(self, intent: QueryIntent) -> tuple[QueryResult, RoutingDecision]:
        """Select a pool for ``intent``, execute it and report who answered.

        Parameters
        ----------
        intent
            SQL, parameters and the read/write hint. The SQL is passed
            through untouched.

        Returns
        -------
        tuple[QueryResult, RoutingDecision]
            Driver result and the role, address and latency that served it.

        Raises
        ------
        PrimaryUnavailableError
            Write intent while the primary is unhealthy or unreachable.
        NoPoolAvailableError
            Read intent with no healthy role left, including after the one
            allowed retry.
        QueryFailedError
            The server rejected the statement. Never retried.
        """
        retry_config = _WRITE_RETRY if intent.for_write else _READ_RETRY
        excluded: Role | None = None
        attempt_number = 0

        try:
            with bound_context(intent="write" if intent.for_write else "read"):
                async for attempt in build_async_retrying(retry_config, before_sleep=self._log_retry):
                    with attempt:
                        attempt_number += 1
                        pool = self._select(for_write=intent.for_write, exclude=excluded)
                        with bound_context(role=str(pool.role), attempt=attempt_number):
                            try:
                                return await self._execute(pool, intent, attempt_number)
                            except ConnectivityError as e:
                                self._mark_unhealthy(pool.role, e)
                                excluded = pool.role
                                raise
                            except QueryFailedError as e:
                                logger.error("Database query failed", sqlstate=e.sqlstate, error=str(e))
                                raise
        except ConnectivityError as e:
            if intent.for_write:
                msg = f"Primary database is not available for write operations: {e}"
                raise PrimaryUnavailableError(msg) from e
            msg = f"All database connection attempts failed: {e}"
            raise NoPoolAvailableError(msg) from e

        msg = "Routing retry loop completed without success or failure"
        raise RetryLogicError(msg)

    async def _aprobe(self, role: Role) -> ProbeResult:
        pool = self._pools[role]
        address = f"{pool.host}:{pool.port}"
        try:
            latency_ms = await pool.aprobe(self._health_settings.timeout)
        except Exception as e:
            self._mark_unhealthy(role, e, checked=True)
            logger.error("Database health check failed", role=str(role), address=address, error=str(e))
            return ProbeResult(role=role, address=address, healthy=False, error=str(e))

        was_healthy = self._health.get(role).mark_healthy()
        if not was_healthy:
            logger.info("Database role recovered", role=str(role), address=address)
        logger.debug("Database health check passed", role=str(role), latency_ms=latency_ms)
        return ProbeResult(role=role, address=address, healthy=True, latency_ms=latency_ms, **pool.stats())

    async def acheck_health(self) -> DatabaseHealth:
        """Probe both roles and update their health flags.

        Each probe runs ``SELECT 1`` bounded by ``health.timeout``. This is
        the only operation that can return a role to healthy.

        Returns
        -------
        DatabaseHealth
            ``primary``/``replica`` booleans plus per-role probe detail.
        """
        primary, replica = await asyncio.gather(self._aprobe(Role.PRIMARY), self._aprobe(Role.REPLICA))
        return DatabaseHealth(
            primary=primary.healthy,
            replica=replica.healthy,
            primary_probe=primary,
            replica_probe=replica,
        )

    async def _adiagnose_leg(self, intent: QueryIntent) -> DiagnosticLeg:
        started = time.perf_counter()
        try:
            _, decision = await self.aroute(intent)
        except DatabaseRouterError as e:
            return DiagnosticLeg(status="error", error=str(e))
        return DiagnosticLeg(
            status="connected",
            latency_ms=(time.perf_counter() - started) * 1000,
            address=decision.address,
            role=decision.role,
        )

    async def adiagnose(self) -> ConnectivityReport:
        """Run ``SELECT 1`` once through the write path and once through the read path.

        Router errors are captured in the report instead of raised. Like any
        routed query, a connectivity failure here marks the role unhealthy.
        """
        write_path = await self._adiagnose_leg(QueryIntent.write("SELECT 1"))
        read_path = await self._adiagnose_leg(QueryIntent.read("SELECT 1"))
        report = ConnectivityReport(write_path=write_path, read_path=read_path)
        logger.info(
            "Database connectivity test completed",
            success=report.success,
            write_path=write_path.status,
            read_path=read_path.status,
        )
        return report

    async def areplication_status(self) -> ReplicationStatus:
        """Read replication state from the replica, bounded by ``health.timeout``.

        Diagnostic only: never changes health state.
        """
        return await aread_replication_status(
            self._pools[Role.REPLICA],
            max_lag_seconds=self._health_settings.max_replication_lag,
            timeout=self._health_settings.timeout,
        )
