"""Per-role health state and health-check result models.

`HealthState` is the only mutable shared state in the router. Each role's
state moves between two values:

- healthy -> unhealthy: a connectivity failure seen by ``aroute()``, or a
  failed probe
- unhealthy -> healthy: a successful probe, and nothing else

A single successful query never restores health, so one lucky retry cannot
make a flapping server look healthy again.
"""

from __future__ import annotations

import threading
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field

from ...core.enums import HealthStatus, Role


class HealthSnapshot(BaseModel):
    """Point-in-time copy of one role's `HealthState`."""

    model_config = ConfigDict(frozen=True)

    role: Role
    healthy: bool
    last_checked_at: datetime | None = None
    last_error: str | None = None


class HealthState:
    """Lock-guarded health flag for one role. Starts healthy."""

    __slots__ = ("_healthy", "_last_checked_at", "_last_error", "_lock", "_role")

    def __init__(self, role: Role) -> None:
        self._role = role
        self._healthy = True
        self._last_checked_at: datetime | None = None
        self._last_error: str | None = None
        self._lock = threading.Lock()

    @property
    def role(self) -> Role:
        return self._role

    @property
    def healthy(self) -> bool:
        with self._lock:
            return self._healthy

    def mark_unhealthy(self, error: str, *, checked: bool = False) -> bool:
        """Set healthy=False.

        Parameters
        ----------
        error
            Reason, kept for diagnostics.
        checked
            True when the observation comes from a probe, which also
            stamps ``last_checked_at``.

        Returns
        -------
        bool
            The previous value, so callers can log the transition once.
        """
        with self._lock:
            previous = self._healthy
            self._healthy = False
            self._last_error = error
            if checked:
                self._last_checked_at = datetime.now(UTC)
            return previous

    def mark_healthy(self) -> bool:
        """Set healthy=True after a successful probe; returns the previous value."""
        with self._lock:
            previous = self._healthy
            self._healthy = True
            self._last_error = None
            self._last_checked_at = datetime.now(UTC)
            return previous

    def snapshot(self) -> HealthSnapshot:
        with self._lock:
            return HealthSnapshot(
                role=self._role,
                healthy=self._healthy,
                last_checked_at=self._last_checked_at,
                last_error=self._last_error,
            )


class HealthRegistry:
    """Exactly one `HealthState` per role, injected into the router."""

    __slots__ = ("_states",)

    def __init__(self) -> None:
        self._states = {role: HealthState(role) for role in Role}

    def get(self, role: Role) -> HealthState:
        return self._states[role]

    def is_healthy(self, role: Role) -> bool:
        return self._states[role].healthy

    def snapshot(self) -> dict[Role, HealthSnapshot]:
        return {role: state.snapshot() for role, state in self._states.items()}


class ProbeResult(BaseModel):
    """Outcome of probing one role."""

    model_config = ConfigDict(frozen=True)

    role: Role
    address: str
    healthy: bool
    latency_ms: float | None = None
    pool_size: int = 0
    pool_idle_size: int = 0
    pool_max_size: int = 0
    error: str | None = None


class DatabaseHealth(BaseModel):
    """Result of ``DatabaseRouter.acheck_health()``.

    ``primary`` and ``replica`` are the plain booleans callers usually
    need; the probe results carry latency and error detail.
    """

    model_config = ConfigDict(frozen=True)

    primary: bool
    replica: bool
    primary_probe: ProbeResult
    replica_probe: ProbeResult
    checked_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def status(self) -> HealthStatus:
        if self.primary and self.replica:
            return HealthStatus.HEALTHY
        if self.primary or self.replica:
            return HealthStatus.DEGRADED
        return HealthStatus.UNHEALTHY

    @property
    def is_operational(self) -> bool:
        """True when at least one role can serve reads."""
        return self.primary or self.replica

    def as_flags(self) -> dict[str, bool]:
        return {"primary": self.primary, "replica": self.replica}
