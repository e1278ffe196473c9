from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field, computed_field

from ...core.enums import Role


class QueryIntent(BaseModel):
    """A caller's query plus the read/write hint used for routing.

    ``for_write`` must be set by the caller; the router never inspects the
    SQL text to infer it.
    """

    model_config = ConfigDict(frozen=True)

    sql: str = Field(min_length=1)
    parameters: tuple[object, ...] = Field(default_factory=tuple)
    for_write: bool = False

    @classmethod
    def read(cls, sql: str, *parameters: object) -> Self:
        return cls(sql=sql, parameters=parameters, for_write=False)

    @classmethod
    def write(cls, sql: str, *parameters: object) -> Self:
        return cls(sql=sql, parameters=parameters, for_write=True)


class QueryResult(BaseModel):
    """Rows (asyncpg ``Record`` objects) and command tag returned by the driver."""

    model_config = ConfigDict(frozen=True)

    rows: tuple[Any, ...] = Field(default_factory=tuple)
    status: str | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def row_count(self) -> int:
        """Rows affected per the command tag (``INSERT 0 3`` -> 3), else rows returned."""
        if self.status:
            last = self.status.rsplit(" ", 1)[-1]
            if last.isdigit():
                return int(last)
        return len(self.rows)


class RoutingDecision(BaseModel):
    """Which server answered a routed query, and how fast."""

    model_config = ConfigDict(frozen=True)

    role: Role
    host: str
    port: int
    latency_ms: float = Field(ge=0.0)
    attempts: int = Field(default=1, ge=1, le=2)
    failed_over: bool = False
    decided_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    def describe(self) -> str:
        """Render for display, e.g. ``Replica DB: 10.0.0.5:5432 - 12ms``."""
        return f"{self.role.capitalize()} DB: {self.address} - {round(self.latency_ms)}ms"
