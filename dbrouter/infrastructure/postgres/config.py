"""Configuration models for the primary/replica router.

- `PoolDescriptor`: immutable description of one role's connection pool
- `HealthCheckSettings`: probe timeout and background schedule
- `DatabaseRouterConfig`: exactly one descriptor per role plus health settings
- `RouterSettings`: environment loader producing a `DatabaseRouterConfig`
"""

from __future__ import annotations

from typing import Any, Self
from urllib.parse import quote_plus

from pydantic import BaseModel, ConfigDict, Field, SecretStr, computed_field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ...core.enums import Role


class PoolConnectionSettings(BaseModel):
    """Connection settings for one PostgreSQL server."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    host: str = Field(default="localhost")
    port: int = Field(default=5432, ge=1, le=65535)
    database: str = Field(default="ecommerce")
    user: str = Field(default="ecommerce_user")
    password: SecretStr | None = Field(default=None)
    ssl: bool = Field(default=False)


class PoolSizingSettings(BaseModel):
    """Pool sizing and timeout settings, all durations in seconds."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    min_size: int = Field(default=1, ge=0, le=100)
    max_size: int = Field(default=10, ge=1, le=200)
    idle_timeout: float = Field(default=30.0, ge=0.0, description="Close idle connections after this long")
    connect_timeout: float = Field(default=3.0, gt=0.0, le=60.0, description="Bound on connect and acquire")
    statement_timeout: float = Field(default=30.0, gt=0.0, le=300.0, description="Bound on a single statement")

    @model_validator(mode="after")
    def _check_bounds(self) -> Self:
        if self.min_size > self.max_size:
            msg = f"min_size ({self.min_size}) must not exceed max_size ({self.max_size})"
            raise ValueError(msg)
        return self


class PoolDescriptor(BaseModel):
    """Immutable description of the pool serving one role.

    Examples
    --------
    >>> primary = PoolDescriptor(
    ...     role=Role.PRIMARY,
    ...     connection=PoolConnectionSettings(host="10.0.0.4", password=SecretStr("secret")),
    ... )
    >>> replica = primary.for_role(Role.REPLICA, host="10.0.0.5")
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    role: Role
    connection: PoolConnectionSettings = Field(default_factory=PoolConnectionSettings)
    pool: PoolSizingSettings = Field(default_factory=PoolSizingSettings)
    application_name: str = Field(default="dbrouter", min_length=1)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def dsn(self) -> str:
        """Build PostgreSQL DSN from connection settings."""
        password = self.connection.password.get_secret_value() if self.connection.password else ""
        escaped_user = quote_plus(self.connection.user)
        escaped_password = quote_plus(password) if password else ""
        auth = f"{escaped_user}:{escaped_password}@" if escaped_password else f"{escaped_user}@"
        return f"postgresql://{auth}{self.connection.host}:{self.connection.port}/{self.connection.database}"

    @property
    def address(self) -> str:
        return f"{self.connection.host}:{self.connection.port}"

    def to_pool_params(self) -> dict[str, Any]:
        """Convert the descriptor to ``asyncpg.create_pool()`` parameters.

        ``statement_timeout`` is applied twice: as the client-side
        ``command_timeout`` and as the server-side setting, so the server
        cancels a runaway statement even if the client goes away.
        """
        return {
            "dsn": self.dsn,
            "min_size": self.pool.min_size,
            "max_size": self.pool.max_size,
            "max_inactive_connection_lifetime": self.pool.idle_timeout,
            "command_timeout": self.pool.statement_timeout,
            "timeout": self.pool.connect_timeout,
            "ssl": self.connection.ssl,
            "server_settings": {
                "application_name": f"{self.application_name}-{self.role}",
                "statement_timeout": str(int(self.pool.statement_timeout * 1000)),
            },
        }

    def log_params(self) -> dict[str, Any]:
        """Pool parameters safe to log (no credentials)."""
        return {
            "role": str(self.role),
            "address": self.address,
            "database": self.connection.database,
            "min_size": self.pool.min_size,
            "max_size": self.pool.max_size,
        }

    def for_role(self, role: Role, host: str, port: int | None = None) -> Self:
        """Copy this descriptor for another role on a different host.

        Roles in this topology share database, credentials and pool sizing
        with each other; only the host (and occasionally port) differs.
        """
        new_connection = self.connection.model_copy(
            update={"host": host, "port": port if port is not None else self.connection.port}
        )
        return self.model_copy(update={"role": role, "connection": new_connection})


class HealthCheckSettings(BaseModel):
    """Health probe bounds and background schedule, durations in seconds."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    enabled: bool = Field(default=True, description="Run the background probe loop")
    interval: float = Field(default=30.0, gt=0.0, description="Time between background probes")
    timeout: float = Field(default=5.0, gt=0.0, le=60.0, description="Bound on a single probe")
    jitter: float = Field(default=0.0, ge=0.0, description="Uniform random delay added to each interval")
    max_replication_lag: float = Field(default=60.0, ge=0.0, description="Replica lag considered acceptable")


class DatabaseRouterConfig(BaseModel):
    """Complete router topology: one pool per role plus health settings.

    Examples
    --------
    >>> config = DatabaseRouterConfig.with_replica_host(primary, "10.0.0.5")
    >>> async with DatabaseRouter.from_config(config) as router:
    ...     result, decision = await router.aroute(QueryIntent.read("SELECT 1"))
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    primary: PoolDescriptor
    replica: PoolDescriptor
    health: HealthCheckSettings = Field(default_factory=HealthCheckSettings)
    drain_timeout: float = Field(default=10.0, gt=0.0, description="Bound on graceful pool close")

    @model_validator(mode="after")
    def _one_descriptor_per_role(self) -> Self:
        if self.primary.role is not Role.PRIMARY:
            msg = f"primary descriptor has role {self.primary.role!s}"
            raise ValueError(msg)
        if self.replica.role is not Role.REPLICA:
            msg = f"replica descriptor has role {self.replica.role!s}"
            raise ValueError(msg)
        return self

    @classmethod
    def with_replica_host(
        cls,
        primary: PoolDescriptor,
        host: str,
        port: int | None = None,
        **kwargs: Any,
    ) -> Self:
        """Create a config whose replica inherits everything but the host from primary."""
        return cls(primary=primary, replica=primary.for_role(Role.REPLICA, host, port), **kwargs)

    def descriptor(self, role: Role) -> PoolDescriptor:
        return self.primary if role is Role.PRIMARY else self.replica


class RouterSettings(BaseSettings):
    """Router configuration read from ``DB_*`` environment variables.

    Both roles share port, database, credentials and sizing; only the host
    differs between ``DB_PRIMARY_HOST`` and ``DB_REPLICA_HOST``.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="DB_",
        extra="ignore",
        frozen=True,
    )

    primary_host: str = Field(default="localhost")
    replica_host: str = Field(default="localhost")
    port: int = Field(default=5432, ge=1, le=65535)
    name: str = Field(default="ecommerce")
    user: str = Field(default="ecommerce_user")
    password: SecretStr | None = Field(default=None)
    ssl: bool = Field(default=False)

    pool_min: int = Field(default=1, ge=0, le=100)
    pool_max: int = Field(default=10, ge=1, le=200)
    idle_timeout: float = Field(default=30.0, ge=0.0)
    connect_timeout: float = Field(default=3.0, gt=0.0, le=60.0)
    statement_timeout: float = Field(default=30.0, gt=0.0, le=300.0)

    health_check_enabled: bool = Field(default=True)
    health_check_interval: float = Field(default=30.0, gt=0.0)
    health_check_timeout: float = Field(default=5.0, gt=0.0, le=60.0)
    health_check_jitter: float = Field(default=0.0, ge=0.0)
    max_replication_lag: float = Field(default=60.0, ge=0.0)
    drain_timeout: float = Field(default=10.0, gt=0.0)

    def to_router_config(self) -> DatabaseRouterConfig:
        primary = PoolDescriptor(
            role=Role.PRIMARY,
            connection=PoolConnectionSettings(
                host=self.primary_host,
                port=self.port,
                database=self.name,
                user=self.user,
                password=self.password,
                ssl=self.ssl,
            ),
            pool=PoolSizingSettings(
                min_size=self.pool_min,
                max_size=self.pool_max,
                idle_timeout=self.idle_timeout,
                connect_timeout=self.connect_timeout,
                statement_timeout=self.statement_timeout,
            ),
        )
        return DatabaseRouterConfig.with_replica_host(
            primary,
            self.replica_host,
            health=HealthCheckSettings(
                enabled=self.health_check_enabled,
                interval=self.health_check_interval,
                timeout=self.health_check_timeout,
                jitter=self.health_check_jitter,
                max_replication_lag=self.max_replication_lag,
            ),
            drain_timeout=self.drain_timeout,
        )
