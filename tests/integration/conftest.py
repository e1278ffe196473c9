"""Shared fixtures for router integration tests.

Provides:
- primary_container / replica_container: session-scoped PostgreSQL servers
- router: function-scoped router over both containers, schema initialized
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import pytest
import pytest_asyncio
from docker import from_env  # type: ignore[import-untyped]
from docker.errors import DockerException  # type: ignore[import-untyped]
from pydantic import SecretStr
from testcontainers.postgres import PostgresContainer  # type: ignore[import-untyped]

from dbrouter.core.enums import Role
from dbrouter.infrastructure.postgres import (
    AsyncConnectionPool,
    DatabaseRouter,
    DatabaseRouterConfig,
    HealthCheckSettings,
    PoolConnectionSettings,
    PoolDescriptor,
    PoolSizingSettings,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator

POSTGRES_IMAGE = "postgres:16-alpine"
DB_USER = "ecommerce_user"
DB_PASSWORD = "test_password"
DB_NAME = "ecommerce"


def pytest_configure(config: pytest.Config) -> None:  # noqa: ARG001
    """Point testcontainers at the local Docker socket before any fixture runs."""
    if not os.environ.get("DOCKER_HOST"):
        possible_sockets = [
            Path("/var/run/docker.sock"),
            Path.home() / ".docker" / "run" / "docker.sock",
        ]
        for socket_path in possible_sockets:
            if socket_path.exists():
                os.environ["DOCKER_HOST"] = f"unix://{socket_path}"
                os.environ["TESTCONTAINERS_DOCKER_SOCKET_OVERRIDE"] = str(socket_path)
                break

    # Ryuk (testcontainers cleanup daemon) has known issues on macOS/Docker Desktop
    if sys.platform == "darwin" and not os.environ.get("TESTCONTAINERS_RYUK_DISABLED"):
        os.environ["TESTCONTAINERS_RYUK_DISABLED"] = "true"


def _is_docker_available() -> bool:
    """Check that the Docker daemon answers a ping, not just that a socket exists."""
    try:
        client = from_env()
        client.ping()
    except (ImportError, DockerException):
        return False
    else:
        return True


def _start_postgres() -> PostgresContainer:
    container = PostgresContainer(
        POSTGRES_IMAGE,
        username=DB_USER,
        password=DB_PASSWORD,
        dbname=DB_NAME,
        driver=None,
    )
    return container.start()


@pytest.fixture(scope="session")
def primary_container() -> Iterator[PostgresContainer]:
    """Provide the session-scoped server playing the primary role.

    Yields
    ------
    PostgresContainer
        Running PostgreSQL container instance.
    """
    if not _is_docker_available():
        pytest.skip("Docker daemon not accessible")

    container = _start_postgres()
    try:
        yield container
    finally:
        container.stop()


@pytest.fixture(scope="session")
def replica_container() -> Iterator[PostgresContainer]:
    """Provide the session-scoped server playing the replica role.

    Routing only needs a second reachable server, so this is an independent
    instance rather than a streaming standby.
    """
    if not _is_docker_available():
        pytest.skip("Docker daemon not accessible")

    container = _start_postgres()
    try:
        yield container
    finally:
        container.stop()


def descriptor_for(role: Role, container: PostgresContainer) -> PoolDescriptor:
    return PoolDescriptor(
        role=role,
        connection=PoolConnectionSettings(
            host=container.get_container_host_ip(),
            port=int(container.get_exposed_port(5432)),
            database=DB_NAME,
            user=DB_USER,
            password=SecretStr(DB_PASSWORD),
        ),
        pool=PoolSizingSettings(min_size=1, max_size=5, connect_timeout=2.0, statement_timeout=5.0),
    )


def router_config(primary: PoolDescriptor, replica: PoolDescriptor) -> DatabaseRouterConfig:
    return DatabaseRouterConfig(
        primary=primary,
        replica=replica,
        health=HealthCheckSettings(enabled=False, timeout=2.0),
        drain_timeout=2.0,
    )


PRODUCTS_DDL = """
CREATE TABLE IF NOT EXISTS products (
    id SERIAL PRIMARY KEY,
    name VARCHAR(255) NOT NULL,
    category VARCHAR(64) NOT NULL,
    sku VARCHAR(64) UNIQUE NOT NULL
)
"""


async def _initialize_schema(descriptor: PoolDescriptor) -> None:
    """Create the products table on one server and empty it.

    Both containers are independent servers, so each needs its own schema.
    """
    async with AsyncConnectionPool(descriptor) as pool:
        await pool.aexecute_query(PRODUCTS_DDL)
        await pool.aexecute_query("TRUNCATE products RESTART IDENTITY")


@pytest_asyncio.fixture
async def router(
    primary_container: PostgresContainer,
    replica_container: PostgresContainer,
) -> AsyncIterator[DatabaseRouter]:
    """Provide a router over both containers with a fresh ``products`` table.

    Yields
    ------
    DatabaseRouter
        Router with background monitoring disabled.
    """
    primary = descriptor_for(Role.PRIMARY, primary_container)
    replica = descriptor_for(Role.REPLICA, replica_container)
    await _initialize_schema(primary)
    await _initialize_schema(replica)

    async with DatabaseRouter.from_config(router_config(primary, replica)) as db_router:
        yield db_router


@pytest.fixture
def primary_descriptor(primary_container: PostgresContainer) -> PoolDescriptor:
    return descriptor_for(Role.PRIMARY, primary_container)


@pytest.fixture
def replica_descriptor(replica_container: PostgresContainer) -> PoolDescriptor:
    return descriptor_for(Role.REPLICA, replica_container)
