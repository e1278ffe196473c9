"""Primary/replica PostgreSQL routing and failover."""

from __future__ import annotations

from .core.enums import HealthStatus, Role
from .infrastructure.postgres import (
    DatabaseRouter,
    DatabaseRouterConfig,
    NoPoolAvailableError,
    PrimaryUnavailableError,
    QueryFailedError,
    QueryIntent,
    RouterSettings,
    RoutingDecision,
)
from .logger import LoggingConfig, bound_context, configure_logging, get_logger

__all__ = [
    "DatabaseRouter",
    "DatabaseRouterConfig",
    "HealthStatus",
    "LoggingConfig",
    "NoPoolAvailableError",
    "PrimaryUnavailableError",
    "QueryFailedError",
    "QueryIntent",
    "Role",
    "RouterSettings",
    "RoutingDecision",
    "bound_context",
    "configure_logging",
    "get_logger",
]
