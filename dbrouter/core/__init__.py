"""Core module exports."""

from __future__ import annotations

from .enums import HealthStatus, Role

__all__ = [
    "HealthStatus",
    "Role",
]
