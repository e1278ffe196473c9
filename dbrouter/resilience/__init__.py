from __future__ import annotations

from .config import RetryConfig
from .retry import RetryLogicError, build_async_retrying

__all__ = [
    "RetryConfig",
    "RetryLogicError",
    "build_async_retrying",
]
