from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class RetryConfig(BaseModel):
    """Retry policy for a single routed query.

    The router builds one of these per call: reads get two attempts, writes
    get one. ``wait_max=0`` disables backoff between attempts.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    max_attempts: int = Field(default=2, ge=1, le=2, description="Maximum attempts, including the first one")
    wait_min: float = Field(default=0.0, ge=0, description="Minimum wait time in seconds")
    wait_max: float = Field(default=0.0, ge=0, description="Maximum wait time in seconds")
    exp_base: float = Field(default=2.0, ge=1, description="Exponential base for jittered backoff")

    retry_on_exceptions: tuple[type[Exception], ...] = Field(
        default=(), description="Exception types that trigger a retry (empty = never retry)"
    )

    reraise: bool = Field(default=True, description="Reraise the last exception after all attempts fail")
