from __future__ import annotations

from collections.abc import Awaitable, Callable

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    retry_never,
    stop_after_attempt,
    wait_none,
    wait_random_exponential,
)
from tenacity.retry import retry_base
from tenacity.wait import wait_base

from .config import RetryConfig

type BeforeSleepCallback = Callable[[RetryCallState], Awaitable[None] | None]


class RetryLogicError(RuntimeError): ...


def _build_retry_condition(config: RetryConfig) -> retry_base:
    if not config.retry_on_exceptions:
        return retry_never
    return retry_if_exception_type(config.retry_on_exceptions)


def _build_wait(config: RetryConfig) -> wait_base:
    if config.wait_max == 0:
        return wait_none()
    # NOTE: Full Jitter from https://aws.amazon.com/blogs/architecture/exponential-backoff-and-jitter/
    return wait_random_exponential(min=config.wait_min, max=config.wait_max, exp_base=config.exp_base)


def build_async_retrying(
    config: RetryConfig,
    before_sleep: BeforeSleepCallback | None = None,
) -> AsyncRetrying:
    """Build a fresh ``AsyncRetrying`` controller for one call.

    Use as::

        async for attempt in build_async_retrying(config):
            with attempt:
                ...
    """
    return AsyncRetrying(
        stop=stop_after_attempt(config.max_attempts),
        wait=_build_wait(config),
        retry=_build_retry_condition(config),
        before_sleep=before_sleep,
        reraise=config.reraise,
    )
