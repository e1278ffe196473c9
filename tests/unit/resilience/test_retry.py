from __future__ import annotations

import pytest
from pydantic import ValidationError
from tenacity import RetryCallState

from dbrouter.resilience import RetryConfig, build_async_retrying


@pytest.fixture
def no_retry_config() -> RetryConfig:
    return RetryConfig(max_attempts=1)


@pytest.fixture
def connection_retry_config() -> RetryConfig:
    return RetryConfig(max_attempts=2, retry_on_exceptions=(ConnectionError, TimeoutError))


async def _run(config: RetryConfig, outcomes: list[BaseException | str], before_sleep=None) -> tuple[str, int]:
    calls = 0
    async for attempt in build_async_retrying(config, before_sleep=before_sleep):
        with attempt:
            outcome = outcomes[calls]
            calls += 1
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome, calls
    raise AssertionError("unreachable")


class TestBuildAsyncRetrying:
    """Test the per-call retry controller."""

    @pytest.mark.asyncio
    async def test_succeeds_without_retry_when_no_error(self, connection_retry_config: RetryConfig) -> None:
        """Verify a successful first attempt is not repeated.

        Arrange
        -------
        - A policy that retries on ConnectionError
        - An operation that succeeds

        Act
        ---
        - Run the operation through the controller

        Assert
        ------
        - Result is returned after exactly one attempt
        """
        result, calls = await _run(connection_retry_config, ["success"])

        assert result == "success"
        assert calls == 1

    @pytest.mark.asyncio
    async def test_retries_once_on_configured_exception(self, connection_retry_config: RetryConfig) -> None:
        result, calls = await _run(connection_retry_config, [ConnectionError("reset"), "recovered"])

        assert result == "recovered"
        assert calls == 2

    @pytest.mark.asyncio
    async def test_reraises_after_max_attempts(self, connection_retry_config: RetryConfig) -> None:
        """Verify the original exception surfaces once attempts are exhausted.

        Arrange
        -------
        - A two-attempt policy
        - An operation that fails with TimeoutError every time

        Act
        ---
        - Run the operation

        Assert
        ------
        - The second TimeoutError is raised, not a tenacity RetryError
        """
        with pytest.raises(TimeoutError, match="second"):
            await _run(connection_retry_config, [TimeoutError("first"), TimeoutError("second"), "never"])

    @pytest.mark.asyncio
    async def test_does_not_retry_unlisted_exception(self, connection_retry_config: RetryConfig) -> None:
        with pytest.raises(ValueError, match="bad input"):
            await _run(connection_retry_config, [ValueError("bad input"), "never"])

    @pytest.mark.asyncio
    async def test_empty_exception_tuple_never_retries(self) -> None:
        config = RetryConfig(max_attempts=2)

        with pytest.raises(ConnectionError):
            await _run(config, [ConnectionError("reset"), "never"])

    @pytest.mark.asyncio
    async def test_single_attempt_policy(self, no_retry_config: RetryConfig) -> None:
        with pytest.raises(ConnectionError):
            await _run(no_retry_config, [ConnectionError("reset"), "never"])

    @pytest.mark.asyncio
    async def test_before_sleep_called_between_attempts(self, connection_retry_config: RetryConfig) -> None:
        seen: list[int] = []

        def record(retry_state: RetryCallState) -> None:
            seen.append(retry_state.attempt_number)

        await _run(connection_retry_config, [ConnectionError("reset"), "ok"], before_sleep=record)

        assert seen == [1]


class TestRetryConfig:
    """Validation of retry policy bounds."""

    def test_defaults(self) -> None:
        config = RetryConfig()

        assert config.max_attempts == 2
        assert config.wait_max == 0.0
        assert config.retry_on_exceptions == ()
        assert config.reraise is True

    @pytest.mark.parametrize("attempts", [0, 3])
    def test_attempts_bounded_to_one_retry(self, attempts: int) -> None:
        with pytest.raises(ValidationError):
            RetryConfig(max_attempts=attempts)

    def test_frozen(self) -> None:
        config = RetryConfig()

        with pytest.raises(ValidationError):
            config.max_attempts = 1  # type: ignore[misc]
