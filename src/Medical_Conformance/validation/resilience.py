"""Resilience helpers for resource file I/O."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, Protocol, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ..observability.metrics import record_file_retry

_T = TypeVar("_T")


class RetryPolicy(Protocol):
    """Runs an awaitable operation, retrying transient failures."""

    async def execute(self, operation: Callable[[], Awaitable[_T]]) -> _T: ...


def is_transient_io_error(exc: BaseException) -> bool:
    """Return True for I/O failures worth retrying (locks, permission races).

    Missing paths and directory/file mix-ups never resolve on retry.
    """
    if not isinstance(exc, OSError):
        return False
    return not isinstance(exc, (FileNotFoundError, IsADirectoryError, NotADirectoryError))


class TenacityRetryPolicy:
    """Exponential backoff retry policy backed by ``tenacity``.

    With the defaults a failing read is attempted four times, sleeping 0.1s,
    0.2s and 0.4s between attempts.
    """

    def __init__(
        self,
        *,
        max_retries: int = 3,
        initial_delay_seconds: float = 0.1,
        max_delay_seconds: float = 5.0,
        retry_on: Callable[[BaseException], bool] = is_transient_io_error,
        logger: Any | None = None,
    ) -> None:
        self.max_retries = max(0, max_retries)
        self.initial_delay_seconds = max(0.0, initial_delay_seconds)
        self.max_delay_seconds = max_delay_seconds
        self._retry_on = retry_on
        self._logger = logger or structlog.get_logger(__name__)

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(
                multiplier=self.initial_delay_seconds,
                max=self.max_delay_seconds,
            ),
            retry=retry_if_exception(self._retry_on),
            before_sleep=self._before_sleep,
            reraise=True,
        )

    def _before_sleep(self, retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        error = outcome.exception() if outcome is not None else None
        record_file_retry()
        self._logger.warning(
            "validation.io.retry",
            attempt=retry_state.attempt_number,
            max_attempts=self.max_retries + 1,
            error_type=type(error).__name__ if error else None,
        )

    async def execute(self, operation: Callable[[], Awaitable[_T]]) -> _T:
        """Run ``operation`` and return its result, re-raising the last failure."""
        return await self._retrying()(operation)


__all__ = ["RetryPolicy", "TenacityRetryPolicy", "is_transient_io_error"]
