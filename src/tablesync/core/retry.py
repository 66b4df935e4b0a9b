"""Reconnect retries with exponential backoff."""

from __future__ import annotations

import random
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterator, TypeVar

import structlog
from sqlalchemy.exc import DisconnectionError, OperationalError

from tablesync.core.exceptions import ConnectionError as SyncConnectionError
from tablesync.core.exceptions import RetryExhaustedError

logger = structlog.get_logger()

T = TypeVar("T")

# Errors a dropped or restarting database produces
RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    SyncConnectionError,
    OperationalError,
    DisconnectionError,
    OSError,
)


@dataclass
class RetryPolicy:
    """
    How often and how patiently to retry an operation.

    Delays grow by ``backoff_factor`` from ``initial_delay`` up to
    ``max_delay``; with ``jitter`` each delay is stretched by up to 100% so
    several tables reconnecting at once don't hit the server in lockstep.
    """

    max_attempts: int = 3
    initial_delay: float = 1.0
    backoff_factor: float = 2.0
    max_delay: float = 60.0
    jitter: bool = True
    retry_on: tuple[type[BaseException], ...] = RETRYABLE_ERRORS

    def delays(self) -> Iterator[float]:
        """Successive sleep times between attempts."""
        delay = self.initial_delay
        while True:
            actual = delay * (1 + random.random()) if self.jitter else delay
            yield min(actual, self.max_delay)
            delay = min(delay * self.backoff_factor, self.max_delay)

    def execute(
        self,
        func: Callable[[], T],
        description: str = "operation",
        log: Any | None = None,
    ) -> T:
        """
        Call ``func`` until it succeeds or the attempts run out.

        Args:
            func: Zero-argument callable to run
            description: What is being retried, for logs and errors
            log: Bound logger to report retries on

        Returns:
            Whatever ``func`` returns

        Raises:
            RetryExhaustedError: If every attempt failed with a retryable error
        """
        log = log or logger
        delays = self.delays()
        last_error: BaseException | None = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                return func()
            except self.retry_on as e:
                last_error = e
                if attempt == self.max_attempts:
                    break
                delay = next(delays)
                log.warning(
                    "Retrying",
                    operation=description,
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    delay_seconds=round(delay, 3),
                    error=str(e),
                )
                time.sleep(delay)

        raise RetryExhaustedError(
            f"{description} failed after {self.max_attempts} attempts",
            attempts=self.max_attempts,
            last_error=last_error,
        )

