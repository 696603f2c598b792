"""Bounded exponential backoff for fallible sync work"""

import time
from typing import Callable, Optional, TypeVar

import httpx
import psycopg2
from loguru import logger

from ..exceptions import MirrorWriteError


T = TypeVar("T")


def is_retryable_error(error: BaseException) -> bool:
    """Whether ``error`` looks transient (network, timeout, overloaded server)"""
    if isinstance(error, MirrorWriteError):
        return error.retryable
    if isinstance(error, (psycopg2.OperationalError, psycopg2.InterfaceError)):
        return True
    if isinstance(error, (httpx.TransportError, TimeoutError, ConnectionError)):
        return True
    return False


class RetryScheduler:
    """
    Runs an operation up to ``max_attempts`` times

    There is no delay before the first attempt. After failed attempt ``n``
    (counting from 0) the scheduler waits ``min(base_delay * 2**n, max_delay)``
    seconds. When attempts run out, or the error is not retryable, the last
    error is re-raised to the caller.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 10.0,
        should_retry: Callable[[BaseException], bool] = is_retryable_error,
        sleep: Callable[[float], None] = time.sleep
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.should_retry = should_retry
        self.sleep = sleep

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt ``attempt`` (0-based)"""
        return min(self.base_delay * (2 ** attempt), self.max_delay)

    def run(self, operation: Callable[[], T], description: Optional[str] = None) -> T:
        """
        Execute ``operation`` with retries

        Args:
            operation: Zero-argument callable doing the work
            description: Label used in log lines

        Returns:
            Whatever ``operation`` returns
        """
        label = description or getattr(operation, "__name__", "operation")

        for attempt in range(self.max_attempts):
            try:
                return operation()
            except Exception as e:
                if attempt + 1 >= self.max_attempts:
                    logger.error(f"Max retry attempts reached for {label}: {e}")
                    raise
                if not self.should_retry(e):
                    logger.debug(f"Not retrying {label}: {type(e).__name__} is not transient")
                    raise

                delay = self.delay_for(attempt)
                logger.warning(
                    f"Retrying {label} ({attempt + 1}/{self.max_attempts - 1}) "
                    f"in {delay:.1f}s after error: {e}"
                )
                self.sleep(delay)

        raise AssertionError("unreachable")
