#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
General utilities and helper classes for Trailhead Ingest.

Includes the self-healing Circuit Breaker, Retry Logic and the Performance Timer.
"""

import asyncio
import functools
import random
import time
from contextlib import contextmanager
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from config import config
from exceptions import CriticalError, TimeoutExceededError, TransientError
from logging_config import StructuredLogger

logger = StructuredLogger(__name__)

SleepFunc = Callable[[float], Awaitable[Any]]
ClockFunc = Callable[[], float]


# --- Circuit Breaker ---

class CircuitBreaker:
    """Counts consecutive rate-limit failures and pauses work once they pile up.

    State machine: closed -> open when the consecutive failure count reaches the
    threshold; open -> closed after the cooldown has been waited out through
    wait_if_open(). There is no half-open probing and no manual override: the
    caller blocks for the cooldown, then the breaker resets itself to
    0 failures / closed.

    The clock and sleep functions are injectable so tests can drive the
    cooldown without real waiting.
    """

    STATE_CLOSED = "closed"
    STATE_OPEN = "open"

    def __init__(self, name: str, failure_threshold: int = config.CIRCUIT_BREAKER_THRESHOLD,
                 cooldown_seconds: float = config.CIRCUIT_BREAKER_COOLDOWN_SECONDS,
                 clock: ClockFunc = time.monotonic, sleep: SleepFunc = asyncio.sleep):
        """Initialize a new circuit breaker.

        Args:
            name: Identifier used in log lines.
            failure_threshold: Consecutive failures that open the circuit.
            cooldown_seconds: Time the circuit stays open before resetting.
            clock: Monotonic clock returning seconds.
            sleep: Async sleep used for the cooldown wait.
        """
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        self.name = name
        self.failure_threshold = failure_threshold
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._sleep = sleep

        self._failures = 0
        self._state = self.STATE_CLOSED
        self._opened_at: Optional[float] = None
        self._trip_count = 0

        logger.debug(
            f"Circuit breaker '{name}' initialized",
            breaker_name=name,
            threshold=failure_threshold,
            cooldown=cooldown_seconds,
        )

    @property
    def state(self) -> str:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == self.STATE_OPEN

    @property
    def consecutive_failures(self) -> int:
        return self._failures

    @property
    def trip_count(self) -> int:
        """How many times the circuit opened since this breaker was created."""
        return self._trip_count

    def record_failure(self, reason: Optional[str] = None) -> bool:
        """Count one rate-limit failure.

        Returns:
            bool: True if this failure opened the circuit.
        """
        self._failures += 1
        logger.warning(
            f"Circuit breaker '{self.name}' recorded failure {self._failures}/{self.failure_threshold}",
            breaker_name=self.name,
            failure_count=self._failures,
            threshold=self.failure_threshold,
            error=reason,
        )

        if self._state == self.STATE_CLOSED and self._failures >= self.failure_threshold:
            self._state = self.STATE_OPEN
            self._opened_at = self._clock()
            self._trip_count += 1
            logger.error(
                f"Circuit breaker '{self.name}' opened after {self._failures} consecutive failures",
                exc_info=False,
                breaker_name=self.name,
                state=self.STATE_OPEN,
                cooldown=self.cooldown_seconds,
            )
            return True
        return False

    def record_success(self) -> None:
        """Reset the consecutive failure count."""
        if self._failures > 0:
            logger.info(
                f"Circuit breaker '{self.name}' resetting failure count after success",
                breaker_name=self.name,
                previous_failures=self._failures,
            )
        self._failures = 0

    async def wait_if_open(self) -> float:
        """Block for the rest of the cooldown if the circuit is open, then reset it.

        Returns:
            float: Seconds waited (0.0 when the circuit was closed).
        """
        if self._state != self.STATE_OPEN:
            return 0.0

        elapsed = self._clock() - (self._opened_at or 0.0)
        remaining = max(self.cooldown_seconds - elapsed, 0.0)
        logger.warning(
            f"Circuit breaker '{self.name}' open, waiting {remaining:.1f}s before resuming",
            breaker_name=self.name,
            wait_seconds=round(remaining, 2),
        )
        if remaining > 0:
            await self._sleep(remaining)

        self._reset()
        return remaining

    def _reset(self) -> None:
        self._state = self.STATE_CLOSED
        self._failures = 0
        self._opened_at = None
        logger.info(f"Circuit breaker '{self.name}' reset to closed", breaker_name=self.name)

    def get_stats(self) -> Dict[str, Any]:
        """Return the current status and statistics of the circuit breaker."""
        return {
            "name": self.name,
            "state": self._state,
            "failures": self._failures,
            "threshold": self.failure_threshold,
            "cooldown_seconds": self.cooldown_seconds,
            "trip_count": self._trip_count,
        }


# --- Retry Logic ---

class RetryableRequest:
    """Retry wrapper shared by the Data API client and the caption strategies.

    Backoff is exponential in the attempt number with a random jitter; the
    sleep is injectable so tests can record the delays instead of waiting.
    """

    @staticmethod
    async def execute_with_retry(
        func: Callable[..., Any],
        *args: Any,
        max_retries: int = config.API_RETRY_ATTEMPTS,
        base_delay_ms: int = config.API_RETRY_BASE_DELAY_MS,
        timeout_seconds: Optional[float] = config.API_TIMEOUT_SECONDS,
        retry_on_exceptions: Tuple[type, ...] = (TransientError,),
        jitter_factor: float = 0.5,
        operation_name: Optional[str] = None,
        sleep: SleepFunc = asyncio.sleep,
        **kwargs: Any
    ) -> Any:
        """Call func(*args, **kwargs) up to max_retries + 1 times.

        Coroutine functions are awaited; plain functions run in the default
        executor, since googleapiclient and youtube_transcript_api block.

        Args:
            func: Sync or async callable.
            max_retries: Extra attempts after the first one.
            base_delay_ms: Delay before the first retry; doubles per attempt.
            timeout_seconds: Per-attempt bound, None for no bound.
            retry_on_exceptions: Exception types worth another attempt.
            jitter_factor: Relative spread of the random jitter, 0 disables it.
            operation_name: Label for log lines (defaults to func.__name__).
            sleep: Async sleep used between attempts.

        Raises:
            CriticalError: At once, never retried.
            TimeoutExceededError: When the last attempt timed out.
            The last retryable error once attempts run out; any other error
            unchanged on first occurrence.
        """
        op_name = operation_name or getattr(func, "__name__", "unknown_operation")
        last_exception: Optional[Exception] = None

        for attempt in range(max_retries + 1):
            try:
                logger.debug(f"Attempt {attempt + 1}/{max_retries + 1} for operation '{op_name}'")
                if asyncio.iscoroutinefunction(func):
                    awaitable = func(*args, **kwargs)
                else:
                    loop = asyncio.get_running_loop()
                    awaitable = loop.run_in_executor(None, functools.partial(func, *args, **kwargs))
                return await asyncio.wait_for(awaitable, timeout=timeout_seconds)

            except asyncio.TimeoutError:
                last_exception = TimeoutExceededError(
                    f"Operation '{op_name}' timed out after {timeout_seconds} seconds on attempt {attempt + 1}"
                )
                logger.warning(
                    f"Timeout in '{op_name}' (attempt {attempt + 1}) after {timeout_seconds}s",
                    operation=op_name,
                    timeout=timeout_seconds,
                    attempt=attempt + 1,
                )

            except CriticalError:
                raise

            except retry_on_exceptions as e:
                last_exception = e
                logger.warning(
                    f"Retryable error in '{op_name}' (attempt {attempt + 1}): {type(e).__name__}",
                    operation=op_name,
                    attempt=attempt + 1,
                    error_type=type(e).__name__,
                    error_details=str(e),
                )

            if attempt < max_retries:
                delay_seconds = RetryableRequest.backoff_delay(attempt, base_delay_ms, jitter_factor)
                logger.info(
                    f"Retrying '{op_name}' in {delay_seconds:.2f} seconds (attempt {attempt + 2}/{max_retries + 1})",
                    operation=op_name,
                    delay_seconds=delay_seconds,
                    next_attempt=attempt + 2,
                )
                await sleep(delay_seconds)

        logger.warning(
            f"Operation '{op_name}' failed after {max_retries + 1} attempts.",
            operation=op_name,
            final_error_type=type(last_exception).__name__,
            final_error=str(last_exception),
        )
        raise last_exception

    @staticmethod
    def backoff_delay(attempt: int, base_delay_ms: int, jitter_factor: float = 0.5,
                      max_delay_seconds: float = 60.0) -> float:
        """Exponential backoff with jitter: base * 2**attempt * (1 +/- jitter)."""
        base_delay = base_delay_ms / 1000.0
        jitter = (random.random() * 2 - 1) * jitter_factor
        delay_seconds = base_delay * (2 ** attempt) * (1 + jitter)
        return max(0.1, min(delay_seconds, max_delay_seconds))


# --- Performance Timer ---

@contextmanager
def performance_timer(operation_name: str, threshold_ms: float = 100.0):
    """Time the enclosed block and log it: DEBUG under threshold_ms, INFO above,
    WARNING above ten times the threshold.
    """
    started = time.monotonic()
    try:
        yield
    finally:
        duration_ms = (time.monotonic() - started) * 1000
        log_data = {
            "operation": operation_name,
            "duration_ms": round(duration_ms, 2),
            "threshold_ms": threshold_ms,
        }

        if duration_ms > threshold_ms * 10:
            logger.warning(f"SLOW OPERATION: '{operation_name}' took {duration_ms:.2f}ms", **log_data)
        elif duration_ms > threshold_ms:
            logger.info(f"Performance watch: '{operation_name}' took {duration_ms:.2f}ms", **log_data)
        else:
            logger.debug(f"Performance: '{operation_name}' completed in {duration_ms:.2f}ms", **log_data)


def chunked(items, size: int):
    """Yield successive lists of at most `size` items."""
    if size < 1:
        raise ValueError("size must be at least 1")
    items = list(items)
    for start in range(0, len(items), size):
        yield items[start:start + size]
