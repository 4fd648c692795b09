#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Request pacing for transcript extraction.

Spaces extraction attempts with a delay that grows with the batch number, the
position inside the batch and the current run of rate-limit failures, feeds
extraction outcomes into the circuit breaker and applies the jittered pause
between batches.
"""

import asyncio
import random
import time
from dataclasses import dataclass
from typing import Optional

from config import Config, config as default_config
from logging_config import StructuredLogger
from models import TranscriptResult
from utils import CircuitBreaker, ClockFunc, SleepFunc

logger = StructuredLogger(__name__)

RATE_LIMIT_KEYWORDS = ("captcha", "too many requests", "429", "rate limit", "blocked")


def is_rate_limit_signal(result: TranscriptResult) -> bool:
    """Tell whether a failed extraction looks like provider throttling.

    True when the result carries the rate_limited flag, or when its error
    message contains one of the blocking keywords. Successful results and
    content extracts are never a signal.
    """
    if not result.is_failed:
        return False
    if result.rate_limited:
        return True
    message = (result.error or "").lower()
    return any(keyword in message for keyword in RATE_LIMIT_KEYWORDS)


@dataclass(frozen=True)
class PacingPolicy:
    """Delay parameters for one extraction run, all in seconds."""

    base_delay: float = 25.0
    batch_step: float = 5.0
    position_step: float = 8.0
    failure_penalty: float = 10.0
    max_delay: float = 180.0
    batch_size: int = 3
    inter_batch_delay: float = 45.0
    inter_batch_jitter: float = 15.0
    breaker_threshold: int = 5
    breaker_cooldown: float = 60.0

    @classmethod
    def from_config(cls, cfg: Optional[Config] = None) -> "PacingPolicy":
        cfg = cfg or default_config
        return cls(
            base_delay=cfg.PACING_BASE_DELAY_SECONDS,
            batch_step=cfg.PACING_BATCH_STEP_SECONDS,
            position_step=cfg.PACING_POSITION_STEP_SECONDS,
            failure_penalty=cfg.PACING_FAILURE_PENALTY_SECONDS,
            max_delay=cfg.PACING_MAX_DELAY_SECONDS,
            batch_size=max(int(cfg.PACING_BATCH_SIZE), 1),
            inter_batch_delay=cfg.PACING_INTER_BATCH_DELAY_SECONDS,
            inter_batch_jitter=cfg.PACING_INTER_BATCH_JITTER_SECONDS,
            breaker_threshold=max(int(cfg.CIRCUIT_BREAKER_THRESHOLD), 1),
            breaker_cooldown=cfg.CIRCUIT_BREAKER_COOLDOWN_SECONDS,
        )

    @classmethod
    def immediate(cls, **overrides) -> "PacingPolicy":
        """Policy with every delay at zero (tests, dry runs)."""
        values = dict(base_delay=0.0, batch_step=0.0, position_step=0.0, failure_penalty=0.0,
                      max_delay=0.0, inter_batch_delay=0.0, inter_batch_jitter=0.0,
                      breaker_cooldown=0.0)
        values.update(overrides)
        return cls(**values)

    def attempt_delay(self, batch_number: int, position: int, consecutive_failures: int) -> float:
        """Delay before an attempt, capped at max_delay."""
        delay = (self.base_delay
                 + batch_number * self.batch_step
                 + position * self.position_step
                 + consecutive_failures * self.failure_penalty)
        return min(delay, self.max_delay)


class RateLimiter:
    """Applies a PacingPolicy and owns the circuit breaker of one run."""

    def __init__(self, policy: Optional[PacingPolicy] = None, sleep: SleepFunc = asyncio.sleep,
                 clock: ClockFunc = time.monotonic, rng: Optional[random.Random] = None,
                 name: str = "transcripts"):
        self.policy = policy or PacingPolicy.from_config()
        self._sleep = sleep
        self._rng = rng or random.Random()
        self.breaker = CircuitBreaker(
            name,
            failure_threshold=self.policy.breaker_threshold,
            cooldown_seconds=self.policy.breaker_cooldown,
            clock=clock,
            sleep=sleep,
        )

    @property
    def tripped(self) -> bool:
        """True if the breaker opened at least once during this run."""
        return self.breaker.trip_count > 0

    async def before_attempt(self, attempt_index: int, batch_number: int, position: int) -> float:
        """Wait before the attempt_index-th extraction of the run.

        Waits out an open circuit first, then the per-attempt delay. The first
        attempt of a run gets no per-attempt delay.

        Returns:
            float: Total seconds waited.
        """
        waited = await self.breaker.wait_if_open()
        if attempt_index <= 0:
            return waited

        delay = self.policy.attempt_delay(batch_number, position, self.breaker.consecutive_failures)
        if delay > 0:
            logger.debug(
                f"Pacing: waiting {delay:.1f}s before attempt {attempt_index + 1}",
                batch=batch_number,
                position=position,
                failures=self.breaker.consecutive_failures,
            )
            await self._sleep(delay)
        return waited + delay

    async def between_batches(self) -> float:
        """Wait the inter-batch delay plus a uniform random jitter."""
        delay = self.policy.inter_batch_delay + self._rng.uniform(0, self.policy.inter_batch_jitter)
        if delay > 0:
            logger.info(f"Pausing {delay:.1f}s between batches")
            await self._sleep(delay)
        return delay

    def record(self, result: TranscriptResult) -> bool:
        """Feed one extraction outcome into the breaker.

        Real transcripts and content extracts reset the failure count, rate-limit
        signals increase it, other failures leave it unchanged.

        Returns:
            bool: True if the result was a rate-limit signal.
        """
        if not result.is_failed:
            self.breaker.record_success()
            return False
        if is_rate_limit_signal(result):
            self.breaker.record_failure(result.error)
            return True
        return False
