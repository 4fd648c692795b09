"""
Tests for request pacing and the rate-limit signal.
"""
import unittest
import sys
import os
import random

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))

from config import Config
from models import ExtractionMethod, TranscriptResult
from services.pacing import PacingPolicy, RateLimiter, is_rate_limit_signal
from fakes import FakeClock, RecordingSleep


class TestRateLimitSignal(unittest.TestCase):

    def test_flagged_failure(self):
        self.assertTrue(is_rate_limit_signal(TranscriptResult.failed("blocked", rate_limited=True)))

    def test_keywords(self):
        for message in ("HTTP 429 received", "Please solve the CAPTCHA", "Too Many Requests", "rate limit hit"):
            self.assertTrue(is_rate_limit_signal(TranscriptResult.failed(message)), message)

    def test_other_failures(self):
        self.assertFalse(is_rate_limit_signal(TranscriptResult.failed("video unavailable")))

    def test_successes_are_never_signals(self):
        self.assertFalse(is_rate_limit_signal(TranscriptResult.real("text", ExtractionMethod.DIRECT)))
        self.assertFalse(is_rate_limit_signal(
            TranscriptResult.content_extract("Title: x", ExtractionMethod.CONTENT_EXTRACT, error="429")))


class TestPacingPolicy(unittest.TestCase):

    def test_attempt_delay_formula(self):
        policy = PacingPolicy()
        self.assertEqual(policy.attempt_delay(0, 0, 0), 25.0)
        # 25 + 2*5 + 1*8 + 1*10
        self.assertEqual(policy.attempt_delay(2, 1, 1), 53.0)

    def test_attempt_delay_cap(self):
        self.assertEqual(PacingPolicy().attempt_delay(10, 2, 20), 180.0)

    def test_from_config(self):
        cfg = Config(load_from_env=False)
        cfg.PACING_BATCH_SIZE = 0
        cfg.PACING_BASE_DELAY_SECONDS = 7.0
        policy = PacingPolicy.from_config(cfg)
        self.assertEqual(policy.batch_size, 1)
        self.assertEqual(policy.base_delay, 7.0)
        self.assertEqual(policy.breaker_threshold, 5)

    def test_immediate(self):
        policy = PacingPolicy.immediate(breaker_threshold=2)
        self.assertEqual(policy.attempt_delay(3, 2, 4), 0.0)
        self.assertEqual(policy.breaker_threshold, 2)


class TestRateLimiter(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.sleep = RecordingSleep(self.clock)
        self.policy = PacingPolicy(breaker_threshold=2, breaker_cooldown=60.0)
        self.limiter = RateLimiter(self.policy, sleep=self.sleep, clock=self.clock, rng=random.Random(7))

    async def test_first_attempt_not_delayed(self):
        self.assertEqual(await self.limiter.before_attempt(0, 0, 0), 0.0)
        self.assertEqual(self.sleep.calls, [])

    async def test_attempt_delay_includes_failures(self):
        self.limiter.record(TranscriptResult.failed("429 Too Many Requests"))
        waited = await self.limiter.before_attempt(4, 1, 1)
        self.assertEqual(waited, 25 + 5 + 8 + 10)
        self.assertEqual(self.sleep.calls, [48.0])

    async def test_between_batches_jitter_range(self):
        for _ in range(20):
            delay = await self.limiter.between_batches()
            self.assertGreaterEqual(delay, 45.0)
            self.assertLessEqual(delay, 60.0)

    async def test_breaker_trips_and_waits_cooldown(self):
        self.assertTrue(self.limiter.record(TranscriptResult.failed("blocked", rate_limited=True)))
        self.limiter.record(TranscriptResult.failed("blocked", rate_limited=True))
        self.assertTrue(self.limiter.tripped)
        self.assertTrue(self.limiter.breaker.is_open)

        waited = await self.limiter.before_attempt(2, 0, 2)
        # Full cooldown, then the attempt delay with the failure count reset
        self.assertEqual(self.sleep.calls, [60.0, 25.0 + 2 * 8.0])
        self.assertEqual(waited, 60.0 + 41.0)
        self.assertFalse(self.limiter.breaker.is_open)
        self.assertTrue(self.limiter.tripped)

    def test_success_resets_and_plain_failure_is_neutral(self):
        self.limiter.record(TranscriptResult.failed("too many requests"))
        self.assertFalse(self.limiter.record(TranscriptResult.failed("video private")))
        self.assertEqual(self.limiter.breaker.consecutive_failures, 1)
        self.limiter.record(TranscriptResult.real("text", ExtractionMethod.AUTO_CAPTIONS))
        self.assertEqual(self.limiter.breaker.consecutive_failures, 0)


if __name__ == '__main__':
    unittest.main()
