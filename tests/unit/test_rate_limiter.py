"""tests for the sliding-window rate limiter"""

import threading
import unittest
from concurrent.futures import ThreadPoolExecutor

from guardian.rate_limiter import RateLimit, RateLimiter

from tests.conftest import FakeClock


class TestRateLimiter(unittest.TestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.limiter = RateLimiter(clock=self.clock)

    def test_admits_up_to_limit(self):
        limit = RateLimit(max_calls=3, window_seconds=60)
        results = [self.limiter.try_acquire("triage", limit) for _ in range(4)]
        self.assertEqual(results, [True, True, True, False])
        self.assertEqual(self.limiter.current_count("triage"), 3)

    def test_window_slides(self):
        limit = RateLimit(max_calls=2, window_seconds=60)
        self.assertTrue(self.limiter.try_acquire("k", limit))
        self.clock.advance(30)
        self.assertTrue(self.limiter.try_acquire("k", limit))
        self.assertFalse(self.limiter.try_acquire("k", limit))
        self.clock.advance(30)
        # first timestamp is now exactly one window old
        self.assertTrue(self.limiter.try_acquire("k", limit))

    def test_rejected_call_not_recorded(self):
        limit = RateLimit(max_calls=1, window_seconds=10)
        self.limiter.try_acquire("k", limit)
        for _ in range(5):
            self.limiter.try_acquire("k", limit)
        self.assertEqual(self.limiter.current_count("k", window_seconds=10), 1)

    def test_keys_independent(self):
        limit = RateLimit(max_calls=1)
        self.assertTrue(self.limiter.try_acquire("goplus", limit))
        self.assertTrue(self.limiter.try_acquire("forta", limit))
        self.assertFalse(self.limiter.try_acquire("goplus", limit))

    def test_none_limit_is_unlimited(self):
        for _ in range(100):
            self.assertTrue(self.limiter.try_acquire("local", None))
        self.assertEqual(self.limiter.current_count("local"), 0)

    def test_reset(self):
        limit = RateLimit(max_calls=1)
        self.limiter.try_acquire("a", limit)
        self.limiter.try_acquire("b", limit)
        self.limiter.reset("a")
        self.assertTrue(self.limiter.try_acquire("a", limit))
        self.assertFalse(self.limiter.try_acquire("b", limit))
        self.limiter.reset()
        self.assertTrue(self.limiter.try_acquire("b", limit))

    def test_per_minute(self):
        limit = RateLimit.per_minute(60)
        self.assertEqual(limit.max_calls, 60)
        self.assertEqual(limit.window_seconds, 60.0)

    def test_concurrent_callers_never_exceed_limit(self):
        limiter = RateLimiter()
        limit = RateLimit(max_calls=25, window_seconds=60)
        workers = 16
        barrier = threading.Barrier(workers)

        def hammer():
            barrier.wait()
            return sum(limiter.try_acquire("triage", limit) for _ in range(5))

        with ThreadPoolExecutor(max_workers=workers) as executor:
            admitted = sum(executor.map(lambda _: hammer(), range(workers)))

        self.assertEqual(admitted, 25)
        self.assertEqual(limiter.current_count("triage"), 25)


if __name__ == "__main__":
    unittest.main()
