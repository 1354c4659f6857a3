import unittest
from concurrent.futures import ThreadPoolExecutor

from services.rate_limiter import AUTHENTICATION, CRUD_LIMITS, CRUD_WRITE, RateLimitConfig, RateLimitStore


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RateLimitConfigTests(unittest.TestCase):
    def test_rejects_non_positive_values(self):
        with self.assertRaises(ValueError):
            RateLimitConfig(max_attempts=0, window_ms=1000)
        with self.assertRaises(ValueError):
            RateLimitConfig(max_attempts=5, window_ms=-1)

    def test_presets(self):
        self.assertEqual(AUTHENTICATION.max_attempts, 5)
        self.assertEqual(AUTHENTICATION.window_ms, 3_600_000)
        self.assertIs(CRUD_LIMITS["PATCH"], CRUD_WRITE)


class RateLimitStoreTests(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.store = RateLimitStore(clock=self.clock)
        self.config = RateLimitConfig(max_attempts=3, window_ms=60_000)

    def test_admits_up_to_max_then_rejects(self):
        decisions = [self.store.hit("caller", self.config) for _ in range(4)]
        self.assertEqual([d.allowed for d in decisions], [True, True, True, False])
        self.assertEqual([d.remaining for d in decisions], [2, 1, 0, 0])

    def test_rejection_reports_retry_after(self):
        for _ in range(3):
            self.store.hit("caller", self.config)
        self.clock.advance(10)
        decision = self.store.hit("caller", self.config)
        self.assertFalse(decision.allowed)
        self.assertEqual(decision.retry_after, 50)
        self.assertEqual(decision.limit, 3)

    def test_window_resets_after_elapsed(self):
        for _ in range(4):
            self.store.hit("caller", self.config)
        self.clock.advance(60)
        decision = self.store.hit("caller", self.config)
        self.assertTrue(decision.allowed)
        self.assertEqual(decision.remaining, 2)

    def test_keys_are_independent(self):
        for _ in range(3):
            self.store.hit("first", self.config)
        self.assertFalse(self.store.hit("first", self.config).allowed)
        self.assertTrue(self.store.hit("second", self.config).allowed)

    def test_concurrent_hits_admit_exactly_max(self):
        config = RateLimitConfig(max_attempts=25, window_ms=60_000)
        with ThreadPoolExecutor(max_workers=16) as pool:
            decisions = list(pool.map(lambda _: self.store.hit("shared", config), range(50)))
        self.assertEqual(sum(1 for d in decisions if d.allowed), 25)

    def test_expired_windows_are_purged_past_threshold(self):
        store = RateLimitStore(clock=self.clock, purge_threshold=2)
        short = RateLimitConfig(max_attempts=1, window_ms=1_000)
        store.hit("a", short)
        store.hit("b", short)
        self.clock.advance(5)
        store.hit("c", short)
        self.assertEqual(len(store), 1)

    def test_reset_clears_state(self):
        for _ in range(4):
            self.store.hit("caller", self.config)
        self.store.reset()
        self.assertEqual(len(self.store), 0)
        self.assertTrue(self.store.hit("caller", self.config).allowed)


if __name__ == "__main__":
    unittest.main()
