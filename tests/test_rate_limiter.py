import unittest

from token_admission_bundle.admission.rate_limiter import RateLimiter, client_id_from_headers


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class RateLimiterTests(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.limiter = RateLimiter(max_requests=50, window_seconds=3600, clock=self.clock)

    def test_fifty_first_request_rejected(self):
        for _ in range(50):
            self.assertTrue(self.limiter.allow("1.2.3.4"))
        self.assertFalse(self.limiter.allow("1.2.3.4"))
        # rejections do not touch the count
        self.assertEqual(self.limiter.window_for("1.2.3.4").count, 50)

    def test_first_request_after_reset_starts_new_window(self):
        for _ in range(51):
            self.limiter.allow("1.2.3.4")
        reset_at = self.limiter.window_for("1.2.3.4").reset_at

        self.clock.now = reset_at  # still inside the window
        self.assertFalse(self.limiter.allow("1.2.3.4"))

        self.clock.now = reset_at + 0.001
        self.assertTrue(self.limiter.allow("1.2.3.4"))
        window = self.limiter.window_for("1.2.3.4")
        self.assertEqual(window.count, 1)
        self.assertAlmostEqual(window.reset_at, self.clock.now + 3600)

    def test_clients_are_independent(self):
        for _ in range(50):
            self.limiter.allow("a")
        self.assertFalse(self.limiter.allow("a"))
        self.assertTrue(self.limiter.allow("b"))

    def test_prune_drops_expired_windows(self):
        self.limiter.allow("a")
        self.clock.now += 10
        self.limiter.allow("b")
        self.assertEqual(self.limiter.prune(now=1_000.0 + 3600 + 1), 1)
        self.assertIsNone(self.limiter.window_for("a"))
        self.assertIsNotNone(self.limiter.window_for("b"))


class ClientIdTests(unittest.TestCase):
    def test_first_forwarded_entry(self):
        self.assertEqual(client_id_from_headers({"X-Forwarded-For": "9.9.9.9, 10.0.0.1"}), "9.9.9.9")

    def test_missing_header_is_unknown(self):
        self.assertEqual(client_id_from_headers({}), "unknown")
        self.assertEqual(client_id_from_headers({"X-Forwarded-For": " "}), "unknown")


if __name__ == "__main__":
    unittest.main()
