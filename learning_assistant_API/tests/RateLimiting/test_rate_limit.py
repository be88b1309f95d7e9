# test_rate_limit.py
# Description: Unit tests for the fixed-window rate limiter
#
# Imports
import threading
#
# 3rd-party Libraries
import pytest
#
# Local Imports
from learning_assistant_API.app.core.RateLimiting.Rate_Limit import (
    REQUEST_NAMESPACE,
    SEARCH_NAMESPACE,
    FixedWindowRateLimiter,
    limiter_key,
)
#
#######################################################################################################################
#
# Tests:


@pytest.mark.unit
class TestFixedWindowRateLimiter:
    def test_exactly_max_count_requests_are_allowed(self, fake_clock):
        limiter = FixedWindowRateLimiter(clock=fake_clock)

        decisions = [limiter.check("req:1.2.3.4", 3, 60) for _ in range(3)]
        denied = limiter.check("req:1.2.3.4", 3, 60)

        assert all(decision.allowed for decision in decisions)
        assert denied.allowed is False
        assert denied.retry_after_seconds == 60

    def test_retry_after_is_rounded_up_and_at_least_one(self, fake_clock):
        limiter = FixedWindowRateLimiter(clock=fake_clock)
        limiter.check("k", 1, 60)

        fake_clock.advance(30.2)
        assert limiter.check("k", 1, 60).retry_after_seconds == 30

        fake_clock.advance(29.5)
        assert limiter.check("k", 1, 60).retry_after_seconds == 1

    def test_window_resets(self, fake_clock):
        limiter = FixedWindowRateLimiter(clock=fake_clock)
        limiter.check("k", 1, 60)
        assert limiter.check("k", 1, 60).allowed is False

        fake_clock.advance(60)

        assert limiter.check("k", 1, 60).allowed is True
        assert limiter.window_count("k") == 1

    def test_keys_are_independent(self, fake_clock):
        limiter = FixedWindowRateLimiter(clock=fake_clock)
        request_key = limiter_key(REQUEST_NAMESPACE, "1.2.3.4")
        search_key = limiter_key(SEARCH_NAMESPACE, "1.2.3.4")

        limiter.check(request_key, 1, 60)

        assert limiter.check(request_key, 1, 60).allowed is False
        assert limiter.check(search_key, 1, 60).allowed is True
        assert limiter.check(limiter_key(REQUEST_NAMESPACE, "5.6.7.8"), 1, 60).allowed is True
        assert len(limiter) == 3

    def test_limiter_key(self):
        assert limiter_key(REQUEST_NAMESPACE, "unknown") == "req:unknown"
        assert limiter_key(SEARCH_NAMESPACE, "10.0.0.1") == "search:10.0.0.1"

    def test_reset(self, fake_clock):
        limiter = FixedWindowRateLimiter(clock=fake_clock)
        limiter.check("k", 1, 60)
        limiter.reset()

        assert len(limiter) == 0
        assert limiter.window_count("k") == 0

    def test_concurrent_checks_never_overshoot(self):
        limiter = FixedWindowRateLimiter()
        allowed = []
        lock = threading.Lock()

        def worker():
            for _ in range(50):
                decision = limiter.check("shared", 100, 3600)
                if decision.allowed:
                    with lock:
                        allowed.append(1)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(allowed) == 100

#
# End of test_rate_limit.py
#######################################################################################################################
