# learning_assistant_API/app/core/RateLimiting/Rate_Limit.py
# Description: In-process fixed-window rate limiting for the learning assistant endpoint
#
# Imports
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional
#
# 3rd-party Libraries
from loguru import logger
#
#######################################################################################################################
#
# Functions:

# --- keyspaces ------------------------------------------------------------- #
REQUEST_NAMESPACE = "req"       # whole endpoint, per client
SEARCH_NAMESPACE = "search"     # retrieval-triggering chat path, per client


@dataclass
class RateWindow:
    count: int
    reset_at: float


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    retry_after_seconds: int = 0


class FixedWindowRateLimiter:
    """
    Per-key fixed-window request counter.

    A key's window opens on its first request and lasts ``window_seconds``.
    Requests inside the window are counted; once ``now >= reset_at`` the next
    request opens a fresh window. Windows are never deleted, so memory grows
    with the number of distinct keys seen.
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._clock = clock or time.monotonic
        self._windows: Dict[str, RateWindow] = {}
        self._lock = threading.Lock()

    def check(self, key: str, max_count: int, window_seconds: float) -> RateLimitDecision:
        with self._lock:
            now = self._clock()
            window = self._windows.get(key)
            if window is None or now >= window.reset_at:
                self._windows[key] = RateWindow(count=1, reset_at=now + window_seconds)
                return RateLimitDecision(allowed=True)

            window.count += 1
            if window.count <= max_count:
                return RateLimitDecision(allowed=True)

            retry_after = max(1, math.ceil(window.reset_at - now))

        logger.info(f"Rate limit exceeded for {key}; retry in {retry_after}s")
        return RateLimitDecision(allowed=False, retry_after_seconds=retry_after)

    def window_count(self, key: str) -> int:
        with self._lock:
            window = self._windows.get(key)
            return window.count if window else 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()


def limiter_key(namespace: str, client_id: str) -> str:
    return f"{namespace}:{client_id}"

#
# End of Rate_Limit.py
#######################################################################################################################
