import time
import threading


class RateLimiter:
    """Enforces a minimum interval between sequential catalog calls.

    The first call never waits. An interval of 0 disables waiting, which is
    what tests and interactive (realtime) queries use.
    """

    def __init__(self, min_interval: float = 0.0, sleep=time.sleep, clock=time.monotonic):
        self.min_interval = min_interval
        self._sleep = sleep
        self._clock = clock
        self._last_call = None
        self._lock = threading.Lock()

    def wait(self):
        with self._lock:
            if self.min_interval > 0 and self._last_call is not None:
                elapsed = self._clock() - self._last_call
                if elapsed < self.min_interval:
                    self._sleep(self.min_interval - elapsed)
            self._last_call = self._clock()

    def reset(self):
        with self._lock:
            self._last_call = None


def no_delay() -> RateLimiter:
    """A limiter that never sleeps."""
    return RateLimiter(0.0)
