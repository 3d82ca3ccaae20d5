"""Token bucket rate limiter for inbound socket messages."""

import time


class TokenBucket:
    """Tokens refill at ``rate`` per second up to ``burst``.

    consume() takes one token and returns False once the bucket is empty.
    """

    def __init__(self, rate: float, burst: int) -> None:
        self._rate = rate
        self._burst = burst
        self._tokens = float(burst)
        self._last_refill = time.monotonic()

    @property
    def tokens(self) -> float:
        return self._tokens

    def consume(self, now: float | None = None) -> bool:
        now = time.monotonic() if now is None else now
        self._tokens = min(self._burst, self._tokens + (now - self._last_refill) * self._rate)
        self._last_refill = now
        if self._tokens < 1.0:
            return False
        self._tokens -= 1.0
        return True
