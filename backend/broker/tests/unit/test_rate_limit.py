from broker.server.rate_limit import TokenBucket


class TestTokenBucket:
    def test_burst_then_empty(self):
        bucket = TokenBucket(rate=1.0, burst=3)
        now = 1000.0
        bucket._last_refill = now

        assert [bucket.consume(now) for _ in range(4)] == [True, True, True, False]

    def test_refills_over_time(self):
        bucket = TokenBucket(rate=2.0, burst=2)
        now = 1000.0
        bucket._last_refill = now
        bucket.consume(now)
        bucket.consume(now)
        assert bucket.consume(now) is False

        assert bucket.consume(now + 0.5) is True
        assert bucket.consume(now + 0.5) is False

    def test_refill_capped_at_burst(self):
        bucket = TokenBucket(rate=10.0, burst=5)
        now = 1000.0
        bucket._last_refill = now

        bucket.consume(now + 60)

        assert bucket.tokens == 4
