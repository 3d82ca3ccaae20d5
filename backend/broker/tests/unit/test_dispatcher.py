import asyncio

from broker.messaging.dispatcher import InboundDispatcher


class TestInboundDispatcher:
    async def test_jobs_run_in_submission_order(self):
        dispatcher = InboundDispatcher()
        dispatcher.start()
        seen: list[int] = []

        def job(n):
            async def run():
                # Yield mid-job: the next job must still wait for this one.
                await asyncio.sleep(0)
                seen.append(n)

            return run

        for n in range(5):
            dispatcher.submit(job(n))
        await dispatcher.call(job(99))

        assert seen == [0, 1, 2, 3, 4, 99]
        await dispatcher.stop()

    async def test_failing_job_does_not_stop_consumer(self):
        dispatcher = InboundDispatcher()
        dispatcher.start()
        seen: list[str] = []

        async def boom():
            raise RuntimeError("boom")

        async def ok():
            seen.append("ok")

        dispatcher.submit(boom, name="boom")
        await dispatcher.call(ok)

        assert seen == ["ok"]
        assert dispatcher.processed == 2
        assert dispatcher.running
        await dispatcher.stop()

    async def test_call_swallows_job_errors(self):
        dispatcher = InboundDispatcher()
        dispatcher.start()

        async def boom():
            raise ValueError("bad")

        await dispatcher.call(boom)

        assert dispatcher.processed == 1
        await dispatcher.stop()

    async def test_stop_drains_queue(self):
        dispatcher = InboundDispatcher()
        dispatcher.start()
        seen: list[int] = []

        async def record():
            seen.append(1)

        dispatcher.submit(record)
        dispatcher.submit(record)
        await dispatcher.stop()

        assert seen == [1, 1]
        assert not dispatcher.running

    async def test_start_is_idempotent(self):
        dispatcher = InboundDispatcher()
        dispatcher.start()
        dispatcher.start()

        assert dispatcher.running
        await dispatcher.stop()
        await dispatcher.stop()

    async def test_every_submits_periodically(self):
        dispatcher = InboundDispatcher()
        dispatcher.start()
        ticked = asyncio.Event()

        async def tick():
            ticked.set()

        dispatcher.every(0.01, tick, name="tick")
        await asyncio.wait_for(ticked.wait(), timeout=2)

        await dispatcher.stop()
        assert not dispatcher.running
