"""Single-consumer work queue that serializes all broker state mutations.

Every WebSocket receive loop and every periodic timer submits work here
instead of touching broker state directly. One task drains the queue, so
two handlers never interleave, even across their own awaits on transport
sends.
"""

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

import structlog

logger = structlog.get_logger()

Job = Callable[[], Awaitable[None]]


@dataclass
class _Work:
    job: Job
    name: str
    done: asyncio.Future[None] | None = field(default=None)


class InboundDispatcher:
    def __init__(self) -> None:
        self._queue: asyncio.Queue[_Work | None] = asyncio.Queue()
        self._consumer: asyncio.Task[None] | None = None
        self._periodic: list[asyncio.Task[None]] = []
        self.processed = 0

    @property
    def running(self) -> bool:
        return self._consumer is not None and not self._consumer.done()

    def start(self) -> None:
        """Start the consumer task. Idempotent."""
        if self.running:
            return
        self._consumer = asyncio.create_task(self._consume(), name="inbound-dispatcher")

    async def stop(self) -> None:
        """Stop periodic timers, drain queued work, then stop the consumer."""
        for task in self._periodic:
            task.cancel()
        for task in self._periodic:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._periodic.clear()

        if self._consumer is None:
            return
        if not self._consumer.done():
            await self._queue.put(None)
            with contextlib.suppress(asyncio.CancelledError):
                await self._consumer
        self._consumer = None

    def submit(self, job: Job, *, name: str = "job") -> None:
        """Enqueue work without waiting for it."""
        self._queue.put_nowait(_Work(job=job, name=name))

    async def call(self, job: Job, *, name: str = "job") -> None:
        """Enqueue work and wait until the consumer has run it.

        Exceptions raised by the job are logged by the consumer, not
        propagated to the caller.
        """
        done: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._queue.put_nowait(_Work(job=job, name=name, done=done))
        await done

    def every(self, interval: float, job: Job, *, name: str) -> None:
        """Submit ``job`` every ``interval`` seconds until stop()."""
        self._periodic.append(asyncio.create_task(self._tick(interval, job, name), name=f"every:{name}"))

    async def _tick(self, interval: float, job: Job, name: str) -> None:
        while True:
            await asyncio.sleep(interval)
            self.submit(job, name=name)

    async def _consume(self) -> None:
        while True:
            work = await self._queue.get()
            if work is None:
                return
            try:
                await work.job()
            except Exception:
                logger.exception("dispatched job failed", job=work.name)
            finally:
                self.processed += 1
                if work.done is not None and not work.done.done():
                    work.done.set_result(None)
