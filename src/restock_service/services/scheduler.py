"""Fixed-interval background runner for the queue processor."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from restock_service.services.authorization import IdentityProvider
from restock_service.services.queue_processor import QueueProcessor
from shared.constants import DEFAULT_POLL_INTERVAL_SECONDS

logger = structlog.get_logger()


class QueueScheduler:
    """
    Runs ``QueueProcessor.run`` every ``interval_seconds``.

    With ``process_queue=False`` the processor is left to another owner (the
    Celery beat schedule) and only ``after_tick`` runs. ``stop()`` prevents any
    further ticks but lets an in-flight one finish; it returns once the
    background task has exited.
    """

    def __init__(
        self,
        processor: QueueProcessor,
        identity_provider: IdentityProvider,
        interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        process_queue: bool = True,
        after_tick: Callable[[], Awaitable[Any]] | None = None,
    ):
        self.processor = processor
        self.identity_provider = identity_provider
        self.interval_seconds = interval_seconds
        self.process_queue = process_queue
        self.after_tick = after_tick
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()
        self.runs = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stopping = asyncio.Event()
        self._task = asyncio.create_task(self._loop(), name="restock-queue-scheduler")
        logger.info(
            "Queue scheduler started",
            interval_seconds=self.interval_seconds,
            process_queue=self.process_queue,
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stopping.set()
        task, self._task = self._task, None
        await task
        logger.info("Queue scheduler stopped", runs=self.runs)

    async def _loop(self) -> None:
        while not self._stopping.is_set():
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval_seconds)
                break
            except asyncio.TimeoutError:
                pass
            await self._tick()

    async def _tick(self) -> None:
        if self.process_queue:
            await self._process()

        if self.after_tick is not None:
            try:
                await self.after_tick()
            except Exception:
                logger.exception("Unexpected error in scheduler after_tick hook")
        self.runs += 1

    async def _process(self) -> None:
        try:
            identity = await self.identity_provider()
            result = await self.processor.run(identity)
        except Exception:
            logger.exception("Unexpected error in scheduled queue processing")
            return

        if result.processed > 0:
            logger.info(
                "Scheduled queue run",
                processed=result.processed,
                succeeded=result.succeeded,
                failed=result.failed,
            )
        elif result.errors and not result.skipped and result.retryable:
            logger.warning("Scheduled queue run reported errors", error=result.errors[0])
