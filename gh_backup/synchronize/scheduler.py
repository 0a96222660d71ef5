"""Runs repository synchronizations with a bounded number of concurrent workers."""

import asyncio
from typing import AsyncIterable, Awaitable, Callable

import structlog

from gh_backup.schemas.repository import RepositoryDescriptor
from gh_backup.synchronize.models import OutcomeKind, SyncOutcome
from gh_backup.synchronize.results import RunAggregator
from gh_backup.utils.constants import DEFAULT_CONCURRENCY

logger = structlog.get_logger(__name__)

SyncFunction = Callable[[RepositoryDescriptor], Awaitable[SyncOutcome]]


class ConcurrencyScheduler:
    """Feeds descriptors from a listing to a fixed pool of worker tasks.

    The listing is consumed while workers run. A queue with room for
    ``concurrency`` descriptors sits in between, so the listing pauses while every
    worker is busy and the queue is full. Descriptors are dispatched in the order
    they are produced, each at most once per run.

    Example:
        scheduler = ConcurrencyScheduler(synchronizer.sync, aggregator, concurrency=10)
        await scheduler.run(lister)
        summary = await aggregator.finalize()
    """

    def __init__(self, sync: SyncFunction, aggregator: RunAggregator, concurrency: int = DEFAULT_CONCURRENCY) -> None:
        """Initialize the scheduler with the per-repository sync function and the aggregator."""
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._sync = sync
        self._aggregator = aggregator
        self.concurrency = concurrency
        self.active = 0
        self.peak_active = 0
        self.dispatched = 0
        self._dispatched_names: set[str] = set()

    async def run(self, descriptors: AsyncIterable[RepositoryDescriptor]) -> None:
        """Synchronize every descriptor and return once all work is done.

        If the listing raises, descriptors still waiting in the queue are dropped,
        repositories already being synchronized are allowed to finish, and the
        listing's exception is re-raised. If this coroutine is cancelled, the
        workers are cancelled as well.
        """
        queue: asyncio.Queue[RepositoryDescriptor | None] = asyncio.Queue(maxsize=self.concurrency)
        workers = [asyncio.create_task(self._worker(queue, worker_id)) for worker_id in range(self.concurrency)]
        logger.debug("Started sync workers", concurrency=self.concurrency)
        try:
            try:
                async for descriptor in descriptors:
                    if descriptor.name in self._dispatched_names:
                        logger.warning("Skipping repository listed more than once", repository=descriptor.label)
                        continue
                    self._dispatched_names.add(descriptor.name)
                    await queue.put(descriptor)
            except Exception as exc:
                discarded = self._discard_queued(queue)
                logger.error(
                    "Repository listing failed, waiting for in-flight repositories to finish",
                    discarded=discarded,
                    error=str(exc),
                )
                await self._shutdown(queue, workers)
                raise
            await self._shutdown(queue, workers)
        except asyncio.CancelledError:
            logger.warning("Backup run cancelled, stopping sync workers", active=self.active)
            for worker in workers:
                worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            raise

    async def _worker(self, queue: "asyncio.Queue[RepositoryDescriptor | None]", worker_id: int) -> None:
        while True:
            descriptor = await queue.get()
            if descriptor is None:
                logger.debug("Sync worker finished", worker_id=worker_id)
                return
            self.dispatched += 1
            self.active += 1
            self.peak_active = max(self.peak_active, self.active)
            try:
                outcome = await self._sync(descriptor)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.exception("Sync raised instead of returning an outcome", repository=descriptor.label)
                outcome = SyncOutcome(repository=descriptor.name, kind=OutcomeKind.FAILED, attempts=0, error=exc)
            finally:
                self.active -= 1
            await self._aggregator.record(outcome)

    async def _shutdown(self, queue: "asyncio.Queue[RepositoryDescriptor | None]", workers: list[asyncio.Task[None]]) -> None:
        """Tell every worker to stop once the queue is drained, then wait for them."""
        for _ in workers:
            await queue.put(None)
        await asyncio.gather(*workers)

    @staticmethod
    def _discard_queued(queue: "asyncio.Queue[RepositoryDescriptor | None]") -> int:
        discarded = 0
        while True:
            try:
                queue.get_nowait()
            except asyncio.QueueEmpty:
                return discarded
            discarded += 1
