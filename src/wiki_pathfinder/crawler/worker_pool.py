"""
Fixed-size pool of fetch workers.

Workers pull FetchJobs from a bounded queue, ask the link fetcher for the
job's links and push exactly one FetchResult per job onto the result queue.
They never see or touch search state.
"""

import asyncio
import logging
from typing import List, Optional, Set

from wiki_pathfinder.config import PathfinderConfig
from wiki_pathfinder.exceptions import FetchFailure
from wiki_pathfinder.models import FailureKind, FetchJob, FetchResult
from wiki_pathfinder.wikipedia.link_fetcher import LinkFetcher

logger = logging.getLogger(__name__)


class WorkerPool:
    """
    Concurrent fetch executors fed by a bounded job queue.

    Lifecycle: start() -> submit()/next_result() ... -> cancel() -> shutdown().
    cancel() is cooperative: idle workers stop, queued jobs are dropped and
    in-flight fetches are left to finish, their results discarded.
    """

    def __init__(
        self,
        fetcher: LinkFetcher,
        workers: int = 8,
        queue_size: int = 100,
        max_attempts: int = 3,
        backoff_base: float = 0.5,
        backoff_factor: float = 2.0,
        max_backoff: float = 30.0,
        shutdown_grace: Optional[float] = 5.0,
    ):
        if workers < 1:
            raise ValueError("A worker pool needs at least one worker")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.fetcher = fetcher
        self.workers = workers
        self.queue_size = queue_size
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.backoff_factor = backoff_factor
        self.max_backoff = max_backoff
        self.shutdown_grace = shutdown_grace

        self._jobs: Optional[asyncio.Queue] = None
        self._results: Optional[asyncio.Queue] = None
        self._cancelled: Optional[asyncio.Event] = None
        self._tasks: List[asyncio.Task] = []
        self._busy: Set[asyncio.Task] = set()
        self.jobs_submitted = 0

    @classmethod
    def from_config(cls, fetcher: LinkFetcher, config: PathfinderConfig) -> "WorkerPool":
        return cls(
            fetcher,
            workers=config.workers,
            queue_size=config.queue_size,
            max_attempts=config.max_attempts,
            backoff_base=config.backoff_base,
            backoff_factor=config.backoff_factor,
            max_backoff=config.max_backoff,
            shutdown_grace=config.shutdown_grace,
        )

    async def __aenter__(self):
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.shutdown()

    @property
    def started(self) -> bool:
        return bool(self._tasks)

    @property
    def cancelled(self) -> bool:
        return self._cancelled is not None and self._cancelled.is_set()

    @property
    def pending_jobs(self) -> int:
        return self._jobs.qsize() if self._jobs is not None else 0

    def start(self) -> None:
        """Spawn the worker tasks. Must be called from inside a running event loop."""
        if self.started:
            raise RuntimeError("Worker pool already started")

        self._jobs = asyncio.Queue(maxsize=self.queue_size)
        self._results = asyncio.Queue()
        self._cancelled = asyncio.Event()
        self._tasks = [
            asyncio.create_task(self._worker(i), name=f"fetch-worker-{i}")
            for i in range(self.workers)
        ]
        logger.debug(f"Started {self.workers} workers (job queue size {self.queue_size})")

    async def submit(self, job: FetchJob) -> bool:
        """
        Queue a job, waiting while the job queue is full.
        Returns False (and drops the job) once the pool has been cancelled.
        """
        if not self.started:
            raise RuntimeError("Worker pool not started")
        if self.cancelled:
            return False
        await self._jobs.put(job)
        if self.cancelled:
            # cancel() ran while we were waiting for space; don't leave the job behind
            self._drain_jobs()
            return False
        self.jobs_submitted += 1
        return True

    async def next_result(self) -> Optional[FetchResult]:
        """
        Wait for the next fetch result.
        Returns None once the pool has been cancelled.
        """
        if not self.started:
            raise RuntimeError("Worker pool not started")
        if self.cancelled:
            return None
        return await self._results.get()

    def cancel(self) -> None:
        """Stop handing out work. Safe to call more than once."""
        if self._cancelled is None or self._cancelled.is_set():
            return
        self._cancelled.set()
        dropped = self._drain_jobs()
        # Wake up anyone blocked in next_result()
        self._results.put_nowait(None)
        logger.debug(f"Worker pool cancelled, dropped {dropped} queued jobs")

    async def shutdown(self) -> None:
        """Cancel the pool and wait for every worker to exit."""
        if not self.started:
            return
        self.cancel()

        busy = [task for task in self._tasks if task in self._busy]
        for task in self._tasks:
            if task not in self._busy:
                task.cancel()

        if busy:
            logger.debug(f"Waiting for {len(busy)} in-flight fetches to finish")
            _, stragglers = await asyncio.wait(busy, timeout=self.shutdown_grace)
            for task in stragglers:
                logger.debug(f"Abandoning {task.get_name()} after {self.shutdown_grace}s grace period")
                task.cancel()

        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        self._busy.clear()

    def _drain_jobs(self) -> int:
        dropped = 0
        while True:
            try:
                self._jobs.get_nowait()
            except asyncio.QueueEmpty:
                return dropped
            self._jobs.task_done()
            dropped += 1

    async def _worker(self, worker_id: int) -> None:
        task = asyncio.current_task()
        while not self._cancelled.is_set():
            job = await self._jobs.get()
            self._busy.add(task)
            try:
                if self._cancelled.is_set():
                    continue
                result = await self._process(job, worker_id)
                if self._cancelled.is_set():
                    logger.debug(f"Discarding late result for '{job.title}'")
                else:
                    self._results.put_nowait(result)
            finally:
                self._busy.discard(task)
                self._jobs.task_done()

    async def _process(self, job: FetchJob, worker_id: int) -> FetchResult:
        """Fetch the links of one title, retrying transient failures with exponential backoff."""
        attempt = 0
        while True:
            attempt += 1
            try:
                links = await self.fetcher.fetch_links(job.title)
                return FetchResult(title=job.title, depth=job.depth, links=links, attempts=attempt)

            except FetchFailure as e:
                if not e.is_transient:
                    logger.debug(f"Worker {worker_id}: '{job.title}' is a dead end ({e.message})")
                    return FetchResult(title=job.title, depth=job.depth, failure=e.kind, attempts=attempt)

                if attempt >= self.max_attempts or self._cancelled.is_set():
                    logger.warning(f"Giving up on '{job.title}' after {attempt} attempts: {e.message}")
                    return FetchResult(title=job.title, depth=job.depth, failure=e.kind, attempts=attempt)

                delay = self._backoff_delay(attempt, e.retry_after)
                logger.info(
                    f"Worker {worker_id}: fetching '{job.title}' failed ({e.kind.value}), "
                    f"retrying in {delay:.1f}s (attempt {attempt}/{self.max_attempts})"
                )
                if await self._sleep_unless_cancelled(delay):
                    return FetchResult(title=job.title, depth=job.depth, failure=e.kind, attempts=attempt)

            except Exception as e:
                logger.error(f"Worker {worker_id}: unexpected error fetching '{job.title}': {e}", exc_info=True)
                return FetchResult(
                    title=job.title, depth=job.depth, failure=FailureKind.NETWORK_FAILURE, attempts=attempt
                )

    def _backoff_delay(self, attempt: int, retry_after: Optional[float] = None) -> float:
        delay = min(self.backoff_base * self.backoff_factor ** (attempt - 1), self.max_backoff)
        if retry_after is not None:
            delay = max(delay, retry_after)
        return delay

    async def _sleep_unless_cancelled(self, delay: float) -> bool:
        """Sleep for `delay` seconds. Returns True if the pool got cancelled meanwhile."""
        try:
            await asyncio.wait_for(self._cancelled.wait(), timeout=delay)
            return True
        except asyncio.TimeoutError:
            return False
