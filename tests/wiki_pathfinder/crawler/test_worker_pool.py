import asyncio
from typing import List

import pytest

from wiki_pathfinder.crawler import WorkerPool
from wiki_pathfinder.models import FailureKind, FetchJob, FetchResult
from wiki_pathfinder.wikipedia import LinkFetcher

pytestmark = pytest.mark.unit


class GatedFetcher(LinkFetcher):
    """Blocks every fetch until the gate opens."""

    def __init__(self):
        self.gate = asyncio.Event()
        self.calls: List[str] = []

    async def fetch_links(self, title: str) -> List[str]:
        self.calls.append(title)
        await self.gate.wait()
        return [f"{title}/child"]


class ExplodingFetcher(LinkFetcher):
    async def fetch_links(self, title: str) -> List[str]:
        raise KeyError("links")


async def collect(pool: WorkerPool, count: int) -> List[FetchResult]:
    return [await asyncio.wait_for(pool.next_result(), timeout=5) for _ in range(count)]


@pytest.mark.asyncio
async def test_one_result_per_job(make_fetcher, sample_graph):
    async with WorkerPool(make_fetcher(sample_graph), workers=2, backoff_base=0.0) as pool:
        for title in ("A", "B", "C"):
            assert await pool.submit(FetchJob(title=title, depth=1))
        results = await collect(pool, 3)

    by_title = {result.title: result for result in results}
    assert set(by_title) == {"A", "B", "C"}
    assert by_title["A"].links == ["B", "C"]
    assert all(result.ok and result.depth == 1 and result.attempts == 1 for result in results)
    assert pool.jobs_submitted == 3


@pytest.mark.asyncio
async def test_not_found_is_not_retried(make_fetcher):
    fetcher = make_fetcher({})
    async with WorkerPool(fetcher, workers=1, max_attempts=5, backoff_base=0.0) as pool:
        await pool.submit(FetchJob(title="Ghost", depth=0))
        [result] = await collect(pool, 1)

    assert result.failure == FailureKind.NOT_FOUND
    assert not result.is_transient_failure
    assert result.links == []
    assert fetcher.calls == ["Ghost"]


@pytest.mark.asyncio
async def test_transient_failure_then_success(make_fetcher):
    fetcher = make_fetcher({"A": ["B"]}, failures={"A": [FailureKind.NETWORK_FAILURE]})
    async with WorkerPool(fetcher, workers=1, max_attempts=3, backoff_base=0.0) as pool:
        await pool.submit(FetchJob(title="A", depth=0))
        [result] = await collect(pool, 1)

    assert result.ok
    assert result.links == ["B"]
    assert result.attempts == 2


@pytest.mark.asyncio
async def test_retries_are_bounded(make_fetcher):
    fetcher = make_fetcher({"A": ["B"]}, failures={"A": [FailureKind.RATE_LIMITED] * 10})
    async with WorkerPool(fetcher, workers=1, max_attempts=4, backoff_base=0.0) as pool:
        await pool.submit(FetchJob(title="A", depth=0))
        [result] = await collect(pool, 1)

    assert result.failure == FailureKind.RATE_LIMITED
    assert result.is_transient_failure
    assert result.attempts == 4
    assert fetcher.calls == ["A"] * 4


@pytest.mark.asyncio
async def test_unexpected_errors_become_failed_results():
    async with WorkerPool(ExplodingFetcher(), workers=1, backoff_base=0.0) as pool:
        await pool.submit(FetchJob(title="A", depth=0))
        [result] = await collect(pool, 1)

    assert result.failure == FailureKind.NETWORK_FAILURE
    assert result.attempts == 1


def test_backoff_grows_exponentially_and_is_capped(make_fetcher):
    pool = WorkerPool(make_fetcher({}), backoff_base=0.5, backoff_factor=2.0, max_backoff=3.0)

    assert pool._backoff_delay(1) == 0.5
    assert pool._backoff_delay(2) == 1.0
    assert pool._backoff_delay(3) == 2.0
    assert pool._backoff_delay(4) == 3.0
    assert pool._backoff_delay(1, retry_after=10.0) == 10.0


def test_invalid_sizes_are_rejected(make_fetcher):
    with pytest.raises(ValueError):
        WorkerPool(make_fetcher({}), workers=0)
    with pytest.raises(ValueError):
        WorkerPool(make_fetcher({}), max_attempts=0)


@pytest.mark.asyncio
async def test_submit_waits_while_queue_is_full():
    fetcher = GatedFetcher()
    async with WorkerPool(fetcher, workers=1, queue_size=1) as pool:
        await pool.submit(FetchJob(title="first", depth=0))
        # let the worker pick up the first job so the queue is empty again
        while not fetcher.calls:
            await asyncio.sleep(0)
        await pool.submit(FetchJob(title="second", depth=0))

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(pool.submit(FetchJob(title="third", depth=0)), timeout=0.1)
        assert pool.pending_jobs == 1

        fetcher.gate.set()
        results = await collect(pool, 2)

    assert [result.title for result in results] == ["first", "second"]


@pytest.mark.asyncio
async def test_cancel_drops_queued_jobs_and_wakes_consumers():
    fetcher = GatedFetcher()
    async with WorkerPool(fetcher, workers=1, queue_size=10, shutdown_grace=0.1) as pool:
        for i in range(5):
            await pool.submit(FetchJob(title=f"T{i}", depth=0))
        waiter = asyncio.create_task(pool.next_result())
        await asyncio.sleep(0.01)

        pool.cancel()

        assert await asyncio.wait_for(waiter, timeout=1) is None
        assert pool.pending_jobs == 0
        assert await pool.submit(FetchJob(title="late", depth=0)) is False
        assert await pool.next_result() is None

    # only the job that was already in flight ever reached the fetcher
    assert fetcher.calls == ["T0"]


@pytest.mark.asyncio
async def test_late_results_are_discarded(make_fetcher):
    fetcher = make_fetcher({"slow": ["x"]}, delays={"slow": 0.1})
    pool = WorkerPool(fetcher, workers=1, shutdown_grace=1.0)
    pool.start()
    await pool.submit(FetchJob(title="slow", depth=0))
    while not fetcher.calls:
        await asyncio.sleep(0)

    pool.cancel()
    await pool.shutdown()

    # the fetch completed during shutdown, but nothing was queued for the consumer
    assert pool._results.qsize() == 1  # just the wake-up marker
    assert not pool.started


@pytest.mark.asyncio
async def test_pool_cannot_be_used_before_start(make_fetcher):
    pool = WorkerPool(make_fetcher({}))

    with pytest.raises(RuntimeError):
        await pool.submit(FetchJob(title="A", depth=0))
    with pytest.raises(RuntimeError):
        await pool.next_result()
