"""
FrontierCoordinator - breadth-first search over the link graph.

The coordinator is the single owner of all search state (visited map,
frontier, next frontier). Link fetching is delegated to a WorkerPool; the
coordinator consumes results one at a time as they arrive, so parent
assignment is first-writer-wins in dequeue order and the search can stop in
the middle of a layer as soon as the target shows up.
"""

import asyncio
import logging
import time
import uuid
from typing import Dict, List, Optional

from wiki_pathfinder.config import PathfinderConfig
from wiki_pathfinder.events import EventBus, SearchEvent, SearchEventType
from wiki_pathfinder.exceptions import InvalidInputError, ServiceUnavailableError
from wiki_pathfinder.models import FetchJob, FetchResult, SearchOutcome, SearchResult
from wiki_pathfinder.wikipedia.link_fetcher import LinkFetcher
from .path import build_path
from .worker_pool import WorkerPool

logger = logging.getLogger(__name__)


class SearchSession:
    """State of a single search. Only the coordinator reads or writes it."""

    def __init__(self, start: str, target: str):
        self.session_id = uuid.uuid4().hex[:12]
        self.start = start
        self.target = target

        # title -> parent title, None marks the start
        self.visited: Dict[str, Optional[str]] = {start: None}
        self.frontier: List[str] = [start]
        self.next_frontier: List[str] = []
        self.depth = 0

        self.jobs_issued = 0
        self.failed_fetches = 0
        self.found = start == target
        self.started_at = time.perf_counter()

    def discover(self, title: str, parent: str) -> bool:
        """Record `title` as reached from `parent`. Returns False if it was already known."""
        if title in self.visited:
            return False
        self.visited[title] = parent
        self.next_frontier.append(title)
        return True

    def advance(self) -> None:
        """Move on to the next depth layer."""
        self.frontier, self.next_frontier = self.next_frontier, []
        self.depth += 1


class FrontierCoordinator:
    """Runs a layered BFS from a start title to a target title."""

    def __init__(
        self,
        fetcher: LinkFetcher,
        config: Optional[PathfinderConfig] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self.fetcher = fetcher
        self.config = config or PathfinderConfig()
        self.event_bus = event_bus
        self.session: Optional[SearchSession] = None
        self._pool: Optional[WorkerPool] = None
        self._aborted = False

    def initialize(self, start: str, target: str) -> SearchSession:
        """
        Start a fresh session, replacing any previous one.

        start == target is allowed: the session is born finished and
        run_search() returns [start] without fetching anything.
        """
        for name, title in (("start", start), ("target", target)):
            if not isinstance(title, str) or not title.strip():
                raise InvalidInputError(f"The {name} title must be a non-empty string")

        self.session = SearchSession(start, target)
        self._aborted = False
        logger.debug(f"Session {self.session.session_id} initialized: '{start}' -> '{target}'")
        return self.session

    def abort(self) -> None:
        """Ask a running search to stop. Outstanding fetches are abandoned."""
        self._aborted = True
        if self._pool is not None:
            self._pool.cancel()

    async def find_path(self, start: str, target: str, max_depth: Optional[int] = None) -> SearchResult:
        """Convenience wrapper: initialize() followed by run_search()."""
        self.initialize(start, target)
        return await self.run_search(max_depth)

    async def run_search(self, max_depth: Optional[int] = None) -> SearchResult:
        """
        Expand the frontier layer by layer until the target is discovered,
        the graph is exhausted, the depth bound is hit or abort() is called.

        Args:
            max_depth: Maximum number of links in the returned path.
                Defaults to config.max_depth.

        Raises:
            ServiceUnavailableError: if every fetch of a layer failed transiently.
        """
        if self.session is None:
            raise RuntimeError("No search session. Call initialize() first.")
        session = self.session
        max_depth = self.config.max_depth if max_depth is None else max_depth

        if session.found:
            logger.info(f"Start and target are both '{session.start}', nothing to search")
            return await self._finish(session, SearchOutcome.FOUND)

        logger.info(f"Searching for a path from '{session.start}' to '{session.target}' (max depth {max_depth})")
        await self._publish(session, SearchEventType.SEARCH_STARTED, start=session.start, target=session.target)

        async with WorkerPool.from_config(self.fetcher, self.config) as pool:
            self._pool = pool
            try:
                outcome = await self._search_layers(session, pool, max_depth)
            finally:
                self._pool = None

        return await self._finish(session, outcome)

    async def _search_layers(self, session: SearchSession, pool: WorkerPool, max_depth: int) -> SearchOutcome:
        while True:
            if self._aborted:
                return SearchOutcome.ABORTED
            if not session.frontier:
                return SearchOutcome.NOT_FOUND
            if session.depth >= max_depth:
                return SearchOutcome.DEPTH_EXCEEDED

            outcome = await self._expand_layer(session, pool)
            if outcome is not None:
                return outcome
            session.advance()

    async def _expand_layer(self, session: SearchSession, pool: WorkerPool) -> Optional[SearchOutcome]:
        """
        Dispatch one job per frontier title and apply results as they stream in.
        Returns a terminal outcome, or None when the layer was fully consumed.
        """
        layer = list(session.frontier)
        depth = session.depth
        logger.info(f"Depth {depth}: expanding {len(layer)} titles ({len(session.visited)} discovered so far)")
        await self._publish(session, SearchEventType.LAYER_STARTED, depth=depth, frontier_size=len(layer))

        dispatcher = asyncio.create_task(self._dispatch(session, pool, layer, depth))
        pending = len(layer)
        transient_failures = 0
        try:
            while pending:
                result = await self._next_result(pool, dispatcher)
                if result is None:
                    # pool was cancelled from outside
                    return SearchOutcome.ABORTED
                pending -= 1

                if self._apply(session, result):
                    logger.info(f"Found '{session.target}' via '{result.title}' at depth {depth + 1}")
                    pool.cancel()
                    await self._publish(session, SearchEventType.TARGET_FOUND, depth=depth + 1, parent=result.title)
                    return SearchOutcome.FOUND

                if result.is_transient_failure:
                    transient_failures += 1
                await self._publish(session, SearchEventType.RESULT_APPLIED, title=result.title,
                                    visited_count=len(session.visited))
        finally:
            if not dispatcher.done():
                dispatcher.cancel()
            await asyncio.gather(dispatcher, return_exceptions=True)

        if transient_failures == len(layer):
            raise ServiceUnavailableError(
                f"All {len(layer)} fetches at depth {depth} failed, the link source looks unreachable"
            )

        await self._publish(session, SearchEventType.LAYER_COMPLETED, depth=depth,
                            discovered=len(session.next_frontier))
        return None

    async def _next_result(self, pool: WorkerPool, dispatcher: asyncio.Task) -> Optional[FetchResult]:
        """
        Wait for the next result while watching the dispatcher.

        A dispatcher that died leaves jobs unsubmitted, so their results would
        never arrive. Its exception is raised here instead.
        """
        if dispatcher.done():
            dispatcher.result()
            return await pool.next_result()

        getter = asyncio.ensure_future(pool.next_result())
        try:
            await asyncio.wait({getter, dispatcher}, return_when=asyncio.FIRST_COMPLETED)
        except BaseException:
            getter.cancel()
            raise

        if getter.done():
            return getter.result()
        if not dispatcher.cancelled() and dispatcher.exception() is not None:
            getter.cancel()
            await asyncio.gather(getter, return_exceptions=True)
            logger.error(f"Dispatching jobs failed: {dispatcher.exception()}")
            raise dispatcher.exception()
        return await getter

    async def _dispatch(self, session: SearchSession, pool: WorkerPool, layer: List[str], depth: int) -> None:
        """Feed the layer into the pool; waits whenever the job queue is full."""
        for title in layer:
            if not await pool.submit(FetchJob(title=title, depth=depth)):
                return
            session.jobs_issued += 1

    def _apply(self, session: SearchSession, result: FetchResult) -> bool:
        """Merge one result into the session. Returns True if the target was discovered."""
        if not result.ok:
            session.failed_fetches += 1
            logger.debug(f"'{result.title}' treated as a dead end ({result.failure.value})")
            return False

        for link in result.links:
            if session.discover(link, result.title) and link == session.target:
                return True
        return False

    async def _finish(self, session: SearchSession, outcome: SearchOutcome) -> SearchResult:
        path = build_path(session.visited, session.target) if outcome == SearchOutcome.FOUND else []
        elapsed_ms = (time.perf_counter() - session.started_at) * 1000

        result = SearchResult(
            start_page=session.start,
            target_page=session.target,
            outcome=outcome,
            path=path,
            depth_reached=session.depth,
            visited_count=len(session.visited),
            jobs_issued=session.jobs_issued,
            failed_fetches=session.failed_fetches,
            computation_time_ms=elapsed_ms,
        )

        if outcome == SearchOutcome.FOUND:
            logger.info(f"Path found in {elapsed_ms / 1000:.2f}s: {' -> '.join(path)}")
        else:
            logger.info(f"Search ended without a path ({outcome.value}) after {elapsed_ms / 1000:.2f}s")

        await self._publish(session, SearchEventType.SEARCH_FINISHED, outcome=outcome.value, path=path)
        return result

    async def _publish(self, session: SearchSession, event_type: SearchEventType, **data) -> None:
        if self.event_bus is None:
            return
        await self.event_bus.publish(SearchEvent(type=event_type, session_id=session.session_id, data=data))
