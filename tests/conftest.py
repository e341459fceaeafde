"""
Pytest configuration and shared fixtures.
"""

import asyncio
import logging
from typing import Dict, List, Optional

import pytest

from wiki_pathfinder import EventBus
from wiki_pathfinder.config import PathfinderConfig
from wiki_pathfinder.exceptions import FetchFailure
from wiki_pathfinder.models import FailureKind
from wiki_pathfinder.wikipedia import LinkFetcher

# Configure logging for tests
logging.basicConfig(level=logging.INFO)


class GraphLinkFetcher(LinkFetcher):
    """
    In-memory link source for deterministic crawler tests.

    Titles missing from `graph` behave like non-existent pages. `failures`
    maps a title to the failure kinds raised on its first calls, one per call;
    once they are used up the title fetches normally. `delays` slows down
    individual titles to force a completion order.
    """

    def __init__(
        self,
        graph: Dict[str, List[str]],
        failures: Optional[Dict[str, List[FailureKind]]] = None,
        delays: Optional[Dict[str, float]] = None,
    ):
        self.graph = graph
        self.failures = {title: list(kinds) for title, kinds in (failures or {}).items()}
        self.delays = delays or {}
        self.calls: List[str] = []

    async def fetch_links(self, title: str) -> List[str]:
        self.calls.append(title)
        await asyncio.sleep(self.delays.get(title, 0))

        pending_failures = self.failures.get(title)
        if pending_failures:
            kind = pending_failures.pop(0)
            raise FetchFailure(kind, f"Simulated {kind.value} for '{title}'")

        if title not in self.graph:
            raise FetchFailure(FailureKind.NOT_FOUND, f"Page does not exist: {title}")
        return list(self.graph[title])


@pytest.fixture
def event_bus() -> EventBus:
    """Create a fresh EventBus for each test."""
    return EventBus()


@pytest.fixture
def fast_config() -> PathfinderConfig:
    """Small pool with no backoff delay so retry tests run instantly."""
    return PathfinderConfig(
        workers=4,
        queue_size=8,
        max_depth=10,
        max_attempts=3,
        backoff_base=0.0,
        shutdown_grace=2.0,
    )


@pytest.fixture
def sample_graph() -> Dict[str, List[str]]:
    """A -> {B, C}, B -> {D}, C -> {E}"""
    return {
        "A": ["B", "C"],
        "B": ["D"],
        "C": ["E"],
        "D": [],
        "E": [],
    }


@pytest.fixture
def make_fetcher():
    """Factory for GraphLinkFetcher instances."""
    return GraphLinkFetcher
