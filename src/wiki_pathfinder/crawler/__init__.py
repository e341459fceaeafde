# Breadth-first search over the live link graph

from .coordinator import FrontierCoordinator, SearchSession
from .path import build_path
from .worker_pool import WorkerPool

__all__ = [
    "FrontierCoordinator",
    "SearchSession",
    "WorkerPool",
    "build_path"
]
