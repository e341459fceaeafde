from typing import List, Optional
from enum import Enum
from pydantic import BaseModel, Field

# --- Enums ---

class FailureKind(str, Enum):
    """Why the links of a single title could not be fetched."""
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    NETWORK_FAILURE = "network_failure"

class SearchOutcome(str, Enum):
    """Terminal state of a search session."""
    FOUND = "found"
    NOT_FOUND = "not_found"
    DEPTH_EXCEEDED = "depth_exceeded"
    ABORTED = "aborted"

# --- Worker messages ---

class FetchJob(BaseModel):
    """A request to expand one title, handed from the coordinator to the worker pool."""
    title: str = Field(..., description="Title whose outgoing links should be fetched")
    depth: int = Field(..., ge=0, description="Edge distance of the title from the start title")

    model_config = {"frozen": True}

class FetchResult(BaseModel):
    """The outcome of a single fetch job, handed back from a worker to the coordinator."""
    title: str = Field(..., description="Title the job was issued for")
    depth: int = Field(..., ge=0, description="Depth of the job this result answers")
    links: List[str] = Field(default_factory=list, description="Outgoing link titles, in fetch order")
    failure: Optional[FailureKind] = Field(None, description="Set when the fetch ultimately failed")
    attempts: int = Field(1, ge=0, description="Number of fetch attempts made")

    model_config = {"frozen": True}

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def is_transient_failure(self) -> bool:
        """True when the fetch failed for a reason other than the page not existing."""
        return self.failure is not None and self.failure != FailureKind.NOT_FOUND

# --- Search results ---

class SearchResult(BaseModel):
    """Summary of a finished search session."""
    start_page: str = Field(..., description="Title the search started from")
    target_page: str = Field(..., description="Title the search was looking for")
    outcome: SearchOutcome = Field(..., description="How the search terminated")
    path: List[str] = Field(default_factory=list, description="Titles from start to target; empty unless found")
    depth_reached: int = Field(0, ge=0, description="Depth of the last layer the search expanded")
    visited_count: int = Field(0, ge=0, description="Number of distinct titles discovered")
    jobs_issued: int = Field(0, ge=0, description="Number of fetch jobs handed to the worker pool")
    failed_fetches: int = Field(0, ge=0, description="Number of applied results that carried a failure")
    computation_time_ms: float = Field(0.0, ge=0, description="Wall time spent searching in milliseconds")

    @property
    def found(self) -> bool:
        return self.outcome == SearchOutcome.FOUND

    @property
    def path_length(self) -> int:
        """Number of links followed along the path."""
        return max(len(self.path) - 1, 0)
