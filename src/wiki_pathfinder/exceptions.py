"""
Custom exceptions for the path finder.
"""

from typing import Optional

from wiki_pathfinder.models import FailureKind


class PathfinderException(Exception):
    """Base exception for the application."""
    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class ConfigError(PathfinderException):
    """Raised when credentials are missing/invalid or the service can't be reached at startup."""
    pass


class InvalidInputError(PathfinderException):
    """Raised when a search is started with unusable titles."""
    pass


class FetchFailure(PathfinderException):
    """Raised by a link fetcher when the links of a single title could not be retrieved."""
    def __init__(self, kind: FailureKind, message: str, retry_after: Optional[float] = None):
        self.kind = kind
        self.retry_after = retry_after
        super().__init__(message)

    @property
    def is_transient(self) -> bool:
        return self.kind != FailureKind.NOT_FOUND


class ServiceUnavailableError(PathfinderException):
    """Raised when every fetch of a depth layer failed even after retries."""
    pass


class InvariantViolation(PathfinderException):
    """Raised when internal search state breaks a contract. Always a bug."""
    pass
