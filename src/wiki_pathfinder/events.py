import logging
from collections import defaultdict
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Union

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class SearchEventType(str, Enum):
    """Milestones of a search session, in the order they happen."""
    SEARCH_STARTED = "search_started"
    LAYER_STARTED = "layer_started"
    RESULT_APPLIED = "result_applied"
    LAYER_COMPLETED = "layer_completed"
    TARGET_FOUND = "target_found"
    SEARCH_FINISHED = "search_finished"


class SearchEvent(BaseModel):
    """Progress event emitted while a search session runs."""
    type: SearchEventType = Field(..., description="Which milestone this event reports")
    session_id: str = Field(..., min_length=1, description="Identifier of the search session")
    data: Dict[str, Any] = Field(default_factory=dict, description="Milestone specific payload")
    timestamp: datetime = Field(default_factory=datetime.now)


EventHandler = Callable[[SearchEvent], Awaitable[None]]


class EventBus:
    """
    Delivers search progress to observers such as the CLI status line.

    Handlers of an event type run one after another in subscription order,
    so an observer sees a session's events in the order the coordinator
    published them. A handler that raises is logged and skipped; it never
    reaches the search.
    """

    def __init__(self):
        self._subscribers: Dict[SearchEventType, List[EventHandler]] = defaultdict(list)

    def subscribe(self, event_type: Union[SearchEventType, str], handler: EventHandler) -> None:
        """Register `handler` for one event type. Unknown type names raise ValueError."""
        event_type = SearchEventType(event_type)
        self._subscribers[event_type].append(handler)
        logger.debug(f"Subscribed {getattr(handler, '__name__', handler)} to {event_type.value}")

    def unsubscribe(self, event_type: Union[SearchEventType, str], handler: EventHandler) -> None:
        handlers = self._subscribers[SearchEventType(event_type)]
        if handler in handlers:
            handlers.remove(handler)

    async def publish(self, event: SearchEvent) -> None:
        for handler in list(self._subscribers[event.type]):
            try:
                await handler(event)
            except Exception as e:
                logger.error(
                    f"Handler {getattr(handler, '__name__', handler)} failed on {event.type.value} "
                    f"for session {event.session_id}: {e}",
                    exc_info=True,
                )

    def get_subscriber_count(self, event_type: Union[SearchEventType, str]) -> int:
        return len(self._subscribers[SearchEventType(event_type)])
