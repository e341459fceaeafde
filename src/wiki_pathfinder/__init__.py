"""
wiki_pathfinder - Core Library

Finds the shortest chain of links between two Wikipedia articles with a
concurrent breadth-first search.
"""

from .events import EventBus, SearchEvent, SearchEventType
from .models import SearchOutcome, SearchResult

__all__ = ['EventBus', 'SearchEvent', 'SearchEventType', 'SearchOutcome', 'SearchResult']
