"""
Wikipedia module for wiki_pathfinder.

Contains the link sources the crawler expands titles with.
"""

from .link_fetcher import LinkFetcher, WikipediaLinkFetcher

__all__ = [
    'LinkFetcher',
    'WikipediaLinkFetcher'
]
