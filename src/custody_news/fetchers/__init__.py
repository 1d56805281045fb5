"""Fetchers package: feed source set and RSS retrieval."""

from .feed_sources import build_feed_queries, build_feed_url, build_feed_urls
from .rss_fetcher import FeedFetchError, RSSFetcher

__all__ = [
    'build_feed_queries',
    'build_feed_url',
    'build_feed_urls',
    'FeedFetchError',
    'RSSFetcher'
]
