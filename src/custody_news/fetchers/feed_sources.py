"""Feed source set: topic queries crossed with regional editions."""

from typing import List
from urllib.parse import quote

from ..config import FeedQuery, PipelineConfig


def build_feed_queries(config: PipelineConfig) -> List[FeedQuery]:
    """Enumerate every (edition, topic) pair, edition-major."""
    return [
        FeedQuery(topic=topic, edition=edition)
        for edition in config.editions
        for topic in config.topics
    ]


def build_feed_url(template: str, query: FeedQuery) -> str:
    """Fill the feed endpoint template for one query."""
    return template.format(
        query=quote(query.topic, safe=''),
        hl=query.edition.hl,
        gl=query.edition.gl,
        ceid=query.edition.ceid,
    )


def build_feed_urls(config: PipelineConfig) -> List[str]:
    """
    Build the list of feed URLs to poll for one run.

    Duplicate URLs (e.g. a topic listed twice) are collapsed while keeping
    the first occurrence's position.
    """
    urls = []
    seen = set()
    for query in build_feed_queries(config):
        url = build_feed_url(config.feed_template, query)
        if url not in seen:
            seen.add(url)
            urls.append(url)
    return urls
