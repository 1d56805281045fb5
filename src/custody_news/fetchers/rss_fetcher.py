"""RSS feed fetching component for retrieving raw entries from many feeds."""

import asyncio
from datetime import datetime, timezone
from typing import List, Optional, Sequence

import feedparser
import httpx

from ..config import PipelineConfig
from ..models import FetchResult, RawEntry
from ..logger import get_logger


class FeedFetchError(Exception):
    """Raised when a single feed cannot be retrieved or parsed."""
    pass


class RSSFetcher:
    """Fetches and parses RSS feeds in bounded-width concurrent batches."""

    def __init__(self, config: PipelineConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Initialize RSS fetcher.

        Args:
            config: Pipeline configuration (concurrency, timeout, headers)
            transport: Optional httpx transport, used by tests to stub the network
        """
        self.concurrency = config.concurrency
        self.timeout = config.request_timeout
        self.max_redirects = config.max_redirects
        self.headers = {
            "User-Agent": config.user_agent,
            "Accept": config.accept,
        }
        self.transport = transport
        self.logger = get_logger()

    async def fetch_all(self, urls: Sequence[str]) -> FetchResult:
        """
        Fetch every feed URL, batch by batch.

        Batches run sequentially; requests inside a batch run concurrently.
        A failing feed is logged and skipped, it never aborts the run.

        Args:
            urls: Feed endpoint URLs

        Returns:
            FetchResult with all parsed entries and feed counters
        """
        result = FetchResult(feeds_tried=len(urls))
        self.logger.info(
            f"Fetching {len(urls)} feeds in batches of {self.concurrency}"
        )

        async with httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            max_redirects=self.max_redirects,
            headers=self.headers,
            transport=self.transport,
        ) as client:
            for start in range(0, len(urls), self.concurrency):
                batch = list(urls[start:start + self.concurrency])
                outcomes = await asyncio.gather(
                    *(self._fetch_feed(client, url) for url in batch),
                    return_exceptions=True
                )

                # Merge only after the whole batch has completed
                for url, outcome in zip(batch, outcomes):
                    if isinstance(outcome, Exception):
                        result.feeds_failed += 1
                        self.logger.warning(f"Skipping feed {url}: {outcome}")
                    else:
                        result.entries.extend(outcome)

        self.logger.info(
            f"Fetched {len(result.entries)} entries from "
            f"{result.feeds_tried - result.feeds_failed}/{result.feeds_tried} feeds"
        )
        return result

    async def _fetch_feed(self, client: httpx.AsyncClient, url: str) -> List[RawEntry]:
        """
        Fetch and parse a single feed.

        Raises:
            FeedFetchError: On timeout, HTTP error or unparsable content
        """
        try:
            response = await client.get(url)
            response.raise_for_status()
        except httpx.TimeoutException:
            raise FeedFetchError("timeout")
        except httpx.HTTPStatusError as e:
            raise FeedFetchError(f"HTTP {e.response.status_code}")
        except httpx.HTTPError as e:
            raise FeedFetchError(f"{type(e).__name__}: {e}")

        return self.parse_feed(response.text, url)

    def parse_feed(self, content: str, url: str) -> List[RawEntry]:
        """
        Parse feed markup into raw entries.

        Args:
            content: RSS/Atom document
            url: Feed URL, used as label when the feed has no title

        Returns:
            List of RawEntry objects

        Raises:
            FeedFetchError: If the document is malformed and yields no entries
        """
        feed = feedparser.parse(content)
        if feed.bozo and not feed.entries:
            raise FeedFetchError(f"malformed feed: {feed.get('bozo_exception', 'unknown error')}")

        label = feed.feed.get('title', '') or url
        entries = []
        for entry in feed.entries:
            try:
                raw = self._parse_entry(entry, label)
            except (AttributeError, IndexError, KeyError, TypeError, ValueError) as e:
                self.logger.debug(f"Failed to parse entry from {url}: {e}")
                continue
            if raw is not None:
                entries.append(raw)
            else:
                self.logger.debug(f"Dropped entry without title or link from {url}")

        self.logger.debug(f"Parsed {len(entries)} entries from {url}")
        return entries

    def _parse_entry(self, entry, label: str) -> Optional[RawEntry]:
        """Convert a feedparser entry, or None when title or link is missing."""
        title = (entry.get('title') or '').strip()
        link = (entry.get('link') or '').strip()
        if not title or not link:
            return None

        summary = (
            entry.get('summary', '') or
            entry.get('description', '') or
            self._first_content_value(entry)
        )

        published_at = None
        for key in ('published_parsed', 'updated_parsed'):
            parsed = entry.get(key)
            if parsed:
                try:
                    published_at = datetime(*parsed[:6], tzinfo=timezone.utc)
                    break
                except (TypeError, ValueError):
                    continue

        return RawEntry(
            title=title,
            raw_link=link,
            published_at=published_at,
            raw_summary=summary,
            origin_feed_label=label,
        )

    @staticmethod
    def _first_content_value(entry) -> str:
        """Value of the first content block, or '' when the entry has none."""
        content = entry.get('content') or []
        if not content or not isinstance(content[0], dict):
            return ''
        return content[0].get('value', '') or ''
