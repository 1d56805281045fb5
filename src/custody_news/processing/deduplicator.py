"""Deduplication of normalized news items."""

import re
from typing import List, Set
from urllib.parse import urlsplit

from fuzzywuzzy import fuzz

from ..models import NewsItem
from ..logger import get_logger


TITLE_KEY_LENGTH = 180

_WHITESPACE = re.compile(r"\s+")


def normalize_title(title: str) -> str:
    """Lowercase, collapse whitespace and cap the title used in dedup keys."""
    return _WHITESPACE.sub(' ', (title or '').strip().lower())[:TITLE_KEY_LENGTH]


def dedup_key(item: NewsItem) -> str:
    """
    Build the dedup key: normalized title plus the URL path.

    The same story syndicated through several queries and editions resolves
    to the same title and article path. When the URL does not parse, the
    title alone is the key.
    """
    key = normalize_title(item.title)
    try:
        key += '|' + urlsplit(item.url).path
    except ValueError:
        pass
    return key


class Deduplicator:
    """Collapses duplicate items to their first-seen occurrence."""

    def __init__(self, similarity_threshold: int = 0):
        """
        Initialize deduplicator.

        Args:
            similarity_threshold: Title similarity (0-100) above which two items
                are near-duplicates even with different keys; 0 disables
                the fuzzy pass
        """
        self.similarity_threshold = similarity_threshold
        self.logger = get_logger()

    def deduplicate(self, items: List[NewsItem]) -> List[NewsItem]:
        """
        Remove duplicates, keeping input order and first occurrences.

        Args:
            items: Normalized items, possibly from many feeds

        Returns:
            Items with pairwise distinct dedup keys
        """
        initial_count = len(items)

        items = self._deduplicate_by_key(items)
        after_key = len(items)
        self.logger.info(f"After key dedup: {after_key} items ({initial_count - after_key} removed)")

        if self.similarity_threshold > 0:
            items = self._deduplicate_by_title(items)
            self.logger.info(
                f"After title dedup: {len(items)} items ({after_key - len(items)} removed)"
            )

        return items

    def _deduplicate_by_key(self, items: List[NewsItem]) -> List[NewsItem]:
        seen: Set[str] = set()
        unique_items = []

        for item in items:
            key = dedup_key(item)
            if key in seen:
                continue
            seen.add(key)
            unique_items.append(item)

        return unique_items

    def _deduplicate_by_title(self, items: List[NewsItem]) -> List[NewsItem]:
        """
        Drop later items whose title is too similar to an earlier kept one.

        Args:
            items: Items already deduplicated by key

        Returns:
            List without near-duplicate titles
        """
        unique_items: List[NewsItem] = []

        for item in items:
            title = normalize_title(item.title)
            duplicate_of = None
            for kept in unique_items:
                similarity = fuzz.ratio(title, normalize_title(kept.title))
                if similarity > self.similarity_threshold:
                    duplicate_of = kept
                    break

            if duplicate_of is not None:
                self.logger.debug(
                    f"Skipping near-duplicate of '{duplicate_of.title}': '{item.title}'"
                )
            else:
                unique_items.append(item)

        return unique_items
