"""Normalization of filtered feed entries into NewsItem objects."""

import re
from datetime import datetime
from typing import Iterable, Optional
from urllib.parse import parse_qs, urlsplit

from bs4 import BeautifulSoup

from .lexicon import CATEGORY_GROUPS
from ..models import CATEGORY_UPDATE, NewsItem, RawEntry
from ..logger import get_logger


DEFAULT_REDIRECT_PARAMS = ("url",)
SUMMARY_MAX_LENGTH = 240
FALLBACK_SOURCE = "News"

_WHITESPACE = re.compile(r"\s+")


def unwrap_redirect(link: str, params: Iterable[str] = DEFAULT_REDIRECT_PARAMS) -> str:
    """
    Resolve a redirect-wrapper link to its embedded destination.

    ``https://news.example.com/rss?url=https://realsite.com/a`` resolves to
    ``https://realsite.com/a``. Links without a usable redirect parameter,
    and links that do not parse, come back unchanged.
    """
    try:
        query = parse_qs(urlsplit(link).query)
        for param in params:
            for candidate in query.get(param, []):
                target = urlsplit(candidate)
                if target.scheme in ('http', 'https') and target.hostname:
                    return candidate
    except ValueError:
        pass
    return link


def host_of(url: str) -> str:
    """Display host of a URL without a leading 'www.', or '' if it does not parse."""
    try:
        hostname = urlsplit(url).hostname or ''
    except ValueError:
        return ''
    if hostname.startswith('www.'):
        hostname = hostname[4:]
    return hostname


def clean_summary(text: str, limit: Optional[int] = SUMMARY_MAX_LENGTH) -> str:
    """Strip markup, collapse whitespace and truncate to ``limit`` characters (None keeps all)."""
    if not text:
        return ''
    if '<' in text:
        text = BeautifulSoup(text, 'html.parser').get_text(' ')
    text = _WHITESPACE.sub(' ', text).strip()
    return text if limit is None else text[:limit]


def guess_category(title: str) -> str:
    """First matching keyword group wins; 'Update' if none match."""
    lowered = (title or '').lower()
    for category, lexicon in CATEGORY_GROUPS:
        if lexicon.matches(lowered):
            return category
    return CATEGORY_UPDATE


class Normalizer:
    """Turns scored raw entries into canonical NewsItem objects."""

    def __init__(
        self,
        redirect_params: Iterable[str] = DEFAULT_REDIRECT_PARAMS,
        summary_max_length: int = SUMMARY_MAX_LENGTH
    ):
        self.redirect_params = tuple(redirect_params)
        self.summary_max_length = summary_max_length
        self.logger = get_logger()

    def normalize(self, entry: RawEntry, score: float, fallback_time: datetime) -> Optional[NewsItem]:
        """
        Normalize one entry.

        Args:
            entry: Raw feed entry that passed the relevance filter
            score: Relevance score assigned by the filter
            fallback_time: Timestamp used when the entry carries none

        Returns:
            NewsItem, or None when title or URL is empty
        """
        title = _WHITESPACE.sub(' ', entry.title or '').strip()
        url = unwrap_redirect((entry.raw_link or '').strip(), self.redirect_params)
        if not title or not url:
            self.logger.debug(f"Dropped entry with empty title or url from {entry.origin_feed_label}")
            return None

        return NewsItem(
            title=title,
            url=url,
            source_host=host_of(url) or entry.origin_feed_label or FALLBACK_SOURCE,
            published_at=entry.published_at or fallback_time,
            summary=clean_summary(entry.raw_summary, self.summary_max_length),
            category=guess_category(title),
            score=score,
        )
