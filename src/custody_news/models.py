"""Data models for the custody news pipeline."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, List, Optional, Tuple


CATEGORY_STANDARDS = "Standards"
CATEGORY_TECHNOLOGY = "Technology"
CATEGORY_PROJECTS = "Projects"
CATEGORY_RESEARCH = "Research"
CATEGORY_UPDATE = "Update"

CATEGORIES = (
    CATEGORY_STANDARDS,
    CATEGORY_TECHNOLOGY,
    CATEGORY_PROJECTS,
    CATEGORY_RESEARCH,
    CATEGORY_UPDATE,
)


def to_iso(value: datetime) -> str:
    """Format a datetime as an ISO-8601 UTC string with a trailing 'Z'."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc).replace(microsecond=0)
    return value.isoformat().replace('+00:00', 'Z')


def parse_iso(value: str) -> datetime:
    """Parse an ISO-8601 string (with 'Z' or offset) into an aware UTC datetime."""
    parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    return _as_utc(parsed)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a published timestamp leniently.

    Accepts ISO-8601 and RFC-822 dates (the form RSS pubDate values take).
    Returns None for anything else, including non-strings.
    """
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return parse_iso(value.strip())
    except ValueError:
        pass
    try:
        parsed = parsedate_to_datetime(value.strip())
    except (TypeError, ValueError, IndexError):
        return None
    return _as_utc(parsed) if parsed is not None else None


def _as_utc(parsed: datetime) -> datetime:
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass(frozen=True)
class RawEntry:
    """One parsed feed record, before filtering and normalization."""
    title: str
    raw_link: str
    published_at: Optional[datetime]
    raw_summary: str
    origin_feed_label: str


@dataclass(frozen=True)
class NewsItem:
    """A filtered, normalized news item ready for ranking and publishing."""
    title: str
    url: str
    source_host: str
    published_at: datetime
    summary: str
    category: str = CATEGORY_UPDATE
    score: float = 0.0  # relevance score, used for ranking only

    def to_dict(self) -> dict:
        """Convert item to the wire format read by the news widget."""
        return {
            'title': self.title,
            'url': self.url,
            'sourceHost': self.source_host,
            'sourceName': self.source_host,
            'publishedAt': to_iso(self.published_at),
            'summary': self.summary,
            'category': self.category,
        }

    @classmethod
    def from_dict(cls, data: dict, default_published: Optional[datetime] = None) -> 'NewsItem':
        """
        Create NewsItem from a published record entry.

        Raises:
            ValueError: If title or url is missing, or publishedAt does not
                parse and no default is given
        """
        title = data.get('title')
        url = data.get('url')
        if not isinstance(title, str) or not title or not isinstance(url, str) or not url:
            raise ValueError("record item needs a non-empty title and url")

        published_at = parse_timestamp(data.get('publishedAt')) or default_published
        if published_at is None:
            raise ValueError(f"unparsable publishedAt: {data.get('publishedAt')!r}")

        return cls(
            title=title,
            url=url,
            source_host=str(data.get('sourceHost') or data.get('sourceName') or ''),
            published_at=published_at,
            summary=str(data.get('summary') or ''),
            category=str(data.get('category') or CATEGORY_UPDATE),
        )


@dataclass(frozen=True)
class ResultSet:
    """Ranked, deduplicated and capped items of one pipeline run."""
    updated_at: datetime
    items: Tuple[NewsItem, ...] = ()
    feeds_tried: int = 0

    @property
    def kept(self) -> int:
        return len(self.items)

    def to_dict(self) -> dict:
        """Convert result set to the published JSON record."""
        return {
            'updatedAt': to_iso(self.updated_at),
            'items': [item.to_dict() for item in self.items],
            'meta': {
                'feedsTried': self.feeds_tried,
                'kept': self.kept,
            },
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'ResultSet':
        """
        Create ResultSet from a published JSON record.

        Items are read leniently: an item whose publishedAt does not parse
        takes the record's updatedAt, and items without title or url are
        skipped, so one bad entry never empties the whole record.

        Raises:
            ValueError: If the record is not a JSON object with an items list
        """
        if not isinstance(data, dict):
            raise ValueError(f"record must be an object, got {type(data).__name__}")
        raw_items = data.get('items', [])
        if not isinstance(raw_items, list):
            raise ValueError("record items must be a list")

        updated_at = parse_timestamp(data.get('updatedAt')) or datetime.now(timezone.utc)
        items = []
        for raw in raw_items:
            if not isinstance(raw, dict):
                continue
            try:
                items.append(NewsItem.from_dict(raw, default_published=updated_at))
            except ValueError:
                continue

        meta = data.get('meta')
        feeds_tried = meta.get('feedsTried', 0) if isinstance(meta, dict) else 0
        return cls(
            updated_at=updated_at,
            items=tuple(items),
            feeds_tried=feeds_tried if isinstance(feeds_tried, int) else 0,
        )


@dataclass
class FetchResult:
    """Raw entries collected from all feeds of one run."""
    entries: List[RawEntry] = field(default_factory=list)
    feeds_tried: int = 0
    feeds_failed: int = 0


@dataclass
class ExecutionResult:
    """Results from a pipeline execution."""
    success: bool
    feeds_tried: int = 0
    feeds_failed: int = 0
    entries_fetched: int = 0
    items_kept: int = 0
    published: bool = False
    preserved_previous: bool = False
    errors: List[str] = field(default_factory=list)
    execution_time: float = 0.0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        """Convert execution result to dictionary for JSON serialization."""
        return {
            'success': self.success,
            'feeds_tried': self.feeds_tried,
            'feeds_failed': self.feeds_failed,
            'entries_fetched': self.entries_fetched,
            'items_kept': self.items_kept,
            'published': self.published,
            'preserved_previous': self.preserved_previous,
            'errors': list(self.errors),
            'execution_time': self.execution_time,
            'timestamp': to_iso(self.timestamp),
        }
