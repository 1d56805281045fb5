"""Ranking, capping and publish-merge policy for news items."""

from datetime import datetime, timedelta
from typing import List, Optional

from ..models import NewsItem, ResultSet
from ..logger import get_logger


class ArticleRanker:
    """Orders deduplicated items by relevance and recency and caps the list."""

    def __init__(self, max_items: int = 30, fresh_days: int = 30, scoring_enabled: bool = True):
        """
        Initialize article ranker.

        Args:
            max_items: Maximum number of items to keep
            fresh_days: Items published longer ago than this are dropped
            scoring_enabled: Sort by relevance score before recency
        """
        self.max_items = max_items
        self.fresh_days = fresh_days
        self.scoring_enabled = scoring_enabled
        self.logger = get_logger()

    def sort_key(self, item: NewsItem):
        score = item.score if self.scoring_enabled else 0.0
        return (score, item.published_at)

    def rank(self, items: List[NewsItem], now: datetime) -> List[NewsItem]:
        """
        Drop stale items, sort and cap.

        Ties keep their input order, so identical input always yields
        identical output.

        Args:
            items: Deduplicated items
            now: Reference time of the run (timezone-aware)

        Returns:
            At most ``max_items`` items, best first
        """
        if not items:
            self.logger.info("No items to rank")
            return []

        cutoff = now - timedelta(days=self.fresh_days)
        fresh = [item for item in items if item.published_at >= cutoff]
        stale_count = len(items) - len(fresh)
        if stale_count:
            self.logger.debug(f"Filtered out {stale_count} items older than {self.fresh_days} days")

        ranked = sorted(fresh, key=self.sort_key, reverse=True)
        limited = ranked[:self.max_items]

        self.logger.info(
            f"Ranking complete: {len(limited)}/{len(items)} items retained "
            f"(stale: {stale_count}, limited: {len(ranked) - len(limited)})"
        )
        return limited


def merge_policy(previous: Optional[ResultSet], current: ResultSet) -> ResultSet:
    """
    Choose the record to publish.

    An empty run never replaces a non-empty previous record; in every other
    case the current run wins.
    """
    if not current.items and previous is not None and previous.items:
        return previous
    return current
