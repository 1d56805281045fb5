"""Pipeline orchestrator for coordinating the custody news workflow."""

import json
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, List, Optional

from .config import PipelineConfig
from .models import ExecutionResult, NewsItem, RawEntry, ResultSet, parse_timestamp
from .fetchers.feed_sources import build_feed_urls
from .fetchers.rss_fetcher import RSSFetcher
from .processing.deduplicator import Deduplicator
from .processing.normalizer import Normalizer, clean_summary
from .processing.ranker import ArticleRanker, merge_policy
from .processing.relevance import RelevanceFilter
from .publisher import PublishError, Publisher
from .logger import get_logger


def process_entries(
    entries: Iterable[RawEntry],
    config: PipelineConfig,
    now: datetime,
    feeds_tried: int = 0
) -> ResultSet:
    """
    Filter, normalize, deduplicate and rank raw entries.

    Pure with respect to its inputs: the same entries, config and clock
    always give the same ResultSet.

    Args:
        entries: Raw entries from the fetcher
        config: Pipeline configuration
        now: Reference time of the run (timezone-aware)
        feeds_tried: Number of feeds polled, recorded in the metadata

    Returns:
        Ranked, deduplicated and capped ResultSet
    """
    logger = get_logger()
    relevance = RelevanceFilter(require_context=config.require_context)
    normalizer = Normalizer(
        redirect_params=config.redirect_params,
        summary_max_length=config.summary_max_length
    )

    candidates: List[NewsItem] = []
    dropped = 0
    for entry in entries:
        summary_text = clean_summary(entry.raw_summary, limit=None)
        score = relevance.score(entry.title, summary_text)
        if score is None:
            dropped += 1
            continue
        item = normalizer.normalize(entry, score, fallback_time=now)
        if item is None:
            dropped += 1
            continue
        candidates.append(item)

    logger.info(f"Relevance filter kept {len(candidates)} entries ({dropped} dropped)")

    unique = Deduplicator(similarity_threshold=config.title_similarity_threshold).deduplicate(candidates)
    ranked = ArticleRanker(
        max_items=config.max_items,
        fresh_days=config.fresh_days,
        scoring_enabled=config.scoring_enabled
    ).rank(unique, now)

    return ResultSet(updated_at=now, items=tuple(ranked), feeds_tried=feeds_tried)


class PipelineOrchestrator:
    """Orchestrates fetch -> filter/normalize -> dedup/rank -> publish."""

    def __init__(
        self,
        config: PipelineConfig,
        fetcher: Optional[RSSFetcher] = None,
        publisher: Optional[Publisher] = None
    ):
        """
        Initialize pipeline orchestrator.

        Args:
            config: Pipeline configuration
            fetcher: RSS fetcher (built from config when omitted)
            publisher: Output publisher (built from config when omitted)
        """
        self.config = config
        self.logger = get_logger()
        self.fetcher = fetcher or RSSFetcher(config)
        self.publisher = publisher or Publisher(config.output_file)

    async def run_pipeline(self, now: Optional[datetime] = None) -> ExecutionResult:
        """
        Execute one complete run.

        Feed failures and an empty result are not errors. The run fails only
        when the output record cannot be written.

        Args:
            now: Reference time of the run, defaults to the current UTC time

        Returns:
            ExecutionResult with execution status and metrics
        """
        start_time = time.time()
        now = now or datetime.now(timezone.utc)
        self.logger.info("=" * 70)
        self.logger.info("Starting custody news pipeline")
        self.logger.info("=" * 70)

        result = ExecutionResult(success=False)

        # Stage 1: Fetch feeds
        urls = build_feed_urls(self.config)
        self.logger.info(f"Stage 1: Fetching {len(urls)} feeds")
        fetched = await self.fetcher.fetch_all(urls)
        result.feeds_tried = fetched.feeds_tried
        result.feeds_failed = fetched.feeds_failed
        result.entries_fetched = len(fetched.entries)
        if fetched.feeds_failed:
            result.errors.append(f"{fetched.feeds_failed} feeds failed")

        # Stage 2: Filter, normalize, dedup, rank
        self.logger.info("Stage 2: Filtering and ranking entries")
        current = process_entries(fetched.entries, self.config, now, feeds_tried=fetched.feeds_tried)
        result.items_kept = current.kept
        self.logger.info(f"OK: {current.kept} items ranked")

        # Stage 3: Publish
        self.logger.info("Stage 3: Publishing")
        previous = self.publisher.load_previous()
        chosen = merge_policy(previous, current)

        if chosen is not current:
            self.logger.warning(
                f"No qualifying items this run; keeping previous record "
                f"with {chosen.kept} items"
            )
            result.preserved_previous = True
            result.success = True
        else:
            try:
                self.publisher.publish(current)
                result.published = True
                result.success = True
            except PublishError as e:
                error_msg = f"CRITICAL: {e}"
                self.logger.error(error_msg, exc_info=True)
                result.errors.append(error_msg)

        result.execution_time = time.time() - start_time
        self.logger.info("=" * 70)
        self.logger.info(
            f"Pipeline finished in {result.execution_time:.2f} seconds "
            f"(success: {result.success})"
        )
        self.logger.info(
            f"Feeds: {result.feeds_tried - result.feeds_failed}/{result.feeds_tried} ok, "
            f"entries: {result.entries_fetched}, kept: {result.items_kept}"
        )
        self.logger.info("=" * 70)

        self._save_execution_history(result)
        return result

    def _save_execution_history(self, result: ExecutionResult) -> None:
        """
        Append the run result to the execution history file (last 30 days).

        Args:
            result: Execution result to save
        """
        history_file = self.config.execution_history_file
        if history_file is None:
            return

        try:
            history = self._load_history(history_file)
            history.append(result.to_dict())

            cutoff = datetime.now(timezone.utc) - timedelta(days=30)
            history = [
                h for h in history
                if (parse_timestamp(h.get('timestamp')) or datetime.min.replace(tzinfo=timezone.utc)) >= cutoff
            ]

            history_file.parent.mkdir(parents=True, exist_ok=True)
            with open(history_file, 'w', encoding='utf-8') as f:
                json.dump(history, f, indent=2, ensure_ascii=False)

            self.logger.debug(f"Saved execution history to {history_file}")

        except (OSError, ValueError, TypeError) as e:
            self.logger.error(f"Failed to save execution history: {e}")

    def _load_history(self, history_file: Path) -> List[dict]:
        """Read prior history entries; anything that is not a list of objects starts fresh."""
        if not history_file.exists():
            return []

        try:
            with open(history_file, 'r', encoding='utf-8') as f:
                history = json.load(f)
        except ValueError as e:
            self.logger.warning(f"Discarding unreadable execution history {history_file}: {e}")
            return []

        if not isinstance(history, list):
            self.logger.warning(f"Discarding execution history that is not a list: {history_file}")
            return []
        return [h for h in history if isinstance(h, dict)]
