"""Integration tests for the pipeline, publisher, scheduler and CLI"""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, Mock, patch

import pytest

from custody_news.config import PipelineConfig
from custody_news.main import EXIT_CONFIG_ERROR, EXIT_OK, EXIT_RUN_FAILED, main
from custody_news.models import ExecutionResult, FetchResult, NewsItem, RawEntry, ResultSet
from custody_news.orchestrator import PipelineOrchestrator, process_entries
from custody_news.processing.deduplicator import dedup_key
from custody_news.processing.lexicon import EXCLUSION_LEXICON, INCLUSION_LEXICON
from custody_news.publisher import PublishError, Publisher
from custody_news.scheduler import JOB_ID, MISFIRE_GRACE_SECONDS, Scheduler


NOW = datetime(2026, 10, 15, 6, 0, tzinfo=timezone.utc)


def make_entry(title, link, summary="", age_hours=1, label="Google News"):
    published_at = None if age_hours is None else NOW - timedelta(hours=age_hours)
    return RawEntry(
        title=title,
        raw_link=link,
        published_at=published_at,
        raw_summary=summary,
        origin_feed_label=label
    )


@pytest.fixture
def entries():
    """A realistic mix of relevant, duplicated and unwanted entries."""
    wrap = "https://news.google.com/rss/articles/x?url="
    return [
        make_entry("Coriolis meter approved for LNG custody transfer",
                   wrap + "https://www.realsite.com/lng", "<b>Approved</b> by the terminal operator", 3),
        # Same story from another edition
        make_entry("Coriolis meter approved for LNG  custody transfer",
                   wrap + "https://realsite.com/lng?edition=gb", "", 3),
        make_entry("Pipe prover contract awarded for oil pipeline",
                   "https://energy.example.com/prover", "Fiscal metering upgrade", 10),
        make_entry("API MPMS update for gas metering", "https://standards.example.org/mpms", "", 30),
        make_entry("Smart meter rollout reaches gas customers", "https://utility.example.com/smart", "", 2),
        make_entry("Flow meter maker eyes bitcoin custody", "https://crypto.example.com/btc", "oil", 1),
        make_entry("Child custody case adjourned", "https://court.example.com/c", "", 1),
        make_entry("Ultrasonic flow meter launched", "https://gadgets.example.com/u", "", 1),
        make_entry("Old fiscal metering skid news", "https://realsite.com/old", "", 24 * 45),
        make_entry("Metering station for LNG terminal", "http://[broken/x", "", None, label="Example Feed"),
    ]


class TestProcessEntries:
    """Invariants of the filter -> normalize -> dedup -> rank stage."""

    def test_expected_selection(self, entries):
        result = process_entries(entries, PipelineConfig(), NOW, feeds_tried=70)

        titles = [item.title for item in result.items]
        assert "Flow meter maker eyes bitcoin custody" not in titles
        assert "Child custody case adjourned" not in titles
        assert "Ultrasonic flow meter launched" not in titles
        assert "Old fiscal metering skid news" not in titles
        assert titles.count("Coriolis meter approved for LNG custody transfer") == 1
        assert result.feeds_tried == 70
        assert result.kept == len(result.items) == 5

    def test_permissive_keeps_context_free_items(self, entries):
        config = PipelineConfig(require_context=False)

        titles = [item.title for item in process_entries(entries, config, NOW).items]

        assert "Ultrasonic flow meter launched" in titles

    def test_idempotent(self, entries):
        first = process_entries(entries, PipelineConfig(), NOW)
        second = process_entries(entries, PipelineConfig(), NOW)

        assert json.dumps(first.to_dict()) == json.dumps(second.to_dict())

    def test_dedup_invariant(self, entries):
        items = process_entries(entries * 3, PipelineConfig(), NOW).items
        keys = [dedup_key(item) for item in items]

        assert len(keys) == len(set(keys))

    def test_filter_invariant(self, entries):
        for item in process_entries(entries, PipelineConfig(require_context=False), NOW).items:
            text = f"{item.title} {item.summary}".lower()
            assert INCLUSION_LEXICON.matches(text)
            assert not EXCLUSION_LEXICON.matches(text)

    def test_cap_invariant(self, entries):
        result = process_entries(entries, PipelineConfig(max_items=2), NOW)

        assert len(result.items) == 2

    def test_ordering_invariant(self, entries):
        items = process_entries(entries, PipelineConfig(), NOW).items

        for a, b in zip(items, items[1:]):
            assert a.score >= b.score
            if a.score == b.score:
                assert a.published_at >= b.published_at

    def test_redirects_unwrapped_and_malformed_urls_survive(self, entries):
        items = {item.title: item for item in process_entries(entries, PipelineConfig(), NOW).items}

        coriolis = items["Coriolis meter approved for LNG custody transfer"]
        assert coriolis.url == "https://www.realsite.com/lng"
        assert coriolis.source_host == "realsite.com"
        assert coriolis.summary == "Approved by the terminal operator"

        broken = items["Metering station for LNG terminal"]
        assert broken.source_host == "Example Feed"
        assert broken.published_at == NOW

    def test_derank_sorts_lower(self, entries):
        items = process_entries(entries, PipelineConfig(), NOW).items

        assert items[-1].title == "Smart meter rollout reaches gas customers"

    def test_no_entries(self):
        result = process_entries([], PipelineConfig(), NOW)

        assert result.items == ()


class TestPublisher:
    """Test atomic writes and reading the previous record."""

    def make_result(self, count):
        items = tuple(
            NewsItem(
                title=f"Prover story {i}",
                url=f"https://realsite.com/{i}",
                source_host="realsite.com",
                published_at=NOW,
                summary="",
            )
            for i in range(count)
        )
        return ResultSet(updated_at=NOW, items=items, feeds_tried=70)

    def test_publish_writes_record(self, tmp_path):
        output = tmp_path / "public" / "news.latest.json"

        Publisher(output).publish(self.make_result(2))

        data = json.loads(output.read_text(encoding='utf-8'))
        assert data['updatedAt'] == "2026-10-15T06:00:00Z"
        assert len(data['items']) == 2
        assert data['meta'] == {'feedsTried': 70, 'kept': 2}

    def test_publish_leaves_no_temp_files(self, tmp_path):
        output = tmp_path / "news.json"
        publisher = Publisher(output)

        publisher.publish(self.make_result(1))
        publisher.publish(self.make_result(3))

        assert [p.name for p in tmp_path.iterdir()] == ["news.json"]
        assert publisher.load_previous().kept == 3

    def test_publish_failure_raises(self, tmp_path):
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("file", encoding='utf-8')

        with pytest.raises(PublishError):
            Publisher(blocker / "news.json").publish(self.make_result(1))

    def test_load_previous_missing(self, tmp_path):
        assert Publisher(tmp_path / "news.json").load_previous() is None

    def test_load_previous_corrupt(self, tmp_path):
        output = tmp_path / "news.json"
        output.write_text("{not json", encoding='utf-8')

        assert Publisher(output).load_previous() is None

    @pytest.mark.parametrize("content", ["[]", "null", '"text"', '{"items": {}}'])
    def test_load_previous_wrong_shape(self, tmp_path, content):
        output = tmp_path / "news.json"
        output.write_text(content, encoding='utf-8')

        assert Publisher(output).load_previous() is None

    def test_load_previous_tolerates_odd_fields(self, tmp_path):
        output = tmp_path / "news.json"
        output.write_text(json.dumps({
            'updatedAt': "2026-10-14T06:00:00Z",
            'meta': "broken",
            'items': [
                {'title': "Prover story", 'url': "https://realsite.com/a", 'publishedAt': None},
                {'title': "No link here"},
                "not an item",
            ],
        }), encoding='utf-8')

        previous = Publisher(output).load_previous()

        assert previous.kept == 1
        assert previous.items[0].published_at == datetime(2026, 10, 14, 6, 0, tzinfo=timezone.utc)
        assert previous.feeds_tried == 0


class TestPipelineOrchestrator:
    """End-to-end runs with a stubbed fetcher."""

    @pytest.fixture
    def config(self, tmp_path):
        return PipelineConfig(
            output_file=tmp_path / "news.latest.json",
            log_file=None,
            execution_history_file=tmp_path / "history.json"
        )

    def make_fetcher(self, entries, feeds_tried=70, feeds_failed=0):
        fetcher = Mock()
        fetcher.fetch_all = AsyncMock(return_value=FetchResult(
            entries=list(entries), feeds_tried=feeds_tried, feeds_failed=feeds_failed
        ))
        return fetcher

    @pytest.mark.asyncio
    async def test_run_publishes(self, config, entries):
        pipeline = PipelineOrchestrator(config, fetcher=self.make_fetcher(entries, feeds_failed=2))

        result = await pipeline.run_pipeline(now=NOW)

        assert result.success is True
        assert result.published is True
        assert result.feeds_failed == 2
        assert result.items_kept == 5
        data = json.loads(config.output_file.read_text(encoding='utf-8'))
        assert data['meta'] == {'feedsTried': 70, 'kept': 5}
        urls = pipeline.fetcher.fetch_all.call_args[0][0]
        assert len(urls) == 70

        history = json.loads(config.execution_history_file.read_text(encoding='utf-8'))
        assert history[-1]['items_kept'] == 5

    @pytest.mark.asyncio
    async def test_empty_run_preserves_previous(self, config):
        """A prior record with 5 items survives a run with 0 qualifying items."""
        previous = TestPublisher().make_result(5)
        Publisher(config.output_file).publish(previous)
        before = config.output_file.read_text(encoding='utf-8')

        pipeline = PipelineOrchestrator(config, fetcher=self.make_fetcher([
            make_entry("Child custody case adjourned", "https://court.example.com/c"),
        ]))
        result = await pipeline.run_pipeline(now=NOW)

        assert result.success is True
        assert result.preserved_previous is True
        assert result.published is False
        assert config.output_file.read_text(encoding='utf-8') == before
        assert len(json.loads(before)['items']) == 5

    @pytest.mark.asyncio
    async def test_empty_run_without_previous_writes_empty_record(self, config):
        pipeline = PipelineOrchestrator(config, fetcher=self.make_fetcher([], feeds_failed=70))

        result = await pipeline.run_pipeline(now=NOW)

        assert result.success is True
        assert json.loads(config.output_file.read_text(encoding='utf-8'))['items'] == []

    @pytest.mark.asyncio
    async def test_publish_failure_fails_run(self, config, entries):
        publisher = Mock()
        publisher.load_previous.return_value = None
        publisher.publish.side_effect = PublishError("disk full")
        pipeline = PipelineOrchestrator(config, fetcher=self.make_fetcher(entries), publisher=publisher)

        result = await pipeline.run_pipeline(now=NOW)

        assert result.success is False
        assert any("disk full" in error for error in result.errors)

    @pytest.mark.asyncio
    async def test_empty_run_preserves_previous_with_rss_dates(self, config):
        """Items carried over with an RFC-822 publishedAt still count as a previous record."""
        record = TestPublisher().make_result(5).to_dict()
        record['items'][2]['publishedAt'] = "Tue, 14 Oct 2026 06:00:00 GMT"
        config.output_file.write_text(json.dumps(record), encoding='utf-8')
        before = config.output_file.read_text(encoding='utf-8')

        pipeline = PipelineOrchestrator(config, fetcher=self.make_fetcher([]))
        result = await pipeline.run_pipeline(now=NOW)

        assert result.preserved_previous is True
        assert config.output_file.read_text(encoding='utf-8') == before
        assert len(json.loads(before)['items']) == 5

    @pytest.mark.asyncio
    async def test_previous_record_of_wrong_shape_is_replaced(self, config, entries):
        config.output_file.write_text("[]", encoding='utf-8')
        pipeline = PipelineOrchestrator(config, fetcher=self.make_fetcher(entries))

        result = await pipeline.run_pipeline(now=NOW)

        assert result.success is True
        assert result.published is True
        assert len(json.loads(config.output_file.read_text(encoding='utf-8'))['items']) == 5

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", ["{}", "{broken", '[{"timestamp": "2026-10-14T06:00:00Z"}, 7, "x"]'])
    async def test_bad_history_file_is_rewritten(self, config, entries, content):
        config.execution_history_file.write_text(content, encoding='utf-8')
        pipeline = PipelineOrchestrator(config, fetcher=self.make_fetcher(entries))

        result = await pipeline.run_pipeline(now=NOW)

        assert result.success is True
        history = json.loads(config.execution_history_file.read_text(encoding='utf-8'))
        assert isinstance(history, list)
        assert all(isinstance(h, dict) for h in history)
        assert history[-1]['items_kept'] == 5


class TestScheduler:
    """Test the daily scheduler wrapper."""

    def test_invalid_run_time(self):
        with pytest.raises(ValueError):
            Scheduler(Mock(), run_time="six")

    def test_add_job(self):
        scheduler = Scheduler(Mock(), run_time="06:30")

        job = scheduler.add_job()

        assert job.id == JOB_ID
        assert "hour='6'" in str(job.trigger)
        assert "minute='30'" in str(job.trigger)

    def test_job_never_overlaps_and_catches_up_once(self):
        job = Scheduler(Mock()).add_job()

        assert job.max_instances == 1
        assert job.coalesce is True
        assert job.misfire_grace_time == MISFIRE_GRACE_SECONDS

    @pytest.mark.asyncio
    async def test_run_once(self):
        pipeline = Mock()
        pipeline.run_pipeline = AsyncMock(return_value=ExecutionResult(success=True))

        result = await Scheduler(pipeline).run_once()

        assert result.success is True
        pipeline.run_pipeline.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_run_scheduled_records_result(self):
        pipeline = Mock()
        pipeline.run_pipeline = AsyncMock(return_value=ExecutionResult(success=True, items_kept=4))
        scheduler = Scheduler(pipeline)

        result = await scheduler.run_scheduled()

        assert result.items_kept == 4
        assert scheduler.last_result is result

    @pytest.mark.asyncio
    async def test_run_scheduled_survives_pipeline_crash(self):
        pipeline = Mock()
        pipeline.run_pipeline = AsyncMock(side_effect=RuntimeError("boom"))
        scheduler = Scheduler(pipeline)

        assert await scheduler.run_scheduled() is None
        assert scheduler.last_result is None


class TestMain:
    """Test the command line exit code contract."""

    @pytest.fixture(autouse=True)
    def isolated(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        for name in ('CUSTODY_NEWS_OUTPUT', 'CUSTODY_NEWS_LOG_FILE', 'CUSTODY_NEWS_HISTORY_FILE'):
            monkeypatch.delenv(name, raising=False)

    def run_main(self, result, argv):
        with patch('custody_news.main.PipelineOrchestrator') as orchestrator_cls:
            orchestrator_cls.return_value.run_pipeline = AsyncMock(return_value=result)
            code = main(argv)
        return code, orchestrator_cls.call_args[0][0]

    def test_success_exit_code(self):
        code, config = self.run_main(
            ExecutionResult(success=True),
            ["--output", "out.json", "--max-items", "5", "--permissive"]
        )

        assert code == EXIT_OK
        assert config.max_items == 5
        assert config.require_context is False
        assert str(config.output_file) == "out.json"

    def test_failed_run_exit_code(self):
        code, _ = self.run_main(ExecutionResult(success=False, errors=["disk full"]), [])

        assert code == EXIT_RUN_FAILED

    def test_config_error_exit_code(self):
        assert main(["--max-items", "0"]) == EXIT_CONFIG_ERROR

    def test_schedule_run_now(self):
        with patch('custody_news.main.PipelineOrchestrator'), \
                patch('custody_news.main.Scheduler') as scheduler_cls:
            code = main(["--schedule", "--run-now"])

        assert code == EXIT_OK
        scheduler_cls.return_value.start.assert_called_once_with(run_immediately=True)
