"""Configuration management for the custody news pipeline."""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml
from dotenv import load_dotenv


GOOGLE_NEWS_TEMPLATE = "https://news.google.com/rss/search?q={query}&hl={hl}&gl={gl}&ceid={ceid}"

USER_AGENT = "Mozilla/5.0 (compatible; CustodyNewsBot/1.0; +https://asian-loop.com)"
ACCEPT = "application/rss+xml, application/xml;q=0.9,*/*;q=0.8"


@dataclass(frozen=True)
class Edition:
    """Regional edition of the news search (language, country, edition id)."""
    hl: str
    gl: str
    ceid: str


@dataclass(frozen=True)
class FeedQuery:
    """One topic phrase searched in one regional edition."""
    topic: str
    edition: Edition


DEFAULT_EDITIONS: Tuple[Edition, ...] = (
    Edition(hl="en-US", gl="US", ceid="US:en"),
    Edition(hl="en-GB", gl="GB", ceid="GB:en"),
    Edition(hl="en-SG", gl="SG", ceid="SG:en"),
    Edition(hl="en-MY", gl="MY", ceid="MY:en"),
    Edition(hl="en-AE", gl="AE", ceid="AE:en"),
)

DEFAULT_TOPICS: Tuple[str, ...] = (
    '"custody transfer" meter',
    '"custody transfer" flow',
    '"fiscal metering"',
    '"meter proving" OR "pipe prover"',
    '"LACT unit" OR "lease automatic custody transfer"',
    '"API MPMS"',
    '"OIML R-117"',
    '"ISO 17025" metering',
    '"ultrasonic meter" custody',
    '"coriolis meter" custody',
    '"metering skid" OR "metering station" custody',
    '"LNG metering" OR "gas metering" OR "oil metering" custody',
    '"calibration lab" metering',
    '"flowmeter" custody OR fiscal',
)


@dataclass(frozen=True)
class PipelineConfig:
    """Immutable configuration passed into the pipeline entry point."""
    feed_template: str = GOOGLE_NEWS_TEMPLATE
    topics: Tuple[str, ...] = DEFAULT_TOPICS
    editions: Tuple[Edition, ...] = DEFAULT_EDITIONS

    # Fetching
    concurrency: int = 8
    request_timeout: float = 20.0
    max_redirects: int = 5
    user_agent: str = USER_AGENT
    accept: str = ACCEPT

    # Relevance and ranking
    require_context: bool = True  # strict: inclusion AND context match required
    scoring_enabled: bool = True
    title_similarity_threshold: int = 0  # 0 disables fuzzy title dedup
    redirect_params: Tuple[str, ...] = ("url",)
    summary_max_length: int = 240
    fresh_days: int = 30
    max_items: int = 30

    # Paths and schedule
    output_file: Path = field(default_factory=lambda: Path("public/news.latest.json"))
    log_file: Optional[Path] = field(default_factory=lambda: Path("logs/custody_news.log"))
    execution_history_file: Optional[Path] = field(
        default_factory=lambda: Path("data/execution_history.json")
    )
    run_time: str = "06:00"

    def with_overrides(self, **overrides: Any) -> 'PipelineConfig':
        """Return a copy with the given non-None fields replaced."""
        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **changes) if changes else self


class ConfigError(Exception):
    """Raised when configuration is invalid or missing."""
    pass


def _load_editions(raw: Any) -> Tuple[Edition, ...]:
    editions = []
    for item in raw:
        if not isinstance(item, dict):
            raise ConfigError(f"Invalid edition entry: {item!r}")
        try:
            editions.append(Edition(hl=item['hl'], gl=item['gl'], ceid=item['ceid']))
        except KeyError as e:
            raise ConfigError(f"Edition entry missing field {e}: {item!r}")
    return tuple(editions)


def _optional_path(value: Any) -> Optional[Path]:
    if value in (None, "", False):
        return None
    return Path(value)


def load_config(config_path: Optional[str] = "config/config.yaml") -> PipelineConfig:
    """
    Load configuration from an optional YAML file and environment variables.

    A missing file is not an error: the built-in defaults describe the
    production feed set. Environment variables (also read from a .env file)
    override paths:

        CUSTODY_NEWS_OUTPUT, CUSTODY_NEWS_LOG_FILE, CUSTODY_NEWS_HISTORY_FILE

    Args:
        config_path: Path to the configuration YAML file, or None

    Returns:
        PipelineConfig with all settings

    Raises:
        ConfigError: If the file cannot be parsed or holds invalid values
    """
    load_dotenv()

    yaml_config: Dict[str, Any] = {}
    if config_path and os.path.exists(config_path):
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                yaml_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse YAML configuration: {e}")
        if not isinstance(yaml_config, dict):
            raise ConfigError(f"Configuration root must be a mapping: {config_path}")

    defaults = PipelineConfig()
    feeds = yaml_config.get('feeds', {}) or {}
    fetch = yaml_config.get('fetch', {}) or {}
    relevance = yaml_config.get('relevance', {}) or {}
    output = yaml_config.get('output', {}) or {}
    paths = yaml_config.get('paths', {}) or {}
    execution = yaml_config.get('execution', {}) or {}

    topics = feeds.get('topics')
    editions = feeds.get('editions')

    try:
        config = PipelineConfig(
            feed_template=feeds.get('template', defaults.feed_template),
            topics=tuple(topics) if topics else defaults.topics,
            editions=_load_editions(editions) if editions else defaults.editions,
            concurrency=int(fetch.get('concurrency', defaults.concurrency)),
            request_timeout=float(fetch.get('timeout', defaults.request_timeout)),
            max_redirects=int(fetch.get('max_redirects', defaults.max_redirects)),
            user_agent=fetch.get('user_agent', defaults.user_agent),
            accept=fetch.get('accept', defaults.accept),
            require_context=bool(relevance.get('require_context', defaults.require_context)),
            scoring_enabled=bool(relevance.get('scoring_enabled', defaults.scoring_enabled)),
            title_similarity_threshold=int(
                relevance.get('title_similarity_threshold', defaults.title_similarity_threshold)
            ),
            redirect_params=tuple(relevance.get('redirect_params', defaults.redirect_params)),
            summary_max_length=int(output.get('summary_max_length', defaults.summary_max_length)),
            fresh_days=int(output.get('fresh_days', defaults.fresh_days)),
            max_items=int(output.get('max_items', defaults.max_items)),
            output_file=Path(
                os.getenv('CUSTODY_NEWS_OUTPUT') or paths.get('output_file', defaults.output_file)
            ),
            log_file=_optional_path(
                os.getenv('CUSTODY_NEWS_LOG_FILE') or paths.get('log_file', defaults.log_file)
            ),
            execution_history_file=_optional_path(
                os.getenv('CUSTODY_NEWS_HISTORY_FILE')
                or paths.get('execution_history_file', defaults.execution_history_file)
            ),
            run_time=str(execution.get('run_time', defaults.run_time)),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid configuration value: {e}")

    return config


def validate_config(config: PipelineConfig) -> None:
    """
    Validate configuration object.

    Args:
        config: Configuration object to validate

    Raises:
        ConfigError: If configuration is invalid
    """
    if not config.topics:
        raise ConfigError("At least one topic query is required")
    if not config.editions:
        raise ConfigError("At least one regional edition is required")

    for placeholder in ('{query}', '{hl}', '{gl}', '{ceid}'):
        if placeholder not in config.feed_template:
            raise ConfigError(f"Feed template is missing placeholder {placeholder}")

    if config.concurrency < 1:
        raise ConfigError(f"concurrency must be at least 1: {config.concurrency}")
    if config.request_timeout <= 0:
        raise ConfigError(f"timeout must be positive: {config.request_timeout}")
    if config.max_items < 1:
        raise ConfigError(f"max_items must be at least 1: {config.max_items}")
    if config.fresh_days < 1:
        raise ConfigError(f"fresh_days must be at least 1: {config.fresh_days}")
    if config.summary_max_length < 1:
        raise ConfigError(f"summary_max_length must be at least 1: {config.summary_max_length}")
    if not (0 <= config.title_similarity_threshold <= 100):
        raise ConfigError(
            f"title_similarity_threshold must be between 0 and 100: "
            f"{config.title_similarity_threshold}"
        )

    try:
        hours, minutes = config.run_time.split(':')
        if not (0 <= int(hours) <= 23 and 0 <= int(minutes) <= 59):
            raise ValueError
    except ValueError:
        raise ConfigError(f"Invalid run_time format (use HH:MM): {config.run_time}")
