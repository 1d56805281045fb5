"""
Command line entry point for the custody news pipeline.

Usage:
    python -m custody_news                      # One run, write public/news.latest.json
    python -m custody_news --permissive         # Context terms boost instead of gate
    python -m custody_news --output out.json    # Custom output path
    python -m custody_news --schedule           # Run daily at the configured time (UTC)
    python -m custody_news --schedule --run-now # ...and publish once at startup
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import ConfigError, load_config, validate_config
from .orchestrator import PipelineOrchestrator
from .scheduler import Scheduler
from .logger import setup_logger


EXIT_OK = 0
EXIT_RUN_FAILED = 1
EXIT_CONFIG_ERROR = 2


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Fetch, filter and rank custody-transfer metering news into a JSON record"
    )

    parser.add_argument(
        "--config",
        default="config/config.yaml",
        help="Path to YAML configuration (optional, default: config/config.yaml)",
    )
    parser.add_argument(
        "--output",
        type=Path,
        help="Output JSON record path",
    )
    parser.add_argument(
        "--max-items",
        type=int,
        help="Maximum number of items to publish",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        help="Number of feeds fetched in parallel per batch",
    )
    parser.add_argument(
        "--fresh-days",
        type=int,
        help="Drop items older than this many days",
    )
    parser.add_argument(
        "--permissive",
        action="store_true",
        help="Keep items without a domain-context match (context only boosts the score)",
    )
    parser.add_argument(
        "--schedule",
        action="store_true",
        help="Keep running and execute the pipeline daily at the configured run time",
    )
    parser.add_argument(
        "--run-now",
        action="store_true",
        help="With --schedule, also publish once at startup",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Run the pipeline and return the process exit code."""
    args = parse_args(argv)

    try:
        config = load_config(args.config).with_overrides(
            output_file=args.output,
            max_items=args.max_items,
            concurrency=args.concurrency,
            fresh_days=args.fresh_days,
            require_context=False if args.permissive else None,
        )
        validate_config(config)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    logger = setup_logger(config.log_file, level=getattr(logging, args.log_level))
    pipeline = PipelineOrchestrator(config)

    if args.schedule:
        Scheduler(pipeline, run_time=config.run_time).start(run_immediately=args.run_now)
        return EXIT_OK

    result = asyncio.run(pipeline.run_pipeline())
    if not result.success:
        logger.error(f"Run failed: {'; '.join(result.errors)}")
        return EXIT_RUN_FAILED
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
