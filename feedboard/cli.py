"""Command-line interface for the feedboard application."""

from __future__ import annotations

import argparse
import concurrent.futures
import logging
import os
from pathlib import Path
from typing import List, Optional

from .aggregator import FeedAggregator
from .cache import CacheStore, reset_caches
from .config import AppConfig, parse_app_config, parse_env_config
from .models import Source, Tab
from .renderers import build_feed_json, build_feed_text
from .search import FeedView
from .storage import SqlStorage
from .translation import GeminiTranslator, TranslationQueue

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""
    parser = argparse.ArgumentParser(
        description="Aggregate tech news feeds and a weather forecast."
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to the main configuration XML file. Built-in defaults when omitted.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (e.g. DEBUG, INFO, WARNING). Overrides config.",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Optional path to a log file. Overrides config.",
    )
    parser.add_argument(
        "--tab",
        choices=[tab.value for tab in Tab],
        default=Tab.ALL.value,
        help="Source tab to display.",
    )
    parser.add_argument("--query", default="", help="Fuzzy search query.")
    parser.add_argument(
        "--format",
        choices=["text", "json"],
        default="text",
        help="Output format.",
    )
    parser.add_argument(
        "--no-translate",
        action="store_true",
        help="Skip background translation of Hacker News titles.",
    )
    parser.add_argument(
        "--reset-cache",
        metavar="PASSPHRASE",
        help="Clear the feed and translation caches, then exit.",
    )
    return parser


def configure_logging(level_name: str, log_file: Optional[str] = None) -> None:
    """Initialise logging according to options."""
    log_level = getattr(logging, level_name.upper(), None)
    if not isinstance(log_level, int):
        raise ValueError(f"Unsupported log level: {level_name}")

    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    root_logger.setLevel(log_level)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    root_logger.addHandler(stream_handler)

    if log_file:
        log_path = Path(log_file)
        if log_path.parent and not log_path.parent.exists():
            log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
        logger.debug(
            "Logger initialised with level %s and file output to %s",
            level_name.upper(),
            log_path,
        )
    else:
        logger.debug(
            "Logger initialised with console output at level %s", level_name.upper()
        )


def build_cache(app_config: AppConfig) -> CacheStore:
    storage = SqlStorage.from_connection_string(app_config.cache.connection_string)
    return CacheStore(storage, utc_offset_hours=app_config.cache.utc_offset_hours)


def run(app_config: AppConfig, args: argparse.Namespace) -> int:
    """Refresh feeds, translate in the background and print the view."""
    cache = build_cache(app_config)

    if args.reset_cache is not None:
        if not reset_caches(cache, args.reset_cache, app_config.cache.reset_passphrase):
            logger.error("Incorrect passphrase; caches left untouched.")
            return 1
        print("Cache cleared.")
        return 0

    aggregator = FeedAggregator(
        feeds=app_config.feeds,
        cities=app_config.cities,
        cache=cache,
        proxy_template=app_config.proxy,
        concurrency=app_config.concurrency,
        timeout=app_config.timeout_seconds,
    )
    state = aggregator.refresh()

    translations = None
    if app_config.translation.enabled and not args.no_translate:
        translator = GeminiTranslator(
            model=app_config.translation.model,
            source_language=app_config.translation.source_language,
            target_language=app_config.translation.target_language,
        )
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as executor:
            translations = TranslationQueue(
                cache,
                translator,
                source_language=app_config.translation.source_language,
                target_language=app_config.translation.target_language,
                executor=executor,
            )
            translations.observe(aggregator.items(Source.HACKERNEWS))

    view = FeedView(
        aggregator,
        title_lookup=translations.translated if translations else None,
        tab=Tab(args.tab),
        query=args.query,
    )

    if args.format == "json":
        print(build_feed_json(view, state.weather, state.error))
    else:
        print(build_feed_text(view, state.weather, state.error))

    return 1 if state.error else 0


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        app_config = parse_app_config(args.config) if args.config else AppConfig()

        if app_config.env_file:
            env_vars = parse_env_config(app_config.env_file)
            os.environ.update(env_vars)

        log_level = args.log_level or app_config.logging.level
        log_file = args.log_file or app_config.logging.file
        configure_logging(log_level, log_file)

        logger.info(
            "Active configuration: %d feeds, %d cities",
            len(app_config.feeds),
            len(app_config.cities),
        )
        return run(app_config, args)
    except ValueError as exc:
        parser.error(str(exc))
    except (RuntimeError, FileNotFoundError) as exc:
        logger.error("%s", exc)
        return 1
    except Exception:  # noqa: BLE001
        logger.exception("Unexpected error during execution.")
        return 1
