"""Configuration loading for feedboard."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional
from xml.etree import ElementTree as ET

from .cache import DEFAULT_UTC_OFFSET_HOURS, RESET_PASSPHRASE
from .feeds import DEFAULT_PROXY
from .models import City, FeedSource, Source
from .storage import DEFAULT_CONNECTION_STRING
from .translation import DEFAULT_MODEL

logger = logging.getLogger(__name__)

DEFAULT_FEEDS: List[FeedSource] = [
    FeedSource(
        source=Source.HATENA,
        title="はてブ IT",
        url="https://b.hatena.ne.jp/hotentry/it.rss",
    ),
    FeedSource(
        source=Source.HACKERNEWS,
        title="Hacker News",
        url="https://hnrss.org/frontpage",
    ),
    FeedSource(
        source=Source.NIKKEI,
        title="日経",
        url="https://assets.wor.jp/rss/rdf/nikkei/news.rdf",
        limit=20,
    ),
]

DEFAULT_CITIES: List[City] = [
    City("Tokyo", 35.6895, 139.6917),
    City("Osaka", 34.6937, 135.5023),
    City("Sapporo", 43.0618, 141.3545),
    City("Fukuoka", 33.5904, 130.4017),
]


@dataclass
class CacheConfig:
    connection_string: str = DEFAULT_CONNECTION_STRING
    utc_offset_hours: int = DEFAULT_UTC_OFFSET_HOURS
    reset_passphrase: str = RESET_PASSPHRASE


@dataclass
class TranslationConfig:
    enabled: bool = True
    source_language: str = "en"
    target_language: str = "ja"
    model: str = DEFAULT_MODEL


@dataclass
class LoggingConfig:
    level: str = "INFO"
    file: Optional[str] = None


@dataclass
class AppConfig:
    feeds: List[FeedSource] = field(default_factory=lambda: list(DEFAULT_FEEDS))
    cities: List[City] = field(default_factory=lambda: list(DEFAULT_CITIES))
    env_file: Optional[str] = None
    proxy: str = DEFAULT_PROXY
    concurrency: int = 8
    timeout_seconds: Optional[float] = None
    cache: CacheConfig = field(default_factory=CacheConfig)
    translation: TranslationConfig = field(default_factory=TranslationConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _parse_source(value: Optional[str]) -> Source:
    try:
        return Source(value)
    except ValueError:
        raise ValueError(f"Unknown feed source: {value!r}") from None


def parse_feeds_config(path: str) -> List[FeedSource]:
    """Parse the OPML feed list and return feed definitions."""
    logger.info("Loading feed configuration from %s", path)
    tree = ET.parse(path)
    root = tree.getroot()
    body = root.find("body")
    if body is None:
        raise ValueError("feeds file is missing the <body> section.")

    feeds: List[FeedSource] = []
    seen = set()
    for outline in body.iter("outline"):
        feed_url = outline.attrib.get("xmlUrl")
        if outline.attrib.get("type") != "rss" or not feed_url:
            continue

        source = _parse_source(outline.attrib.get("source"))
        if source in seen:
            raise ValueError(f"Feed source {source.value!r} is configured twice.")
        seen.add(source)

        limit = outline.attrib.get("limit")
        feeds.append(
            FeedSource(
                source=source,
                title=outline.attrib.get("title") or outline.attrib.get("text") or source.label,
                url=feed_url,
                limit=int(limit) if limit else None,
            )
        )
        logger.debug("Registered feed '%s' (source='%s')", feed_url, source.value)

    logger.info("Loaded %d feed endpoints from configuration", len(feeds))
    return feeds


def _resolve_path(base_path: Path, target_path: str) -> str:
    """Resolve a path relative to the base config file if it's not absolute."""
    target = Path(target_path)
    if target.is_absolute():
        return str(target)
    return str((base_path.parent / target).resolve())


def parse_env_config(path: str) -> Dict[str, str]:
    """Parse environment variables from XML."""
    env_vars = {}
    if not path:
        return env_vars

    logger.info("Loading environment configuration from %s", path)
    try:
        tree = ET.parse(path)
        root = tree.getroot()
        for var in root.findall("variable"):
            name = var.attrib.get("name")
            value = var.text
            if name and value:
                env_vars[name] = value.strip()
    except Exception as exc:
        logger.warning("Failed to load environment config: %s", exc)
        raise

    return env_vars


def _parse_cities(node: ET.Element) -> List[City]:
    cities = []
    for city in node.findall("city"):
        name = city.attrib.get("name")
        if not name:
            raise ValueError("Weather <city> requires a name attribute.")
        try:
            latitude = float(city.attrib["latitude"])
            longitude = float(city.attrib["longitude"])
        except (KeyError, ValueError):
            raise ValueError(f"City {name!r} needs numeric latitude and longitude.") from None
        cities.append(City(name, latitude, longitude))
    return cities


def parse_app_config(path: str) -> AppConfig:
    """Parse the main application configuration XML."""
    config_path = Path(path).resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    logger.info("Loading application configuration from %s", config_path)
    tree = ET.parse(config_path)
    root = tree.getroot()
    config = AppConfig()

    # Feeds
    feeds_node = root.find("feeds")
    if feeds_node is not None and feeds_node.text and feeds_node.text.strip():
        config.feeds = parse_feeds_config(_resolve_path(config_path, feeds_node.text.strip()))
        if not config.feeds:
            raise ValueError("No feeds found in the configuration.")

    # Env
    env_node = root.find("env")
    if env_node is not None and env_node.text:
        config.env_file = _resolve_path(config_path, env_node.text.strip())

    # Simple values
    config.proxy = root.findtext("proxy", DEFAULT_PROXY).strip()
    if "{url}" not in config.proxy:
        raise ValueError("<proxy> must contain a {url} placeholder.")
    config.concurrency = int(root.findtext("concurrency", "8"))
    timeout = root.findtext("timeout-seconds")
    if timeout:
        config.timeout_seconds = float(timeout)

    # Weather
    weather_node = root.find("weather")
    if weather_node is not None:
        config.cities = _parse_cities(weather_node)

    # Cache
    cache_node = root.find("cache")
    if cache_node is not None:
        config.cache.connection_string = cache_node.findtext(
            "connection-string", DEFAULT_CONNECTION_STRING
        ).strip()
        config.cache.utc_offset_hours = int(
            cache_node.findtext("utc-offset-hours", str(DEFAULT_UTC_OFFSET_HOURS))
        )
        passphrase = cache_node.findtext("reset-passphrase")
        if passphrase:
            config.cache.reset_passphrase = passphrase.strip()

    # Translation
    tr_node = root.find("translation")
    if tr_node is not None:
        config.translation.enabled = tr_node.findtext("enabled", "true").lower() == "true"
        config.translation.source_language = tr_node.findtext("source-language", "en")
        config.translation.target_language = tr_node.findtext("target-language", "ja")
        config.translation.model = tr_node.findtext("model", DEFAULT_MODEL)

    # Logging
    log_node = root.find("logging")
    if log_node is not None:
        config.logging.level = log_node.findtext("level", "INFO")
        log_file = log_node.findtext("file")
        if log_file:
            config.logging.file = _resolve_path(config_path, log_file)

    return config
