import json
import logging

import pytest

from feedboard import aggregator as aggregator_module
from feedboard import cli
from feedboard.cache import FEEDS_CACHE_KEY
from feedboard.config import AppConfig, CacheConfig, LoggingConfig
from feedboard.feeds import FeedFetchError
from feedboard.models import CityForecast, DailyForecast, FeedSource, Source


@pytest.fixture
def clean_root_logger():
    original_handlers = list(logging.getLogger().handlers)
    for handler in logging.getLogger().handlers[:]:
        logging.getLogger().removeHandler(handler)
    yield logging.getLogger()
    for handler in logging.getLogger().handlers[:]:
        logging.getLogger().removeHandler(handler)
        handler.close()
    for handler in original_handlers:
        logging.getLogger().addHandler(handler)


@pytest.fixture
def app_config(tmp_path):
    return AppConfig(
        feeds=[
            FeedSource(Source.HATENA, "Hatena", "https://hatena.example/rss"),
            FeedSource(Source.HACKERNEWS, "HN", "https://hn.example/rss"),
        ],
        cities=[],
        cache=CacheConfig(connection_string=f"sqlite:///{tmp_path / 'cache.db'}"),
    )


def test_configure_logging_defaults_to_console_only(clean_root_logger):
    cli.configure_logging("INFO")

    handlers = clean_root_logger.handlers
    assert any(isinstance(handler, logging.StreamHandler) for handler in handlers)
    assert not any(isinstance(handler, logging.FileHandler) for handler in handlers)


def test_configure_logging_with_log_file_creates_file_handler(clean_root_logger, tmp_path):
    log_path = tmp_path / "nested" / "custom.log"
    cli.configure_logging("DEBUG", str(log_path))

    assert log_path.exists()
    assert clean_root_logger.level == logging.DEBUG
    assert any(isinstance(handler, logging.FileHandler) for handler in clean_root_logger.handlers)


def test_configure_logging_rejects_unknown_level(clean_root_logger):
    with pytest.raises(ValueError):
        cli.configure_logging("CHATTY")


def test_main_loads_config_and_runs(monkeypatch):
    monkeypatch.setattr(cli, "configure_logging", lambda level, log_file=None: None)
    mock_app_config = AppConfig(env_file="env.xml")
    monkeypatch.setattr(cli, "parse_app_config", lambda path: mock_app_config)
    monkeypatch.setattr(cli, "parse_env_config", lambda path: {})

    captured = {}

    def fake_run(app_config, args):
        captured["config"] = app_config
        captured["args"] = args
        return 0

    monkeypatch.setattr(cli, "run", fake_run)

    exit_code = cli.main(["--config", "config.xml", "--tab", "hackernews", "--query", "rust"])

    assert exit_code == 0
    assert captured["config"] is mock_app_config
    assert captured["args"].tab == "hackernews"
    assert captured["args"].query == "rust"


def test_main_cli_overrides_logging(monkeypatch):
    calls = {}

    def fake_configure(level, log_file=None):
        calls["level"] = level
        calls["log_file"] = log_file

    monkeypatch.setattr(cli, "configure_logging", fake_configure)
    mock_app_config = AppConfig(logging=LoggingConfig(level="INFO", file="config.log"))
    monkeypatch.setattr(cli, "parse_app_config", lambda path: mock_app_config)
    monkeypatch.setattr(cli, "run", lambda app_config, args: 0)

    cli.main(["--config", "config.xml", "--log-level", "DEBUG", "--log-file", "cli.log"])

    assert calls == {"level": "DEBUG", "log_file": "cli.log"}


def test_main_reports_missing_config(monkeypatch, tmp_path):
    monkeypatch.setattr(cli, "configure_logging", lambda level, log_file=None: None)

    assert cli.main(["--config", str(tmp_path / "missing.xml")]) == 1


def test_reset_cache_requires_passphrase(app_config, capsys):
    cache = cli.build_cache(app_config)
    cache.save(FEEDS_CACHE_KEY, {"feeds": {}, "weather": []})
    parser = cli.build_parser()

    assert cli.run(app_config, parser.parse_args(["--reset-cache", "nope"])) == 1
    assert cache.load(FEEDS_CACHE_KEY) is not None

    assert cli.run(app_config, parser.parse_args(["--reset-cache", "feedboard-reset"])) == 0
    assert "Cache cleared." in capsys.readouterr().out
    assert cache.load(FEEDS_CACHE_KEY) is None


def test_run_prints_json_listing(app_config, monkeypatch, capsys):
    bodies = {
        "https://hatena.example/rss": (
            b"<rss><channel><item><title>Hatena one</title><link>https://h/1</link>"
            b"<pubDate>Fri, 10 May 2024 01:00:00 +0000</pubDate></item></channel></rss>"
        ),
        "https://hn.example/rss": (
            b"<rss><channel><item><title>HN one</title><link>https://n/1</link>"
            b"<pubDate>Fri, 10 May 2024 02:00:00 +0000</pubDate></item></channel></rss>"
        ),
    }
    forecast = CityForecast("Tokyo", (DailyForecast("2024-05-10", 0, 22.0, 14.0, 0),))
    monkeypatch.setattr(
        aggregator_module,
        "fetch_feed",
        lambda feed, proxy_template=None, timeout=None: bodies[feed.url],
    )
    monkeypatch.setattr(aggregator_module, "fetch_forecasts", lambda cities, **kwargs: [forecast])
    args = cli.build_parser().parse_args(["--format", "json", "--no-translate"])

    assert cli.run(app_config, args) == 0

    document = json.loads(capsys.readouterr().out)
    assert [item["title"] for item in document["items"]] == ["HN one", "Hatena one"]
    assert document["weather"][0]["name"] == "Tokyo"
    assert document["error"] is None


def test_run_signals_total_failure(app_config, monkeypatch, capsys):
    def offline(feed, proxy_template=None, timeout=None):
        raise FeedFetchError("offline")

    monkeypatch.setattr(aggregator_module, "fetch_feed", offline)
    monkeypatch.setattr(aggregator_module, "fetch_forecasts", lambda cities, **kwargs: [])
    args = cli.build_parser().parse_args(["--no-translate"])

    assert cli.run(app_config, args) == 1
    assert aggregator_module.FETCH_FAILED_MESSAGE in capsys.readouterr().out
