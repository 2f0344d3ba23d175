"""High-level orchestration of feed and weather aggregation."""

from __future__ import annotations

import concurrent.futures
import functools
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from .cache import FEEDS_CACHE_KEY, CacheStore
from .feeds import DEFAULT_PROXY, fetch_feed, parse_feed, parse_published
from .models import City, CityForecast, FeedItem, FeedSource, Source
from .weather import fetch_forecasts, request_forecast

logger = logging.getLogger(__name__)

FETCH_FAILED_MESSAGE = "Failed to fetch feeds. Please reload after a while."
UNEXPECTED_FAILURE_MESSAGE = "Failed to fetch feeds."


@dataclass
class AggregateFeedState:
    """In-memory view of the latest aggregation cycle."""

    items: Dict[Source, List[FeedItem]] = field(default_factory=dict)
    weather: List[CityForecast] = field(default_factory=list)
    loading: bool = True
    error: Optional[str] = None
    from_cache: bool = False


def merge_by_date(items: Iterable[FeedItem]) -> List[FeedItem]:
    """Order items newest first without moving items that lack a usable date.

    Dated items are sorted (stable) into the positions dated items occupied;
    undated or unparseable items keep their original positions.
    """
    items = list(items)
    dated_slots: List[int] = []
    dated: List[tuple] = []
    for index, item in enumerate(items):
        published = parse_published(item.published)
        if published is not None:
            dated_slots.append(index)
            dated.append((published, item))

    dated.sort(key=lambda pair: pair[0], reverse=True)
    merged = list(items)
    for slot, (_, item) in zip(dated_slots, dated):
        merged[slot] = item
    return merged


class FeedAggregator:
    """Fetches every configured feed plus weather, backed by the cache store."""

    def __init__(
        self,
        feeds: Sequence[FeedSource],
        cities: Sequence[City],
        cache: CacheStore,
        proxy_template: str = DEFAULT_PROXY,
        concurrency: int = 8,
        timeout: Optional[float] = None,
        fetch: Optional[Callable[[FeedSource], bytes]] = None,
        forecasts: Optional[Callable[[Sequence[City]], List[CityForecast]]] = None,
    ):
        self.feeds = list(feeds)
        self.cities = list(cities)
        self.cache = cache
        self.proxy_template = proxy_template
        self.concurrency = concurrency
        self.timeout = timeout
        self._fetch = fetch or functools.partial(
            fetch_feed, proxy_template=proxy_template, timeout=timeout
        )
        self._forecasts = forecasts or functools.partial(
            fetch_forecasts,
            concurrency=concurrency,
            request=functools.partial(request_forecast, timeout=timeout),
        )
        self._state = AggregateFeedState()
        self._refresh_lock = threading.Lock()

    @property
    def state(self) -> AggregateFeedState:
        return self._state

    @property
    def loading(self) -> bool:
        return self._state.loading

    @property
    def error(self) -> Optional[str]:
        return self._state.error

    @property
    def weather(self) -> List[CityForecast]:
        return list(self._state.weather)

    @property
    def source_limits(self) -> Dict[Source, int]:
        return {feed.source: feed.limit for feed in self.feeds if feed.limit is not None}

    def items(self, source: Source) -> List[FeedItem]:
        return list(self._state.items.get(source, []))

    def merged(self, limits: Optional[Mapping[Source, int]] = None) -> List[FeedItem]:
        """Concatenate sources in enum order and sort by publication date."""
        limits = limits or {}
        combined: List[FeedItem] = []
        for source in Source:
            items = self._state.items.get(source, [])
            limit = limits.get(source)
            combined.extend(items[:limit] if limit is not None else items)
        return merge_by_date(combined)

    def _decode_cached(self, payload: Any) -> AggregateFeedState:
        feeds = payload["feeds"]
        items: Dict[Source, List[FeedItem]] = {}
        for feed in self.feeds:
            items[feed.source] = [
                FeedItem.from_dict(entry) for entry in feeds[feed.source.value]
            ]
        weather = [CityForecast.from_dict(entry) for entry in payload.get("weather", [])]
        return AggregateFeedState(
            items=items, weather=weather, loading=False, error=None, from_cache=True
        )

    def _encode(self, items: Mapping[Source, List[FeedItem]], weather: List[CityForecast]):
        return {
            "feeds": {
                source.value: [item.to_dict() for item in entries]
                for source, entries in items.items()
            },
            "weather": [forecast.to_dict() for forecast in weather],
        }

    def refresh(self) -> AggregateFeedState:
        """Populate state from the cache or, on a miss, from the network."""
        if not self._refresh_lock.acquire(blocking=False):
            logger.info("Refresh already in progress; ignoring request")
            return self._state
        try:
            cached = self.cache.load(FEEDS_CACHE_KEY, decode=self._decode_cached)
            if cached is not None:
                logger.info("Serving feeds from cache")
                self._state = cached
                return self._state

            self._state = AggregateFeedState(loading=True, error=None)
            try:
                self._state = self._collect()
            except Exception:
                logger.exception("Unexpected error during feed aggregation.")
                self._state = AggregateFeedState(
                    loading=False, error=UNEXPECTED_FAILURE_MESSAGE
                )
            return self._state
        finally:
            self._state.loading = False
            self._refresh_lock.release()

    def _fetch_source(self, feed: FeedSource):
        try:
            raw = self._fetch(feed)
        except Exception as exc:  # noqa: BLE001 - a failed source must not abort the batch
            logger.warning("Failed to fetch feed '%s' (%s): %s", feed.title, feed.url, exc)
            return feed.source, [], False
        return feed.source, parse_feed(raw, feed.source), True

    def _fetch_weather(self) -> List[CityForecast]:
        try:
            return list(self._forecasts(self.cities))
        except Exception as exc:  # noqa: BLE001
            logger.warning("Weather fetch failed: %s", exc)
            return []

    def _collect(self) -> AggregateFeedState:
        items: Dict[Source, List[FeedItem]] = {feed.source: [] for feed in self.feeds}
        succeeded: Dict[Source, bool] = {feed.source: False for feed in self.feeds}
        weather: List[CityForecast] = []

        with concurrent.futures.ThreadPoolExecutor(
            max_workers=max(1, min(self.concurrency, len(self.feeds) + 1))
        ) as executor:
            weather_future = executor.submit(self._fetch_weather)
            future_to_feed = {
                executor.submit(self._fetch_source, feed): feed for feed in self.feeds
            }
            for future in concurrent.futures.as_completed(future_to_feed):
                feed = future_to_feed[future]
                try:
                    source, entries, ok = future.result()
                except Exception:
                    logger.exception("Failed to process feed %s", feed.url)
                    continue
                items[source] = entries
                succeeded[source] = ok
            weather = weather_future.result()

        error = None
        if self.feeds and not any(succeeded.values()):
            logger.error("Every feed source failed to fetch")
            error = FETCH_FAILED_MESSAGE

        self.cache.save(
            FEEDS_CACHE_KEY, self._encode(items, weather), self.cache.end_of_day()
        )
        logger.info(
            "Aggregated %d items from %d of %d sources",
            sum(len(entries) for entries in items.values()),
            sum(succeeded.values()),
            len(self.feeds),
        )
        return AggregateFeedState(
            items=items, weather=weather, loading=False, error=error, from_cache=False
        )
