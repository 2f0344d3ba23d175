"""Tab selection and fuzzy search over aggregated feed items."""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from rapidfuzz import fuzz, utils

from .aggregator import FeedAggregator
from .models import FeedItem, Tab

logger = logging.getLogger(__name__)

SEARCH_KEYS: Tuple[Tuple[str, float], ...] = (("title", 0.7), ("summary", 0.3))
SEARCH_THRESHOLD = 0.4

TitleLookup = Callable[[str], Optional[str]]


def _similarity(query: str, value: str) -> float:
    if not value:
        return 0.0
    return fuzz.partial_ratio(query, value, processor=utils.default_process) / 100.0


def score_item(
    item: FeedItem,
    query: str,
    title_lookup: Optional[TitleLookup] = None,
    keys: Sequence[Tuple[str, float]] = SEARCH_KEYS,
    threshold: float = SEARCH_THRESHOLD,
) -> float:
    """Weighted relevance of ``item`` for ``query``; 0.0 when nothing matches."""
    minimum = 1.0 - threshold
    relevance = 0.0
    for name, weight in keys:
        similarity = _similarity(query, getattr(item, name) or "")
        if name == "title" and title_lookup is not None:
            translated = title_lookup(item.title)
            if translated:
                similarity = max(similarity, _similarity(query, translated))
        if similarity >= minimum:
            relevance += weight * similarity
    return relevance


def rank_items(
    items: Sequence[FeedItem],
    query: str,
    title_lookup: Optional[TitleLookup] = None,
) -> List[FeedItem]:
    """Return the items matching ``query``, most relevant first.

    Ties keep input order. ``items`` itself is left untouched.
    """
    query = query.strip()
    if not query:
        return list(items)

    scored = []
    for index, item in enumerate(items):
        relevance = score_item(item, query, title_lookup)
        if relevance > 0:
            scored.append((-relevance, index, item))
    scored.sort(key=lambda entry: (entry[0], entry[1]))
    logger.debug("Query %r matched %d of %d items", query, len(scored), len(items))
    return [item for _, _, item in scored]


class FeedView:
    """Active tab and query over an aggregator's current items."""

    def __init__(
        self,
        aggregator: FeedAggregator,
        title_lookup: Optional[TitleLookup] = None,
        tab: Tab = Tab.ALL,
        query: str = "",
    ):
        self.aggregator = aggregator
        self.title_lookup = title_lookup
        self.tab = tab
        self.query = query

    def select_tab(self, tab: Tab) -> None:
        self.tab = Tab(tab)

    def set_query(self, query: str) -> None:
        self.query = query or ""

    @property
    def searching(self) -> bool:
        return bool(self.query.strip())

    def subset(self, tab: Tab) -> List[FeedItem]:
        """Items shown by ``tab`` with per-source caps applied."""
        limits = self.aggregator.source_limits
        if tab is Tab.ALL:
            return self.aggregator.merged(limits)
        (source,) = tab.sources()
        items = self.aggregator.items(source)
        limit = limits.get(source)
        return items[:limit] if limit is not None else items

    def display_items(self) -> List[FeedItem]:
        items = self.subset(self.tab)
        if not self.searching:
            return items
        return rank_items(items, self.query, self.title_lookup)

    def tab_counts(self) -> Dict[Tab, int]:
        counts: Dict[Tab, int] = {}
        for tab in Tab:
            if tab is self.tab and self.searching:
                counts[tab] = len(self.display_items())
            else:
                counts[tab] = len(self.subset(tab))
        return counts
