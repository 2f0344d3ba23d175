import pytest

from feedboard.aggregator import FeedAggregator
from feedboard.models import FeedItem, FeedSource, Source, Tab
from feedboard.search import FeedView, rank_items, score_item


def _item(title, summary="", source=Source.HACKERNEWS, published=None):
    return FeedItem(title, f"https://example.com/{len(title)}/{title}", published, summary, source)


ITEMS = [
    _item("Postgres performance tuning", "Index tricks", Source.HACKERNEWS, "2024-05-10T03:00:00Z"),
    _item("Rust async runtimes compared", "Tokio versus async-std", Source.HACKERNEWS, "2024-05-10T02:00:00Z"),
    _item("Kubernetes cost report", "Cluster spend analysis", Source.HATENA, "2024-05-10T01:00:00Z"),
    _item("Weekly gardening notes", "Mentions postgres once", Source.HATENA, "2024-05-09T01:00:00Z"),
    _item("Market close", "Stocks rally", Source.NIKKEI, "2024-05-10T06:00:00Z"),
    _item("Bond yields", "Rates steady", Source.NIKKEI, "2024-05-10T05:00:00Z"),
    _item("Yen weakens", "Currency moves", Source.NIKKEI, "2024-05-10T04:00:00Z"),
]

FEEDS = [
    FeedSource(Source.HATENA, "Hatena", "https://hatena.example/rss"),
    FeedSource(Source.HACKERNEWS, "HN", "https://hn.example/rss"),
    FeedSource(Source.NIKKEI, "Nikkei", "https://nikkei.example/rdf", limit=2),
]


@pytest.fixture
def view(cache):
    agg = FeedAggregator(feeds=FEEDS, cities=[], cache=cache)
    agg.state.items = {
        source: [item for item in ITEMS if item.source is source] for source in Source
    }
    agg.state.loading = False
    return FeedView(agg)


def test_rank_items_tolerates_typos_and_ranks_title_over_summary():
    results = rank_items(ITEMS, "postgrs")

    assert results[0].title == "Postgres performance tuning"
    assert "Weekly gardening notes" in [item.title for item in results]
    assert "Market close" not in [item.title for item in results]


def test_rank_items_is_deterministic_and_does_not_mutate_input():
    items = list(ITEMS)

    first = rank_items(items, "async")
    second = rank_items(items, "async")

    assert first == second
    assert items == ITEMS


def test_rank_items_blank_query_returns_all():
    assert rank_items(ITEMS, "   ") == ITEMS


def test_score_item_uses_translated_title():
    item = _item("Show HN: a tiny database")
    translations = {"Show HN: a tiny database": "小さなデータベース"}

    assert score_item(item, "データベース") == 0.0
    assert score_item(item, "データベース", title_lookup=translations.get) > 0.0


def test_view_without_query_returns_tab_subset_in_merge_order(view):
    view.select_tab(Tab.HATENA)
    assert [item.title for item in view.display_items()] == [
        "Kubernetes cost report",
        "Weekly gardening notes",
    ]

    view.select_tab(Tab.ALL)
    titles = [item.title for item in view.display_items()]
    assert titles[0] == "Market close"
    assert "Yen weakens" not in titles
    assert len(titles) == 6


def test_view_caps_high_volume_source(view):
    view.select_tab(Tab.NIKKEI)

    assert [item.title for item in view.display_items()] == ["Market close", "Bond yields"]


def test_tab_counts_reflect_filter_only_on_active_tab(view):
    assert view.tab_counts() == {Tab.ALL: 6, Tab.HATENA: 2, Tab.HACKERNEWS: 2, Tab.NIKKEI: 2}

    view.select_tab(Tab.HACKERNEWS)
    view.set_query("rust")

    counts = view.tab_counts()
    assert counts[Tab.HACKERNEWS] == len(view.display_items()) == 1
    assert counts[Tab.ALL] == 6
    assert counts[Tab.HATENA] == 2


@pytest.mark.parametrize("query", ["postgres", "async", "report", "stocks"])
@pytest.mark.parametrize("tab", [Tab.HATENA, Tab.HACKERNEWS, Tab.NIKKEI])
def test_restricting_tab_never_adds_results(view, query, tab):
    view.set_query(query)
    view.select_tab(Tab.ALL)
    unrestricted = set(view.display_items())

    view.select_tab(tab)
    restricted = set(view.display_items())

    assert restricted <= unrestricted
