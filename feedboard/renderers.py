"""Rendering helpers for command-line output."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Sequence

from .models import CityForecast, FeedItem
from .search import FeedView
from .templating import get_environment


def _item_payload(item: FeedItem, view: FeedView) -> Dict[str, Any]:
    payload = item.to_dict()
    payload["badge"] = item.source.badge
    translated = view.title_lookup(item.title) if view.title_lookup else None
    payload["translated_title"] = translated
    return payload


def _tab_payload(view: FeedView) -> List[Dict[str, Any]]:
    counts = view.tab_counts()
    return [
        {"key": tab.value, "label": tab.label, "count": count, "active": tab is view.tab}
        for tab, count in counts.items()
    ]


def build_feed_json(
    view: FeedView, weather: Sequence[CityForecast], error: Optional[str] = None
) -> str:
    """Serialize the current view as a JSON document."""
    document = {
        "tab": view.tab.value,
        "query": view.query,
        "error": error,
        "tabs": _tab_payload(view),
        "items": [_item_payload(item, view) for item in view.display_items()],
        "weather": [forecast.to_dict() for forecast in weather],
    }
    return json.dumps(document, indent=2, ensure_ascii=False)


def build_feed_text(
    view: FeedView, weather: Sequence[CityForecast], error: Optional[str] = None
) -> str:
    """Render the plain-text listing using the Jinja2 template."""
    env = get_environment()
    template = env.get_template("feeds.txt.j2")
    return template.render(
        tabs=_tab_payload(view),
        weather=weather,
        error=error,
        query=view.query.strip(),
        items=[_item_payload(item, view) for item in view.display_items()],
    )
