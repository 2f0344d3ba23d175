"""Shared data models for feedboard."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class Source(str, Enum):
    """Feed origins known to the aggregator."""

    HATENA = "hatena"
    HACKERNEWS = "hackernews"
    NIKKEI = "nikkei"

    @property
    def label(self) -> str:
        return SOURCE_LABELS[self]

    @property
    def badge(self) -> str:
        return SOURCE_BADGES[self]


SOURCE_LABELS: Dict[Source, str] = {
    Source.HATENA: "はてブ IT",
    Source.HACKERNEWS: "Hacker News",
    Source.NIKKEI: "日経",
}

SOURCE_BADGES: Dict[Source, str] = {
    Source.HATENA: "はてブ",
    Source.HACKERNEWS: "HN",
    Source.NIKKEI: "日経",
}


class Tab(str, Enum):
    """Tabs offered by the view: every source plus the merged one."""

    ALL = "all"
    HATENA = "hatena"
    HACKERNEWS = "hackernews"
    NIKKEI = "nikkei"

    def sources(self) -> Tuple[Source, ...]:
        if self is Tab.ALL:
            return tuple(Source)
        return (Source(self.value),)

    @property
    def label(self) -> str:
        if self is Tab.ALL:
            return "All"
        return Source(self.value).label


@dataclass(frozen=True)
class FeedSource:
    """Configuration for a single syndicated feed."""

    source: Source
    title: str
    url: str
    limit: Optional[int] = None


@dataclass(frozen=True)
class FeedItem:
    """Normalized feed entry used throughout the app."""

    title: str
    link: str
    published: Optional[str]
    summary: str
    source: Source

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "link": self.link,
            "published": self.published,
            "summary": self.summary,
            "source": self.source.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeedItem":
        return cls(
            title=data["title"],
            link=data["link"],
            published=data.get("published"),
            summary=data.get("summary") or "",
            source=Source(data["source"]),
        )


@dataclass(frozen=True)
class City:
    name: str
    latitude: float
    longitude: float


@dataclass(frozen=True)
class DailyForecast:
    date: str
    weather_code: int
    temp_max: float
    temp_min: float
    precipitation_probability: float = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date,
            "weather_code": self.weather_code,
            "temp_max": self.temp_max,
            "temp_min": self.temp_min,
            "precipitation_probability": self.precipitation_probability,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DailyForecast":
        return cls(
            date=data["date"],
            weather_code=int(data["weather_code"]),
            temp_max=float(data["temp_max"]),
            temp_min=float(data["temp_min"]),
            precipitation_probability=data.get("precipitation_probability") or 0,
        )


@dataclass(frozen=True)
class CityForecast:
    """Forecast for one city, one entry per requested day."""

    name: str
    days: Tuple[DailyForecast, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "days": [day.to_dict() for day in self.days]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CityForecast":
        return cls(
            name=data["name"],
            days=tuple(DailyForecast.from_dict(day) for day in data["days"]),
        )
