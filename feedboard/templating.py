"""Jinja2 environment for feedboard templates."""

from __future__ import annotations

from datetime import timedelta, timezone
from importlib import resources
from typing import Optional

from jinja2 import Environment, FileSystemLoader

from .feeds import parse_published
from .weather import describe_weather_code

JST = timezone(timedelta(hours=9))

_ENV: Environment | None = None


def _format_date(value: Optional[str]) -> str:
    """Render a feed timestamp as JST ``YYYY/MM/DD HH:MM``."""
    parsed = parse_published(value)
    if parsed is None:
        return ""
    return parsed.astimezone(JST).strftime("%Y/%m/%d %H:%M")


def get_environment() -> Environment:
    """Return a cached Jinja environment configured for package templates."""
    global _ENV
    if _ENV is None:
        template_dir = resources.files(__package__) / "templates"
        loader = FileSystemLoader(str(template_dir))
        _ENV = Environment(
            loader=loader,
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        _ENV.filters["format_date"] = _format_date
        _ENV.filters["weather_label"] = describe_weather_code
    return _ENV
