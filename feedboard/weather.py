"""Open-Meteo daily forecast retrieval."""

from __future__ import annotations

import concurrent.futures
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

import requests

from .models import City, CityForecast, DailyForecast

logger = logging.getLogger(__name__)

FORECAST_URL = "https://api.open-meteo.com/v1/forecast"
FORECAST_DAYS = 2
FORECAST_TIMEZONE = "Asia/Tokyo"
DAILY_FIELDS = (
    "weather_code",
    "temperature_2m_max",
    "temperature_2m_min",
    "precipitation_probability_max",
)

# WMO weather interpretation codes
WEATHER_CODES = {
    0: "Clear sky",
    1: "Mainly clear",
    2: "Partly cloudy",
    3: "Overcast",
    45: "Fog",
    48: "Depositing rime fog",
    51: "Light drizzle",
    53: "Moderate drizzle",
    55: "Dense drizzle",
    56: "Light freezing drizzle",
    57: "Dense freezing drizzle",
    61: "Slight rain",
    63: "Moderate rain",
    65: "Heavy rain",
    66: "Light freezing rain",
    67: "Heavy freezing rain",
    71: "Slight snow",
    73: "Moderate snow",
    75: "Heavy snow",
    77: "Snow grains",
    80: "Slight rain showers",
    81: "Moderate rain showers",
    82: "Violent rain showers",
    85: "Slight snow showers",
    86: "Heavy snow showers",
    95: "Thunderstorm",
    96: "Thunderstorm with slight hail",
    99: "Thunderstorm with heavy hail",
}

ForecastRequest = Callable[[City], Dict[str, Any]]


def describe_weather_code(code: int) -> str:
    return WEATHER_CODES.get(code, "Unknown")


def request_forecast(city: City, timeout: Optional[float] = None) -> Dict[str, Any]:
    """Fetch the raw Open-Meteo daily forecast payload for ``city``."""
    params = {
        "latitude": city.latitude,
        "longitude": city.longitude,
        "daily": ",".join(DAILY_FIELDS),
        "timezone": FORECAST_TIMEZONE,
        "forecast_days": FORECAST_DAYS,
    }
    logger.debug("Fetching forecast for %s (%.2f, %.2f)", city.name, city.latitude, city.longitude)
    response = requests.get(FORECAST_URL, params=params, timeout=timeout)
    response.raise_for_status()
    return response.json()


def normalize_forecast(name: str, payload: Dict[str, Any]) -> CityForecast:
    """Zip Open-Meteo's parallel daily arrays into per-day forecasts."""
    daily = payload.get("daily")
    if not isinstance(daily, dict):
        raise ValueError(f"Forecast for {name} has no daily section")

    try:
        dates = daily["time"]
        codes = daily["weather_code"]
        maxima = daily["temperature_2m_max"]
        minima = daily["temperature_2m_min"]
    except KeyError as exc:
        raise ValueError(f"Forecast for {name} is missing {exc}") from exc
    precipitation = daily.get("precipitation_probability_max") or []

    days = []
    for index, date in enumerate(dates):
        probability = precipitation[index] if index < len(precipitation) else None
        days.append(
            DailyForecast(
                date=date,
                weather_code=int(codes[index]),
                temp_max=float(maxima[index]),
                temp_min=float(minima[index]),
                precipitation_probability=probability if probability is not None else 0,
            )
        )
    return CityForecast(name=name, days=tuple(days))


def fetch_forecasts(
    cities: Iterable[City],
    concurrency: int = 4,
    request: Optional[ForecastRequest] = None,
) -> List[CityForecast]:
    """Fetch forecasts for every city at once, omitting the ones that fail."""
    cities = list(cities)
    if not cities:
        return []
    request = request or request_forecast

    def process_city(city: City) -> Optional[CityForecast]:
        try:
            return normalize_forecast(city.name, request(city))
        except (requests.RequestException, ValueError, TypeError, IndexError) as exc:
            logger.warning("Failed to fetch forecast for %s: %s", city.name, exc)
            return None

    with concurrent.futures.ThreadPoolExecutor(
        max_workers=max(1, min(concurrency, len(cities)))
    ) as executor:
        results = list(executor.map(process_city, cities))

    forecasts = [forecast for forecast in results if forecast is not None]
    logger.info("Collected forecasts for %d of %d cities", len(forecasts), len(cities))
    return forecasts
