"""
Open-Meteo Weather Gateway.

All outbound HTTP calls to the Open-Meteo forecast API go through this
class. Open-Meteo is free and needs no API key.

Testability: pass a mock `session` to OpenMeteoWeatherService() in tests
instead of letting it create a real requests.Session internally.

Usage:
    from phaseplan.integrations.weather_gateway import OpenMeteoWeatherService
    forecasts = OpenMeteoWeatherService().get_forecast(48.14, 11.58, days=7)
"""

from __future__ import annotations

import logging
import time
from datetime import date

import requests

from phaseplan.services.ports import DayForecast, WeatherService

logger = logging.getLogger(__name__)

_DEFAULT_BASE_URL = "https://api.open-meteo.com/v1/forecast"
_DEFAULT_TIMEZONE = "Europe/Berlin"
_DEFAULT_TIMEOUT = 10
_DAILY_FIELDS = (
    "weather_code,temperature_2m_min,temperature_2m_max,"
    "precipitation_probability_max,wind_speed_10m_max"
)

# WMO weather interpretation codes (https://open-meteo.com/en/docs)
WMO_DESCRIPTIONS = {
    0: "Clear sky",
    1: "Mainly clear",
    2: "Partly cloudy",
    3: "Overcast",
    45: "Fog",
    48: "Depositing rime fog",
    51: "Light drizzle",
    53: "Drizzle",
    55: "Dense drizzle",
    56: "Light freezing drizzle",
    57: "Dense freezing drizzle",
    61: "Light rain",
    63: "Rain",
    65: "Heavy rain",
    66: "Light freezing rain",
    67: "Heavy freezing rain",
    71: "Light snow",
    73: "Snow",
    75: "Heavy snow",
    77: "Snow grains",
    80: "Light rain showers",
    81: "Rain showers",
    82: "Violent rain showers",
    85: "Light snow showers",
    86: "Snow showers",
    95: "Thunderstorm",
    96: "Thunderstorm with light hail",
    99: "Thunderstorm with heavy hail",
}
UNKNOWN_WEATHER = "Unknown"


class WeatherServiceError(Exception):
    """Raised when the forecast API is unreachable or answers non-2xx."""


def describe_weather_code(code: int | None) -> str:
    if code is None:
        return UNKNOWN_WEATHER
    return WMO_DESCRIPTIONS.get(code, UNKNOWN_WEATHER)


class OpenMeteoWeatherService(WeatherService):
    """Open-Meteo daily forecast client.

    Pass a custom `session` in tests to intercept HTTP calls without
    making real network requests.
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        base_url: str = _DEFAULT_BASE_URL,
        timeout: float = _DEFAULT_TIMEOUT,
        timezone: str = _DEFAULT_TIMEZONE,
    ) -> None:
        self._session = session
        self.base_url = base_url
        self.timeout = timeout
        self.timezone = timezone

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def get_forecast(self, lat, lng, days=7):
        """Fetch ``days`` daily forecasts starting today (local timezone).

        Raises:
            WeatherServiceError: network failure, non-2xx or malformed body.
        """
        params = {
            "latitude": lat,
            "longitude": lng,
            "daily": _DAILY_FIELDS,
            "timezone": self.timezone,
            "forecast_days": days,
        }
        t0 = time.perf_counter()
        try:
            resp = self.session.get(self.base_url, params=params, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.error("Weather API unreachable lat=%s lng=%s: %s", lat, lng, exc)
            raise WeatherServiceError(f"Weather API unreachable: {exc}") from exc
        duration_ms = int((time.perf_counter() - t0) * 1000)

        if not resp.ok:
            logger.error("Weather API error status=%s lat=%s lng=%s",
                         resp.status_code, lat, lng)
            raise WeatherServiceError(f"Weather API error: {resp.status_code}")

        try:
            forecasts = self._parse(resp.json())
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise WeatherServiceError(f"Malformed weather response: {exc}") from exc

        logger.info("Weather forecast fetched lat=%s lng=%s days=%d",
                    lat, lng, len(forecasts), extra={"duration_ms": duration_ms})
        return forecasts

    @staticmethod
    def _parse(body: dict) -> list[DayForecast]:
        daily = body["daily"]
        forecasts = []
        for i, day in enumerate(daily["time"]):
            code = daily["weather_code"][i]
            forecasts.append(DayForecast(
                date=date.fromisoformat(day),
                weather_code=code,
                description=describe_weather_code(code),
                temp_min=daily["temperature_2m_min"][i],
                temp_max=daily["temperature_2m_max"][i],
                precipitation_probability=daily["precipitation_probability_max"][i],
                wind_speed_max=daily["wind_speed_10m_max"][i],
            ))
        return forecasts
