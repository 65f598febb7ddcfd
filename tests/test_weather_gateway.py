"""
Tests — Open-Meteo gateway (HTTP faked through an injected session).
"""

from datetime import date
from unittest.mock import MagicMock

import pytest
import requests

from phaseplan.integrations.weather_gateway import (
    UNKNOWN_WEATHER,
    OpenMeteoWeatherService,
    WeatherServiceError,
    describe_weather_code,
)

BODY = {
    "daily": {
        "time": ["2024-03-15", "2024-03-16"],
        "weather_code": [0, 63],
        "temperature_2m_min": [3.5, 6.0],
        "temperature_2m_max": [12.0, 9.5],
        "precipitation_probability_max": [10, 85],
        "wind_speed_10m_max": [12.3, 22.0],
    },
}


def _session(status=200, body=None, exc=None):
    session = MagicMock()
    if exc is not None:
        session.get.side_effect = exc
        return session
    resp = MagicMock()
    resp.status_code = status
    resp.ok = 200 <= status < 300
    resp.json.return_value = body if body is not None else BODY
    session.get.return_value = resp
    return session


class TestGetForecast:

    def test_parses_daily_arrays(self):
        svc = OpenMeteoWeatherService(session=_session())
        forecasts = svc.get_forecast(47.12, 9.46, days=2)

        assert len(forecasts) == 2
        first, second = forecasts
        assert first.date == date(2024, 3, 15)
        assert first.description == "Clear sky"
        assert first.temp_min == 3.5
        assert second.description == "Rain"
        assert second.precipitation_probability == 85

    def test_request_params(self):
        session = _session()
        svc = OpenMeteoWeatherService(session=session, base_url="http://meteo.test/v1",
                                      timeout=3, timezone="UTC")
        svc.get_forecast(47.12, 9.46, days=7)

        args, kwargs = session.get.call_args
        assert args[0] == "http://meteo.test/v1"
        assert kwargs["timeout"] == 3
        params = kwargs["params"]
        assert params["latitude"] == 47.12
        assert params["longitude"] == 9.46
        assert params["forecast_days"] == 7
        assert params["timezone"] == "UTC"
        assert "precipitation_probability_max" in params["daily"]

    def test_non_2xx_raises(self):
        svc = OpenMeteoWeatherService(session=_session(status=503))
        with pytest.raises(WeatherServiceError, match="503"):
            svc.get_forecast(47.12, 9.46)

    def test_network_failure_raises(self):
        svc = OpenMeteoWeatherService(session=_session(exc=requests.ConnectionError("refused")))
        with pytest.raises(WeatherServiceError, match="unreachable"):
            svc.get_forecast(47.12, 9.46)

    def test_malformed_body_raises(self):
        svc = OpenMeteoWeatherService(session=_session(body={"hourly": {}}))
        with pytest.raises(WeatherServiceError, match="Malformed"):
            svc.get_forecast(47.12, 9.46)

    def test_lazy_session(self):
        svc = OpenMeteoWeatherService()
        assert isinstance(svc.session, requests.Session)
        assert svc.session is svc.session


class TestDescriptions:

    def test_known_and_unknown_codes(self):
        assert describe_weather_code(95) == "Thunderstorm"
        assert describe_weather_code(42) == UNKNOWN_WEATHER
        assert describe_weather_code(None) == UNKNOWN_WEATHER
