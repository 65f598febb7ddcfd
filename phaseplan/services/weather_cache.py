"""
Weather cache service — forecast rows keyed by rounded site coordinates.

Coordinates are rounded to 2 decimals (~1 km) so every project on the
same site hits the same cache cell. ``refresh_project_locations`` is the
daily cache warm-up used by the ``weather_refresh`` job and the cron
endpoint.
"""

import logging
from datetime import datetime, timedelta, timezone

from phaseplan.integrations.weather_gateway import describe_weather_code
from phaseplan.models import db
from phaseplan.models.project import Project
from phaseplan.models.weather import WeatherCacheEntry
from phaseplan.services.ports import DayForecast, WeatherCache

logger = logging.getLogger(__name__)

REFRESH_FORECAST_DAYS = 7
CACHE_MAX_AGE = timedelta(hours=24)


def round_coord(value: float) -> float:
    return round(value, 2)


class SqlWeatherCache(WeatherCache):

    def get_forecasts(self, lat, lng, dates):
        if not dates:
            return []
        try:
            rows = (WeatherCacheEntry.query
                    .filter(WeatherCacheEntry.lat == round_coord(lat),
                            WeatherCacheEntry.lng == round_coord(lng),
                            WeatherCacheEntry.forecast_date.in_(list(dates)))
                    .order_by(WeatherCacheEntry.forecast_date)
                    .all())
        except Exception:
            db.session.rollback()
            raise
        return [self._to_forecast(r) for r in rows]

    def save_forecasts(self, lat, lng, forecasts):
        """Upsert one row per forecast date; ``fetched_at`` is reset to now."""
        if not forecasts:
            return
        lat, lng = round_coord(lat), round_coord(lng)
        now = datetime.now(timezone.utc)
        existing = {
            r.forecast_date: r
            for r in WeatherCacheEntry.query.filter(
                WeatherCacheEntry.lat == lat,
                WeatherCacheEntry.lng == lng,
                WeatherCacheEntry.forecast_date.in_([f.date for f in forecasts]),
            ).all()
        }
        for f in forecasts:
            row = existing.get(f.date)
            if row is None:
                row = WeatherCacheEntry(lat=lat, lng=lng, forecast_date=f.date)
                db.session.add(row)
            row.weather_code = f.weather_code
            row.weather_description = f.description
            row.temp_min = f.temp_min
            row.temp_max = f.temp_max
            row.precipitation_probability = f.precipitation_probability
            row.wind_speed_max = f.wind_speed_max
            row.fetched_at = now
        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

    def delete_older_than(self, cutoff: datetime) -> int:
        """Drop entries fetched before ``cutoff``. Returns the deleted count."""
        deleted = (WeatherCacheEntry.query
                   .filter(WeatherCacheEntry.fetched_at < cutoff)
                   .delete(synchronize_session=False))
        db.session.commit()
        return deleted

    @staticmethod
    def _to_forecast(row: WeatherCacheEntry) -> DayForecast:
        code = row.weather_code if row.weather_code is not None else 0
        return DayForecast(
            date=row.forecast_date,
            weather_code=code,
            description=row.weather_description or describe_weather_code(code),
            temp_min=row.temp_min if row.temp_min is not None else 0.0,
            temp_max=row.temp_max if row.temp_max is not None else 0.0,
            precipitation_probability=row.precipitation_probability or 0.0,
            wind_speed_max=row.wind_speed_max or 0.0,
        )


def refresh_project_locations(weather_service, cache: SqlWeatherCache) -> dict:
    """
    Refetch the 7-day forecast for every distinct active-project site,
    then drop cache entries older than a day.

    A failing location is counted and skipped.
    """
    projects = (Project.query
                .filter(Project.status == "active",
                        Project.address_lat.isnot(None),
                        Project.address_lng.isnot(None))
                .with_entities(Project.id, Project.address_lat, Project.address_lng)
                .all())

    locations = list(dict.fromkeys(
        (round_coord(p.address_lat), round_coord(p.address_lng)) for p in projects
    ))
    logger.info("Weather refresh: %d unique locations from %d projects",
                len(locations), len(projects))

    updated = 0
    errored = 0
    for lat, lng in locations:
        try:
            forecasts = weather_service.get_forecast(lat, lng, REFRESH_FORECAST_DAYS)
            cache.save_forecasts(lat, lng, forecasts)
            updated += 1
        except Exception as exc:
            db.session.rollback()
            logger.error("Weather refresh failed for %s,%s: %s", lat, lng, exc)
            errored += 1

    deleted = cache.delete_older_than(datetime.now(timezone.utc) - CACHE_MAX_AGE)

    return {
        "total_projects": len(projects),
        "unique_locations": len(locations),
        "locations_updated": updated,
        "locations_errored": errored,
        "cache_entries_deleted": deleted,
    }
