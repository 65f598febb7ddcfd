"""Weather forecast cache, keyed by rounded site coordinates and day."""

from datetime import datetime, timezone

from phaseplan.models import db


class WeatherCacheEntry(db.Model):
    """
    One cached daily forecast for a ~1 km grid cell.

    Coordinates are stored rounded to two decimals so that projects on
    the same site share entries.
    """

    __tablename__ = "weather_cache"
    __table_args__ = (
        db.UniqueConstraint("lat", "lng", "forecast_date", name="uq_weather_cache_cell_day"),
    )

    id = db.Column(db.Integer, primary_key=True)
    lat = db.Column(db.Float, nullable=False)
    lng = db.Column(db.Float, nullable=False)
    forecast_date = db.Column(db.Date, nullable=False, index=True)
    weather_code = db.Column(db.Integer, nullable=True)
    weather_description = db.Column(db.String(100), nullable=True)
    temp_min = db.Column(db.Float, nullable=True)
    temp_max = db.Column(db.Float, nullable=True)
    precipitation_probability = db.Column(db.Float, nullable=True)
    wind_speed_max = db.Column(db.Float, nullable=True)
    fetched_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc), index=True)

    def to_dict(self):
        return {
            "lat": self.lat,
            "lng": self.lng,
            "forecast_date": self.forecast_date.isoformat() if self.forecast_date else None,
            "weather_code": self.weather_code,
            "weather_description": self.weather_description,
            "temp_min": self.temp_min,
            "temp_max": self.temp_max,
            "precipitation_probability": self.precipitation_probability,
            "wind_speed_max": self.wind_speed_max,
            "fetched_at": self.fetched_at.isoformat() if self.fetched_at else None,
        }

    def __repr__(self):
        return f"<WeatherCacheEntry {self.lat},{self.lng} {self.forecast_date}>"
