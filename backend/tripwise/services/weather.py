from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional

import requests
from pydantic import ValidationError

from tripwise.core.config import Settings, logger
from tripwise.core.errors import InvalidError, UnconfiguredError
from tripwise.schemas.trip import Coordinate, DailyOutlook, WeatherForecast
from tripwise.services.http import build_http_session, get_json

CURRENT_WEATHER_URL = "https://api.openweathermap.org/data/2.5/weather"
FORECAST_URL = "https://api.openweathermap.org/data/2.5/forecast"
OUTLOOK_DAYS = 5


class WeatherProvider:
    """
    Current conditions plus a five-day outlook from OpenWeatherMap.
    The outlook is built from the 3-hourly forecast, one reading per local day (the one nearest noon).
    Every failure is fatal to the caller.
    """
    service = "weather"

    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        self.settings = settings
        self.session = session or build_http_session(settings)

    def forecast(self, location: Coordinate) -> WeatherForecast:
        if not self.settings.OPENWEATHER_API_KEY:
            raise UnconfiguredError(
                "OpenWeatherMap API key (OPENWEATHER_API_KEY) is not configured.", service=self.service
            )
        params = {
            "lat": location.lat,
            "lon": location.lng,
            "appid": self.settings.OPENWEATHER_API_KEY,
            "units": "metric",
        }
        timeout = self.settings.HTTP_TIMEOUT_SECONDS
        current = get_json(self.session, CURRENT_WEATHER_URL, params, self.service, timeout)
        hourly = get_json(self.session, FORECAST_URL, params, self.service, timeout)

        try:
            forecast = WeatherForecast(
                current_temperature_celsius=current["main"]["temp"],
                conditions=_describe(current["weather"]),
                five_day_outlook=self._daily_outlook(hourly),
            )
        except (KeyError, IndexError, TypeError, ValueError, ValidationError) as e:
            raise InvalidError(f"Weather response could not be parsed: {e}", service=self.service) from e

        logger.info(
            f"Weather at ({location.lat}, {location.lng}): "
            f"{forecast.current_temperature_celsius}°C, {forecast.conditions}"
        )
        return forecast

    def _daily_outlook(self, hourly: dict) -> List[DailyOutlook]:
        offset = timedelta(seconds=(hourly.get("city") or {}).get("timezone", 0))
        noon_readings: Dict[date, tuple] = {}
        for entry in hourly["list"]:
            local = datetime.fromtimestamp(entry["dt"], tz=timezone.utc) + offset
            distance_from_noon = abs(local.hour * 60 + local.minute - 12 * 60)
            day = local.date()
            if day not in noon_readings or distance_from_noon < noon_readings[day][0]:
                noon_readings[day] = (distance_from_noon, entry)

        days = sorted(noon_readings)[:OUTLOOK_DAYS]
        if len(days) < OUTLOOK_DAYS:
            raise InvalidError(
                f"Weather forecast covers only {len(days)} day(s); {OUTLOOK_DAYS} are required.",
                service=self.service,
            )
        return [
            DailyOutlook(
                date=day,
                temperature_celsius=noon_readings[day][1]["main"]["temp"],
                conditions=_describe(noon_readings[day][1]["weather"]),
            )
            for day in days
        ]


def _describe(weather: list) -> str:
    description = weather[0].get("description") or weather[0]["main"]
    return description.capitalize()
