from datetime import datetime, timedelta, timezone

import polyline
import pytest
from langchain_core.runnables import RunnableLambda

from tripwise.core.config import Settings
from tripwise.services.attractions import PLACES_API_URL
from tripwise.services.geocoder import GEOCODING_API_URL
from tripwise.services.route_finder import DIRECTIONS_API_URL
from tripwise.services.weather import CURRENT_WEATHER_URL, FORECAST_URL

SAN_FRANCISCO = (37.7749, -122.4194)
LOS_ANGELES = (34.0522, -118.2437)
SF_LA_BOUNDS = {
    "northeast": {"lat": 37.78, "lng": -118.24},
    "southwest": {"lat": 34.05, "lng": -122.42},
}
FORECAST_START = datetime(2026, 6, 1, tzinfo=timezone.utc)


class FakeResponse:
    def __init__(self, payload=None, status_code=200, text=""):
        self.payload = payload
        self.status_code = status_code
        self.text = text

    def json(self):
        if self.payload is None:
            raise ValueError("No JSON object could be decoded")
        return self.payload


class FakeSession:
    """
    Stands in for requests.Session. Each URL maps to a payload dict, a FakeResponse,
    an exception to raise, or a callable taking the query params. Every call is recorded.
    """

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, dict(params or {})))
        handler = self.routes[url]
        if isinstance(handler, Exception):
            raise handler
        if callable(handler):
            handler = handler(params or {})
        if isinstance(handler, FakeResponse):
            return handler
        return FakeResponse(handler)

    def calls_to(self, url):
        return [params for called_url, params in self.calls if called_url == url]


# --- Canned provider payloads ---

def geocode_ok(lat, lng, formatted_address="Somewhere"):
    return {
        "status": "OK",
        "results": [{"formatted_address": formatted_address, "geometry": {"location": {"lat": lat, "lng": lng}}}],
    }


def google_status(status, message=None):
    payload = {"status": status, "results": []}
    if message:
        payload["error_message"] = message
    return payload


def directions_ok(leg_values, waypoint_order=None, points=None, bounds=None):
    """`leg_values` is a list of (distance_m, duration_s) per leg."""
    route = {
        "legs": [
            {"distance": {"value": distance}, "duration": {"value": duration}}
            for distance, duration in leg_values
        ],
        "overview_polyline": {
            "points": polyline.encode(points or [SAN_FRANCISCO, (36.0, -120.5), LOS_ANGELES], 5)
        },
        "bounds": bounds or SF_LA_BOUNDS,
    }
    if waypoint_order is not None:
        route["waypoint_order"] = waypoint_order
    return {"status": "OK", "routes": [route]}


def place(name, place_id, rating=4.5, status="OPERATIONAL", types=None, vicinity="Main St"):
    payload = {
        "name": name,
        "place_id": place_id,
        "business_status": status,
        "geometry": {"location": {"lat": 36.0, "lng": -120.5}},
        "types": types or ["museum", "point_of_interest", "establishment"],
        "vicinity": vicinity,
    }
    if rating is not None:
        payload["rating"] = rating
    return payload


def places_ok(places):
    return {"status": "OK", "results": places}


def current_weather(temp=18.5, description="clear sky"):
    return {"main": {"temp": temp}, "weather": [{"main": "Clear", "description": description}]}


def hourly_forecast(days=5, timezone_offset=0, description="few clouds"):
    """3-hourly readings starting at FORECAST_START (UTC), eight per day."""
    entries = []
    for i in range(days * 8):
        moment = FORECAST_START + timedelta(hours=3 * i)
        entries.append({
            "dt": int(moment.timestamp()),
            "main": {"temp": 15 + moment.hour / 3},
            "weather": [{"main": "Clouds", "description": description}],
        })
    return {"list": entries, "city": {"timezone": timezone_offset}}


def geocode_router(addresses):
    """Answers geocoding lookups from an address -> (lat, lng) mapping."""
    def handler(params):
        if params.get("address") in addresses:
            lat, lng = addresses[params["address"]]
            return geocode_ok(lat, lng, params["address"])
        return google_status("ZERO_RESULTS")
    return handler


# --- Fixtures ---

@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        GOOGLE_MAPS_API_KEY="maps-key",
        GOOGLE_PLACES_API_KEY="",
        OPENWEATHER_API_KEY="weather-key",
        GOOGLE_API_KEY="gemini-key",
        ADVISOR_BACKEND="heuristic",
    )


@pytest.fixture
def unconfigured_settings():
    return Settings(
        _env_file=None,
        GOOGLE_MAPS_API_KEY="",
        GOOGLE_PLACES_API_KEY="",
        OPENWEATHER_API_KEY="",
        GOOGLE_API_KEY="",
        ADVISOR_BACKEND="gemini",
    )


@pytest.fixture
def trip_session():
    """A session answering every provider for a San Francisco -> Los Angeles trip."""
    def directions(params):
        if "waypoints" in params:
            return directions_ok([(180_000, 7_200), (200_000, 8_000), (240_000, 9_500)], waypoint_order=[1, 0])
        return directions_ok([(615_000, 21_000)])

    return FakeSession({
        GEOCODING_API_URL: geocode_router({
            "San Francisco, CA": SAN_FRANCISCO,
            "Los Angeles, CA": LOS_ANGELES,
        }),
        DIRECTIONS_API_URL: directions,
        PLACES_API_URL: places_ok([
            place("Hearst Castle", "hearst", rating=4.7, types=["tourist_attraction", "point_of_interest"]),
            place("Morro Rock", "morro", rating=4.6, types=["natural_feature"]),
            place("Pismo Pier", "pismo", rating=4.4),
            place("Closed Museum", "closed", status="CLOSED_TEMPORARILY"),
            place("Meh Diner", "meh", rating=3.1),
        ]),
        CURRENT_WEATHER_URL: current_weather(),
        FORECAST_URL: hourly_forecast(),
    })


class FakeStructuredLLM:
    """Mimics a chat model's `with_structured_output`, answering with a canned function."""

    def __init__(self, respond):
        self.respond = respond
        self.prompts = []
        self.schema = None

    def with_structured_output(self, schema):
        self.schema = schema

        def run(prompt_value):
            self.prompts.append(prompt_value.to_string())
            return self.respond(prompt_value)

        return RunnableLambda(run)
