# This file centralizes the external data providers the planner depends on.
from .geocoder import Geocoder
from .route_finder import RouteFinder, place_reference
from .attractions import AttractionLocator
from .weather import WeatherProvider
from .http import build_http_session

__all__ = [
    "Geocoder",
    "RouteFinder",
    "place_reference",
    "AttractionLocator",
    "WeatherProvider",
    "build_http_session",
]
