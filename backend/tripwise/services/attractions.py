import math
from typing import List, Optional, Tuple

import requests
from pydantic import ValidationError

from tripwise.core.config import Settings, logger
from tripwise.core.errors import InvalidError, TripPlanningError, UnconfiguredError
from tripwise.schemas.trip import Attraction, BoundingBox, Coordinate, Route
from tripwise.services.http import build_http_session, get_json, raise_for_google_status

PLACES_API_URL = "https://maps.googleapis.com/maps/api/place/nearbysearch/json"

EARTH_RADIUS_M = 6_371_000
MIN_ROUTE_RADIUS_M = 10_000
MAX_SEARCH_RADIUS_M = 50_000  # Places Nearby Search upper limit
FALLBACK_RADIUS_M = 20_000
RADIUS_DIVISOR = 1.8

MIN_RATING = 3.5
MAX_RESULTS = 15
OPERATIONAL = "OPERATIONAL"
GENERIC_PLACE_TYPES = {"point_of_interest", "establishment"}


def haversine_m(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance between two points in metres."""
    phi1, phi2 = math.radians(a.lat), math.radians(b.lat)
    d_phi = math.radians(b.lat - a.lat)
    d_lam = math.radians(b.lng - a.lng)
    h = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lam / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def search_area(bounds: BoundingBox) -> Tuple[Coordinate, int]:
    """
    Derives a single search circle from a route's bounding box.
    The center is the per-axis mean of the corners, which is fine at city/regional scale.
    The radius is the corner-to-corner diagonal / 1.8, clamped to [10 km, 50 km].
    """
    center = Coordinate(
        lat=(bounds.northeast.lat + bounds.southwest.lat) / 2,
        lng=(bounds.northeast.lng + bounds.southwest.lng) / 2,
    )
    diagonal = haversine_m(bounds.southwest, bounds.northeast)
    radius = min(max(diagonal / RADIUS_DIVISOR, MIN_ROUTE_RADIUS_M), MAX_SEARCH_RADIUS_M)
    return center, round(radius)


def primary_type(types: Optional[List[str]]) -> Optional[str]:
    """First meaningful place type, made readable ("art_gallery" -> "art gallery")."""
    if not types:
        return None
    specific = [t for t in types if t not in GENERIC_PLACE_TYPES]
    return (specific or types)[0].replace("_", " ")


class AttractionLocator:
    """Finds well-rated, operational points of interest with the Google Places Nearby Search."""
    service = "places"

    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        self.settings = settings
        self.session = session or build_http_session(settings)

    def near_coordinate(self, center: Coordinate, radius_meters: int) -> List[Attraction]:
        if not self.settings.places_api_key:
            raise UnconfiguredError(
                "Google Places API key (GOOGLE_PLACES_API_KEY or GOOGLE_MAPS_API_KEY) is not configured.",
                service=self.service,
            )
        if not 0 < radius_meters <= MAX_SEARCH_RADIUS_M:
            raise InvalidError(
                f"Search radius must be within (0, {MAX_SEARCH_RADIUS_M}] metres, got {radius_meters}.",
                service=self.service,
            )

        params = {
            "location": f"{center.lat},{center.lng}",
            "radius": str(radius_meters),
            # Broad keywords rather than a strict type filter, for recall.
            "keyword": self.settings.ATTRACTION_KEYWORD,
            "key": self.settings.places_api_key,
        }
        context = f"({center.lat}, {center.lng}) within {radius_meters}m"
        data = get_json(self.session, PLACES_API_URL, params, self.service, self.settings.HTTP_TIMEOUT_SECONDS)
        if data.get("status") == "ZERO_RESULTS" or (data.get("status") == "OK" and not data.get("results")):
            logger.info(f"No attractions found near {context}.")
            return []
        raise_for_google_status(data, self.service, context)

        attractions: List[Attraction] = []
        seen_place_ids = set()
        for place in data["results"]:
            rating = place.get("rating")
            if rating is None or rating < MIN_RATING or place.get("business_status") != OPERATIONAL:
                continue
            place_id = place.get("place_id")
            if place_id and place_id in seen_place_ids:
                continue
            attractions.append(self._to_attraction(place))
            if place_id:
                seen_place_ids.add(place_id)
            if len(attractions) == MAX_RESULTS:
                break

        logger.info(f"Found {len(attractions)} attractions near {context}.")
        return attractions

    def near_route(self, route: Route) -> List[Attraction]:
        """
        Searches once around the route's extent. Only configuration errors propagate;
        any other failure yields an empty list because attractions are an enhancement.
        """
        if route.bounds is not None:
            center, radius = search_area(route.bounds)
            logger.info(f"Calculated search center ({center.lat}, {center.lng}), radius {radius}m from route bounds.")
        elif route.path:
            center, radius = route.path[len(route.path) // 2], FALLBACK_RADIUS_M
            logger.warning(f"Route bounds are missing; searching {radius}m around the path midpoint.")
        else:
            logger.warning("Cannot search for attractions without route path or bounds.")
            return []

        try:
            return self.near_coordinate(center, radius)
        except UnconfiguredError:
            raise
        except TripPlanningError as e:
            logger.warning(f"Continuing trip plan despite error finding attractions: {e}")
            return []

    def _to_attraction(self, place: dict) -> Attraction:
        try:
            location = place["geometry"]["location"]
            return Attraction(
                name=place["name"],
                description=self._describe(place),
                location=Coordinate(lat=location["lat"], lng=location["lng"]),
                place_id=place.get("place_id"),
                rating=place.get("rating"),
                types=place.get("types"),
            )
        except (KeyError, TypeError, ValidationError) as e:
            raise InvalidError(f"Places result could not be parsed: {e}", service=self.service) from e

    @staticmethod
    def _describe(place: dict) -> str:
        if place.get("vicinity"):
            return place["vicinity"]
        readable = [t.replace("_", " ") for t in place.get("types") or [] if t not in GENERIC_PLACE_TYPES]
        return ", ".join(readable) or "Notable place"
