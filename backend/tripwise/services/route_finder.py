import re
from typing import List, Optional, Sequence

import polyline
import requests
from pydantic import ValidationError

from tripwise.core.config import Settings, logger
from tripwise.core.errors import InvalidError, NoRouteError, UnconfiguredError
from tripwise.schemas.trip import (
    BoundingBox, Coordinate, NoStops, OptimizedStops, RequestedStops, Route,
)
from tripwise.services.http import build_http_session, get_json, raise_for_google_status

DIRECTIONS_API_URL = "https://maps.googleapis.com/maps/api/directions/json"
PLACE_REFERENCE_PREFIX = "place_id:"
POLYLINE_PRECISION = 5
# Google place IDs are URL-safe base64 text. "|" would start a new waypoint.
PLACE_ID_PATTERN = re.compile(r"[A-Za-z0-9_-]+")


def place_reference(place_id: str) -> str:
    """Formats a place ID as a Directions API stop reference."""
    return f"{PLACE_REFERENCE_PREFIX}{place_id}"


class RouteFinder:
    """
    Computes driving routes with the Google Directions API.
    Stops are opaque `place_id:<id>` references and are always submitted for order optimization.
    """
    service = "directions"

    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        self.settings = settings
        self.session = session or build_http_session(settings)

    def find_route(self, origin: Coordinate, destination: Coordinate, stops: Sequence[str] = ()) -> Route:
        if not self.settings.GOOGLE_MAPS_API_KEY:
            raise UnconfiguredError(
                "Google Maps API key (GOOGLE_MAPS_API_KEY) is not configured.", service=self.service
            )

        stops = list(stops)
        invalid = [
            s for s in stops
            if not s.startswith(PLACE_REFERENCE_PREFIX)
            or not PLACE_ID_PATTERN.fullmatch(s[len(PLACE_REFERENCE_PREFIX):])
        ]
        if invalid:
            raise InvalidError(
                f"Stops must be place references of the form 'place_id:<id>': {invalid}", service=self.service
            )

        params = {
            "origin": f"{origin.lat},{origin.lng}",
            "destination": f"{destination.lat},{destination.lng}",
            "key": self.settings.GOOGLE_MAPS_API_KEY,
        }
        if stops:
            params["waypoints"] = "optimize:true|" + "|".join(stops)

        context = f"{params['origin']} -> {params['destination']}"
        if stops:
            context += f" via {len(stops)} stop(s)"
        data = get_json(self.session, DIRECTIONS_API_URL, params, self.service, self.settings.HTTP_TIMEOUT_SECONDS)
        status = data.get("status")
        if status in ("ZERO_RESULTS", "NOT_FOUND"):
            if stops:
                message = f"No route found including the specified stops ({context})."
            else:
                message = f"No route found between origin and destination ({context})."
            raise NoRouteError(message, service=self.service, upstream_status=status)
        raise_for_google_status(data, self.service, context)

        routes = data.get("routes") or []
        if not routes:
            raise NoRouteError(f"No route found ({context}).", service=self.service, upstream_status="ZERO_RESULTS")

        route = self._parse_route(routes[0], stops)
        logger.info(
            f"Directions found: Distance={route.distance_meters / 1000:.1f} km, "
            f"Duration={round(route.duration_seconds / 60)} min, Stop order={route.stop_order or 'N/A'}"
        )
        return route

    def _parse_route(self, raw: dict, stops: List[str]) -> Route:
        legs = raw.get("legs")
        points = (raw.get("overview_polyline") or {}).get("points")
        raw_bounds = raw.get("bounds")
        if not legs or not points or not raw_bounds:
            raise InvalidError(
                "Directions response missing required fields (legs, overview_polyline, or bounds).",
                service=self.service,
            )

        # Totals are summed over every leg: origin -> stop 1 -> ... -> destination.
        try:
            distance = sum(int(leg["distance"]["value"]) for leg in legs)
            duration = sum(int(leg["duration"]["value"]) for leg in legs)
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidError("Directions response has a leg without distance or duration.", service=self.service) from e

        try:
            path = [Coordinate(lat=lat, lng=lng) for lat, lng in polyline.decode(points, POLYLINE_PRECISION)]
            return Route(
                path=path,
                distance_meters=distance,
                duration_seconds=duration,
                bounds=BoundingBox.model_validate(raw_bounds),
                stops=self._stop_plan(stops, raw.get("waypoint_order")),
            )
        except (ValidationError, ValueError, IndexError, TypeError) as e:
            raise InvalidError(f"Directions response could not be parsed: {e}", service=self.service) from e

    @staticmethod
    def _stop_plan(stops: List[str], waypoint_order: Optional[List[int]]):
        if not stops:
            return NoStops()
        place_ids = [s[len(PLACE_REFERENCE_PREFIX):] for s in stops]
        if not waypoint_order:
            return RequestedStops(place_ids=place_ids)
        return OptimizedStops(place_ids=place_ids, order=list(waypoint_order))
