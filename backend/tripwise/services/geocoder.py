from typing import Optional

import requests

from tripwise.core.config import Settings, logger
from tripwise.core.errors import InvalidError, NotFoundError, UnconfiguredError
from tripwise.schemas.trip import Coordinate
from tripwise.services.http import build_http_session, get_json, raise_for_google_status

GEOCODING_API_URL = "https://maps.googleapis.com/maps/api/geocode/json"


class Geocoder:
    """
    Converts free-form addresses to coordinates and back using the Google Geocoding API.
    The provider's first result is always taken; there is no client-side ranking.
    """
    service = "geocoding"

    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        self.settings = settings
        self.session = session or build_http_session(settings)

    def resolve(self, address: str) -> Coordinate:
        """Geocodes an address string into a coordinate."""
        address = (address or "").strip()
        if not address:
            raise InvalidError("Cannot geocode an empty address.", service=self.service)
        data = self._lookup({"address": address}, context=f'address "{address}"')

        try:
            location = data["results"][0]["geometry"]["location"]
            coordinate = Coordinate(lat=location["lat"], lng=location["lng"])
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise InvalidError(
                f'Geocoding response for "{address}" has no usable location.', service=self.service
            ) from e
        logger.info(f'Geocoded "{address}" to ({coordinate.lat}, {coordinate.lng})')
        return coordinate

    def reverse_resolve(self, coordinate: Coordinate) -> str:
        """Reverse geocodes a coordinate into the provider's best formatted address."""
        latlng = f"{coordinate.lat},{coordinate.lng}"
        data = self._lookup({"latlng": latlng}, context=f"coordinates {latlng}")

        try:
            formatted_address = data["results"][0]["formatted_address"]
        except (KeyError, IndexError, TypeError) as e:
            raise InvalidError(
                f"Reverse geocoding response for {latlng} has no formatted address.", service=self.service
            ) from e
        if not formatted_address:
            raise InvalidError(f"Reverse geocoding returned a blank address for {latlng}.", service=self.service)
        logger.info(f'Reverse geocoded {latlng} to "{formatted_address}"')
        return formatted_address

    def _lookup(self, query: dict, context: str) -> dict:
        if not self.settings.GOOGLE_MAPS_API_KEY:
            raise UnconfiguredError(
                "Google Maps API key (GOOGLE_MAPS_API_KEY) is not configured.", service=self.service
            )
        params = {**query, "key": self.settings.GOOGLE_MAPS_API_KEY}
        data = get_json(self.session, GEOCODING_API_URL, params, self.service, self.settings.HTTP_TIMEOUT_SECONDS)
        raise_for_google_status(data, self.service, context)
        if not data.get("results"):
            raise NotFoundError(
                f"No geocoding results for {context}.", service=self.service, upstream_status="ZERO_RESULTS"
            )
        return data
