import datetime as dt
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator
from pydantic.alias_generators import to_camel

# Decoded polyline points are rounded to 1e-5 degrees, so they may sit that far outside the bounds.
BOUNDS_TOLERANCE_DEGREES = 1e-5


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)


class Coordinate(CamelModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class BoundingBox(CamelModel):
    northeast: Coordinate
    southwest: Coordinate

    @model_validator(mode="after")
    def check_corners(self) -> "BoundingBox":
        if self.northeast.lat < self.southwest.lat:
            raise ValueError("northeast corner must not be south of the southwest corner")
        return self

    def contains(self, point: Coordinate, tolerance: float = BOUNDS_TOLERANCE_DEGREES) -> bool:
        within_lat = self.southwest.lat - tolerance <= point.lat <= self.northeast.lat + tolerance
        if self.southwest.lng <= self.northeast.lng:
            within_lng = self.southwest.lng - tolerance <= point.lng <= self.northeast.lng + tolerance
        else:
            # Box crosses the antimeridian.
            within_lng = point.lng >= self.southwest.lng - tolerance or point.lng <= self.northeast.lng + tolerance
        return within_lat and within_lng


# --- Stop plans: every route is exactly one of these ---

class NoStops(CamelModel):
    """Direct origin -> destination route."""
    kind: Literal["none"] = "none"


class RequestedStops(CamelModel):
    """Stops visited in the order they were requested (provider did not optimize)."""
    kind: Literal["as_requested"] = "as_requested"
    place_ids: List[str] = Field(min_length=1)


class OptimizedStops(CamelModel):
    """Stops reordered by the provider. `order[i]` is the requested index visited i-th."""
    kind: Literal["optimized"] = "optimized"
    place_ids: List[str] = Field(min_length=1)
    order: List[int]

    @model_validator(mode="after")
    def check_permutation(self) -> "OptimizedStops":
        if sorted(self.order) != list(range(len(self.place_ids))):
            raise ValueError(f"stop order {self.order} is not a permutation of {len(self.place_ids)} stops")
        return self


StopPlan = Annotated[Union[NoStops, RequestedStops, OptimizedStops], Field(discriminator="kind")]


class Route(CamelModel):
    path: List[Coordinate]
    distance_meters: int = Field(ge=0)
    duration_seconds: int = Field(ge=0)
    bounds: Optional[BoundingBox] = None
    stops: StopPlan = Field(default_factory=NoStops)

    @computed_field(alias="stopOrder")
    @property
    def stop_order(self) -> Optional[List[int]]:
        if isinstance(self.stops, OptimizedStops):
            return self.stops.order
        return None

    @property
    def stop_place_ids(self) -> List[str]:
        if isinstance(self.stops, NoStops):
            return []
        return list(self.stops.place_ids)

    @model_validator(mode="after")
    def check_bounds_contain_path(self) -> "Route":
        if self.bounds is not None:
            outside = [p for p in self.path if not self.bounds.contains(p)]
            if outside:
                raise ValueError(f"{len(outside)} path point(s) fall outside the route bounds")
        return self


class Attraction(CamelModel):
    name: str
    description: str
    location: Coordinate
    place_id: Optional[str] = None
    rating: Optional[float] = Field(default=None, ge=0, le=5)
    types: Optional[List[str]] = None
    is_stop: bool = False


class DailyOutlook(CamelModel):
    date: dt.date
    temperature_celsius: float
    conditions: str


class WeatherForecast(CamelModel):
    current_temperature_celsius: float
    conditions: str
    five_day_outlook: List[DailyOutlook] = Field(min_length=5, max_length=5)

    @field_validator("five_day_outlook")
    @classmethod
    def check_chronological(cls, outlook: List[DailyOutlook]) -> List[DailyOutlook]:
        for previous, current in zip(outlook, outlook[1:]):
            if current.date <= previous.date:
                raise ValueError("outlook entries must be one per day in chronological order")
        return outlook


class TripPlanRequest(CamelModel):
    """
    The input model for the /plan-trip API endpoint.
    `stops` are provider place IDs, never raw coordinates.
    """
    origin_address: str = Field(min_length=1)
    destination_address: str = Field(min_length=1)
    departure_time: dt.datetime
    stops: List[Annotated[str, Field(min_length=1)]] = Field(default_factory=list)


class TripPlanResult(CamelModel):
    origin_address: str
    destination_address: str
    suggested_departure_time: dt.datetime
    route: Route
    weather_forecast: WeatherForecast
    nearby_attractions: List[Attraction]
    reasoning: str = Field(min_length=1)


class StreamMessage(BaseModel):
    """
    Defines the structure of a single message in the response stream for the frontend.
    Using a literal type provides clear, predictable message types.
    """
    type: Literal["log", "result", "error"]
    content: str
    payload: Optional[dict] = None
