from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class RouteSummary(BaseModel):
    distance_km: int = Field(ge=0)
    duration_minutes: int = Field(ge=0)
    has_stops: bool


class WeatherSummary(BaseModel):
    current_temperature_celsius: float
    current_conditions: str = Field(min_length=1)
    outlook_summary: str = Field(min_length=1)


class AttractionSummary(BaseModel):
    name: str = Field(min_length=1)
    type: Optional[str] = None
    rating: Optional[float] = Field(default=None, ge=0, le=5)


class CondensedSummary(BaseModel):
    """
    The reduced view of a trip handed to the reasoning engine.
    Validation here is what makes an engine reject malformed input.
    """
    origin_address: str = Field(min_length=1)
    destination_address: str = Field(min_length=1)
    desired_departure_time: datetime
    route: RouteSummary
    weather: WeatherSummary
    attractions: List[AttractionSummary] = Field(default_factory=list, max_length=5)


class AdvisorOutput(BaseModel):
    """Raw engine output. Fields are optional so that absence can be reported explicitly."""
    suggested_departure_time: Optional[str] = Field(
        default=None,
        description="The suggested optimal departure time as an ISO 8601 string, close to the desired time.",
    )
    reasoning: Optional[str] = Field(
        default=None,
        description="Clear reasoning for the suggested departure time, covering traffic, stops, weather and attractions.",
    )


class Recommendation(BaseModel):
    suggested_departure_time: datetime
    reasoning: str = Field(min_length=1)
