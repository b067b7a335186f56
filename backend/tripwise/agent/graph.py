import operator
from typing import Annotated, List, Optional, TypedDict

from tripwise.core.errors import TripPlanningError, UnconfiguredError
from tripwise.schemas.advisor import Recommendation
from tripwise.schemas.trip import Attraction, Coordinate, Route, TripPlanRequest, TripPlanResult, WeatherForecast


def keep_first_error(current: Optional[TripPlanningError], new: Optional[TripPlanningError]) -> Optional[TripPlanningError]:
    """
    Merges errors written by parallel branches in the same step.
    A configuration error always wins; otherwise the first error recorded is kept.
    """
    if current is None:
        return new
    if new is None:
        return current
    if isinstance(new, UnconfiguredError) and not isinstance(current, UnconfiguredError):
        return new
    return current


class TripPlanState(TypedDict, total=False):
    """
    Defines the state of a single planning run. Each node reads what earlier steps produced
    and returns only the keys it sets.
    """
    request: TripPlanRequest
    origin: Optional[Coordinate]
    destination: Optional[Coordinate]
    route: Optional[Route]
    weather: Optional[WeatherForecast]
    attractions: List[Attraction]
    recommendation: Optional[Recommendation]
    result: Optional[TripPlanResult]
    error: Annotated[Optional[TripPlanningError], keep_first_error]  # Set by the first failing node
    intermediate_steps: Annotated[List[str], operator.add]  # A log of actions taken for streaming to the frontend
