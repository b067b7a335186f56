import math
from typing import List

from tripwise.agent.advisor import TripAdvisor
from tripwise.agent.graph import TripPlanState
from tripwise.core.config import logger
from tripwise.core.errors import TripPlanningError
from tripwise.schemas.advisor import AttractionSummary, CondensedSummary, RouteSummary, WeatherSummary
from tripwise.schemas.trip import Attraction, DailyOutlook, Route, TripPlanRequest, TripPlanResult, WeatherForecast
from tripwise.services import AttractionLocator, Geocoder, RouteFinder, WeatherProvider, place_reference
from tripwise.services.attractions import primary_type

MAX_SUMMARY_ATTRACTIONS = 5
NO_OUTLOOK = "No outlook available."


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def outlook_digest(outlook: List[DailyOutlook]) -> str:
    """'Mon: Sunny, Tue: Cloudy, ...'"""
    if not outlook:
        return NO_OUTLOOK
    return ", ".join(f"{day.date.strftime('%a')}: {day.conditions}" for day in outlook)


def mark_stops(attractions: List[Attraction], route: Route) -> List[Attraction]:
    """Flags attractions that are also stops on the route."""
    stop_ids = set(route.stop_place_ids)
    return [
        a.model_copy(update={"is_stop": True}) if a.place_id and a.place_id in stop_ids else a
        for a in attractions
    ]


def condense(
    request: TripPlanRequest,
    route: Route,
    weather: WeatherForecast,
    attractions: List[Attraction],
) -> CondensedSummary:
    """Reduces a gathered trip to what the reasoning engine sees. Stops are never offered as sights."""
    candidates = [a for a in attractions if not a.is_stop][:MAX_SUMMARY_ATTRACTIONS]
    return CondensedSummary(
        origin_address=request.origin_address,
        destination_address=request.destination_address,
        desired_departure_time=request.departure_time,
        route=RouteSummary(
            distance_km=round_half_up(route.distance_meters / 1000),
            duration_minutes=round_half_up(route.duration_seconds / 60),
            has_stops=bool(route.stop_place_ids),
        ),
        weather=WeatherSummary(
            current_temperature_celsius=weather.current_temperature_celsius,
            current_conditions=weather.conditions,
            outlook_summary=outlook_digest(weather.five_day_outlook),
        ),
        attractions=[
            AttractionSummary(name=a.name, type=primary_type(a.types), rating=a.rating)
            for a in candidates
        ],
    )


# --- Agent Nodes: Each method represents a distinct step in the planning workflow ---

class TripPlanNodes:
    """
    The graph's nodes, bound to the providers of one planner.
    A node records a TripPlanningError in state instead of raising it; anything else propagates.
    """

    def __init__(
        self,
        geocoder: Geocoder,
        route_finder: RouteFinder,
        attraction_locator: AttractionLocator,
        weather_provider: WeatherProvider,
        advisor: TripAdvisor,
    ):
        self.geocoder = geocoder
        self.route_finder = route_finder
        self.attraction_locator = attraction_locator
        self.weather_provider = weather_provider
        self.advisor = advisor

    @staticmethod
    def _failed(stage: str, error: TripPlanningError) -> dict:
        error.stage = stage
        logger.error(f"Trip planning failed at {stage}: {error.kind}: {error.message}")
        return {"error": error, "intermediate_steps": [f"❌ {error.message}"]}

    def resolve_origin(self, state: TripPlanState) -> dict:
        logger.info("Executing Node: resolve_origin")
        address = state["request"].origin_address
        try:
            origin = self.geocoder.resolve(address)
        except TripPlanningError as e:
            return self._failed("resolve_origin", e)
        return {"origin": origin, "intermediate_steps": [f"✅ Located origin: {address}"]}

    def resolve_destination(self, state: TripPlanState) -> dict:
        logger.info("Executing Node: resolve_destination")
        address = state["request"].destination_address
        try:
            destination = self.geocoder.resolve(address)
        except TripPlanningError as e:
            return self._failed("resolve_destination", e)
        return {"destination": destination, "intermediate_steps": [f"✅ Located destination: {address}"]}

    def compute_route(self, state: TripPlanState) -> dict:
        logger.info("Executing Node: compute_route")
        # Joins both lookups, so it runs even when one of them failed.
        if state.get("error"):
            return {}
        stops = [place_reference(place_id) for place_id in state["request"].stops]
        try:
            route = self.route_finder.find_route(state["origin"], state["destination"], stops)
        except TripPlanningError as e:
            return self._failed("compute_route", e)
        step = f"✅ Found a {route.distance_meters / 1000:.1f} km route"
        if stops:
            step += f" through {len(stops)} stop(s)"
        return {"route": route, "intermediate_steps": [step + "."]}

    def fetch_weather(self, state: TripPlanState) -> dict:
        logger.info("Executing Node: fetch_weather")
        try:
            weather = self.weather_provider.forecast(state["origin"])
        except TripPlanningError as e:
            return self._failed("fetch_weather", e)
        return {"weather": weather, "intermediate_steps": [f"✅ Weather at origin: {weather.conditions}."]}

    def find_attractions(self, state: TripPlanState) -> dict:
        logger.info("Executing Node: find_attractions")
        route = state["route"]
        try:
            attractions = self.attraction_locator.near_route(route)
        except TripPlanningError as e:
            # Only configuration errors get here; everything else already degraded to [].
            return self._failed("find_attractions", e)
        return {
            "attractions": mark_stops(attractions, route),
            "intermediate_steps": [f"✅ Found {len(attractions)} nearby attraction(s)."],
        }

    def recommend_departure(self, state: TripPlanState) -> dict:
        logger.info("Executing Node: recommend_departure")
        if state.get("error"):
            return {}
        try:
            summary = condense(state["request"], state["route"], state["weather"], state.get("attractions") or [])
            recommendation = self.advisor.advise(summary)
        except TripPlanningError as e:
            return self._failed("recommend_departure", e)
        return {
            "recommendation": recommendation,
            "intermediate_steps": [
                f"✅ Suggested departure: {recommendation.suggested_departure_time.isoformat()}."
            ],
        }

    def assemble_plan(self, state: TripPlanState) -> dict:
        logger.info("Executing Node: assemble_plan")
        request, recommendation = state["request"], state["recommendation"]
        result = TripPlanResult(
            origin_address=request.origin_address,
            destination_address=request.destination_address,
            suggested_departure_time=recommendation.suggested_departure_time,
            route=state["route"],
            weather_forecast=state["weather"],
            nearby_attractions=state.get("attractions") or [],
            reasoning=recommendation.reasoning,
        )
        return {"result": result, "intermediate_steps": ["✅ Trip plan is ready."]}

    def fail(self, state: TripPlanState) -> dict:
        logger.info("Executing Node: fail")
        error = state["error"]
        logger.warning(f"Error detected in planner state: '{error}'. Routing to end.")
        return {"intermediate_steps": [f"❌ Trip planning stopped at {error.stage or 'an unknown step'}."]}
