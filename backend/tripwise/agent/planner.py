from typing import AsyncIterator, List, Optional, Union

import requests
from langgraph.graph import END, START, StateGraph

from tripwise.agent.advisor import TripAdvisor, build_advisor
from tripwise.agent.graph import TripPlanState, keep_first_error
from tripwise.agent.nodes import TripPlanNodes
from tripwise.core.config import Settings, logger
from tripwise.core.errors import TripPlanningError
from tripwise.schemas.trip import Coordinate, StreamMessage, TripPlanRequest, TripPlanResult
from tripwise.services import AttractionLocator, Geocoder, RouteFinder, WeatherProvider, build_http_session


# --- Define the Conditional Logic for the Graph ---
def after_route(state: TripPlanState) -> Union[str, List[str]]:
    """Fans out to the two context lookups, or ends the run if routing (or resolving) failed."""
    if state.get("error"):
        return "fail"
    return ["fetch_weather", "find_attractions"]


def after_recommendation(state: TripPlanState) -> str:
    if state.get("error"):
        return "fail"
    return "assemble_plan"


def build_graph(nodes: TripPlanNodes):
    """
    resolve_origin ∥ resolve_destination -> compute_route -> fetch_weather ∥ find_attractions
    -> recommend_departure -> assemble_plan, with `fail` after each join.
    """
    workflow = StateGraph(TripPlanState)

    workflow.add_node("resolve_origin", nodes.resolve_origin)
    workflow.add_node("resolve_destination", nodes.resolve_destination)
    workflow.add_node("compute_route", nodes.compute_route)
    workflow.add_node("fetch_weather", nodes.fetch_weather)
    workflow.add_node("find_attractions", nodes.find_attractions)
    workflow.add_node("recommend_departure", nodes.recommend_departure)
    workflow.add_node("assemble_plan", nodes.assemble_plan)
    workflow.add_node("fail", nodes.fail)

    workflow.add_edge(START, "resolve_origin")
    workflow.add_edge(START, "resolve_destination")
    workflow.add_edge(["resolve_origin", "resolve_destination"], "compute_route")
    workflow.add_conditional_edges("compute_route", after_route, ["fetch_weather", "find_attractions", "fail"])
    workflow.add_edge(["fetch_weather", "find_attractions"], "recommend_departure")
    workflow.add_conditional_edges("recommend_departure", after_recommendation, ["assemble_plan", "fail"])
    workflow.add_edge("assemble_plan", END)
    workflow.add_edge("fail", END)

    return workflow.compile()


class TripPlanner:
    """
    Runs one independent planning graph per request.
    Providers default to ones built from `settings` sharing a single HTTP session; any of them can be injected.
    """

    def __init__(
        self,
        settings: Settings,
        geocoder: Optional[Geocoder] = None,
        route_finder: Optional[RouteFinder] = None,
        attraction_locator: Optional[AttractionLocator] = None,
        weather_provider: Optional[WeatherProvider] = None,
        advisor: Optional[TripAdvisor] = None,
        session: Optional[requests.Session] = None,
    ):
        session = session or build_http_session(settings)
        self.geocoder = geocoder or Geocoder(settings, session)
        nodes = TripPlanNodes(
            geocoder=self.geocoder,
            route_finder=route_finder or RouteFinder(settings, session),
            attraction_locator=attraction_locator or AttractionLocator(settings, session),
            weather_provider=weather_provider or WeatherProvider(settings, session),
            advisor=advisor or build_advisor(settings),
        )
        self.graph = build_graph(nodes)

    @staticmethod
    def _initial_state(request: TripPlanRequest) -> dict:
        logger.info(f"Planning trip: '{request.origin_address}' -> '{request.destination_address}'")
        return {"request": request, "intermediate_steps": []}

    @staticmethod
    def _outcome(final_state: dict) -> TripPlanResult:
        error = final_state.get("error")
        if error is not None:
            raise error
        return final_state["result"]

    def plan_trip(self, request: TripPlanRequest) -> TripPlanResult:
        """Returns the complete plan or raises the TripPlanningError that stopped it."""
        return self._outcome(self.graph.invoke(self._initial_state(request)))

    async def aplan_trip(self, request: TripPlanRequest) -> TripPlanResult:
        return self._outcome(await self.graph.ainvoke(self._initial_state(request)))

    async def stream_plan(self, request: TripPlanRequest) -> AsyncIterator[StreamMessage]:
        """
        Yields a log message per completed step, then exactly one result or error message.
        Unexpected exceptions propagate to the caller.
        """
        error: Optional[TripPlanningError] = None
        async for update in self.graph.astream(self._initial_state(request), stream_mode="updates"):
            for node_name, output in update.items():
                if not output:
                    continue
                for step in output.get("intermediate_steps", []):
                    yield StreamMessage(type="log", content=step)
                error = keep_first_error(error, output.get("error"))
                if node_name == "assemble_plan":
                    result = output["result"]
                    yield StreamMessage(
                        type="result",
                        content=result.reasoning,
                        payload=result.model_dump(mode="json", by_alias=True),
                    )
                elif node_name == "fail" and error is not None:
                    yield StreamMessage(type="error", content=str(error), payload=error.to_dict())

    def reverse_geocode(self, lat: float, lng: float) -> str:
        return self.geocoder.reverse_resolve(Coordinate(lat=lat, lng=lng))
