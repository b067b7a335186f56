from functools import lru_cache

import requests
from fastapi import APIRouter, Depends, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, StreamingResponse

from tripwise.agent.planner import TripPlanner
from tripwise.core.config import Settings, get_settings, logger
from tripwise.core.errors import TripPlanningError
from tripwise.schemas.trip import StreamMessage, TripPlanRequest, TripPlanResult
from tripwise.services import build_http_session

router = APIRouter()

ERROR_STATUS_CODES = {
    "unconfigured": 503,
    "not_found": 404,
    "no_route": 404,
    "access_denied": 502,
    "rate_limited": 429,
    "too_many_stops": 400,
    "invalid": 502,
    "invalid_recommendation": 502,
    "upstream_error": 502,
}


@lru_cache
def get_http_session() -> requests.Session:
    """One connection-pooling session per process, closed on shutdown."""
    return build_http_session(get_settings())


def get_planner(
    settings: Settings = Depends(get_settings),
    session: requests.Session = Depends(get_http_session),
) -> TripPlanner:
    """A fresh planner per request; only the settings and the HTTP session are shared."""
    return TripPlanner(settings, session=session)


async def trip_planning_error_handler(request: Request, exc: TripPlanningError) -> JSONResponse:
    """Registered on the app; turns the error taxonomy into JSON error responses."""
    status_code = ERROR_STATUS_CODES.get(exc.kind, 502)
    logger.warning(f"{request.method} {request.url.path} failed with {status_code}: {exc}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())


async def run_planner_stream(planner: TripPlanner, request: TripPlanRequest):
    """
    Runs the planner and yields structured JSON events for the frontend
    in a server-sent event (SSE) stream.
    """
    try:
        async for msg in planner.stream_plan(request):
            yield f"data: {msg.model_dump_json()}\n\n"
    except Exception as e:
        logger.error(f"An unhandled exception occurred in the planner stream: {e}", exc_info=True)
        error_msg = StreamMessage(type="error", content=f"A critical error occurred: {str(e)}")
        yield f"data: {error_msg.model_dump_json()}\n\n"


@router.post("/plan-trip", tags=["Planner"], response_model=TripPlanResult, response_model_by_alias=True)
async def plan_trip_endpoint(request: TripPlanRequest, planner: TripPlanner = Depends(get_planner)):
    """Plans a trip in one call. Failures are answered by the TripPlanningError handler."""
    return await run_in_threadpool(planner.plan_trip, request)


@router.post("/plan-trip/stream", tags=["Planner"])
async def plan_trip_stream_endpoint(request: TripPlanRequest, planner: TripPlanner = Depends(get_planner)):
    """
    Returns a stream of events as the planner works through the trip.
    The stream provides structured JSON messages for logs, the result, and errors.
    """
    return StreamingResponse(run_planner_stream(planner, request), media_type="text/event-stream")


@router.get("/reverse-geocode", tags=["Geocoding"])
async def reverse_geocode_endpoint(
    lat: float = Query(ge=-90, le=90),
    lng: float = Query(ge=-180, le=180),
    planner: TripPlanner = Depends(get_planner),
):
    address = await run_in_threadpool(planner.reverse_geocode, lat, lng)
    return {"address": address}
