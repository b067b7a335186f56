from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from tripwise.api.router import get_http_session, router as api_router, trip_planning_error_handler
from tripwise.core.config import configure_logging, get_settings, logger
from tripwise.core.errors import TripPlanningError

settings = get_settings()
configure_logging(settings)

# Initialize the FastAPI application
app = FastAPI(
    title=settings.PROJECT_NAME,
    version="1.0",
    description="Plans road trips: route, weather, nearby attractions and a suggested departure time, powered by LangGraph and FastAPI.",
)

# Set up CORS (Cross-Origin Resource Sharing) for the frontend.
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(TripPlanningError, trip_planning_error_handler)

# Include the API router
app.include_router(api_router, prefix=settings.API_V1_STR)

logger.info(f"{settings.PROJECT_NAME} ready; reasoning engine: {settings.ADVISOR_BACKEND}.")

@app.get("/", tags=["Root"])
def read_root():
    """A simple health check endpoint to confirm the API is running."""
    return {"status": "ok", "message": f"Welcome to the {settings.PROJECT_NAME} API!"}

@app.on_event("shutdown")
def close_http_session():
    if get_http_session.cache_info().currsize:
        get_http_session().close()
        get_http_session.cache_clear()
    logger.info("HTTP session closed.")
