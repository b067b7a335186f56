from typing import Optional


class TripPlanningError(Exception):
    """
    Base class for every failure the planner reports to its caller.
    `service` names the upstream provider, `upstream_status` its raw status code,
    and `stage` the orchestration step that was running when the error surfaced.
    """
    kind = "trip_planning_error"

    def __init__(
        self,
        message: str,
        service: Optional[str] = None,
        upstream_status: Optional[str] = None,
        stage: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.service = service
        self.upstream_status = upstream_status
        self.stage = stage

    def to_dict(self) -> dict:
        return {
            "error": self.kind,
            "stage": self.stage,
            "service": self.service,
            "upstreamStatus": self.upstream_status,
            "message": self.message,
        }

    def __str__(self) -> str:
        prefix = f"[{self.stage}] " if self.stage else ""
        return f"{prefix}{self.message}"


class UnconfiguredError(TripPlanningError):
    """A required credential is missing. Never downgraded."""
    kind = "unconfigured"


class NotFoundError(TripPlanningError):
    kind = "not_found"


class NoRouteError(TripPlanningError):
    kind = "no_route"


class AccessDeniedError(TripPlanningError):
    kind = "access_denied"


class RateLimitedError(TripPlanningError):
    kind = "rate_limited"


class TooManyStopsError(TripPlanningError):
    kind = "too_many_stops"


class InvalidError(TripPlanningError):
    """Malformed request, or a malformed or incomplete provider response."""
    kind = "invalid"


class InvalidRecommendationError(TripPlanningError):
    """The reasoning engine returned an incomplete recommendation."""
    kind = "invalid_recommendation"


class UpstreamError(TripPlanningError):
    """Transport failure or an unrecognised provider status."""
    kind = "upstream_error"
