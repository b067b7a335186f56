from typing import Dict, Optional, Type

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from tripwise.core.config import Settings, logger
from tripwise.core.errors import (
    AccessDeniedError, InvalidError, NotFoundError, RateLimitedError,
    TooManyStopsError, TripPlanningError, UpstreamError,
)

# Google Maps Platform status codes shared by Geocoding, Directions and Places.
GOOGLE_STATUS_ERRORS: Dict[str, Type[TripPlanningError]] = {
    "ZERO_RESULTS": NotFoundError,
    "NOT_FOUND": NotFoundError,
    "REQUEST_DENIED": AccessDeniedError,
    "OVER_QUERY_LIMIT": RateLimitedError,
    "OVER_DAILY_LIMIT": RateLimitedError,
    "INVALID_REQUEST": InvalidError,
    "MAX_WAYPOINTS_EXCEEDED": TooManyStopsError,
}

# HTTP status codes that mean the same thing for every provider.
HTTP_STATUS_ERRORS: Dict[int, Type[TripPlanningError]] = {
    400: InvalidError,
    401: AccessDeniedError,
    403: AccessDeniedError,
    404: InvalidError,
    429: RateLimitedError,
}

_SECRET_PARAMS = ("key", "appid")


def build_http_session(settings: Settings) -> requests.Session:
    """
    Creates the session every provider shares.
    Retries for transient 5xx responses live here, in the transport, not in the planner.
    """
    retry = Retry(
        total=settings.HTTP_MAX_RETRIES,
        backoff_factor=0.5,
        status_forcelist=(500, 502, 503, 504),
        allowed_methods=frozenset(["GET"]),
        raise_on_status=False,
    )
    session = requests.Session()
    session.mount("https://", HTTPAdapter(max_retries=retry))
    session.mount("http://", HTTPAdapter(max_retries=retry))
    return session


def redact(params: dict) -> dict:
    """Copy of the query params that is safe to log."""
    return {k: ("***" if k in _SECRET_PARAMS else v) for k, v in params.items()}


def get_json(
    session: requests.Session,
    url: str,
    params: dict,
    service: str,
    timeout: float,
) -> dict:
    """
    Performs a GET and returns the decoded JSON body.
    Transport failures, HTTP error statuses and non-JSON bodies are mapped onto the error taxonomy.
    """
    logger.info(f"[{service}] GET {url} params={redact(params)}")
    try:
        response = session.get(url, params=params, timeout=timeout)
    except requests.RequestException as e:
        raise UpstreamError(f"{service} request failed: {e}", service=service) from e

    if response.status_code >= 400:
        error_cls = HTTP_STATUS_ERRORS.get(response.status_code, UpstreamError)
        raise error_cls(
            f"{service} responded with HTTP {response.status_code}: {_error_detail(response)}",
            service=service,
            upstream_status=str(response.status_code),
        )

    try:
        data = response.json()
    except ValueError as e:
        raise InvalidError(f"{service} returned a non-JSON response.", service=service) from e
    if not isinstance(data, dict):
        raise InvalidError(f"{service} returned an unexpected JSON document.", service=service)
    return data


def raise_for_google_status(
    data: dict,
    service: str,
    context: str,
    overrides: Optional[Dict[str, Type[TripPlanningError]]] = None,
) -> None:
    """Raises the taxonomy error matching a non-OK Google `status` field."""
    status = data.get("status")
    if status == "OK":
        return
    error_map = {**GOOGLE_STATUS_ERRORS, **(overrides or {})}
    error_cls = error_map.get(status, UpstreamError)
    detail = data.get("error_message") or "No error message provided."
    logger.error(f"[{service}] Status={status} for {context}. Message={detail}")
    raise error_cls(
        f"{service} error for {context}: status {status}. {detail}",
        service=service,
        upstream_status=status,
    )


def _error_detail(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error_message") or body)
    return str(body)
