from abc import ABC, abstractmethod
from datetime import timedelta
from typing import List, Optional

from google.api_core.exceptions import (
    GoogleAPIError, InvalidArgument, PermissionDenied, ResourceExhausted, Unauthenticated,
)
from langchain_core.exceptions import OutputParserException
from langchain_core.prompts import ChatPromptTemplate
from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_google_genai.chat_models import ChatGoogleGenerativeAIError
from pydantic import ValidationError

from tripwise.core.config import Settings, logger
from tripwise.core.errors import (
    AccessDeniedError, InvalidError, InvalidRecommendationError, RateLimitedError, UnconfiguredError, UpstreamError,
)
from tripwise.schemas.advisor import AdvisorOutput, AttractionSummary, CondensedSummary, Recommendation


def validate_recommendation(output: Optional[AdvisorOutput], engine: str) -> Recommendation:
    """
    Both the suggested time and the reasoning are required. A missing, blank or unparseable field
    is reported as an error; no fallback text is ever substituted.
    """
    if output is None:
        raise InvalidRecommendationError(f"{engine} returned no recommendation.", service=engine)
    missing = [
        name for name in ("suggested_departure_time", "reasoning")
        if not (getattr(output, name) or "").strip()
    ]
    if missing:
        raise InvalidRecommendationError(
            f"{engine} failed to provide: {', '.join(missing)}.", service=engine
        )
    try:
        return Recommendation(
            suggested_departure_time=output.suggested_departure_time.strip(),
            reasoning=output.reasoning.strip(),
        )
    except ValidationError as e:
        raise InvalidRecommendationError(
            f"{engine} returned an unusable departure time: {output.suggested_departure_time!r}.", service=engine
        ) from e


class TripAdvisor(ABC):
    """Condensed summary in, suggested departure time and reasoning out."""
    engine = "advisor"

    def advise(self, summary: CondensedSummary) -> Recommendation:
        logger.info(f"Requesting departure recommendation from {self.engine}.")
        return validate_recommendation(self.generate(summary), self.engine)

    @abstractmethod
    def generate(self, summary: CondensedSummary) -> Optional[AdvisorOutput]:
        """Produce the raw engine output for a summary."""


# --- Gemini-backed engine ---

ADVISOR_SYSTEM_PROMPT = (
    "You are an expert Trip Planner AI. Your task is to suggest the optimal departure time for a trip "
    "based on the provided information. Output only the suggested time and reasoning in the specified format."
)

ADVISOR_PROMPT = ChatPromptTemplate.from_messages([
    ("system", ADVISOR_SYSTEM_PROMPT),
    ("human", """**Trip Details:**
*   **Origin:** {origin_address}
*   **Destination:** {destination_address}
*   **Desired Departure:** {desired_departure_time} (User's preferred time)

**Route & Conditions:**
*   **Route Summary:** Approximately {distance_km} km, estimated travel time: {duration_minutes} minutes (this considers typical traffic{stops_clause}).
*   **Weather at Origin:** Currently {current_temperature_celsius}°C and {current_conditions}. Outlook: {outlook_summary}.

**Nearby Attractions:**
{attractions_block}

**Your Goal:**
Recommend the *best departure time* (as an ISO 8601 string) that is close to the user's desired time.

**Reasoning Requirements:**
*   **Analyze Traffic:** Consider the estimated duration relative to the distance. A long duration for the distance implies potential traffic delays around the suggested time.
*   **Factor in Stops:** {stops_instruction}
*   **Evaluate Weather:** Avoid suggesting departure during potentially hazardous weather (heavy rain, snow) if possible, or advise caution.
*   **Consider Attractions (Optional):** Briefly mention 1-2 highly-rated or relevant attractions listed above as points of interest the user might pass. Do *not* suggest detours unless the user explicitly asked for stops.
*   **Justify:** Clearly explain *why* the suggested departure time is optimal, linking it to traffic, stops (if any), weather, and any mentioned attractions. Be concise and actionable."""),
])


def _attractions_block(attractions: List[AttractionSummary]) -> str:
    if not attractions:
        return "No specific major attractions were flagged directly along the route."
    lines = ["Here are some points of interest near the calculated route:"]
    for attraction in attractions:
        label = attraction.type or "Attraction"
        if attraction.rating is not None:
            label += f", Rating: {attraction.rating}★"
        lines.append(f"*   {attraction.name} ({label})")
    return "\n".join(lines)


def prompt_variables(summary: CondensedSummary) -> dict:
    has_stops = summary.route.has_stops
    return {
        "origin_address": summary.origin_address,
        "destination_address": summary.destination_address,
        "desired_departure_time": summary.desired_departure_time.isoformat(),
        "distance_km": summary.route.distance_km,
        "duration_minutes": summary.route.duration_minutes,
        "stops_clause": " and includes planned stops" if has_stops else "",
        "stops_instruction": (
            "Acknowledge that the duration includes stops and whether the departure time needs adjusting for them."
            if has_stops else "There are no planned stops."
        ),
        "current_temperature_celsius": summary.weather.current_temperature_celsius,
        "current_conditions": summary.weather.current_conditions,
        "outlook_summary": summary.weather.outlook_summary,
        "attractions_block": _attractions_block(summary.attractions),
    }


class GeminiTripAdvisor(TripAdvisor):
    """
    Asks a Gemini chat model for a structured recommendation.
    Any chat model supporting `with_structured_output` can be injected instead.
    """
    engine = "gemini"

    def __init__(self, settings: Settings, llm=None):
        self.settings = settings
        if llm is None and settings.GOOGLE_API_KEY:
            llm = ChatGoogleGenerativeAI(
                model=settings.ADVISOR_MODEL,
                google_api_key=settings.GOOGLE_API_KEY,
                temperature=settings.ADVISOR_TEMPERATURE,
                max_retries=settings.ADVISOR_MAX_RETRIES,
            )
        self.llm = llm

    def generate(self, summary: CondensedSummary) -> Optional[AdvisorOutput]:
        if self.llm is None:
            raise UnconfiguredError("GOOGLE_API_KEY is not set; the Gemini advisor is unavailable.", service=self.engine)
        chain = ADVISOR_PROMPT | self.llm.with_structured_output(AdvisorOutput)
        try:
            return chain.invoke(prompt_variables(summary))
        except ResourceExhausted as e:
            logger.error(f"Google API rate limit exceeded during recommendation: {e}")
            raise RateLimitedError(
                "The AI model is currently busy due to high demand. Please try again in a few minutes.",
                service=self.engine, upstream_status="RESOURCE_EXHAUSTED",
            ) from e
        except (PermissionDenied, Unauthenticated) as e:
            logger.error(f"Google API rejected the advisor credentials: {e}")
            raise AccessDeniedError(
                f"{self.engine} rejected the request: {e.message}", service=self.engine, upstream_status=str(int(e.code))
            ) from e
        except InvalidArgument as e:
            raise InvalidError(
                f"{self.engine} rejected the request as invalid: {e.message}",
                service=self.engine, upstream_status=str(int(e.code)),
            ) from e
        except ChatGoogleGenerativeAIError as e:
            raise InvalidError(f"{self.engine} rejected the request: {e}", service=self.engine) from e
        except GoogleAPIError as e:
            logger.error(f"Google API call failed during recommendation: {e}")
            code = getattr(e, "code", None)
            raise UpstreamError(
                f"{self.engine} request failed: {e}",
                service=self.engine, upstream_status=str(int(code)) if code is not None else type(e).__name__,
            ) from e
        except (OutputParserException, ValidationError) as e:
            raise InvalidRecommendationError(
                f"{self.engine} returned a malformed recommendation: {e}", service=self.engine
            ) from e


# --- Rule-based engine ---

HEAVY_TRAFFIC_KMH = 40
MODERATE_TRAFFIC_KMH = 65
HAZARD_KEYWORDS = (
    "rain", "snow", "sleet", "hail", "storm", "thunder", "freezing", "blizzard", "tornado", "squall",
)
HIGHLIGHT_MIN_RATING = 4.0


def is_hazardous(conditions: str) -> bool:
    text = conditions.lower()
    return any(keyword in text for keyword in HAZARD_KEYWORDS)


class HeuristicTripAdvisor(TripAdvisor):
    """
    Deterministic recommendations without a model.
    Heavy traffic moves the departure earlier; hazardous weather at the origin moves it later.
    """
    engine = "heuristic"

    def generate(self, summary: CondensedSummary) -> AdvisorOutput:
        route, weather = summary.route, summary.weather
        parts = []

        shift_minutes = 0
        if route.duration_minutes and route.distance_km:
            speed = route.distance_km / (route.duration_minutes / 60)
            if speed < HEAVY_TRAFFIC_KMH:
                traffic, shift_minutes = "heavy", -30
            elif speed < MODERATE_TRAFFIC_KMH:
                traffic, shift_minutes = "moderate", -15
            else:
                traffic = "light"
            parts.append(
                f"The {route.distance_km} km trip is estimated at {route.duration_minutes} minutes "
                f"(about {speed:.0f} km/h on average), which points to {traffic} traffic."
            )
        else:
            parts.append("The trip is very short, so traffic should have little effect on timing.")

        if route.has_stops:
            parts.append("That estimate includes your planned stops, so allow extra time at each of them.")

        parts.append(
            f"It is currently {weather.current_temperature_celsius}°C and "
            f"{weather.current_conditions.lower()} at the origin."
        )
        if is_hazardous(weather.current_conditions):
            shift_minutes = 30
            parts.append(
                "These conditions are hazardous for driving; delaying departure gives them time to ease. "
                "Drive with caution and allow extra braking distance."
            )
        rough_days = [day.strip() for day in weather.outlook_summary.split(",") if is_hazardous(day)]
        if rough_days:
            parts.append(f"The outlook also flags rough weather ({', '.join(rough_days)}), so check again before later legs.")

        highlights = sorted(
            (a for a in summary.attractions if a.rating is not None and a.rating >= HIGHLIGHT_MIN_RATING),
            key=lambda a: a.rating,
            reverse=True,
        )[:2]
        if highlights:
            names = " and ".join(
                f"{a.name} ({a.type + ', ' if a.type else ''}{a.rating}★)" for a in highlights
            )
            parts.append(f"Along the way you will pass near {names}; worth a glance, though the plan includes no detour.")

        suggested = summary.desired_departure_time + timedelta(minutes=shift_minutes)
        if shift_minutes < 0:
            verdict = f"Leaving {-shift_minutes} minutes earlier than requested helps get ahead of the congestion."
        elif shift_minutes > 0:
            verdict = f"Leaving {shift_minutes} minutes later than requested is the safer choice."
        else:
            verdict = "Your preferred departure time works well as planned."
        parts.append(verdict)

        return AdvisorOutput(suggested_departure_time=suggested.isoformat(), reasoning=" ".join(parts))


def build_advisor(settings: Settings) -> TripAdvisor:
    """Selects the reasoning engine configured by ADVISOR_BACKEND."""
    if settings.ADVISOR_BACKEND == "heuristic":
        return HeuristicTripAdvisor()
    return GeminiTripAdvisor(settings)
