import logging
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Literal

class Settings(BaseSettings):
    """
    Application settings.
    Credentials are optional here; each provider checks for its own key at the call site.
    """
    model_config = SettingsConfigDict(case_sensitive=True, env_file=".env", extra="ignore")

    # API Settings
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "Tripwise API"
    LOG_LEVEL: str = "INFO"

    # CORS Settings
    BACKEND_CORS_ORIGINS: List[str] = ["http://localhost:3000"]

    # Google Maps Platform Settings (Geocoding, Directions, Places)
    GOOGLE_MAPS_API_KEY: str = ""
    GOOGLE_PLACES_API_KEY: str = ""
    ATTRACTION_KEYWORD: str = "famous attraction point of interest landmark museum park"

    # OpenWeatherMap Settings
    OPENWEATHER_API_KEY: str = ""

    # Reasoning engine Settings
    ADVISOR_BACKEND: Literal["gemini", "heuristic"] = "gemini"
    GOOGLE_API_KEY: str = ""
    ADVISOR_MODEL: str = "gemini-2.0-flash"
    ADVISOR_TEMPERATURE: float = 0.0
    ADVISOR_MAX_RETRIES: int = 2

    # Outbound HTTP Settings
    HTTP_TIMEOUT_SECONDS: float = 10.0
    HTTP_MAX_RETRIES: int = 2

    @property
    def places_api_key(self) -> str:
        """The Places key, falling back to the shared Maps key."""
        return self.GOOGLE_PLACES_API_KEY or self.GOOGLE_MAPS_API_KEY


@lru_cache
def get_settings() -> Settings:
    """Build the settings once per process. Used as a FastAPI dependency."""
    return Settings()


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    """Apply the configured log level to the root logger."""
    logging.getLogger().setLevel(settings.LOG_LEVEL.upper())
    logger.info(f"Logging configured at level {settings.LOG_LEVEL.upper()}.")
