"""Application configuration helpers."""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes"}


@dataclass(frozen=True)
class Settings:
    google_api_key: str
    database_url: str
    worker_port: int = 9000
    default_city: str = "Recife"
    default_location_hint: str = "Recife, PE"
    default_latitude: float = -8.0476
    default_longitude: float = -34.8770
    provider_language: str = "pt-BR"
    search_page_size: int = 20
    fallback_timeout: float = 4.0
    provider_timeout: float = 10.0
    session_cache_size: int = 256
    ingest_min_rating: float = 4.0
    ingest_min_reviews: int = 10
    ingest_radius_m: int = 15000
    ingest_max_pages: int = 1
    ingest_detail_delay: float = 0.1
    ingest_sweep_delay: float = 0.3
    ingest_refresh_existing: bool = True


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""
    load_dotenv()

    google_api_key = os.getenv("GOOGLE_API_KEY", "")
    database_url = os.getenv("DATABASE_URL", "")

    if not database_url:
        logger.warning("DATABASE_URL is not set; database operations will fail.")
    if not google_api_key:
        logger.warning("GOOGLE_API_KEY is not configured; Google Places requests will fail.")

    return Settings(
        google_api_key=google_api_key,
        database_url=database_url,
        worker_port=int(os.getenv("WORKER_PORT", "9000")),
        default_city=os.getenv("DEFAULT_CITY") or "Recife",
        default_location_hint=os.getenv("DEFAULT_LOCATION_HINT") or "Recife, PE",
        default_latitude=float(os.getenv("DEFAULT_LATITUDE", "-8.0476")),
        default_longitude=float(os.getenv("DEFAULT_LONGITUDE", "-34.8770")),
        provider_language=os.getenv("PROVIDER_LANGUAGE") or "pt-BR",
        search_page_size=int(os.getenv("SEARCH_PAGE_SIZE", "20")),
        fallback_timeout=float(os.getenv("FALLBACK_TIMEOUT_SECONDS", "4")),
        provider_timeout=float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "10")),
        session_cache_size=int(os.getenv("SESSION_CACHE_SIZE", "256")),
        ingest_min_rating=float(os.getenv("INGEST_MIN_RATING", "4.0")),
        ingest_min_reviews=int(os.getenv("INGEST_MIN_REVIEWS", "10")),
        ingest_radius_m=int(os.getenv("INGEST_RADIUS_METERS", "15000")),
        ingest_max_pages=int(os.getenv("INGEST_MAX_PAGES", "1")),
        ingest_detail_delay=float(os.getenv("INGEST_DETAIL_DELAY_SECONDS", "0.1")),
        ingest_sweep_delay=float(os.getenv("INGEST_SWEEP_DELAY_SECONDS", "0.3")),
        ingest_refresh_existing=os.getenv("INGEST_REFRESH_EXISTING", "true").lower() in _TRUTHY,
    )
