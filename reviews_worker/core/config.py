"""Application configuration helpers.

Credentials are read from the environment only. A missing key is not fatal at
load time: it is logged here and surfaces later as a ConfigurationMissing
error from the one collaborator that needs it.
"""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Tuple

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER_PRIORITY = ("outscraper", "serpapi", "google_places")
# Cloud Run's default request timeout
MAX_REQUEST_DEADLINE_SECONDS = 300.0


@dataclass(frozen=True)
class Settings:
    google_maps_api_key: str = ""
    outscraper_api_key: str = ""
    serpapi_api_key: str = ""
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_structured_output: bool = True
    provider_priority: Tuple[str, ...] = DEFAULT_PROVIDER_PRIORITY
    outscraper_async: bool = True
    reviews_limit: int = 120
    max_reviews: int = 250
    serpapi_max_pages: int = 5
    poll_interval_seconds: float = 1.5
    poll_timeout_seconds: float = 60.0
    retry_attempts: int = 4
    retry_base_delay_seconds: float = 0.4
    retry_jitter_seconds: float = 0.15
    http_timeout_seconds: float = 30.0
    request_deadline_seconds: float = MAX_REQUEST_DEADLINE_SECONDS
    port: int = 8080


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _parse_priority(raw: Optional[str]) -> Tuple[str, ...]:
    if not raw:
        return DEFAULT_PROVIDER_PRIORITY
    names = tuple(part.strip().lower() for part in raw.split(",") if part.strip())
    return names or DEFAULT_PROVIDER_PRIORITY


def default_request_deadline(poll_timeout: float, http_timeout: float, provider_count: int) -> float:
    """Sum of the per-attempt budgets, capped at MAX_REQUEST_DEADLINE_SECONDS.

    Each provider gets two attempts (identifier, then query text), and each
    attempt may spend one HTTP timeout submitting plus one poll budget waiting.
    With the defaults the sum (540s) exceeds the cap, so late providers in the
    priority list only run when earlier ones fail fast; set
    REQUEST_DEADLINE_SECONDS explicitly to trade latency for coverage.
    """
    per_attempt = poll_timeout + http_timeout
    return min(per_attempt * 2 * max(provider_count, 1), MAX_REQUEST_DEADLINE_SECONDS)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""
    load_dotenv()

    provider_priority = _parse_priority(os.getenv("PROVIDER_PRIORITY"))
    poll_timeout = float(os.getenv("POLL_TIMEOUT_SECONDS", "60"))
    http_timeout = float(os.getenv("HTTP_TIMEOUT_SECONDS", "30"))
    deadline = os.getenv("REQUEST_DEADLINE_SECONDS")

    settings = Settings(
        google_maps_api_key=os.getenv("GOOGLE_MAPS_API_KEY", ""),
        outscraper_api_key=os.getenv("OUTSCRAPER_API_KEY", ""),
        serpapi_api_key=os.getenv("SERPAPI_API_KEY", ""),
        openai_api_key=os.getenv("OPENAI_API_KEY", ""),
        openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
        openai_structured_output=_env_bool("OPENAI_STRUCTURED_OUTPUT", "true"),
        provider_priority=provider_priority,
        outscraper_async=_env_bool("OUTSCRAPER_ASYNC", "true"),
        reviews_limit=int(os.getenv("REVIEWS_LIMIT", "120")),
        max_reviews=int(os.getenv("MAX_REVIEWS", "250")),
        serpapi_max_pages=int(os.getenv("SERPAPI_MAX_PAGES", "5")),
        poll_interval_seconds=float(os.getenv("POLL_INTERVAL_SECONDS", "1.5")),
        poll_timeout_seconds=poll_timeout,
        retry_attempts=int(os.getenv("RETRY_ATTEMPTS", "4")),
        retry_base_delay_seconds=float(os.getenv("RETRY_BASE_DELAY_SECONDS", "0.4")),
        retry_jitter_seconds=float(os.getenv("RETRY_JITTER_SECONDS", "0.15")),
        http_timeout_seconds=http_timeout,
        request_deadline_seconds=(
            float(deadline)
            if deadline
            else default_request_deadline(poll_timeout, http_timeout, len(provider_priority))
        ),
        port=int(os.getenv("PORT", "8080")),
    )

    if not settings.google_maps_api_key:
        logger.warning("GOOGLE_MAPS_API_KEY is not configured; place resolution and Places reviews are disabled.")
    if not settings.outscraper_api_key:
        logger.warning("OUTSCRAPER_API_KEY is not configured; Outscraper attempts will fail.")
    if not settings.serpapi_api_key:
        logger.warning("SERPAPI_API_KEY is not configured; SerpAPI attempts will fail.")
    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY is not configured; review analysis is unavailable.")

    return settings
