"""Resolve a pasted business reference and fetch its reviews with provider fallback.

Attempts run strictly one after another in a fixed order::

    provider 1 + identifier, provider 1 + query text,
    provider 2 + identifier, provider 2 + query text, ...

Providers come from ``Settings.provider_priority``. The first attempt that
yields at least one sanitized review wins. A failing attempt is recorded and
the next one runs; only when every attempt is used up does the caller see an
error.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar

import httpx

from reviews_worker.core.config import Settings
from reviews_worker.core.errors import (
    AllProvidersFailed,
    ErrorKind,
    MalformedInput,
    NoReviewsFound,
    ProviderTimeout,
    ReviewPipelineError,
)
from reviews_worker.core.http import PollPolicy, RetryPolicy, Sleep
from reviews_worker.etl.normalize import normalize
from reviews_worker.etl.sanitize import DEFAULT_MAX_REVIEWS, extract_place_name, sanitize
from reviews_worker.models import (
    NormalizedInput,
    ProviderAttemptOutcome,
    ResolutionResult,
    ReviewFetchResult,
    ReviewPeriod,
)
from reviews_worker.vendors.base import ReviewProvider
from reviews_worker.vendors.google_places import GooglePlacesReviewProvider, PlaceResolver
from reviews_worker.vendors.outscraper import OutscraperReviewProvider
from reviews_worker.vendors.serpapi_reviews import SerpApiReviewProvider

logger = logging.getLogger(__name__)

T = TypeVar("T")
ProviderFactory = Callable[[Settings, httpx.AsyncClient, Sleep], ReviewProvider]


def _retry_policy(settings: Settings) -> RetryPolicy:
    return RetryPolicy(
        attempts=settings.retry_attempts,
        base_delay=settings.retry_base_delay_seconds,
        jitter=settings.retry_jitter_seconds,
    )


def _outscraper(settings: Settings, client: httpx.AsyncClient, sleep: Sleep) -> ReviewProvider:
    return OutscraperReviewProvider(
        settings.outscraper_api_key,
        client,
        reviews_limit=settings.reviews_limit,
        use_async=settings.outscraper_async,
        poll_policy=PollPolicy(interval=settings.poll_interval_seconds, timeout=settings.poll_timeout_seconds),
        retry_policy=_retry_policy(settings),
        sleep=sleep,
    )


def _serpapi(settings: Settings, client: httpx.AsyncClient, sleep: Sleep) -> ReviewProvider:
    return SerpApiReviewProvider(
        settings.serpapi_api_key,
        reviews_limit=settings.reviews_limit,
        max_pages=settings.serpapi_max_pages,
        retry_policy=_retry_policy(settings),
        sleep=sleep,
    )


def _google_places(settings: Settings, client: httpx.AsyncClient, sleep: Sleep) -> ReviewProvider:
    return GooglePlacesReviewProvider(
        settings.google_maps_api_key,
        client,
        retry_policy=_retry_policy(settings),
        sleep=sleep,
    )


PROVIDER_FACTORIES: Dict[str, ProviderFactory] = {
    "outscraper": _outscraper,
    "serpapi": _serpapi,
    "google_places": _google_places,
}


def build_providers(
    settings: Settings,
    client: httpx.AsyncClient,
    sleep: Sleep = asyncio.sleep,
) -> List[ReviewProvider]:
    providers = []
    for name in settings.provider_priority:
        factory = PROVIDER_FACTORIES.get(name)
        if factory is None:
            logger.warning("Ignoring unknown review provider %r in PROVIDER_PRIORITY", name)
            continue
        providers.append(factory(settings, client, sleep))
    return providers


def build_pipeline(
    settings: Settings,
    client: httpx.AsyncClient,
    sleep: Sleep = asyncio.sleep,
) -> "ReviewPipeline":
    """Wire the resolver and providers for one request around a shared HTTP client."""
    resolver = PlaceResolver(
        settings.google_maps_api_key,
        client,
        retry_policy=_retry_policy(settings),
        sleep=sleep,
    )
    return ReviewPipeline(
        resolver,
        build_providers(settings, client, sleep),
        max_reviews=settings.max_reviews,
        deadline_seconds=settings.request_deadline_seconds,
    )


async def run_with_deadline(awaitable: Awaitable[T], seconds: Optional[float]) -> T:
    """Await ``awaitable``, cancelling it (and any polling inside) after ``seconds``."""
    if seconds is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError as exc:
        logger.error("Request exceeded its %.1fs deadline", seconds)
        raise ProviderTimeout(f"Request did not finish within {seconds:g}s") from exc


def _require_text(raw_input: Any) -> str:
    text = str(raw_input).strip() if raw_input is not None else ""
    if not text:
        raise MalformedInput("input is required")
    return text


class ReviewPipeline:
    def __init__(
        self,
        resolver: PlaceResolver,
        providers: Sequence[ReviewProvider],
        *,
        max_reviews: int = DEFAULT_MAX_REVIEWS,
        deadline_seconds: Optional[float] = None,
    ) -> None:
        self.resolver = resolver
        self.providers = list(providers)
        self.max_reviews = max_reviews
        self.deadline_seconds = deadline_seconds

    async def _resolve(self, normalized: NormalizedInput) -> ResolutionResult:
        if normalized.candidate_identifier:
            return ResolutionResult(identifier=normalized.candidate_identifier)
        return await self.resolver.resolve(normalized.cleaned_text)

    async def resolve_place(self, raw_input: Any) -> ResolutionResult:
        """Normalize and, when needed, resolve input without fetching reviews."""
        return await self._resolve(normalize(_require_text(raw_input)))

    def plan_attempts(self, identifier: Optional[str], query: str) -> List[Tuple[ReviewProvider, str]]:
        keys = [key for key in (identifier, query) if key]
        if len(keys) == 2 and keys[0] == keys[1]:
            keys = keys[:1]
        return [(provider, key) for provider in self.providers for key in keys]

    async def _attempt(
        self,
        provider: ReviewProvider,
        key: str,
        period: ReviewPeriod,
    ) -> Tuple[ProviderAttemptOutcome, List[str], Any]:
        try:
            raw = await provider.fetch_reviews(key, period)
        except ReviewPipelineError as exc:
            logger.warning("%s attempt with %r failed (%s): %s", provider.name, key, exc.kind.value, exc)
            outcome = ProviderAttemptOutcome(provider.name, key, False, error_kind=exc.kind, message=str(exc))
            return outcome, [], None
        except Exception as exc:  # noqa: BLE001 - recorded as a failed attempt
            logger.exception("%s attempt with %r raised unexpectedly", provider.name, key)
            outcome = ProviderAttemptOutcome(
                provider.name,
                key,
                False,
                error_kind=ErrorKind.PROVIDER_ERROR,
                message=f"unexpected {exc.__class__.__name__}",
            )
            return outcome, [], None

        reviews = sanitize(raw, limit=self.max_reviews)
        logger.info("%s attempt with %r returned %d reviews", provider.name, key, len(reviews))
        return ProviderAttemptOutcome(provider.name, key, True, review_count=len(reviews)), reviews, raw

    async def resolve_and_fetch(self, raw_input: Any, period: Any) -> ReviewFetchResult:
        review_period = ReviewPeriod.parse(period)
        text = _require_text(raw_input)

        normalized = normalize(text)
        resolution = await self._resolve(normalized)
        if resolution.error:
            logger.info("Resolution unavailable (%s); falling back to the raw query", resolution.error.value)

        result = ReviewFetchResult(
            query=normalized.cleaned_text,
            period=review_period,
            identifier=resolution.identifier,
            display_name=resolution.display_name,
        )

        for provider, key in self.plan_attempts(resolution.identifier, normalized.cleaned_text):
            outcome, reviews, raw = await self._attempt(provider, key, review_period)
            result.attempts.append(outcome)
            if reviews:
                result.reviews = reviews
                result.display_name = result.display_name or extract_place_name(raw)
                return result

        raise self._exhausted(result.attempts)

    @staticmethod
    def _exhausted(attempts: List[ProviderAttemptOutcome]) -> ReviewPipelineError:
        if not attempts:
            return AllProvidersFailed("No review providers are configured", attempts)
        hard_failures = [
            attempt
            for attempt in attempts
            if not attempt.succeeded and attempt.error_kind is not ErrorKind.NOT_FOUND
        ]
        summary = ", ".join(
            f"{attempt.provider}={attempt.error_kind.value if attempt.error_kind else 'empty'}"
            for attempt in attempts
        )
        if len(hard_failures) == len(attempts):
            logger.error("All review providers failed: %s", summary)
            return AllProvidersFailed("All review providers failed", attempts)
        logger.info("No reviews found after %d attempts: %s", len(attempts), summary)
        return NoReviewsFound("No reviews found for that link & date range", attempts)

    async def fetch_with_deadline(self, raw_input: Any, period: Any) -> ReviewFetchResult:
        return await run_with_deadline(self.resolve_and_fetch(raw_input, period), self.deadline_seconds)
