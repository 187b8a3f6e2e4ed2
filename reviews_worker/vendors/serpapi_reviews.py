"""SerpAPI Google Maps Reviews adapter.

SerpAPI charges per request, so pagination stops as soon as the review limit
or the period cutoff is reached. The official client is blocking; calls run
in a worker thread so the event loop stays free.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx
from serpapi import GoogleSearch

from reviews_worker.core.errors import NotFound, ProviderError
from reviews_worker.core.http import RetryPolicy, Sleep
from reviews_worker.etl.sanitize import filter_by_cutoff
from reviews_worker.models import RawReviewBatch, ReviewPeriod
from reviews_worker.vendors.base import ReviewProvider, split_key

logger = logging.getLogger(__name__)

NO_RESULTS_MARKERS = ("hasn't returned any results", "no results")
TRANSIENT_ERROR_MARKERS = ("rate limit", "too many requests", "server error", "timeout", "timed out", "try again", "temporarily")
REVIEW_TIME_FIELDS = ("iso_date", "iso_date_of_last_edit")
PAGE_SIZE = 20


def _is_no_results(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in NO_RESULTS_MARKERS)


def _is_transient(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in TRANSIENT_ERROR_MARKERS)


class SerpApiRejected(ProviderError):
    """SerpAPI refused the request outright (bad key, bad parameters, exhausted plan)."""


class SerpApiReviewProvider(ReviewProvider):
    """Reviews through the official SerpAPI client.

    All I/O goes through ``GoogleSearch`` in a worker thread. The inherited
    ``client`` is unused and defaults to None.
    """

    name = "serpapi"

    def __init__(
        self,
        api_key: str,
        client: Optional[httpx.AsyncClient] = None,
        *,
        reviews_limit: int = 120,
        max_pages: int = 5,
        retry_policy: RetryPolicy = RetryPolicy(),
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        super().__init__(api_key, client, retry_policy=retry_policy, sleep=sleep)
        self.reviews_limit = reviews_limit
        self.max_pages = max_pages

    def build_params(self, engine: str, **extra: Any) -> Dict[str, Any]:
        params: Dict[str, Any] = {"engine": engine, "api_key": self.require_api_key(), "hl": "en"}
        params.update({key: value for key, value in extra.items() if value is not None})
        return params

    @staticmethod
    def _get_dict(params: Dict[str, Any]) -> Dict[str, Any]:
        return GoogleSearch(params).get_dict()

    async def search(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Run one SerpAPI search with retries; "no results" answers raise NotFound."""
        engine = params.get("engine")
        attempt = 0
        while True:
            attempt += 1
            try:
                logger.info("Calling SerpAPI %s (attempt %s)", engine, attempt)
                data = await asyncio.to_thread(self._get_dict, params)
                if not data:
                    raise ProviderError("SerpAPI returned an empty payload.")
                if "error" in data:
                    message = str(data.get("error") or data)
                    if _is_no_results(message):
                        raise NotFound(f"SerpAPI found nothing: {message}")
                    if not _is_transient(message):
                        logger.error("SerpAPI rejected the %s request: %s", engine, message)
                        raise SerpApiRejected(f"SerpAPI rejected the request: {message}", payload={"error": message})
                    raise ProviderError(f"SerpAPI returned an error response: {message}", payload={"error": message})
                return data
            except (NotFound, SerpApiRejected):
                raise
            except Exception as exc:  # noqa: BLE001 - the client raises requests/json errors
                logger.warning(
                    "SerpAPI request failed (attempt %s/%s): %s",
                    attempt,
                    self.retry_policy.attempts,
                    exc,
                )
                if attempt >= self.retry_policy.attempts:
                    logger.error("SerpAPI %s request exhausted retries", engine)
                    if isinstance(exc, ProviderError):
                        raise
                    raise ProviderError(f"SerpAPI request failed: {exc.__class__.__name__}") from exc
                await self.sleep(self.retry_policy.delay_for(attempt - 1))

    async def find_data_id(self, kind: str, value: str) -> str:
        """Look the place up with the google_maps engine to obtain its reviews data_id."""
        if kind == "cid":
            params = self.build_params("google_maps", data_cid=value)
        else:
            params = self.build_params("google_maps", type="search", q=value)
        data = await self.search(params)

        local_results = data.get("local_results")
        first: Any = None
        if isinstance(local_results, list) and local_results:
            first = local_results[0]
        elif isinstance(data.get("place_results"), dict):
            first = data["place_results"]
        data_id = first.get("data_id") if isinstance(first, dict) else None
        if not data_id:
            raise NotFound(f"SerpAPI could not find a place for {value!r}")
        return str(data_id)

    async def fetch_reviews(self, key: str, period: ReviewPeriod) -> RawReviewBatch:
        self.require_api_key()
        kind, value = split_key(key)
        if kind == "place_id" and value.startswith("g/"):
            raise NotFound("SerpAPI cannot look up knowledge graph identifiers")

        if kind == "place_id":
            locator = {"place_id": value}
        else:
            locator = {"data_id": await self.find_data_id(kind, value)}

        cutoff = period.cutoff_datetime()
        collected: List[Dict[str, Any]] = []
        place_info: Dict[str, Any] = {}
        token: Optional[str] = None
        pages = 0

        while pages < self.max_pages and len(collected) < self.reviews_limit:
            params = self.build_params(
                "google_maps_reviews",
                sort_by="newestFirst",
                next_page_token=token,
                num=PAGE_SIZE if token else None,
                **locator,
            )
            data = await self.search(params)
            pages += 1
            place_info = place_info or data.get("place_info") or {}

            page_reviews = data.get("reviews") or []
            kept = filter_by_cutoff(page_reviews, cutoff, REVIEW_TIME_FIELDS)
            collected.extend(kept)
            if len(kept) < len(page_reviews):
                # sorted newest first: the rest is older than the cutoff
                break
            token = (data.get("serpapi_pagination") or {}).get("next_page_token")
            if not token:
                break

        logger.info("SerpAPI returned %d reviews over %d pages", len(collected), pages)
        return {"place_info": place_info, "reviews": collected[: self.reviews_limit]}
