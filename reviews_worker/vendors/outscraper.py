"""Outscraper Google Maps reviews adapter.

Outscraper can answer inline (``async=false``) or accept the job and return a
``results_location`` to poll. The asynchronous mode is the default because
large places routinely exceed the synchronous request window.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Dict, Optional

import httpx

from reviews_worker.core.errors import ProviderError
from reviews_worker.core.http import (
    PollPolicy,
    RetryPolicy,
    Sleep,
    is_ready,
    poll_results_location,
    request_with_retry,
)
from reviews_worker.models import RawReviewBatch, ReviewPeriod
from reviews_worker.vendors.base import ReviewProvider, split_key

logger = logging.getLogger(__name__)

_BASE_URL = "https://api.app.outscraper.com"
REVIEWS_V3_PATH = "/maps/reviews-v3"
REVIEWS_ALT_PATH = "/api/google_maps/reviews"
ENDPOINT_MISSING_STATUS = {404, 405}


def to_outscraper_query(key: str) -> str:
    """Outscraper takes bare place ids, map links or free text."""
    kind, value = split_key(key)
    if kind == "place_id":
        return value
    if kind == "cid":
        return f"https://maps.google.com/?cid={value}"
    return value


class OutscraperReviewProvider(ReviewProvider):
    name = "outscraper"

    def __init__(
        self,
        api_key: str,
        client: httpx.AsyncClient,
        *,
        reviews_limit: int = 120,
        use_async: bool = True,
        poll_policy: PollPolicy = PollPolicy(),
        retry_policy: RetryPolicy = RetryPolicy(),
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        base_url: str = _BASE_URL,
    ) -> None:
        super().__init__(api_key, client, retry_policy=retry_policy, sleep=sleep)
        self.reviews_limit = reviews_limit
        self.use_async = use_async
        self.poll_policy = poll_policy
        self.clock = clock
        self.base_url = base_url.rstrip("/")

    def _headers(self) -> Dict[str, str]:
        return {"X-API-KEY": self.require_api_key(), "Accept": "application/json"}

    def _params(self, query: str, period: ReviewPeriod, run_async: bool) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "query": query,
            "reviewsLimit": self.reviews_limit,
            "sort": "newest",
            "async": "true" if run_async else "false",
        }
        cutoff: Optional[int] = period.cutoff_timestamp()
        if cutoff is not None:
            params["cutoff"] = cutoff
        return params

    async def fetch_reviews(self, key: str, period: ReviewPeriod) -> RawReviewBatch:
        self.require_api_key()
        query = to_outscraper_query(key)
        logger.info("Requesting Outscraper reviews for query=%s period=%s async=%s", query, period.value, self.use_async)
        if self.use_async:
            return await self._fetch_async(query, period)
        return await self._fetch_sync(query, period)

    async def _fetch_sync(self, query: str, period: ReviewPeriod) -> RawReviewBatch:
        try:
            response = await request_with_retry(
                self.client,
                "GET",
                f"{self.base_url}{REVIEWS_V3_PATH}",
                provider=self.name,
                policy=self.retry_policy,
                sleep=self.sleep,
                headers=self._headers(),
                params=self._params(query, period, run_async=False),
            )
        except ProviderError as exc:
            if exc.status_code not in ENDPOINT_MISSING_STATUS:
                raise
            logger.warning("Outscraper reviews-v3 unavailable (HTTP %s); trying the legacy endpoint", exc.status_code)
            response = await self._post_legacy(query, period)
        return self._json(response)

    async def _post_legacy(self, query: str, period: ReviewPeriod) -> httpx.Response:
        body: Dict[str, Any] = {
            "query": [query],
            "reviewsLimit": self.reviews_limit,
            "async": False,
            "sort": "newest",
        }
        cutoff = period.cutoff_timestamp()
        if cutoff is not None:
            body["cutoff"] = cutoff
        return await request_with_retry(
            self.client,
            "POST",
            f"{self.base_url}{REVIEWS_ALT_PATH}",
            provider=self.name,
            policy=self.retry_policy,
            sleep=self.sleep,
            headers={**self._headers(), "Content-Type": "application/json"},
            json=body,
        )

    async def _fetch_async(self, query: str, period: ReviewPeriod) -> RawReviewBatch:
        response = await request_with_retry(
            self.client,
            "GET",
            f"{self.base_url}{REVIEWS_V3_PATH}",
            provider=self.name,
            policy=self.retry_policy,
            sleep=self.sleep,
            headers=self._headers(),
            params=self._params(query, period, run_async=True),
        )
        submitted = self._json(response)

        if is_ready(submitted) or (isinstance(submitted, dict) and submitted.get("data")):
            logger.info("Outscraper answered inline")
            return submitted

        location = submitted.get("results_location") if isinstance(submitted, dict) else None
        if not location:
            raise ProviderError(
                "Outscraper accepted the job without a results_location",
                status_code=response.status_code,
                payload=submitted,
            )

        logger.info("Polling Outscraper job %s", submitted.get("id"))
        return await poll_results_location(
            self.client,
            location,
            provider=self.name,
            policy=self.poll_policy,
            headers=self._headers(),
            sleep=self.sleep,
            clock=self.clock,
        )

    def _json(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderError(
                "Outscraper returned a non-JSON body",
                status_code=response.status_code,
                payload={"raw": response.text[:500]},
            ) from exc
