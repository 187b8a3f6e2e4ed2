"""Client utilities for the Google Places APIs.

``PlaceResolver`` uses the legacy Find Place From Text endpoint to turn free
text into a ``place_id:`` identifier. ``GooglePlacesReviewProvider`` reads the
handful of reviews the Places API (New) exposes, as a last-resort provider.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from reviews_worker.core.errors import (
    ConfigurationMissing,
    ErrorKind,
    MalformedInput,
    NotFound,
    ProviderError,
)
from reviews_worker.core.http import RetryPolicy, Sleep, request_with_retry
from reviews_worker.etl.sanitize import filter_by_cutoff
from reviews_worker.models import RawReviewBatch, ResolutionResult, ReviewPeriod
from reviews_worker.vendors.base import PLACE_ID_PREFIX, ReviewProvider, split_key

logger = logging.getLogger(__name__)
_BASE_URL = "https://maps.googleapis.com/maps/api/place"
_PLACES_V1_URL = "https://places.googleapis.com/v1"


class GooglePlacesError(ProviderError):
    """Raised when the Places API returns a non-successful response."""


def _json_or_error(response: httpx.Response, endpoint: str) -> Dict[str, Any]:
    try:
        payload = response.json()
    except ValueError as exc:
        raise GooglePlacesError(
            f"{endpoint} returned a non-JSON body",
            status_code=response.status_code,
            payload={"raw": response.text[:500]},
        ) from exc
    if not isinstance(payload, dict):
        raise GooglePlacesError(f"{endpoint} returned an unexpected payload", status_code=response.status_code)
    return payload


class PlaceResolver:
    """Resolve free text (a name, an address, an unparseable URL) into a place id."""

    def __init__(
        self,
        api_key: str,
        client: httpx.AsyncClient,
        *,
        retry_policy: RetryPolicy = RetryPolicy(),
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.api_key = api_key
        self.client = client
        self.retry_policy = retry_policy
        self.sleep = sleep

    async def find_place(self, text: str) -> Dict[str, Any]:
        if not self.api_key:
            raise ConfigurationMissing("GOOGLE_MAPS_API_KEY is required for place resolution")
        params = {
            "input": text,
            "inputtype": "textquery",
            "fields": "place_id,name",
            "key": self.api_key,
        }
        response = await request_with_retry(
            self.client,
            "GET",
            f"{_BASE_URL}/findplacefromtext/json",
            provider="google_places",
            policy=self.retry_policy,
            sleep=self.sleep,
            params=params,
        )
        payload = _json_or_error(response, "findplacefromtext")
        status = payload.get("status")
        if status not in {"OK", "ZERO_RESULTS"}:
            logger.error("find_place failed: status=%s, error_message=%s", status, payload.get("error_message"))
            raise GooglePlacesError(payload.get("error_message") or str(status), payload={"status": status})
        return payload

    async def resolve(self, text: str) -> ResolutionResult:
        """Take the first (highest-ranked) candidate; never raises for lookup failures."""
        query = (text or "").strip()
        if not query:
            raise MalformedInput("Text to resolve must not be empty")

        try:
            payload = await self.find_place(query)
        except ConfigurationMissing as exc:
            logger.warning("Place resolution unavailable: %s", exc)
            return ResolutionResult(error=ErrorKind.CONFIGURATION_MISSING)
        except ProviderError as exc:
            logger.warning("Place resolution failed for %r: %s", query, exc)
            return ResolutionResult(error=ErrorKind.PROVIDER_ERROR)

        candidates = payload.get("candidates") or []
        first = candidates[0] if isinstance(candidates, list) and candidates else None
        place_id = first.get("place_id") if isinstance(first, dict) else None
        if not place_id:
            logger.info("No place matched %r", query)
            return ResolutionResult(error=ErrorKind.NOT_FOUND)

        name = first.get("name")
        logger.info("Resolved %r to place_id=%s", query, place_id)
        return ResolutionResult(
            identifier=f"{PLACE_ID_PREFIX}{place_id}",
            display_name=name if isinstance(name, str) and name else None,
        )


class GooglePlacesReviewProvider(ReviewProvider):
    """Places API (New) details with the ``reviews`` field; returns at most five reviews."""

    name = "google_places"

    def _headers(self, field_mask: str) -> Dict[str, str]:
        return {
            "X-Goog-Api-Key": self.require_api_key(),
            "X-Goog-FieldMask": field_mask,
            "Content-Type": "application/json",
        }

    async def search_place_id(self, text: str) -> str:
        response = await request_with_retry(
            self.client,
            "POST",
            f"{_PLACES_V1_URL}/places:searchText",
            provider=self.name,
            policy=self.retry_policy,
            sleep=self.sleep,
            headers=self._headers("places.id,places.displayName"),
            json={"textQuery": text},
        )
        places = _json_or_error(response, "places:searchText").get("places") or []
        place_id: Optional[str] = places[0].get("id") if places and isinstance(places[0], dict) else None
        if not place_id:
            raise NotFound(f"Places search found no match for {text!r}")
        return place_id

    async def place_reviews(self, place_id: str) -> Dict[str, Any]:
        response = await request_with_retry(
            self.client,
            "GET",
            f"{_PLACES_V1_URL}/places/{place_id}",
            provider=self.name,
            policy=self.retry_policy,
            sleep=self.sleep,
            headers=self._headers("id,displayName,reviews"),
        )
        return _json_or_error(response, "places details")

    async def fetch_reviews(self, key: str, period: ReviewPeriod) -> RawReviewBatch:
        self.require_api_key()
        kind, value = split_key(key)
        if kind == "cid":
            raise NotFound("Places API cannot look up CID identifiers")
        if kind == "place_id" and value.startswith("g/"):
            raise NotFound("Places API cannot look up knowledge graph identifiers")

        place_id = value if kind == "place_id" else await self.search_place_id(value)
        details = await self.place_reviews(place_id)
        reviews = details.get("reviews") or []
        kept = filter_by_cutoff(reviews, period.cutoff_datetime(), ("publishTime",))
        logger.info("Places returned %d reviews for %s (%d inside period)", len(reviews), place_id, len(kept))
        return {**details, "reviews": kept}
