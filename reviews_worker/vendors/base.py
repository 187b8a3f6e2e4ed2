"""Common contract implemented by every review-data provider adapter."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Tuple

import httpx

from reviews_worker.core.errors import ConfigurationMissing
from reviews_worker.core.http import RetryPolicy, Sleep
from reviews_worker.models import RawReviewBatch, ReviewPeriod

PLACE_ID_PREFIX = "place_id:"
CID_PREFIX = "cid:"


def split_key(key: str) -> Tuple[str, str]:
    """Classify a lookup key as ``("place_id", id)``, ``("cid", n)`` or ``("query", text)``."""
    if key.startswith(PLACE_ID_PREFIX):
        return "place_id", key[len(PLACE_ID_PREFIX):]
    if key.startswith(CID_PREFIX):
        return "cid", key[len(CID_PREFIX):]
    return "query", key


class ReviewProvider(ABC):
    """Adapter translating ``fetch_reviews`` into one provider's request shape.

    Adapters receive their credential and a per-request ``httpx.AsyncClient``
    from the caller. A missing credential is reported when reviews are
    requested, not at construction, so the orchestrator can record the
    failed attempt and move on to the next provider.
    """

    name: str = "provider"

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

    def require_api_key(self) -> str:
        if not self.api_key:
            raise ConfigurationMissing(f"{self.name} API key is not configured")
        return self.api_key

    @abstractmethod
    async def fetch_reviews(self, key: str, period: ReviewPeriod) -> RawReviewBatch:
        """Fetch raw reviews for an identifier (``place_id:``/``cid:``) or free-text query.

        An empty batch is a valid answer. Failures raise ReviewPipelineError
        subclasses.
        """

    def __repr__(self) -> str:
        state = "configured" if self.api_key else "missing key"
        return f"<{self.__class__.__name__} {state}>"
