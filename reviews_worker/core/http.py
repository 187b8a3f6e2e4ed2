"""HTTP helpers for the two request protocols review providers use.

``request_with_retry`` covers the synchronous protocol: one request, retried
with exponential backoff on throttling and server errors. ``poll_results_location``
covers submit-then-poll APIs that hand back a ``results_location`` to watch.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import httpx

from reviews_worker.core.errors import ProviderError, ProviderTimeout

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]

RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})
ERROR_BODY_LIMIT = 500


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int = 4
    base_delay: float = 0.4
    factor: float = 2.0
    jitter: float = 0.15

    def delay_for(self, attempt: int) -> float:
        """Delay before retrying after the zero-based ``attempt`` failed."""
        return self.base_delay * (self.factor ** attempt) + random.uniform(0, self.jitter)


@dataclass(frozen=True)
class PollPolicy:
    interval: float = 1.5
    timeout: float = 60.0


def _is_retryable(status_code: int) -> bool:
    return status_code in RETRYABLE_STATUS or status_code >= 500


def _error_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return {"raw": response.text[:ERROR_BODY_LIMIT]}


async def request_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    provider: str,
    policy: RetryPolicy = RetryPolicy(),
    sleep: Sleep = asyncio.sleep,
    **kwargs: Any,
) -> httpx.Response:
    """Send a request, retrying 429/5xx and transport errors with backoff.

    Returns the first 2xx response. Any other 4xx, and httpx errors that are
    not transport failures (undecodable bodies, redirect loops), raise
    ProviderError immediately. Exhausting the attempts raises ProviderError
    with the last status seen. Messages carry the provider name only, never
    the request URL, since some providers take their key as a query parameter.
    """
    last_status: Optional[int] = None
    last_payload: Any = None

    for attempt in range(policy.attempts):
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.TransportError as exc:
            last_status, last_payload = None, {"raw": exc.__class__.__name__}
            logger.warning(
                "%s request failed (attempt %s/%s): %s",
                provider,
                attempt + 1,
                policy.attempts,
                exc.__class__.__name__,
            )
        except httpx.HTTPError as exc:
            logger.error("%s request failed: %s", provider, exc.__class__.__name__)
            raise ProviderError(
                f"{provider} request failed: {exc.__class__.__name__}",
                payload={"raw": exc.__class__.__name__},
            ) from exc
        else:
            if response.is_success:
                return response
            last_status, last_payload = response.status_code, _error_body(response)
            if not _is_retryable(response.status_code):
                logger.error("%s returned non-retryable status %s", provider, response.status_code)
                raise ProviderError(
                    f"{provider} returned HTTP {response.status_code}",
                    status_code=response.status_code,
                    payload=last_payload,
                )
            logger.warning(
                "%s returned status %s (attempt %s/%s)",
                provider,
                response.status_code,
                attempt + 1,
                policy.attempts,
            )

        if attempt + 1 < policy.attempts:
            await sleep(policy.delay_for(attempt))

    logger.error("%s request exhausted %s attempts", provider, policy.attempts)
    if last_status is None:
        message = f"{provider} request failed after {policy.attempts} attempts"
    else:
        message = f"{provider} returned HTTP {last_status} after {policy.attempts} attempts"
    raise ProviderError(message, status_code=last_status, payload=last_payload)


def is_ready(payload: Any) -> bool:
    """A poll body is terminal when it is a result list or reports success."""
    if isinstance(payload, list):
        return True
    if isinstance(payload, dict):
        return str(payload.get("status") or "").strip().lower() == "success"
    return False


def _is_failed(payload: Any) -> bool:
    if not isinstance(payload, dict):
        return False
    return str(payload.get("status") or "").strip().lower() in {"error", "failed", "failure"}


async def poll_results_location(
    client: httpx.AsyncClient,
    location: str,
    *,
    provider: str,
    policy: PollPolicy = PollPolicy(),
    headers: Optional[dict] = None,
    sleep: Sleep = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> Any:
    """Poll ``location`` until the job succeeds or the wall-clock budget runs out.

    Non-JSON bodies, transport errors, throttling and 5xx all mean "not ready
    yet". An explicit failure status, another 4xx or a non-transport httpx error
    ends the job with ProviderError.
    """
    deadline = clock() + policy.timeout
    polls = 0

    while True:
        polls += 1
        try:
            response = await client.get(location, headers=headers)
        except httpx.TransportError as exc:
            logger.warning("%s poll %s failed: %s", provider, polls, exc.__class__.__name__)
        except httpx.HTTPError as exc:
            logger.error("%s poll %s failed: %s", provider, polls, exc.__class__.__name__)
            raise ProviderError(
                f"{provider} poll failed: {exc.__class__.__name__}",
                payload={"raw": exc.__class__.__name__},
            ) from exc
        else:
            if response.is_success:
                try:
                    payload = response.json()
                except ValueError:
                    logger.debug("%s poll %s returned a non-JSON body; not ready", provider, polls)
                else:
                    if is_ready(payload):
                        logger.info("%s job ready after %s polls", provider, polls)
                        return payload
                    if _is_failed(payload):
                        raise ProviderError(
                            f"{provider} job reported status {payload.get('status')!r}",
                            status_code=response.status_code,
                            payload=payload,
                        )
                    logger.debug("%s poll %s status=%s", provider, polls, payload.get("status") if isinstance(payload, dict) else None)
            elif not _is_retryable(response.status_code):
                raise ProviderError(
                    f"{provider} poll returned HTTP {response.status_code}",
                    status_code=response.status_code,
                    payload=_error_body(response),
                )
            else:
                logger.warning("%s poll %s returned status %s", provider, polls, response.status_code)

        remaining = deadline - clock()
        if remaining <= 0:
            logger.error("%s job not ready after %.1fs (%s polls)", provider, policy.timeout, polls)
            raise ProviderTimeout(f"{provider} results were not ready within {policy.timeout:g}s")
        await sleep(min(policy.interval, remaining))
