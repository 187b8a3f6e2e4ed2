import asyncio

import httpx
import pytest

from reviews_worker.core.errors import ConfigurationMissing, ProviderError, ProviderTimeout
from reviews_worker.core.http import PollPolicy
from reviews_worker.models import ReviewPeriod
from reviews_worker.vendors import outscraper


class FakeClock:
    """Monotonic clock that only moves when the provider sleeps."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    async def sleep(self, delay):
        self.sleeps.append(delay)
        self.now += delay


class Router:
    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    def __call__(self, request):
        self.calls.append(request)
        handler = self.routes[(request.method, request.url.path)]
        return handler(request) if callable(handler) else handler


def run(router, key="place_id:ChIJabc", period=ReviewPeriod.MONTH, api_key="key", **kwargs):
    clock = FakeClock()

    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(router)) as client:
            provider = outscraper.OutscraperReviewProvider(
                api_key, client, sleep=clock.sleep, clock=clock, **kwargs
            )
            return await provider.fetch_reviews(key, period)

    return asyncio.run(go()), clock


def test_query_translation():
    assert outscraper.to_outscraper_query("place_id:ChIJabc") == "ChIJabc"
    assert outscraper.to_outscraper_query("cid:42") == "https://maps.google.com/?cid=42"
    assert outscraper.to_outscraper_query("Joe's Cafe") == "Joe's Cafe"


def test_async_job_answered_inline():
    data = {"status": "Success", "data": [{"name": "Joe's", "reviews_data": [{"review_text": "Great"}]}]}
    router = Router({("GET", "/maps/reviews-v3"): httpx.Response(200, json=data)})

    payload, _ = run(router)

    assert payload == data
    request = router.calls[0]
    assert request.headers["X-API-KEY"] == "key"
    assert request.url.params["query"] == "ChIJabc"
    assert request.url.params["async"] == "true"
    assert request.url.params["sort"] == "newest"
    assert "cutoff" in request.url.params


def test_all_period_sends_no_cutoff():
    router = Router({("GET", "/maps/reviews-v3"): httpx.Response(200, json={"status": "Success", "data": []})})
    run(router, period=ReviewPeriod.ALL)
    assert "cutoff" not in router.calls[0].url.params


def test_async_job_polls_results_location():
    polls = iter(
        [
            httpx.Response(200, json={"status": "Pending"}),
            httpx.Response(200, json={"status": "Success", "data": [{"reviews_data": [{"review_text": "ok"}]}]}),
        ]
    )
    router = Router(
        {
            ("GET", "/maps/reviews-v3"): httpx.Response(
                200,
                json={"id": "job-1", "status": "Pending", "results_location": "https://api.app.outscraper.com/requests/job-1"},
            ),
            ("GET", "/requests/job-1"): lambda request: next(polls),
        }
    )

    payload, clock = run(router, poll_policy=PollPolicy(interval=1.5, timeout=60))

    assert payload["status"] == "Success"
    assert len(router.calls) == 3
    assert router.calls[1].headers["X-API-KEY"] == "key"
    assert clock.sleeps == [1.5]


def test_async_job_that_never_finishes_times_out():
    router = Router(
        {
            ("GET", "/maps/reviews-v3"): httpx.Response(
                200, json={"status": "Pending", "results_location": "https://api.app.outscraper.com/requests/slow"}
            ),
            ("GET", "/requests/slow"): httpx.Response(200, json={"status": "Pending"}),
        }
    )
    with pytest.raises(ProviderTimeout):
        run(router, poll_policy=PollPolicy(interval=2, timeout=10))


def test_async_job_without_location_is_provider_error():
    router = Router({("GET", "/maps/reviews-v3"): httpx.Response(200, json={"status": "Pending"})})
    with pytest.raises(ProviderError):
        run(router)


def test_sync_mode_falls_back_to_legacy_endpoint():
    router = Router(
        {
            ("GET", "/maps/reviews-v3"): httpx.Response(404, json={"error": "gone"}),
            ("POST", "/api/google_maps/reviews"): httpx.Response(200, json=[{"reviews_data": []}]),
        }
    )

    payload, _ = run(router, use_async=False, key="cid:42")

    assert payload == [{"reviews_data": []}]
    assert router.calls[0].url.params["async"] == "false"
    legacy = router.calls[1]
    assert b"https://maps.google.com/?cid=42" in legacy.content


def test_sync_mode_other_client_error_propagates():
    router = Router({("GET", "/maps/reviews-v3"): httpx.Response(401, json={"error": "bad key"})})
    with pytest.raises(ProviderError) as excinfo:
        run(router, use_async=False)
    assert excinfo.value.status_code == 401
    assert len(router.calls) == 1


def test_missing_key_is_configuration_error():
    router = Router({})
    with pytest.raises(ConfigurationMissing):
        run(router, api_key="")
    assert router.calls == []
