import pytest

from reviews_worker.core.errors import AllProvidersFailed, NoReviewsFound, ProviderTimeout
from reviews_worker.jobs import server
from reviews_worker.models import ProviderAttemptOutcome


@pytest.fixture
def client():
    server.app.config["TESTING"] = True
    return server.app.test_client()


def test_healthz_reports_configuration_without_keys(client, monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-secret")
    response = client.get("/healthz")
    body = response.get_json()
    assert response.status_code == 200
    assert body["status"] == "ok"
    assert body["providers"] == ["outscraper", "serpapi", "google_places"]
    assert body["summarizer_configured"] is True
    assert body["resolver_configured"] is False
    assert "sk-secret" not in response.get_data(as_text=True)


def test_root(client):
    assert client.get("/").status_code == 200


def test_reviews_requires_input(client):
    response = client.post("/reviews", json={"period": "30"})
    assert response.status_code == 400
    assert response.get_json() == {"error": "input is required", "kind": "malformed_input"}


def test_reviews_rejects_bad_period(client):
    response = client.post("/reviews", json={"input": "Joe's Cafe", "period": "7"})
    assert response.status_code == 400


def test_reviews_success_accepts_legacy_field_names(client, monkeypatch):
    seen = {}

    async def fake_fetch(raw_input, period):
        seen.update(raw_input=raw_input, period=period)
        return {"query": raw_input, "period": period, "reviews": ["Great"], "attempts": []}

    monkeypatch.setattr(server, "fetch_reviews_job", fake_fetch)

    response = client.post("/reviews", json={"mapUrl": " Joe's Cafe ", "dateRange": 90})

    assert response.status_code == 200
    assert seen == {"raw_input": "Joe's Cafe", "period": "90"}
    assert response.get_json()["reviews"] == ["Great"]


def test_reviews_no_reviews_is_404(client, monkeypatch):
    async def fake_fetch(raw_input, period):
        raise NoReviewsFound(
            "No reviews found for that link & date range",
            [ProviderAttemptOutcome("outscraper", "Joe's Cafe", True)],
        )

    monkeypatch.setattr(server, "fetch_reviews_job", fake_fetch)

    response = client.post("/reviews", json={"input": "Joe's Cafe"})

    assert response.status_code == 404
    body = response.get_json()
    assert body["error"] == "No reviews found for that link & date range"
    assert body["attempts"][0]["provider"] == "outscraper"


def test_reviews_all_failed_is_502(client, monkeypatch):
    async def fake_fetch(raw_input, period):
        raise AllProvidersFailed("All review providers failed", [])

    monkeypatch.setattr(server, "fetch_reviews_job", fake_fetch)

    response = client.post("/reviews", json={"input": "Joe's Cafe", "period": "all"})
    assert response.status_code == 502
    assert response.get_json()["kind"] == "provider_error"


def test_reviews_deadline_is_504(client, monkeypatch):
    async def fake_fetch(raw_input, period):
        raise ProviderTimeout("Request did not finish within 150s")

    monkeypatch.setattr(server, "fetch_reviews_job", fake_fetch)
    assert client.post("/reviews", json={"input": "Joe's Cafe"}).status_code == 504


def test_reviews_unexpected_error_is_500(client, monkeypatch):
    async def fake_fetch(raw_input, period):
        raise KeyError("boom")

    monkeypatch.setattr(server, "fetch_reviews_job", fake_fetch)

    response = client.post("/reviews", json={"input": "Joe's Cafe"})
    assert response.status_code == 500
    assert response.get_json() == {"error": "Server error"}


def test_analyze_reviews_adds_analysis(client, monkeypatch):
    async def fake_fetch(raw_input, period):
        return {"query": raw_input, "period": period, "reviews": ["Great"], "attempts": []}

    async def fake_analyze(reviews):
        return {"analysis": {"positives": reviews, "negatives": [], "actions": [], "summary": "", "source": "json"}}

    monkeypatch.setattr(server, "fetch_reviews_job", fake_fetch)
    monkeypatch.setattr(server, "analyze_reviews", fake_analyze)

    response = client.post("/analyze-reviews", json={"input": "Joe's Cafe"})

    assert response.status_code == 200
    assert response.get_json()["analysis"]["positives"] == ["Great"]


def test_resolve_place_requires_input(client):
    response = client.post("/resolve-place", json={})
    assert response.status_code == 400
    assert response.get_json() == {"error": "input is required"}


def test_resolve_place_success(client, monkeypatch):
    async def fake_resolve(raw_input):
        return {"identifier": "place_id:ChIJabc", "display_name": "Joe's", "error": None}

    monkeypatch.setattr(server, "resolve_place_job", fake_resolve)

    response = client.post("/resolve-place", json={"input": "Joe's Cafe"})
    assert response.status_code == 200
    assert response.get_json()["identifier"] == "place_id:ChIJabc"
