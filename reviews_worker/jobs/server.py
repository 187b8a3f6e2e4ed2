"""HTTP entrypoint for place resolution and review retrieval (Cloud Run friendly).

Views are ``async`` (Flask's async support via asgiref): each request runs on
its own event loop with its own HTTP client, so nothing is shared between
requests.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Tuple

from flask import Flask, jsonify, request

from reviews_worker.core.config import get_settings
from reviews_worker.core.errors import (
    ErrorKind,
    MalformedInput,
    ReviewPipelineError,
)
from reviews_worker.jobs.fetch_reviews import analyze_reviews, fetch_reviews_job, resolve_place_job
from reviews_worker.models import ReviewPeriod

# ---------- Logging ----------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

# ---------- App ----------
app = Flask(__name__)

STATUS_BY_KIND = {
    ErrorKind.MALFORMED_INPUT: 400,
    ErrorKind.NO_REVIEWS_FOUND: 404,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.PROVIDER_ERROR: 502,
    ErrorKind.CONFIGURATION_MISSING: 500,
    ErrorKind.TIMEOUT: 504,
}

# ---------- Routes ----------


@app.get("/")
def root() -> Any:
    """Simple root to avoid 404 on GET /"""
    return "ok", 200


@app.get("/healthz")
def healthcheck() -> Any:
    """Lightweight health endpoint; reports which providers have credentials, never the keys."""
    settings = get_settings()
    return (
        jsonify(
            {
                "status": "ok",
                "providers": list(settings.provider_priority),
                "resolver_configured": bool(settings.google_maps_api_key),
                "summarizer_configured": bool(settings.openai_api_key),
                "revision": os.getenv("K_REVISION", "unknown"),
            }
        ),
        200,
    )


@app.post("/resolve-place")
async def resolve_place() -> Any:
    """Resolve pasted input to an identifier. Required JSON field: input."""
    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    if not str(payload.get("input") or "").strip():
        return jsonify({"error": "input is required"}), 400

    try:
        return jsonify(await resolve_place_job(payload["input"])), 200
    except ReviewPipelineError as exc:
        return _error_response(exc)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Place resolution failed: %s", exc)
        return jsonify({"error": "resolve error"}), 500


@app.post("/reviews")
async def fetch_reviews() -> Any:
    """Fetch reviews. Required JSON fields: input, period ("1", "30", "60", "90", "365" or "all")."""
    try:
        raw_input, period = _parse_fetch_payload()
        return jsonify(await fetch_reviews_job(raw_input, period)), 200
    except ReviewPipelineError as exc:
        return _error_response(exc)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Review fetch failed: %s", exc)
        return jsonify({"error": "Server error"}), 500


@app.post("/analyze-reviews")
async def analyze() -> Any:
    """Fetch reviews and summarize them. Same fields as /reviews."""
    try:
        raw_input, period = _parse_fetch_payload()
        result = await fetch_reviews_job(raw_input, period)
        result.update(await analyze_reviews(result["reviews"]))
    except ReviewPipelineError as exc:
        return _error_response(exc)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Review analysis failed: %s", exc)
        return jsonify({"error": "Server error"}), 500
    return jsonify(result), 200


# ---------- Internals ----------


def _parse_fetch_payload() -> Tuple[str, str]:
    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    # mapUrl/dateRange are the field names older clients send
    raw_input = str(payload.get("input") or payload.get("mapUrl") or "").strip()
    if not raw_input:
        raise MalformedInput("input is required")
    period = payload.get("period", payload.get("dateRange", ReviewPeriod.MONTH.value))
    return raw_input, ReviewPeriod.parse(period).value


def _error_response(exc: ReviewPipelineError) -> Any:
    status = STATUS_BY_KIND.get(exc.kind, 500)
    logger.warning("Request failed with %s (%s): %s", status, exc.kind.value, exc)
    return jsonify(exc.to_dict()), status


def main() -> None:
    """Cloud Run injects PORT; fall back to the configured port locally."""
    port = int(os.getenv("PORT") or get_settings().port)
    logger.info("[BOOT] Binding on 0.0.0.0:%d", port)
    app.run(host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
