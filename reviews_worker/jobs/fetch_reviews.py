"""CLI job to resolve a place and fetch (and optionally analyze) its reviews."""

import argparse
import asyncio
import json
import logging
from typing import Any, Dict, Optional, Sequence

import httpx

from reviews_worker.core.config import Settings, get_settings
from reviews_worker.core.errors import ConfigurationMissing, MalformedInput, ReviewPipelineError
from reviews_worker.core.orchestrator import build_pipeline
from reviews_worker.models import ReviewPeriod
from reviews_worker.vendors.openai_summarizer import OpenAISummarizer

logger = logging.getLogger(__name__)


def _client(settings: Settings) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=settings.http_timeout_seconds, follow_redirects=True)


async def resolve_place_job(raw_input: Any, settings: Optional[Settings] = None) -> Dict[str, Any]:
    settings = settings or get_settings()
    async with _client(settings) as client:
        resolution = await build_pipeline(settings, client).resolve_place(raw_input)
    return resolution.to_dict()


async def fetch_reviews_job(raw_input: Any, period: Any, settings: Optional[Settings] = None) -> Dict[str, Any]:
    """Run the fallback pipeline for one input with a fresh HTTP client."""
    settings = settings or get_settings()
    async with _client(settings) as client:
        result = await build_pipeline(settings, client).fetch_with_deadline(raw_input, period)
    return result.to_dict()


async def analyze_reviews(reviews: Sequence[str], settings: Optional[Settings] = None) -> Dict[str, Any]:
    """Summarize reviews; a missing or failing summarizer yields ``analysis: None``."""
    settings = settings or get_settings()
    summarizer = OpenAISummarizer(
        settings.openai_api_key,
        model=settings.openai_model,
        structured_output=settings.openai_structured_output,
        timeout=settings.http_timeout_seconds,
    )
    try:
        analysis = await summarizer.summarize(list(reviews))
    except ReviewPipelineError as exc:
        logger.warning("Review analysis unavailable: %s", exc)
        return {"analysis": None, "analysis_error": exc.to_dict()}
    return {"analysis": analysis.to_dict()}


async def run_fetch_job(
    *,
    raw_input: str,
    period: str,
    analyze: bool = False,
    resolve_only: bool = False,
) -> Dict[str, Any]:
    settings = get_settings()
    if resolve_only:
        return await resolve_place_job(raw_input, settings)

    payload = await fetch_reviews_job(raw_input, period, settings)
    if analyze:
        payload.update(await analyze_reviews(payload["reviews"], settings))
    return payload


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Fetch Google Maps reviews for a pasted link, embed or name")
    parser.add_argument("raw_input", metavar="input", help="Maps URL, <iframe> embed snippet or business name")
    parser.add_argument(
        "--period",
        dest="period",
        default=ReviewPeriod.MONTH.value,
        choices=[member.value for member in ReviewPeriod],
        help="Review window in days, or 'all'",
    )
    parser.add_argument("--analyze", dest="analyze", action="store_true", help="Summarize reviews with OpenAI")
    parser.add_argument(
        "--resolve-only",
        dest="resolve_only",
        action="store_true",
        help="Only resolve the input to an identifier",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    args = build_parser().parse_args(argv)

    try:
        payload = asyncio.run(
            run_fetch_job(
                raw_input=args.raw_input,
                period=args.period,
                analyze=args.analyze,
                resolve_only=args.resolve_only,
            )
        )
    except (MalformedInput, ConfigurationMissing) as exc:
        logger.error("Invalid input: %s", exc)
        raise SystemExit(2) from exc
    except ReviewPipelineError as exc:
        logger.error("Review fetch failed: %s", exc)
        print(json.dumps(exc.to_dict(), indent=2, ensure_ascii=False))
        raise SystemExit(1) from exc

    print(json.dumps(payload, indent=2, ensure_ascii=False))


if __name__ == "__main__":
    main()
