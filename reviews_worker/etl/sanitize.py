"""Utilities for flattening provider review payloads into plain review texts."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence

logger = logging.getLogger(__name__)

DEFAULT_MAX_REVIEWS = 250
TEXT_FIELDS = ("review_text", "text", "content", "review", "snippet")
NESTED_TEXT_FIELDS = ("text", "original")
REVIEW_LIST_FIELDS = ("reviews_data", "reviews")
NAME_FIELDS = ("name", "title", "displayName")


def _iter_items(raw: Any) -> Iterator[Any]:
    """Yield the entries of ``raw``'s ``data`` list, or of ``raw`` itself when it is a list."""
    if isinstance(raw, list):
        stack: List[Any] = list(raw)
    elif isinstance(raw, dict) and isinstance(raw.get("data"), list):
        stack = list(raw["data"])
    else:
        return
    # outscraper nests one list per query inside data
    while stack:
        item = stack.pop(0)
        if isinstance(item, list):
            stack[0:0] = item
        else:
            yield item


def _iter_blocks(raw: Any) -> Iterator[Dict[str, Any]]:
    return (item for item in _iter_items(raw) if isinstance(item, dict))


def _iter_review_records(raw: Any) -> Iterator[Any]:
    for item in _iter_items(raw):
        if isinstance(item, dict):
            for list_field in REVIEW_LIST_FIELDS:
                records = item.get(list_field)
                if isinstance(records, list):
                    yield from records
        yield item
    if isinstance(raw, dict) and isinstance(raw.get("reviews"), list):
        yield from raw["reviews"]


def extract_review_text(record: Any) -> Optional[str]:
    """Return the first non-empty known text field of a single review record."""
    if isinstance(record, str):
        return record.strip() or None
    if not isinstance(record, dict):
        return None
    for field_name in TEXT_FIELDS:
        value = record.get(field_name)
        if isinstance(value, dict):
            value = next(
                (value[nested] for nested in NESTED_TEXT_FIELDS if isinstance(value.get(nested), str)),
                None,
            )
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def sanitize(raw: Any, limit: int = DEFAULT_MAX_REVIEWS) -> List[str]:
    """Return unique, non-blank review texts in first-seen order, truncated to ``limit``."""
    seen = set()
    texts: List[str] = []
    for record in _iter_review_records(raw):
        text = extract_review_text(record)
        if text is None or text in seen:
            continue
        seen.add(text)
        texts.append(text)
        if len(texts) >= limit:
            break
    logger.debug("Sanitized %d review texts", len(texts))
    return texts


def extract_place_name(raw: Any) -> Optional[str]:
    """Best-effort business name from a provider payload."""
    candidates: List[Any] = list(_iter_blocks(raw))
    if isinstance(raw, dict):
        candidates.append(raw.get("place_info") or {})
        candidates.append(raw)
    for block in candidates:
        if not isinstance(block, dict):
            continue
        for field_name in NAME_FIELDS:
            value = block.get(field_name)
            if isinstance(value, dict):
                value = value.get("text")
            if isinstance(value, str) and value.strip():
                return value.strip()
    return None


def parse_review_time(value: Any) -> Optional[datetime]:
    """Parse unix seconds or an ISO-8601 string into an aware datetime."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(float(value), tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return None


def filter_by_cutoff(
    records: Iterable[Any],
    cutoff: Optional[datetime],
    time_fields: Sequence[str],
) -> List[Any]:
    """Drop records dated before ``cutoff``; undated records are kept."""
    records = list(records)
    if cutoff is None:
        return records
    kept = []
    for record in records:
        published = None
        if isinstance(record, dict):
            for time_field in time_fields:
                published = parse_review_time(record.get(time_field))
                if published is not None:
                    break
        if published is None or published >= cutoff:
            kept.append(record)
    return kept
