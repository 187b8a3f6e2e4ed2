"""Prompt building and response parsing for review summaries.

Summaries come back either as a JSON object or, from models without
structured output, as labeled sections::

    Top 5 Positives:
    - Friendly staff
    Top 5 Negatives:
    - Long waits
    Action Steps:
    1. Add a queue display
    Summary: Customers like the staff but not the wait.

Both shapes go through ``parse_analysis``; callers never split text themselves.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)

MAX_POSITIVES = 5
MAX_NEGATIVES = 5
MAX_ACTIONS = 12

JSON_INSTRUCTIONS = """Return STRICT JSON only with keys: positives, negatives, actions, summary.
- positives: top 5 short positive recurring themes
- negatives: top 5 short negative recurring themes
- actions: 6-10 practical steps
- summary: 2-3 sentences"""

TEXT_INSTRUCTIONS = """Answer using exactly these headings, one bullet per line:
Top 5 Positives:
Top 5 Negatives:
Action Steps:
Summary:"""

HEADING_REGEX = re.compile(
    r"^\s*(?:#+\s*)?\**\s*(?P<heading>top\s*5\s*positives|positives|top\s*5\s*negatives|negatives"
    r"|action\s*steps|action\s*plan|actions|summary)\s*\**\s*(?::\s*\**\s*(?P<rest>.*))?$",
    re.IGNORECASE,
)
BULLET_REGEX = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s*")
JSON_BLOCK_REGEX = re.compile(r"\{.*\}", re.DOTALL)


@dataclass(slots=True)
class ReviewAnalysis:
    positives: List[str] = field(default_factory=list)
    negatives: List[str] = field(default_factory=list)
    actions: List[str] = field(default_factory=list)
    summary: str = ""
    source: str = "json"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def build_prompt(reviews: Sequence[str], structured: bool = True) -> str:
    instructions = JSON_INSTRUCTIONS if structured else TEXT_INSTRUCTIONS
    body = "\n".join(f"- {review}" for review in reviews)
    return f"{instructions}\n\nREVIEWS:\n{body}"


def _clean_items(values: Any, limit: int) -> List[str]:
    if not isinstance(values, list):
        return []
    items = [str(value).strip() for value in values if value is not None and str(value).strip()]
    return items[:limit]


def _section_key(heading: str) -> str:
    heading = heading.lower()
    if "positive" in heading:
        return "positives"
    if "negative" in heading:
        return "negatives"
    if "action" in heading:
        return "actions"
    return "summary"


def _load_json_object(text: str) -> Optional[Dict[str, Any]]:
    for candidate in (text, *JSON_BLOCK_REGEX.findall(text)[:1]):
        try:
            data = json.loads(candidate)
        except (TypeError, ValueError):
            continue
        if isinstance(data, dict):
            return data
    return None


def parse_free_text(text: str) -> ReviewAnalysis:
    sections: Dict[str, List[str]] = {"positives": [], "negatives": [], "actions": [], "summary": []}
    current: Optional[str] = None
    for line in text.splitlines():
        match = HEADING_REGEX.match(line)
        if match:
            current = _section_key(match.group("heading"))
            rest = (match.group("rest") or "").strip()
            if rest:
                sections[current].append(rest)
            continue
        if current is None or not line.strip():
            continue
        sections[current].append(BULLET_REGEX.sub("", line).strip())

    return ReviewAnalysis(
        positives=_clean_items(sections["positives"], MAX_POSITIVES),
        negatives=_clean_items(sections["negatives"], MAX_NEGATIVES),
        actions=_clean_items(sections["actions"], MAX_ACTIONS),
        summary=" ".join(sections["summary"]).strip(),
        source="text",
    )


def parse_analysis(text: Optional[str]) -> ReviewAnalysis:
    """Parse a summarizer answer, JSON first, labeled free text otherwise."""
    text = (text or "").strip()
    data = _load_json_object(text) if text else None
    if data is not None:
        summary = data.get("summary")
        return ReviewAnalysis(
            positives=_clean_items(data.get("positives"), MAX_POSITIVES),
            negatives=_clean_items(data.get("negatives"), MAX_NEGATIVES),
            actions=_clean_items(data.get("actions") or data.get("suggestions"), MAX_ACTIONS),
            summary=summary.strip() if isinstance(summary, str) else "",
            source="json",
        )
    logger.debug("Summarizer answer is not JSON; parsing labeled sections")
    return parse_free_text(text)
