"""Core data models shared by the place resolution and review retrieval pipeline."""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from reviews_worker.core.errors import ErrorKind, MalformedInput

RawReviewBatch = Union[Dict[str, Any], List[Any]]

SECONDS_PER_DAY = 24 * 60 * 60


class ReviewPeriod(str, Enum):
    """Window of reviews to fetch, counted back from now."""

    DAY = "1"
    MONTH = "30"
    TWO_MONTHS = "60"
    QUARTER = "90"
    YEAR = "365"
    ALL = "all"

    @classmethod
    def parse(cls, value: Any) -> "ReviewPeriod":
        if isinstance(value, cls):
            return value
        if value is None or isinstance(value, bool):
            raise MalformedInput(f"Unsupported review period: {value!r}")
        text = str(value).strip().lower()
        try:
            return cls(text)
        except ValueError:
            allowed = ", ".join(member.value for member in cls)
            raise MalformedInput(f"Unsupported review period: {value!r} (expected one of {allowed})") from None

    @property
    def days(self) -> Optional[int]:
        if self is ReviewPeriod.ALL:
            return None
        return int(self.value)

    def cutoff_timestamp(self, now: Optional[float] = None) -> Optional[int]:
        """Unix seconds of the oldest review inside the window, None for 'all'."""
        if self.days is None:
            return None
        current = time.time() if now is None else now
        return int(current - self.days * SECONDS_PER_DAY)

    def cutoff_datetime(self, now: Optional[float] = None) -> Optional[datetime]:
        cutoff = self.cutoff_timestamp(now)
        if cutoff is None:
            return None
        return datetime.fromtimestamp(cutoff, tz=timezone.utc)


@dataclass(slots=True)
class NormalizedInput:
    cleaned_text: str
    candidate_identifier: Optional[str] = None


@dataclass(slots=True)
class ResolutionResult:
    """Outcome of turning free text into an identifier; built fresh per request."""

    identifier: Optional[str] = None
    display_name: Optional[str] = None
    error: Optional[ErrorKind] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identifier": self.identifier,
            "display_name": self.display_name,
            "error": self.error.value if self.error else None,
        }


@dataclass(slots=True)
class ProviderAttemptOutcome:
    provider: str
    key: str
    succeeded: bool
    review_count: int = 0
    error_kind: Optional[ErrorKind] = None
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["error_kind"] = self.error_kind.value if self.error_kind else None
        return data


@dataclass(slots=True)
class ReviewFetchResult:
    query: str
    period: ReviewPeriod
    identifier: Optional[str] = None
    display_name: Optional[str] = None
    reviews: List[str] = field(default_factory=list)
    attempts: List[ProviderAttemptOutcome] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identifier": self.identifier,
            "display_name": self.display_name,
            "query": self.query,
            "period": self.period.value,
            "reviews": list(self.reviews),
            "attempts": [attempt.to_dict() for attempt in self.attempts],
        }
