"""Error taxonomy shared by the resolver, the provider adapters and the orchestrator."""

from __future__ import annotations

from enum import Enum
from typing import Any, List, Optional, Sequence


class ErrorKind(str, Enum):
    CONFIGURATION_MISSING = "configuration_missing"
    NOT_FOUND = "not_found"
    PROVIDER_ERROR = "provider_error"
    TIMEOUT = "timeout"
    NO_REVIEWS_FOUND = "no_reviews_found"
    MALFORMED_INPUT = "malformed_input"


class ReviewPipelineError(RuntimeError):
    """Base class for every failure the pipeline knows how to classify."""

    kind = ErrorKind.PROVIDER_ERROR

    def to_dict(self) -> dict:
        return {"error": str(self), "kind": self.kind.value}


class ConfigurationMissing(ReviewPipelineError):
    """Raised when a credential or other required setting is absent."""

    kind = ErrorKind.CONFIGURATION_MISSING


class NotFound(ReviewPipelineError):
    kind = ErrorKind.NOT_FOUND


class ProviderError(ReviewPipelineError):
    """Raised when a collaborator returns a non-successful response."""

    kind = ErrorKind.PROVIDER_ERROR

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


class ProviderTimeout(ReviewPipelineError):
    kind = ErrorKind.TIMEOUT


class MalformedInput(ReviewPipelineError, ValueError):
    kind = ErrorKind.MALFORMED_INPUT


class _AttemptsMixin:
    attempts: List[Any]

    def to_dict(self) -> dict:
        data = ReviewPipelineError.to_dict(self)  # type: ignore[arg-type]
        data["attempts"] = [attempt.to_dict() for attempt in self.attempts]
        return data


class NoReviewsFound(_AttemptsMixin, ReviewPipelineError):
    """Every attempt finished without reviews and at least one finished cleanly."""

    kind = ErrorKind.NO_REVIEWS_FOUND

    def __init__(self, message: str, attempts: Sequence[Any] = ()):
        super().__init__(message)
        self.attempts = list(attempts)


class AllProvidersFailed(_AttemptsMixin, ProviderError):
    """Every attempt errored; nothing can be said about the place's reviews."""

    def __init__(self, message: str, attempts: Sequence[Any] = ()):
        super().__init__(message)
        self.attempts = list(attempts)
