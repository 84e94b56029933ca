"""
Exception hierarchy for the discovery pipeline.

Provider and extraction exceptions never escape the Discovery Client or
Extraction Engine; they are converted into typed outcomes there. Only
``InvalidRequestError`` reaches callers of the pipeline entry points.
"""

from typing import Optional


class PipelineError(Exception):
    """Base pipeline exception."""

    pass


class InvalidRequestError(PipelineError, ValueError):
    """The caller passed a malformed request (programming error)."""

    pass


class ProviderError(PipelineError):
    """A search provider call failed."""

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.provider = provider


class TransientProviderError(ProviderError):
    """Retryable provider failure: timeout, rate limit or 5xx."""

    pass


class ProviderTimeout(TransientProviderError):
    pass


class RateLimited(TransientProviderError):
    pass


class ProviderServerError(TransientProviderError):
    pass


class PermanentProviderError(ProviderError):
    """Non-retryable provider failure."""

    pass


class ProviderAuthError(PermanentProviderError):
    """Missing or rejected API key."""

    pass


class MalformedResponseError(PermanentProviderError):
    """Provider answered with something we cannot parse."""

    pass


class ExtractionError(PipelineError):
    """A single extraction strategy failed for a URL."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url
