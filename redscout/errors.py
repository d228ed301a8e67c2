"""Error kinds surfaced to callers of the search service.

Transient upstream failures never appear here: they are raw ``httpx``
exceptions handled by the retry policy. Everything below is what is left
once retries, partial results and fallbacks have been exhausted.
"""


class ScoutError(Exception):
    """Base class — ``kind`` is the machine-readable error code."""

    kind = "error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.kind)
        self.message = message or self.kind


class ConfigurationMissingError(ScoutError):
    """A required credential (the text-generation API key) is not set."""

    kind = "configuration_missing"


class AdmissionDeniedError(ScoutError):
    """The rate limiter refused the request."""

    kind = "rate_limited"

    def __init__(self, retry_after_ms: int):
        super().__init__(f"Too many requests — retry after {retry_after_ms}ms")
        self.retry_after_ms = retry_after_ms


class AIServiceError(ScoutError):
    """Text-generation service unreachable, unauthorized or out of retries."""

    kind = "ai_unavailable"

    def __init__(self, message: str = "", status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class UpstreamUnavailableError(ScoutError):
    """The upstream listing produced nothing before failing."""

    kind = "upstream_unavailable"


class PipelineFailedError(ScoutError):
    """Context search ended in the ``failed`` state."""

    kind = "pipeline_failed"

    def __init__(self, message: str = "", state: str = "failed"):
        super().__init__(message)
        self.state = state
