from __future__ import annotations


class ExpertSearchError(Exception):
    """Base error for the expert search pipeline."""


class InvalidRequest(ExpertSearchError):
    """Raised when required request input is missing or empty."""


class ConfigurationError(ExpertSearchError):
    """Raised when a required credential or setting is not configured."""


class UpstreamUnavailable(ExpertSearchError):
    """Raised when a provider call fails at the transport or HTTP layer."""

    def __init__(self, message: str, *, status_code: int | None = None, details: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class UpstreamProtocolError(ExpertSearchError):
    """Raised when a provider response is missing a required field."""


class UpstreamJobFailed(ExpertSearchError):
    """Raised when the provider reports a job as failed."""


class PollBudgetExhausted(ExpertSearchError):
    """Raised when a job used every poll attempt without reaching a terminal status."""


class PersistenceError(ExpertSearchError):
    """Raised when writing to the backing store fails."""


class AnalysisError(ExpertSearchError):
    """Raised when the LLM does not return a usable project analysis."""
