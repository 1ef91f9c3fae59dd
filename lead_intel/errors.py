"""Pipeline error taxonomy.

Every error that can end a research job carries a ``retryable`` flag so the
job record tells the user whether resubmitting (or retrying a single stage
with another provider) can help.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for errors that abort a research job."""

    retryable: bool = False

    def __init__(self, message: str, retryable: bool | None = None):
        super().__init__(message)
        self.message = message
        if retryable is not None:
            self.retryable = retryable


class DiscoveryError(PipelineError):
    """Search provider unavailable or returned an error."""

    retryable = True


class NoSourcesError(PipelineError):
    """Discovery/scraping produced zero usable sources."""

    retryable = True


class ProviderError(PipelineError):
    """Language-model provider call failed (auth, rate limit, malformed output)."""

    retryable = True


class ConfigurationError(PipelineError):
    """Missing credentials or unknown provider; retrying will not help."""

    retryable = False


class InvalidPromptError(PipelineError):
    """Research prompt failed validation."""

    retryable = False


class JobCancelled(Exception):
    """Raised inside the pipeline when the job was cancelled at a stage boundary."""
