"""Exception hierarchy for the deep research pipeline."""

from __future__ import annotations


class DeepResearchError(Exception):
    """Base exception for all pipeline errors."""


class TransportError(DeepResearchError):
    """LLM provider unreachable or returned a non-2xx response."""


class AuthenticationMissingError(TransportError):
    """No API key configured for the requested provider."""


class ModelTimeoutError(TransportError):
    """Model call exceeded its deadline."""


class SchemaViolationError(DeepResearchError):
    """Provider returned JSON that could not be parsed even after repair."""


class SearchError(DeepResearchError):
    """Web research provider failure for a single agent."""


class PipelineError(DeepResearchError):
    """Job-level failure that ends a research run."""

    def __init__(self, message: str, *, code: str = "pipeline_error", can_retry: bool = True) -> None:
        super().__init__(message)
        self.code = code
        self.can_retry = can_retry


class AllAgentsFailedError(PipelineError):
    """Every research agent failed; there is nothing to synthesise."""

    def __init__(self, message: str = "All research agents failed") -> None:
        super().__init__(message, code="all_agents_failed", can_retry=True)


class InvalidStageTransitionError(PipelineError):
    """A stage transition would move backwards or leave phases unfinished."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="invalid_stage_transition", can_retry=True)


class JobNotFoundError(DeepResearchError):
    """Unknown job id."""


class InvalidJobStateError(DeepResearchError):
    """Operation not allowed in the job's current phase."""
