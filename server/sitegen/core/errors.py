# sitegen/core/errors.py
from typing import Optional, Sequence


class PipelineError(Exception):
    """Base class for every failure the pipeline surfaces to its caller.

    `run` is attached by the orchestrator before re-raising so callers can
    inspect the partial PipelineRun (events, state, warnings).
    """

    def __init__(self, message: str = "", run=None):
        super().__init__(message)
        self.run = run


class ManifestError(PipelineError):
    """The planned manifest is unusable (dangling or unsafe names, empty, ...)."""


class CyclicDependency(ManifestError):
    def __init__(self, names: Sequence[str], message: Optional[str] = None):
        self.cycle = tuple(names)
        super().__init__(message or f"dependency cycle among: {', '.join(self.cycle)}")


class MalformedOutput(PipelineError):
    """No repair tier could recover a structured value from the model text."""

    def __init__(self, message: str = "", raw: str = ""):
        super().__init__(message)
        self.raw = raw


class CompletionError(PipelineError):
    pass


class TransientUnavailable(CompletionError):
    """Capability overloaded, rate limited or timed out. Safe to retry."""


class FatalRequest(CompletionError):
    """The request itself is bad. Never retried."""


class RetriesExhausted(FatalRequest):
    def __init__(self, attempts: int, last_error: Optional[BaseException] = None):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"completion failed after {attempts} attempts. Last error: {last_error}")


class PipelineCancelled(PipelineError):
    pass
