"""Error taxonomy for the generation engine.

Only :class:`PlanningError` aborts a session. Every other error is recorded on
the affected task and the session degrades to partial success.
"""

from __future__ import annotations


class GeneratorError(Exception):
    """Base class for all engine errors."""


class PlanningError(GeneratorError):
    """The project specification is missing required fields."""


class GenerationCapabilityError(GeneratorError):
    """A single call to the generation capability failed (timeout, provider error, empty output)."""


class ValidationFailure(GeneratorError):
    """A generated file failed one or more validation checks."""

    def __init__(self, path: str, issues: list[str]) -> None:
        self.path = path
        self.issues = list(issues)
        super().__init__(f"{path}: {len(self.issues)} validation issue(s)")


class RetryBudgetExhausted(GeneratorError):
    """A task used every attempt it was allowed without producing a valid file."""

    def __init__(self, path: str, attempts: int) -> None:
        self.path = path
        self.attempts = attempts
        super().__init__(f"{path} failed after {attempts} attempt(s)")


class DependencyBlocked(GeneratorError):
    """A task cannot run because a file it depends on failed."""

    def __init__(self, path: str, blocking: str) -> None:
        self.path = path
        self.blocking = blocking
        super().__init__(f"{path} blocked by failed dependency {blocking}")


class SessionCancelled(GeneratorError):
    """The session was cancelled before the task reached a terminal state."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"{path} not generated: session cancelled")


class InvalidTransition(GeneratorError, ValueError):
    """A task was moved along an edge the task state machine does not allow."""
