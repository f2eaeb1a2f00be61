"""Retry/correction policy for file tasks."""

from __future__ import annotations

import logging

from .errors import DependencyBlocked, GeneratorError, RetryBudgetExhausted, SessionCancelled
from .models import FailureReason, FileTask, ProjectPlan, TaskFailure, TaskStatus

logger = logging.getLogger(__name__)


class RetryController:
    """Decides what happens to a task after a recoverable failure.

    A task gets at most ``max_attempts`` generation attempts. When the budget
    is spent the task fails permanently and every dependent that has not
    finished is failed as blocked, without touching its own budget.
    """

    def __init__(self, plan: ProjectPlan, max_attempts: int = 3, *, use_feedback: bool = True) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.plan = plan
        self.max_attempts = max_attempts
        self.use_feedback = use_feedback

    def can_retry(self, task: FileTask) -> bool:
        return task.attempts < self.max_attempts

    def handle_failure(self, task: FileTask, error: GeneratorError, issues: list[str]) -> list[FileTask]:
        """Move *task* to RETRYING, or to FAILED once the budget is gone.

        Returns the dependents failed as a consequence (empty while retrying).
        """
        task.transition(TaskStatus.RETRYING)
        task.feedback = list(issues) if self.use_feedback else []
        if self.can_retry(task):
            logger.info(
                "Retrying %s (attempt %d/%d): %s",
                task.path, task.attempts, self.max_attempts, error,
            )
            return []

        exhausted = RetryBudgetExhausted(task.path, task.attempts)
        task.transition(TaskStatus.FAILED)
        task.failure = TaskFailure(
            reason=FailureReason.RETRY_BUDGET_EXHAUSTED,
            message=f"{exhausted}; last error: {error}",
        )
        logger.warning("%s", task.failure.message)
        return self.block_dependents(task)

    def block_dependents(self, failed: FileTask) -> list[FileTask]:
        """Fail every unfinished task that depends on *failed*, directly or transitively."""
        blocked: list[FileTask] = []
        for dependent in self.plan.dependents_of(failed.path):
            if dependent.status not in (TaskStatus.PENDING, TaskStatus.RETRYING):
                continue
            # The nearest failed dependency is the one reported
            blocker = next(
                (d for d in dependent.dependencies
                 if (t := self.plan.get(d)) is not None and t.status == TaskStatus.FAILED),
                failed.path,
            )
            dependent.transition(TaskStatus.FAILED)
            dependent.failure = TaskFailure(
                reason=FailureReason.DEPENDENCY_BLOCKED,
                message=str(DependencyBlocked(dependent.path, blocker)),
                blocking_task=blocker,
            )
            blocked.append(dependent)
        if blocked:
            logger.warning(
                "%d task(s) blocked by %s: %s",
                len(blocked), failed.path, ", ".join(t.path for t in blocked),
            )
        return blocked

    def cancel_remaining(self, tasks: list[FileTask]) -> list[FileTask]:
        """Fail every task that is not terminal yet because the session was cancelled."""
        cancelled: list[FileTask] = []
        for task in tasks:
            if task.status not in (TaskStatus.PENDING, TaskStatus.RETRYING):
                continue
            task.transition(TaskStatus.FAILED)
            task.failure = TaskFailure(
                reason=FailureReason.CANCELLED,
                message=str(SessionCancelled(task.path)),
            )
            cancelled.append(task)
        return cancelled
