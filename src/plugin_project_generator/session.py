"""Session root aggregate and response assembly."""

from __future__ import annotations

import time
from datetime import datetime

from .context import ContextAccumulator, ContextEntry, ContextSnapshot
from .metrics import aggregate_metrics
from .models import (
    MANDATORY_KINDS,
    UNAVAILABLE,
    CheckResult,
    FileDetail,
    FileTask,
    GeneratedFile,
    ProjectPlan,
    ProjectSpec,
    ProjectValidation,
    SessionMetrics,
    SessionResponse,
    TaskStatus,
    ValidationEntry,
)

TASK_STATUS_CHECK = "task_status"


class Session:
    """One generation request: spec, plan, accumulated context and final result.

    Lives only for the duration of a run. Task state is mutated exclusively by
    the pipeline driving it.
    """

    def __init__(self, spec: ProjectSpec, plan: ProjectPlan) -> None:
        self.spec = spec
        self.plan = plan
        self.accumulator = ContextAccumulator()
        self.started_at = time.monotonic()
        self.created = datetime.now()
        self.cancelled = False
        self.project_validation: ProjectValidation | None = None
        self.metrics: SessionMetrics | None = None
        self.response: SessionResponse | None = None

    @property
    def tasks(self) -> list[FileTask]:
        return self.plan.tasks

    def ready_tasks(self) -> list[FileTask]:
        """Tasks that may start now, in plan order."""
        ready: list[FileTask] = []
        for task in self.tasks:
            if task.status not in (TaskStatus.PENDING, TaskStatus.RETRYING):
                continue
            deps = [self.plan.get(d) for d in task.dependencies]
            if all(d is not None and d.status == TaskStatus.COMPLETED for d in deps):
                ready.append(task)
        return ready

    def all_terminal(self) -> bool:
        return all(t.is_terminal for t in self.tasks)

    @property
    def files(self) -> list[GeneratedFile]:
        """Completed files in plan order."""
        return [t.result for t in self.tasks if t.status == TaskStatus.COMPLETED and t.result is not None]

    def context_snapshot(self) -> ContextSnapshot:
        """Accumulated context restricted to tasks that are COMPLETED right now.

        A file re-opened by the project check drops out until it completes again.
        """
        completed = {t.path for t in self.tasks if t.status == TaskStatus.COMPLETED}
        return ContextSnapshot(tuple(e for e in self.accumulator.snapshot() if e.path in completed))

    def completed_entries(self) -> list[ContextEntry]:
        return list(self.context_snapshot())

    @property
    def success(self) -> bool:
        mandatory = [t for t in self.tasks if t.kind in MANDATORY_KINDS]
        return bool(mandatory) and all(t.status == TaskStatus.COMPLETED for t in mandatory)

    # -----------------------------------------------------------------------
    # Response
    # -----------------------------------------------------------------------

    def finish(self, project_validation: ProjectValidation) -> SessionResponse:
        """Freeze metrics and build the response. Call once all tasks are terminal."""
        self.project_validation = project_validation
        self.metrics = aggregate_metrics(self.tasks, self.started_at, time.monotonic())
        self.response = SessionResponse(
            success=self.success,
            project_name=self.spec.display_name,
            file_count=len(self.files),
            metrics=self.metrics,
            file_details=[_file_detail(t) for t in self.tasks],
            validation=self._validation_map(),
        )
        return self.response

    def _validation_map(self) -> dict[str, ValidationEntry]:
        per_check: dict[str, list[tuple[str, CheckResult]]] = {}
        for task in self.tasks:
            if task.validation is None:
                continue
            for check in task.validation.checks:
                per_check.setdefault(check.name, []).append((task.path, check))

        validation: dict[str, ValidationEntry] = {}
        for name, results in per_check.items():
            failed = [(path, c) for path, c in results if not c.passed]
            issues = [f"{path}: {issue}" for path, c in failed for issue in c.issues]
            validation[name] = ValidationEntry(
                passed=not failed,
                message=(
                    f"Passed for all {len(results)} file(s)" if not failed
                    else f"Failed for {len(failed)} of {len(results)} file(s): "
                         + ", ".join(path for path, _ in failed)
                ),
                issues=issues,
            )

        if self.project_validation is not None:
            for check in self.project_validation.checks:
                validation[check.name] = ValidationEntry(
                    passed=check.passed, message=check.message, issues=list(check.issues),
                )

        failed_tasks = [t for t in self.tasks if t.status == TaskStatus.FAILED]
        validation[TASK_STATUS_CHECK] = ValidationEntry(
            passed=not failed_tasks,
            message=(
                f"All {len(self.tasks)} file(s) completed" if not failed_tasks
                else f"{len(failed_tasks)} of {len(self.tasks)} file(s) failed"
            ),
            issues=[
                f"{t.path}: {t.failure.reason.value}: {t.failure.message}"
                for t in failed_tasks if t.failure is not None
            ],
        )
        return validation


def _file_detail(task: FileTask) -> FileDetail:
    result = task.result if task.status == TaskStatus.COMPLETED else None
    return FileDetail(
        filename=task.path,
        type=task.kind.value,
        quality_score=result.quality_score if result else 0,
        size=result.size if result else 0,
        created_at=result.created_at.isoformat(timespec="seconds") if result else UNAVAILABLE,
        status=task.status.value,
        failure_reason=task.failure.reason.value if task.failure else UNAVAILABLE,
    )
