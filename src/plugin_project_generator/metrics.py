"""Session metrics rollup."""

from __future__ import annotations

from .models import FileTask, SessionMetrics, TaskStatus
from .scoring import session_quality


def aggregate_metrics(tasks: list[FileTask], started_at: float, finished_at: float) -> SessionMetrics:
    """Compute the session rollup from the final task collection.

    Pure: the result depends only on *tasks* and the two timestamps
    (``time.monotonic()`` values).
    """
    terminal = [t for t in tasks if t.is_terminal]
    return SessionMetrics(
        quality_score=session_quality(tasks),
        processing_time=round(max(0.0, finished_at - started_at), 3),
        files_processed=len(terminal),
        validation_passes=sum(
            1 for t in terminal
            if t.status == TaskStatus.COMPLETED and t.validation is not None and t.validation.passed
        ),
        retries_used=sum(max(0, t.attempts - 1) for t in tasks),
    )
