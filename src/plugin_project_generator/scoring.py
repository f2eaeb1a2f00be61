"""Quality scoring for generated files and sessions."""

from __future__ import annotations

from .models import FileKind, FileTask, FileValidation, ScoringConfig, TaskStatus


def score_file(
    kind: FileKind,
    content: str,
    validation: FileValidation,
    attempts: int,
    scoring: ScoringConfig | None = None,
) -> int:
    """Score one generated file on a 0-100 scale.

    Validation pass ratio and a size heuristic are blended by weight, then
    scaled down by a ceiling that drops with every retry before success.
    """
    scoring = scoring or ScoringConfig()
    ceiling = max(0, 100 - scoring.retry_penalty * max(0, attempts - 1))

    size = len(content)
    if not content.strip():
        size_factor = 0.0
    else:
        expected = scoring.expected_sizes.get(kind.value, 100) * scoring.min_size_ratio
        size_factor = min(1.0, size / expected) if expected > 0 else 1.0

    total_weight = scoring.validation_weight + scoring.size_weight
    if total_weight <= 0:
        blended = validation.pass_ratio
    else:
        blended = (
            scoring.validation_weight * validation.pass_ratio + scoring.size_weight * size_factor
        ) / total_weight

    return max(0, min(100, round(ceiling * blended)))


def session_quality(tasks: list[FileTask]) -> float:
    """Mean file score over terminal tasks; failed tasks count as 0."""
    terminal = [t for t in tasks if t.is_terminal]
    if not terminal:
        return 0.0
    total = sum(
        t.result.quality_score
        for t in terminal
        if t.status == TaskStatus.COMPLETED and t.result is not None
    )
    return round(total / len(terminal), 2)
