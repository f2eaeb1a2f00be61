"""Generation step executor: one attempt at producing one file."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .agents.file_generator import FileGenerator
from .context import ContextSnapshot
from .errors import GenerationCapabilityError, GeneratorError, ValidationFailure
from .models import (
    FileTask,
    FileValidation,
    GeneratedFile,
    ProjectConfig,
    ProjectPlan,
    ProjectSpec,
    TaskStatus,
)
from .scoring import score_file
from .tools.content_cleaner import clean_generated_content
from .tools.prompt_builder import build_file_prompt
from .tools.validators import ProjectView, validate_file

logger = logging.getLogger(__name__)


@dataclass
class AttemptOutcome:
    """Everything one attempt produced. ``file`` is None on a capability failure."""
    path: str
    attempt: int
    context_paths: tuple[str, ...]
    file: GeneratedFile | None = None
    validation: FileValidation | None = None
    error: GeneratorError | None = None


class GenerationStepExecutor:
    """Runs single generation attempts against the generation capability.

    ``begin`` mutates the task and must be called by the thread driving the
    session; ``attempt`` only reads the task and may run on a worker thread.
    """

    def __init__(
        self,
        generator: FileGenerator,
        plan: ProjectPlan,
        spec: ProjectSpec,
        config: ProjectConfig,
    ) -> None:
        self.generator = generator
        self.plan = plan
        self.spec = spec
        self.config = config

    def begin(self, task: FileTask) -> int:
        """Move *task* into GENERATING and count the attempt."""
        task.transition(TaskStatus.GENERATING)
        task.attempts += 1
        return task.attempts

    def prompt_context(self, task: FileTask, snapshot: ContextSnapshot) -> ContextSnapshot:
        """Context handed to the model: everything completed, or nothing outside incremental mode."""
        if not self.spec.incremental_mode:
            return ContextSnapshot.empty()
        return snapshot.without(task.path)

    def build_prompt(self, task: FileTask, snapshot: ContextSnapshot) -> str:
        feedback = task.feedback if self.spec.use_agents else None
        return build_file_prompt(task, self.plan, self.spec, self.prompt_context(task, snapshot), feedback)

    def attempt(self, task: FileTask, snapshot: ContextSnapshot) -> AttemptOutcome:
        """Generate, clean, validate and score one attempt for *task*."""
        context = self.prompt_context(task, snapshot)
        outcome = AttemptOutcome(path=task.path, attempt=task.attempts, context_paths=tuple(context.paths))
        prompt = self.build_prompt(task, snapshot)

        try:
            raw = self.generator.generate(prompt, context)
        except GeneratorError as e:
            outcome.error = e
            return outcome
        except Exception as e:
            logger.debug("Generator raised for %s", task.path, exc_info=True)
            outcome.error = GenerationCapabilityError(f"{type(e).__name__}: {e}")
            return outcome

        content = clean_generated_content(raw or "", task.kind)
        if not content:
            outcome.error = GenerationCapabilityError("Generation returned no usable content")
            return outcome

        view = ProjectView.from_plan(self.plan, snapshot)
        validation = validate_file(
            GeneratedFile(path=task.path, kind=task.kind, content=content, size=len(content)),
            view,
            self.config.enabled_checks,
        )
        score = score_file(task.kind, content, validation, task.attempts, self.config.scoring)
        outcome.validation = validation
        outcome.file = GeneratedFile(
            path=task.path,
            kind=task.kind,
            content=content,
            size=len(content),
            quality_score=score,
            attempt=task.attempts,
        )

        if not validation.passed:
            outcome.error = ValidationFailure(task.path, validation.issues)
        elif score < self.config.min_quality_score:
            outcome.error = ValidationFailure(
                task.path,
                [f"[quality] Score {score} is below the minimum of {self.config.min_quality_score}"],
            )
        return outcome
