"""Pipeline — incremental generation of a plugin project, one file at a time.

PLAN      — ProjectSpec -> ordered FileTasks
GENERATE  — for each ready task: prompt with accumulated context, generate, validate, score
RETRY     — failed attempts loop back with their issues until the budget is spent
RECHECK   — every passing file triggers a whole-project reference/duplicate pass
FINISH    — final project pass, metrics rollup, response
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from .agents.file_generator import AgentFileGenerator, FileGenerator
from .context import ContextEntry, ContextSnapshot
from .errors import GenerationCapabilityError, GeneratorError, ValidationFailure
from .executor import AttemptOutcome, GenerationStepExecutor
from .logging_config import RichCallbacks, SessionCallbacks
from .models import (
    FileKind,
    FileTask,
    GeneratedFile,
    GenerationRequest,
    ProjectConfig,
    ProjectPlan,
    ProjectSpec,
    ProjectValidation,
    SessionResponse,
    TaskStatus,
)
from .planner import build_plan, plugin_identity
from .retry import RetryController
from .session import Session
from .tools.symbols import load_yaml_mapping
from .tools.validators import ProjectView, validate_file, validate_project

logger = logging.getLogger(__name__)


class Pipeline:
    """Drives one or more generation sessions with a shared configuration.

    ``cancel()`` may be called from any thread; the running session stops
    issuing new attempts and reports what it has.
    """

    def __init__(
        self,
        config: ProjectConfig,
        generator: FileGenerator | None = None,
        callbacks: SessionCallbacks | None = None,
    ) -> None:
        self.config = config
        self.generator = generator or AgentFileGenerator(config)
        self.callbacks = callbacks or RichCallbacks()
        self._cancel = threading.Event()
        self.session: Session | None = None

    def cancel(self) -> None:
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    # -----------------------------------------------------------------------
    # Planning
    # -----------------------------------------------------------------------

    def plan(self, spec: ProjectSpec | GenerationRequest) -> ProjectPlan:
        """Build the deterministic file plan without generating anything."""
        if isinstance(spec, GenerationRequest):
            spec = spec.to_project_spec()
        return build_plan(spec, include_build_file=self.config.include_build_file)

    # -----------------------------------------------------------------------
    # Full run
    # -----------------------------------------------------------------------

    def run(self, spec: ProjectSpec | GenerationRequest) -> Session:
        """Generate every planned file and return the finished session.

        Raises:
            PlanningError: if the spec lacks a name or prompt. Nothing else
                escapes; failures are recorded per task.
        """
        if isinstance(spec, GenerationRequest):
            spec = spec.to_project_spec()

        plan = self.plan(spec)
        session = Session(spec, plan)
        self.session = session
        executor = GenerationStepExecutor(self.generator, plan, spec, self.config)
        retry = RetryController(plan, self.config.max_attempts, use_feedback=spec.use_agents)
        deadline = (
            session.started_at + self.config.session_timeout
            if self.config.session_timeout else None
        )

        self.callbacks.on_plan_ready(plan)
        logger.info(
            "Session started for %s: %d file(s), incremental=%s, agents=%s",
            spec.display_name, len(plan.tasks), spec.incremental_mode, spec.use_agents,
        )

        while True:
            if deadline is not None and time.monotonic() >= deadline and not self.cancelled:
                self.callbacks.on_warning(f"Session timed out after {self.config.session_timeout}s")
                self.cancel()
            if self.cancelled:
                session.cancelled = True
                for task in retry.cancel_remaining(session.tasks):
                    self.callbacks.on_task_end(task)
                break

            ready = session.ready_tasks()
            if not ready:
                break
            batch = ready[: self.config.max_parallel]
            outcomes = self._run_batch(executor, session, batch)
            for task, outcome in zip(batch, outcomes):
                self._apply_outcome(session, retry, task, outcome)

        if not session.all_terminal():
            # Only reachable if a dependency was never planned
            stuck = [t for t in session.tasks if not t.is_terminal]
            for task in stuck:
                self.callbacks.on_error(f"{task.path} never became ready")
            retry.cancel_remaining(stuck)

        final = validate_project(
            session.completed_entries(),
            ProjectView.from_plan(plan, session.context_snapshot()),
            defer_pending=False,
        )
        response = session.finish(final)
        logger.info(
            "Session finished for %s: success=%s, %d/%d file(s) completed",
            spec.display_name, response.success, response.file_count, len(plan.tasks),
        )
        self._notify_end(response)
        return session

    # -----------------------------------------------------------------------
    # Steps
    # -----------------------------------------------------------------------

    def _run_batch(
        self,
        executor: GenerationStepExecutor,
        session: Session,
        batch: list[FileTask],
    ) -> list[AttemptOutcome]:
        """Start every task in *batch* against one snapshot and collect outcomes in order."""
        snapshot = session.context_snapshot()
        for task in batch:
            attempt = executor.begin(task)
            self.callbacks.on_task_start(task, attempt, self.config.max_attempts)

        if len(batch) == 1:
            return [executor.attempt(batch[0], snapshot)]

        with ThreadPoolExecutor(max_workers=len(batch), thread_name_prefix="ppg-gen") as pool:
            futures = [pool.submit(executor.attempt, task, snapshot) for task in batch]
            return [f.result() for f in futures]

    def _apply_outcome(
        self,
        session: Session,
        retry: RetryController,
        task: FileTask,
        outcome: AttemptOutcome,
    ) -> None:
        if outcome.file is None:
            error = outcome.error or GenerationCapabilityError("No output")
            self._fail_attempt(retry, task, error, [str(error)])
            return

        task.transition(TaskStatus.VALIDATING)
        task.validation = outcome.validation
        if outcome.error is not None:
            issues = outcome.error.issues if isinstance(outcome.error, ValidationFailure) else [str(outcome.error)]
            self._fail_attempt(retry, task, outcome.error, issues)
            return

        task.result = outcome.file
        task.feedback = []
        task.failure = None
        task.transition(TaskStatus.COMPLETED)
        session.accumulator.append(task, outcome.file)
        self.callbacks.on_task_end(task)
        self._recheck_project(session, retry)

    def _fail_attempt(self, retry: RetryController, task: FileTask, error: GeneratorError, issues: list[str]) -> None:
        blocked = retry.handle_failure(task, error, issues)
        if task.status == TaskStatus.RETRYING:
            self.callbacks.on_retry(task, issues)
            return
        self.callbacks.on_task_end(task)
        for dependent in blocked:
            self.callbacks.on_task_end(dependent)

    def _recheck_project(self, session: Session, retry: RetryController) -> ProjectValidation:
        """Re-run reference and duplicate checks over every completed file."""
        entries = session.completed_entries()
        view = ProjectView.from_plan(session.plan, ContextSnapshot(tuple(entries)))
        result = validate_project(entries, view, defer_pending=True)
        for path, issues in sorted(result.implicated.items(), key=lambda kv: view.rank(kv[0])):
            task = session.plan.get(path)
            if task is None or task.status != TaskStatus.COMPLETED:
                continue
            self.callbacks.on_warning(f"Project check re-opened {path}: {issues[0]}")
            task.validation = None
            self._fail_attempt(retry, task, ValidationFailure(path, issues), issues)
        return result

    def _notify_end(self, response: SessionResponse) -> None:
        try:
            self.callbacks.on_session_end(response)
        except Exception:
            logger.exception("Session-end callback failed; result is unaffected")

    # -----------------------------------------------------------------------
    # Validation of an existing tree (no LLM)
    # -----------------------------------------------------------------------

    def run_validate_only(self, input_dir: str | Path) -> ProjectValidation:
        """Run the per-file battery and the project pass over a plugin tree on disk."""
        root = Path(input_dir)
        manifest = root / "src" / "main" / "resources" / "plugin.yml"
        if not manifest.exists():
            raise FileNotFoundError(f"plugin.yml not found under {root}")

        data, _ = load_yaml_mapping(manifest.read_text(encoding="utf-8"))
        data = data or {}
        plugin_name = str(data.get("name") or root.name)
        main_fqn = str(data.get("main") or "")
        if "." in main_fqn:
            base_package = main_fqn.rsplit(".", 1)[0]
        else:
            base_package = plugin_identity(plugin_name)[1]

        entries = []
        for path in _project_files(root):
            rel = path.relative_to(root).as_posix()
            kind = _kind_for_path(rel, main_fqn)
            entries.append(_disk_entry(rel, kind, path.read_text(encoding="utf-8")))

        order = {e.path: i for i, e in enumerate(entries)}
        base_view = ProjectView(
            base_package=base_package,
            plugin_name=plugin_name,
            main_class_fqn=main_fqn or None,
            order=order,
            context=ContextSnapshot(tuple(entries)),
        )
        checks = []
        for entry in entries:
            file = _as_generated(entry)
            validation = validate_file(file, base_view, self.config.enabled_checks)
            for check in validation.checks:
                if not check.passed:
                    checks.append(check.model_copy(update={
                        "name": f"{entry.path}:{check.name}",
                        "issues": list(check.issues),
                    }))
            logger.info("%s %s", "OK  " if validation.passed else "FAIL", entry.path)

        project = validate_project(entries, base_view, defer_pending=False)
        return ProjectValidation(checks=checks + project.checks, implicated=project.implicated)


# ---------------------------------------------------------------------------
# Disk helpers for validate mode
# ---------------------------------------------------------------------------

def _project_files(root: Path) -> list[Path]:
    files: list[Path] = []
    if (root / "pom.xml").exists():
        files.append(root / "pom.xml")
    resources = root / "src" / "main" / "resources"
    for name in ("plugin.yml", "config.yml"):
        if (resources / name).exists():
            files.append(resources / name)
    java_root = root / "src" / "main" / "java"
    if java_root.exists():
        files.extend(sorted(java_root.rglob("*.java")))
    return files


def _kind_for_path(rel: str, main_fqn: str) -> FileKind:
    if rel == "pom.xml":
        return FileKind.BUILD_CONFIG
    if rel.endswith("plugin.yml"):
        return FileKind.PLUGIN_DESCRIPTOR
    if rel.endswith("config.yml"):
        return FileKind.CONFIG
    dotted = rel.removeprefix("src/main/java/").removesuffix(".java").replace("/", ".")
    if dotted == main_fqn:
        return FileKind.MAIN_CLASS
    if "/commands/" in rel:
        return FileKind.COMMAND
    if "/listeners/" in rel:
        return FileKind.LISTENER
    return FileKind.FEATURE


def _disk_entry(path: str, kind: FileKind, content: str) -> ContextEntry:
    return ContextEntry(path=path, kind=kind, description=kind.value, content=content)


def _as_generated(entry: ContextEntry) -> GeneratedFile:
    return GeneratedFile(path=entry.path, kind=entry.kind, content=entry.content, size=len(entry.content))
