"""Pydantic models for the plugin project generator engine."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .errors import InvalidTransition

# Sentinel used in responses instead of omitting a value.
UNAVAILABLE = "unavailable"


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class FileKind(str, Enum):
    BUILD_CONFIG = "build_config"
    PLUGIN_DESCRIPTOR = "plugin_descriptor"
    MAIN_CLASS = "main_class"
    COMMAND = "command"
    LISTENER = "listener"
    FEATURE = "feature"
    CONFIG = "config"
    RESOURCE = "resource"


JAVA_KINDS = frozenset({FileKind.MAIN_CLASS, FileKind.COMMAND, FileKind.LISTENER, FileKind.FEATURE})
YAML_KINDS = frozenset({FileKind.PLUGIN_DESCRIPTOR, FileKind.CONFIG})
MANDATORY_KINDS = frozenset({FileKind.PLUGIN_DESCRIPTOR, FileKind.MAIN_CLASS})


class TaskStatus(str, Enum):
    PENDING = "pending"
    GENERATING = "generating"
    VALIDATING = "validating"
    RETRYING = "retrying"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED})

# COMPLETED -> RETRYING happens only when the whole-project pass implicates a
# file that passed on its own.
ALLOWED_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: frozenset({TaskStatus.GENERATING, TaskStatus.FAILED}),
    TaskStatus.GENERATING: frozenset({TaskStatus.VALIDATING, TaskStatus.RETRYING}),
    TaskStatus.VALIDATING: frozenset({TaskStatus.COMPLETED, TaskStatus.RETRYING}),
    TaskStatus.RETRYING: frozenset({TaskStatus.GENERATING, TaskStatus.FAILED}),
    TaskStatus.COMPLETED: frozenset({TaskStatus.RETRYING}),
    TaskStatus.FAILED: frozenset(),
}


class FailureReason(str, Enum):
    RETRY_BUDGET_EXHAUSTED = "retry_budget_exhausted"
    DEPENDENCY_BLOCKED = "dependency_blocked"
    CANCELLED = "cancelled"


# ---------------------------------------------------------------------------
# Request / project specification
# ---------------------------------------------------------------------------

class ProjectSpec(BaseModel):
    """What to build. Immutable once a session starts."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(default="", description="Plugin name")
    prompt: str = Field(default="", description="Free-text description of the plugin")
    features: tuple[str, ...] = Field(default=(), description="Ordered feature descriptions")
    incremental_mode: bool = Field(default=True, description="Feed full prior file contents as context")
    use_agents: bool = Field(default=True, description="Feed prior attempt issues back on retry")
    user_id: str = Field(default="", description="Owning user identifier")
    alias: str | None = Field(default=None, description="Optional display name")

    @property
    def display_name(self) -> str:
        return self.alias or self.name


class GenerationRequest(BaseModel):
    """Generation-trigger payload as received from the transport layer."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str = ""
    alias: str | None = None
    prompt: str = ""
    user_id: str = ""
    use_incremental_mode: bool = True
    use_agents: bool = True
    features: list[str] = Field(default_factory=list)

    def to_project_spec(self) -> ProjectSpec:
        return ProjectSpec(
            name=self.name.strip(),
            prompt=self.prompt.strip(),
            features=tuple(f.strip() for f in self.features if f.strip()),
            incremental_mode=self.use_incremental_mode,
            use_agents=self.use_agents,
            user_id=self.user_id,
            alias=self.alias,
        )


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

class CheckResult(BaseModel):
    """Outcome of one named validation check."""
    name: str = Field(..., description="Check name, e.g. 'dependency_satisfaction'")
    passed: bool = Field(...)
    message: str = Field(default="")
    issues: list[str] = Field(default_factory=list)


class FileValidation(BaseModel):
    """All check results for one generated file."""
    path: str = Field(...)
    checks: list[CheckResult] = Field(default_factory=list)

    @property
    def passed(self) -> bool:
        return all(c.passed for c in self.checks)

    @property
    def pass_ratio(self) -> float:
        if not self.checks:
            return 1.0
        return sum(1 for c in self.checks if c.passed) / len(self.checks)

    @property
    def issues(self) -> list[str]:
        return [f"[{c.name}] {issue}" for c in self.checks if not c.passed for issue in c.issues]


class ProjectValidation(BaseModel):
    """Result of the whole-project re-check."""
    checks: list[CheckResult] = Field(default_factory=list)
    implicated: dict[str, list[str]] = Field(
        default_factory=dict, description="File path -> issues blaming that file",
    )

    @property
    def passed(self) -> bool:
        return all(c.passed for c in self.checks)


# ---------------------------------------------------------------------------
# Tasks and files
# ---------------------------------------------------------------------------

class GeneratedFile(BaseModel):
    """Content produced by one successful generation attempt."""
    model_config = ConfigDict(frozen=True)

    path: str = Field(...)
    kind: FileKind = Field(...)
    content: str = Field(...)
    size: int = Field(default=0, description="Content length in characters")
    quality_score: int = Field(default=0, ge=0, le=100)
    created_at: datetime = Field(default_factory=datetime.now)
    attempt: int = Field(default=1, description="Attempt number that produced this file")


class TaskFailure(BaseModel):
    reason: FailureReason = Field(...)
    message: str = Field(default="")
    blocking_task: str | None = Field(default=None)


class FileTask(BaseModel):
    """One file to generate, with its dependencies and state."""
    path: str = Field(..., description="File path relative to the project root; also the task id")
    kind: FileKind = Field(...)
    description: str = Field(default="")
    features: list[str] = Field(default_factory=list, description="Feature descriptions this file implements")
    dependencies: list[str] = Field(default_factory=list, description="Paths that must complete first")
    provides: list[str] = Field(default_factory=list, description="Symbols dependents expect, e.g. 'class:HealCommand'")
    declaration_index: int = Field(default=0)
    order: int = Field(default=0, description="Position in the deterministic plan order")
    status: TaskStatus = Field(default=TaskStatus.PENDING)
    attempts: int = Field(default=0)
    result: GeneratedFile | None = Field(default=None)
    validation: FileValidation | None = Field(default=None)
    feedback: list[str] = Field(default_factory=list, description="Issues from the last failed attempt")
    failure: TaskFailure | None = Field(default=None)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def transition(self, new_status: TaskStatus) -> None:
        if new_status not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransition(f"{self.path}: {self.status.value} -> {new_status.value} not allowed")
        self.status = new_status


class ProjectPlan(BaseModel):
    """Ordered file tasks for one plugin project."""
    plugin_name: str = Field(...)
    plugin_class: str = Field(..., description="Main class simple name")
    base_package: str = Field(...)
    tasks: list[FileTask] = Field(default_factory=list)

    @property
    def main_class_fqn(self) -> str:
        return f"{self.base_package}.{self.plugin_class}"

    def get(self, path: str) -> FileTask | None:
        for task in self.tasks:
            if task.path == path:
                return task
        return None

    def dependents_of(self, path: str) -> list[FileTask]:
        """Tasks that depend on *path*, directly or transitively, in plan order."""
        blocked: set[str] = {path}
        changed = True
        while changed:
            changed = False
            for task in self.tasks:
                if task.path not in blocked and blocked.intersection(task.dependencies):
                    blocked.add(task.path)
                    changed = True
        return [t for t in self.tasks if t.path in blocked and t.path != path]

    def symbol_owners(self) -> dict[str, str]:
        """Map each planned symbol to the path of the task expected to provide it."""
        owners: dict[str, str] = {}
        for task in self.tasks:
            for symbol in task.provides:
                owners.setdefault(symbol, task.path)
        return owners


# ---------------------------------------------------------------------------
# Session result
# ---------------------------------------------------------------------------

class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SessionMetrics(_CamelModel):
    """Rollup computed once all tasks are terminal."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    quality_score: float = 0.0
    processing_time: float = 0.0
    files_processed: int = 0
    validation_passes: int = 0
    retries_used: int = 0


class FileDetail(_CamelModel):
    filename: str
    type: str
    quality_score: int = 0
    size: int = 0
    created_at: str = UNAVAILABLE
    status: str = TaskStatus.PENDING.value
    failure_reason: str = UNAVAILABLE


class ValidationEntry(_CamelModel):
    passed: bool
    message: str = ""
    issues: list[str] = Field(default_factory=list)


class SessionResponse(_CamelModel):
    """Response handed back across the generation-trigger boundary."""
    success: bool
    project_name: str
    file_count: int
    metrics: SessionMetrics
    file_details: list[FileDetail] = Field(default_factory=list)
    validation: dict[str, ValidationEntry] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Engine configuration (loaded from YAML / Hydra)
# ---------------------------------------------------------------------------

class ModelEndpointOverride(BaseModel):
    """Per-model endpoint that replaces the global Azure settings."""
    endpoint: str = Field(default="")
    api_key: str | None = Field(default=None)
    api_version: str | None = Field(default=None)
    api_type: str | None = Field(default=None, description="e.g. 'anthropic'")


class ModelConfig(BaseModel):
    """LLM model configuration per role."""
    default: str = Field(default="gpt-5.2", description="Default model")
    generator: str | None = Field(default=None, description="Model used to write plugin files")
    overrides: dict[str, ModelEndpointOverride] = Field(default_factory=dict)


class AzureConfig(BaseModel):
    """Azure OpenAI connection settings."""
    api_key: str = Field(default="", description="Azure OpenAI API key (or ${ENV_VAR})")
    api_version: str = Field(default="", description="API version")
    endpoint: str = Field(default="", description="Azure endpoint URL")


class ScoringConfig(BaseModel):
    """Weights for the per-file quality score."""
    validation_weight: float = Field(default=0.7, ge=0)
    size_weight: float = Field(default=0.3, ge=0)
    retry_penalty: int = Field(default=10, ge=0, description="Ceiling reduction per retry")
    min_size_ratio: float = Field(default=0.5, gt=0, description="Fraction of expected size scored as full")
    expected_sizes: dict[str, int] = Field(
        default_factory=lambda: {
            FileKind.BUILD_CONFIG.value: 1200,
            FileKind.PLUGIN_DESCRIPTOR.value: 200,
            FileKind.MAIN_CLASS.value: 900,
            FileKind.COMMAND.value: 900,
            FileKind.LISTENER.value: 700,
            FileKind.FEATURE.value: 900,
            FileKind.CONFIG.value: 150,
            FileKind.RESOURCE.value: 100,
        }
    )


class ProjectConfig(BaseModel):
    """Engine configuration loaded from config.yaml."""
    output_dir: str = Field(default="output/", description="Where generated projects are written")

    # Azure OpenAI
    azure: AzureConfig = Field(default_factory=AzureConfig)

    # Models
    models: ModelConfig = Field(default_factory=ModelConfig)

    # Engine settings
    max_attempts: int = Field(default=3, ge=1, description="Generation attempts allowed per file")
    max_parallel: int = Field(default=1, ge=1, description="Ready tasks generated at once (1 = sequential)")
    session_timeout: float | None = Field(default=None, description="Seconds before the session cancels itself")
    include_build_file: bool = Field(default=False, description="Also plan a pom.xml")
    min_quality_score: int = Field(default=0, ge=0, le=100, description="Passing files scoring below this are retried")
    timeout: int = Field(default=120, description="LLM call timeout in seconds")
    seed: int = Field(default=42, description="LLM seed for reproducibility")

    scoring: ScoringConfig = Field(default_factory=ScoringConfig)

    # Validation rules
    enabled_checks: dict[str, bool] = Field(
        default_factory=lambda: {
            "syntax": True,
            "dependency_satisfaction": True,
            "naming_consistency": True,
            "duplicate_definitions": True,
        }
    )
