"""Rich console setup and session progress helpers."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

if TYPE_CHECKING:
    from .models import FileTask, ProjectPlan, SessionResponse

console = Console()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


def setup_logging(*, verbose: bool = False, quiet: bool = False) -> None:
    """Configure root logger with Rich handler."""
    level = logging.DEBUG if verbose else (logging.ERROR if quiet else logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=verbose)],
        force=True,
    )


logger = logging.getLogger("ppg")


# ---------------------------------------------------------------------------
# Session callbacks protocol
# ---------------------------------------------------------------------------


class SessionCallbacks(Protocol):
    """Protocol for session progress reporting.

    ``on_session_end`` is the hook for external persistence or log shipping.
    The engine logs and ignores anything it raises.
    """

    def on_plan_ready(self, plan: ProjectPlan) -> None: ...
    def on_task_start(self, task: FileTask, attempt: int, max_attempts: int) -> None: ...
    def on_task_end(self, task: FileTask) -> None: ...
    def on_retry(self, task: FileTask, issues: list[str]) -> None: ...
    def on_warning(self, message: str) -> None: ...
    def on_error(self, message: str) -> None: ...
    def on_session_end(self, response: SessionResponse) -> None: ...


class RichCallbacks:
    """Rich-based implementation of SessionCallbacks."""

    def on_plan_ready(self, plan: ProjectPlan) -> None:
        console.rule(f"[bold blue]PLAN[/] — {plan.plugin_name} ({len(plan.tasks)} files)")
        table = Table(show_lines=False)
        table.add_column("#", style="dim", width=4)
        table.add_column("File", style="cyan")
        table.add_column("Kind")
        table.add_column("Depends on")
        for task in plan.tasks:
            table.add_row(
                str(task.order + 1),
                task.path,
                task.kind.value,
                ", ".join(task.dependencies) or "—",
            )
        console.print(table)

    def on_task_start(self, task: FileTask, attempt: int, max_attempts: int) -> None:
        console.print(f"  [dim]Generating[/] {task.path} [dim](attempt {attempt}/{max_attempts})[/]")

    def on_task_end(self, task: FileTask) -> None:
        if task.status.value == "completed" and task.result is not None:
            console.print(f"  [green]OK[/] {task.path} (quality {task.result.quality_score})")
        else:
            reason = task.failure.message if task.failure else task.status.value
            console.print(f"  [red]FAILED[/] {task.path}: {reason}")

    def on_retry(self, task: FileTask, issues: list[str]) -> None:
        console.print(f"  [yellow]Retrying[/] {task.path} ({len(issues)} issue(s))")
        for issue in issues[:5]:
            console.print(f"    [dim]- {issue}[/]")

    def on_warning(self, message: str) -> None:
        console.print(f"  [yellow]WARNING:[/] {message}")

    def on_error(self, message: str) -> None:
        console.print(f"  [red]ERROR:[/] {message}")

    def on_session_end(self, response: SessionResponse) -> None:
        status = "[green]SUCCESS[/]" if response.success else "[red]INCOMPLETE[/]"
        console.rule(f"[bold blue]SESSION[/] — {response.project_name}: {status}")
        m = response.metrics
        console.print(
            f"  Files processed: {m.files_processed}  Validation passes: {m.validation_passes}  "
            f"Retries: {m.retries_used}  Quality: {m.quality_score:.1f}  Time: {m.processing_time:.1f}s"
        )
