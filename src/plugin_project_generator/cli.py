"""CLI entry point using Hydra.

Usage examples:
  ppg name="Heal Plugin" prompt="Healing utilities" 'features=["/heal restores health"]'
  ppg --config-dir examples/heal --config-name config mode=run
  ppg mode=plan name=Demo prompt="Demo plugin" 'features=["/fly toggles flight"]'
  ppg mode=validate input_dir=output/HealPlugin
"""

from __future__ import annotations

import sys
import warnings
from typing import Any

import hydra
from omegaconf import DictConfig, OmegaConf
from rich.table import Table

from ._hydra_conf import CLI_ONLY_KEYS, REQUEST_KEYS, register_configs
from .config import finalize_config
from .errors import PlanningError
from .logging_config import RichCallbacks, console, setup_logging
from .models import GenerationRequest, ProjectConfig

register_configs()

# Suppress Hydra 1.1 deprecation warning about automatic schema matching.
# Our user configs already reference the schema explicitly via ``defaults``.
warnings.filterwarnings("ignore", category=UserWarning, message=r"(?s).*ConfigStore schema.*")

# ---------------------------------------------------------------------------
# Hydra DictConfig -> Pydantic bridge
# ---------------------------------------------------------------------------


def _container(cfg: DictConfig) -> dict[str, Any]:
    return OmegaConf.to_container(cfg, resolve=True)  # type: ignore[return-value]


def _to_project_config(cfg: DictConfig | dict[str, Any]) -> ProjectConfig:
    """Convert a Hydra DictConfig (or its container) to a Pydantic ProjectConfig."""
    container = dict(cfg) if isinstance(cfg, dict) else _container(cfg)
    for key in CLI_ONLY_KEYS | REQUEST_KEYS:
        container.pop(key, None)
    config = ProjectConfig.model_validate(container)
    return finalize_config(config)


def _to_request(cfg: DictConfig | dict[str, Any]) -> GenerationRequest:
    """Pick the request fields out of the Hydra config."""
    container = cfg if isinstance(cfg, dict) else _container(cfg)
    return GenerationRequest.model_validate(
        {k: container[k] for k in REQUEST_KEYS if container.get(k) is not None}
    )


def _resolve_inputs(cfg: DictConfig) -> tuple[ProjectConfig, GenerationRequest]:
    container = _container(cfg)
    if not cfg.get("no_input", False):
        from .prompts import run_interactive_prompts
        container = run_interactive_prompts(container)
    return _to_project_config(container), _to_request(container)


# ---------------------------------------------------------------------------
# Mode handlers
# ---------------------------------------------------------------------------


def _run_mode(cfg: DictConfig) -> None:
    config, request = _resolve_inputs(cfg)

    from .pipeline import Pipeline
    from .tools.project_writer import write_project

    pipeline = Pipeline(config, callbacks=RichCallbacks())
    console.print("[bold]Starting generation session...[/]")
    try:
        session = pipeline.run(request)
    except PlanningError as e:
        console.print(f"[red]Cannot plan project: {e}[/]")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted.[/]")
        sys.exit(130)

    out = write_project(session, config.output_dir)
    response = session.response
    if response is not None and response.success:
        console.print("\n[bold green]Project generated successfully![/]")
        console.print(f"  Output: {out}")
    else:
        console.print("\n[bold red]Project incomplete.[/]")
        console.print(f"  Partial output: {out}")
        if response is not None:
            for issue in response.validation["task_status"].issues:
                console.print(f"  [red]{issue}[/]")
        sys.exit(1)


def _plan_mode(cfg: DictConfig) -> None:
    config, request = _resolve_inputs(cfg)

    from .pipeline import Pipeline

    pipeline = Pipeline(config, callbacks=RichCallbacks())
    try:
        plan = pipeline.plan(request)
    except PlanningError as e:
        console.print(f"[red]Cannot plan project: {e}[/]")
        sys.exit(1)

    pipeline.callbacks.on_plan_ready(plan)
    console.print(f"  Main class: {plan.main_class_fqn}")
    owners = plan.symbol_owners()
    if owners:
        console.print("\n[bold]Planned symbols:[/]")
        for symbol, path in sorted(owners.items()):
            console.print(f"    {symbol} [dim]<- {path}[/]")


def _validate_mode(cfg: DictConfig) -> None:
    input_dir = cfg.get("input_dir") or ""
    if not input_dir:
        console.print("[red]validate mode needs input_dir=<plugin project directory>[/]")
        sys.exit(1)

    from .pipeline import Pipeline

    config = _to_project_config(cfg)
    pipeline = Pipeline(config, callbacks=RichCallbacks())
    try:
        result = pipeline.run_validate_only(input_dir)
    except FileNotFoundError as e:
        console.print(f"[red]{e}[/]")
        sys.exit(1)

    table = Table(title=f"Validation: {input_dir}")
    table.add_column("Check", style="cyan")
    table.add_column("Result")
    table.add_column("Issues")
    for check in result.checks:
        table.add_row(
            check.name,
            "[green]PASS[/]" if check.passed else "[red]FAIL[/]",
            "\n".join(check.issues[:5]) or check.message,
        )
    console.print(table)
    if not result.passed:
        sys.exit(1)


_MODE_DISPATCH: dict[str, Any] = {
    "run": _run_mode,
    "plan": _plan_mode,
    "validate": _validate_mode,
}


# ---------------------------------------------------------------------------
# Hydra entry point
# ---------------------------------------------------------------------------


@hydra.main(config_path=None, config_name="config", version_base=None)
def hydra_entry(cfg: DictConfig) -> None:
    """Hydra-managed CLI entry point."""
    setup_logging(verbose=cfg.get("verbose", False), quiet=cfg.get("quiet", False))

    mode = cfg.get("mode", "run")
    handler = _MODE_DISPATCH.get(mode)
    if handler is None:
        console.print(f"[red]Unknown mode: {mode!r}. Choose from: {', '.join(_MODE_DISPATCH)}[/]")
        sys.exit(1)

    handler(cfg)


def main() -> None:
    """Package entry point (``[project.scripts]`` target)."""
    hydra_entry()  # pylint: disable=no-value-for-parameter
