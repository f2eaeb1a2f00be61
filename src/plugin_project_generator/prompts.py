"""Interactive Rich prompts for missing request fields."""

from __future__ import annotations

from rich.console import Console
from rich.prompt import Confirm, Prompt

console = Console()


def prompt_name() -> str:
    """Prompt user for the plugin name."""
    while True:
        name = Prompt.ask("\n[bold]Plugin name[/]").strip()
        if any(ch.isalnum() for ch in name):
            return name
        console.print("[yellow]The name needs at least one letter or digit.[/]")


def prompt_description() -> str:
    """Prompt user for the free-text plugin description."""
    while True:
        text = Prompt.ask("\n[bold]What should the plugin do?[/]").strip()
        if text:
            return text
        console.print("[yellow]A description is required.[/]")


def prompt_features() -> list[str]:
    """Prompt for features one per line; an empty line finishes."""
    console.print("\n[bold]Features[/] (one per line, e.g. '/heal restores health'; empty line to finish)")
    features: list[str] = []
    while True:
        raw = Prompt.ask(f"  Feature {len(features) + 1}", default="")
        if not raw.strip():
            return features
        features.append(raw.strip())


def prompt_incremental_mode() -> bool:
    return Confirm.ask("\n[bold]Give each file the full contents of earlier files?[/]", default=True)


def run_interactive_prompts(config_dict: dict) -> dict:
    """Run interactive prompts for missing request fields.

    Modifies and returns config_dict with user-provided values.
    """
    if config_dict.get("name") and config_dict.get("prompt"):
        return config_dict

    console.print("\n[bold blue]New Plugin Project[/]")
    console.print("Fill in missing fields (press Enter for defaults).\n")

    if not config_dict.get("name"):
        config_dict["name"] = prompt_name()

    if not config_dict.get("prompt"):
        config_dict["prompt"] = prompt_description()

    if not config_dict.get("features"):
        config_dict["features"] = prompt_features()
        config_dict["use_incremental_mode"] = prompt_incremental_mode()

    return config_dict
