"""Deterministic prompt assembly for one generation step."""

from __future__ import annotations

from ..context import ContextSnapshot
from ..models import FileTask, ProjectPlan, ProjectSpec

_LANGUAGE = {
    "build_config": "Maven pom.xml",
    "plugin_descriptor": "Bukkit plugin.yml",
    "config": "YAML configuration",
}


def render_context(context: ContextSnapshot) -> str:
    """Full contents of every already generated file, in generation order."""
    if not len(context):
        return "No files have been generated yet."
    parts = [f"EXISTING FILES ({len(context)}):"]
    for entry in context:
        parts.append(
            f"=== {entry.path} ===\n"
            f"Kind: {entry.kind.value}\n"
            f"Description: {entry.description}\n"
            f"{entry.content.rstrip()}"
        )
    return "\n\n".join(parts)


def render_structure(plan: ProjectPlan) -> str:
    lines = [f"PROJECT STRUCTURE for {plan.plugin_name}:"]
    for task in plan.tasks:
        deps = f" (depends on: {', '.join(task.dependencies)})" if task.dependencies else ""
        lines.append(f"  {task.path}{deps}")
    return "\n".join(lines)


def build_file_prompt(
    task: FileTask,
    plan: ProjectPlan,
    spec: ProjectSpec,
    context: ContextSnapshot,
    feedback: list[str] | None = None,
) -> str:
    """Build the generation prompt for *task*.

    Identical arguments always produce an identical prompt.
    """
    kind = _LANGUAGE.get(task.kind.value, "Java source")
    features = "\n".join(f"- {f}" for f in spec.features) or "- (none)"
    expected = ", ".join(task.provides) or "none"

    sections = [
        f"Target file: {task.path}",
        (
            f"PLUGIN\n"
            f"- Name: {spec.name}\n"
            f"- Main class: {plan.main_class_fqn}\n"
            f"- Base package: {plan.base_package}\n"
            f"- Request: {spec.prompt}\n"
            f"Features:\n{features}"
        ),
        (
            f"FILE TO CREATE\n"
            f"- Path: {task.path}\n"
            f"- Kind: {task.kind.value} ({kind})\n"
            f"- Description: {task.description}\n"
            f"- Depends on: {', '.join(task.dependencies) or 'none'}\n"
            f"- Must define: {expected}"
        ),
        render_structure(plan),
        render_context(context),
    ]

    if feedback:
        issues = "\n".join(f"- {issue}" for issue in feedback)
        sections.append(
            "PREVIOUS ATTEMPT WAS REJECTED\n"
            "Fix every issue below and return the complete file:\n"
            f"{issues}"
        )

    sections.append(
        f"Return ONLY the content of {task.path}. "
        "No explanations, no markdown fences. Reference only classes, commands and "
        "config keys that exist in the files above or that the project structure plans."
    )
    return "\n\n".join(sections)
