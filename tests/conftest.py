"""Shared test fixtures."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Callable

import pytest
import yaml

from plugin_project_generator.context import ContextSnapshot
from plugin_project_generator.errors import GenerationCapabilityError
from plugin_project_generator.models import FileKind, FileTask, ProjectConfig, ProjectPlan, ProjectSpec
from plugin_project_generator.planner import build_plan

FIXTURES_DIR = Path(__file__).parent / "fixtures"
SAMPLE_CONFIG = FIXTURES_DIR / "sample_config.yaml"

_TARGET_RE = re.compile(r"^Target file: (.+)$", re.MULTILINE)
_TOKEN_RE = re.compile(r"(?<![\w/])/([a-zA-Z][\w-]*)")


# ---------------------------------------------------------------------------
# Content builders
# ---------------------------------------------------------------------------

def manifest_source(name: str, main_fqn: str, commands: list[str] = ()) -> str:
    data = {"name": name, "version": "1.0.0", "main": main_fqn, "api-version": "1.20"}
    if commands:
        data["commands"] = {c: {"description": f"/{c} command"} for c in commands}
    return yaml.safe_dump(data, sort_keys=False)


def main_class_source(
    base_package: str,
    class_name: str,
    commands: dict[str, str] | None = None,
    listeners: list[str] = (),
    features: list[str] = (),
) -> str:
    """Main plugin class wiring *commands* (token -> class), listeners and feature classes."""
    subpackages = {"commands": commands.values() if commands else [], "listeners": listeners, "features": features}
    imports = ["import org.bukkit.plugin.java.JavaPlugin;"]
    for sub, classes in subpackages.items():
        for cls in sorted(set(classes)):
            imports.append(f"import {base_package}.{sub}.{cls};")
    body = []
    for token, cls in (commands or {}).items():
        body.append(f'        getCommand("{token}").setExecutor(new {cls}(this));')
    for cls in listeners:
        body.append(f"        getServer().getPluginManager().registerEvents(new {cls}(this), this);")
    for cls in features:
        body.append(f"        new {cls}(this).start();")
    return (
        f"package {base_package};\n\n"
        + "\n".join(sorted(imports)) + "\n\n"
        f"public class {class_name} extends JavaPlugin {{\n\n"
        "    @Override\n"
        "    public void onEnable() {\n"
        "        saveDefaultConfig();\n"
        + "\n".join(body) + ("\n" if body else "")
        + f'        getLogger().info("{class_name} enabled");\n'
        "    }\n"
        "}\n"
    )


def command_source(base_package: str, class_name: str, plugin_class: str, extra: str = "") -> str:
    return (
        f"package {base_package}.commands;\n\n"
        f"import {base_package}.{plugin_class};\n"
        "import org.bukkit.command.Command;\n"
        "import org.bukkit.command.CommandExecutor;\n"
        "import org.bukkit.command.CommandSender;\n"
        "import org.bukkit.entity.Player;\n\n"
        f"public class {class_name} implements CommandExecutor {{\n"
        f"    private final {plugin_class} plugin;\n\n"
        f"    public {class_name}({plugin_class} plugin) {{\n"
        "        this.plugin = plugin;\n"
        "    }\n\n"
        "    @Override\n"
        "    public boolean onCommand(CommandSender sender, Command command, String label, String[] args) {\n"
        "        if (!(sender instanceof Player)) {\n"
        '            sender.sendMessage("Players only.");\n'
        "            return true;\n"
        "        }\n"
        f"{extra}"
        "        return true;\n"
        "    }\n"
        "}\n"
    )


def listener_source(base_package: str, class_name: str, plugin_class: str) -> str:
    return (
        f"package {base_package}.listeners;\n\n"
        f"import {base_package}.{plugin_class};\n"
        "import org.bukkit.event.EventHandler;\n"
        "import org.bukkit.event.Listener;\n"
        "import org.bukkit.event.player.PlayerJoinEvent;\n\n"
        f"public class {class_name} implements Listener {{\n"
        f"    private final {plugin_class} plugin;\n\n"
        f"    public {class_name}({plugin_class} plugin) {{\n"
        "        this.plugin = plugin;\n"
        "    }\n\n"
        "    @EventHandler\n"
        "    public void onJoin(PlayerJoinEvent event) {\n"
        '        event.getPlayer().sendMessage("Welcome!");\n'
        "    }\n"
        "}\n"
    )


def manager_source(base_package: str, class_name: str, plugin_class: str) -> str:
    return (
        f"package {base_package}.features;\n\n"
        f"import {base_package}.{plugin_class};\n\n"
        f"public class {class_name} {{\n"
        f"    private final {plugin_class} plugin;\n\n"
        f"    public {class_name}({plugin_class} plugin) {{\n"
        "        this.plugin = plugin;\n"
        "    }\n\n"
        "    public void start() {\n"
        '        plugin.getLogger().info("started");\n'
        "    }\n"
        "}\n"
    )


def config_source(mapping: dict) -> str:
    return yaml.safe_dump(mapping, sort_keys=False)


def _class_of(task: FileTask) -> str:
    return task.path.rsplit("/", 1)[-1].removesuffix(".java")


def good_content(task: FileTask, plan: ProjectPlan) -> str:
    """Valid, mutually consistent content for any planned task."""
    pkg, main = plan.base_package, plan.plugin_class
    if task.kind == FileKind.PLUGIN_DESCRIPTOR:
        commands = [s.split(":", 1)[1] for s in task.provides]
        return manifest_source(plan.plugin_name, plan.main_class_fqn, commands)
    if task.kind == FileKind.MAIN_CLASS:
        commands: dict[str, str] = {}
        listeners: list[str] = []
        features: list[str] = []
        for t in plan.tasks:
            if t.kind == FileKind.COMMAND:
                for text in t.features:
                    for token in _TOKEN_RE.findall(text):
                        commands.setdefault(token.lower(), _class_of(t))
            elif t.kind == FileKind.LISTENER:
                listeners.append(_class_of(t))
            elif t.kind == FileKind.FEATURE:
                features.append(_class_of(t))
        return main_class_source(pkg, main, commands, listeners, features)
    if task.kind == FileKind.COMMAND:
        return command_source(pkg, _class_of(task), main)
    if task.kind == FileKind.LISTENER:
        return listener_source(pkg, _class_of(task), main)
    if task.kind == FileKind.FEATURE:
        return manager_source(pkg, _class_of(task), main)
    if task.kind == FileKind.CONFIG:
        return config_source({"messages": {"prefix": "&a[Plugin]"}})
    if task.kind == FileKind.BUILD_CONFIG:
        return f"<project><artifactId>{main}</artifactId></project>\n"
    return "resource\n"


# ---------------------------------------------------------------------------
# Scripted generator
# ---------------------------------------------------------------------------

class ScriptedGenerator:
    """FileGenerator returning scripted replies per target path.

    ``scripts`` maps a path to a list consumed one reply per call; an item may
    be an exception instance to raise. Paths without a script (or whose
    script is used up) fall back to ``default(path)``.
    """

    def __init__(
        self,
        scripts: dict[str, list] | None = None,
        default: Callable[[str], str] | None = None,
        on_call: Callable[[str], None] | None = None,
    ) -> None:
        self.scripts = {k: list(v) for k, v in (scripts or {}).items()}
        self.default = default
        self.on_call = on_call
        self.calls: list[tuple[str, str, tuple[str, ...]]] = []

    def generate(self, prompt: str, context: ContextSnapshot) -> str:
        match = _TARGET_RE.search(prompt)
        assert match, "prompt has no target line"
        path = match.group(1).strip()
        self.calls.append((path, prompt, tuple(context.paths)))
        if self.on_call is not None:
            self.on_call(path)

        queue = self.scripts.get(path)
        if queue:
            reply = queue.pop(0)
            if isinstance(reply, Exception):
                raise reply
            return reply
        if self.default is None:
            raise GenerationCapabilityError(f"no script for {path}")
        return self.default(path)

    def calls_for(self, path: str) -> list[tuple[str, str, tuple[str, ...]]]:
        return [c for c in self.calls if c[0] == path]


class RecordingCallbacks:
    """SessionCallbacks that records events instead of printing."""

    def __init__(self) -> None:
        self.events: list[tuple[str, str]] = []
        self.responses: list = []

    def on_plan_ready(self, plan):
        self.events.append(("plan", plan.plugin_name))

    def on_task_start(self, task, attempt, max_attempts):
        self.events.append(("start", task.path))

    def on_task_end(self, task):
        self.events.append(("end", task.path))

    def on_retry(self, task, issues):
        self.events.append(("retry", task.path))

    def on_warning(self, message):
        self.events.append(("warning", message))

    def on_error(self, message):
        self.events.append(("error", message))

    def on_session_end(self, response):
        self.responses.append(response)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def sample_config_path() -> Path:
    return SAMPLE_CONFIG


@pytest.fixture
def heal_spec() -> ProjectSpec:
    return ProjectSpec(
        name="Heal Plugin",
        prompt="A survival helper plugin",
        features=("/heal restores the player's health",),
    )


@pytest.fixture
def two_command_spec() -> ProjectSpec:
    return ProjectSpec(
        name="Heal Plugin",
        prompt="A survival helper plugin",
        features=("/heal restores the player's health", "/fly grants flight"),
    )


@pytest.fixture
def engine_config() -> ProjectConfig:
    return ProjectConfig(max_attempts=3)


@pytest.fixture
def callbacks() -> RecordingCallbacks:
    return RecordingCallbacks()


@pytest.fixture
def good_generator_for() -> Callable[..., ScriptedGenerator]:
    """Factory: a ScriptedGenerator producing valid content for *spec*'s plan."""
    def _make(spec: ProjectSpec, scripts: dict[str, list] | None = None, **kwargs) -> ScriptedGenerator:
        plan = build_plan(spec)
        return ScriptedGenerator(
            scripts=scripts,
            default=lambda path: good_content(plan.get(path), plan),
            **kwargs,
        )
    return _make
