"""Plan builder: turns a ProjectSpec into an ordered, acyclic list of FileTasks.

Planning is deterministic: identical specs always produce the same tasks in
the same order. Mutually independent tasks are ordered by feature declaration
order, then by file path.
"""

from __future__ import annotations

import heapq
import logging
import re
from dataclasses import dataclass, field

from .errors import PlanningError
from .models import FileKind, FileTask, ProjectPlan, ProjectSpec
from .tools.symbols import CLASS_PREFIX, COMMAND_PREFIX, CONFIG_PREFIX

logger = logging.getLogger(__name__)

MANIFEST_PATH = "src/main/resources/plugin.yml"
CONFIG_PATH = "src/main/resources/config.yml"
BUILD_PATH = "pom.xml"

# Provided by the config task: any config key may come from it.
CONFIG_WILDCARD = f"{CONFIG_PREFIX}*"

_STOPWORDS = frozenset({
    "a", "an", "the", "to", "of", "for", "and", "or", "with", "without", "in", "on", "at",
    "by", "from", "into", "that", "which", "who", "when", "whenever", "is", "are", "be",
    "can", "should", "will", "must", "may", "their", "them", "they", "it", "its", "this",
    "these", "those", "add", "adds", "allow", "allows", "let", "lets", "create", "make",
    "give", "gives", "use", "uses", "using", "have", "has", "player", "players", "user",
    "users", "server", "plugin", "feature", "system", "command", "commands", "listener",
    "manager", "event", "events", "some", "all", "each", "every", "new", "custom", "simple",
})

_LISTENER_RE = re.compile(
    r"\b(when|whenever|event|events|listen|listens|listener|join|joins|joined|quit|quits|leave|"
    r"leaves|death|dies|die|respawn|respawns|break|breaks|place|places|chat|chats)\b"
)
_CONFIG_RE = re.compile(
    r"\b(config|configs|configurable|configuration|setting|settings|message|messages|cooldown|"
    r"cooldowns|customi[sz]able|toggle|toggles)\b"
)
_COMMAND_TOKEN_RE = re.compile(r"(?<![\w/])/([a-zA-Z][\w-]*)")
_COMMAND_WORD_RE = re.compile(r"\bcommands?\b")

_KIND_LAYOUT: dict[FileKind, tuple[str, str]] = {
    FileKind.COMMAND: ("commands", "Command"),
    FileKind.LISTENER: ("listeners", "Listener"),
    FileKind.FEATURE: ("features", "Manager"),
}


# ---------------------------------------------------------------------------
# Naming helpers
# ---------------------------------------------------------------------------

def _pascal(words: list[str]) -> str:
    return "".join(w[:1].upper() + w[1:] for w in words if w)


def plugin_identity(name: str) -> tuple[str, str]:
    """Return ``(main class name, base package)`` for a plugin name."""
    words = re.findall(r"[A-Za-z0-9]+", name)
    class_name = _pascal(words)
    if not class_name:
        raise PlanningError(f"Project name {name!r} has no usable characters")
    if class_name[0].isdigit():
        class_name = f"Plugin{class_name}"
    segment = re.sub(r"[^a-z0-9]", "", name.lower())
    if segment[0].isdigit():
        segment = f"p{segment}"
    return class_name, f"com.{segment}"


def _significant_words(text: str) -> list[str]:
    words = re.findall(r"[a-z][a-z0-9]*", text.lower())
    return [w for w in words if w not in _STOPWORDS and len(w) > 1]


# ---------------------------------------------------------------------------
# Feature classification
# ---------------------------------------------------------------------------

@dataclass
class _FeatureGroup:
    """One or more features that end up in the same file."""
    index: int
    kind: FileKind
    stems: list[str]
    features: list[str] = field(default_factory=list)
    commands: list[str] = field(default_factory=list)
    number: int = 0

    @property
    def class_name(self) -> str:
        suffix = _KIND_LAYOUT[self.kind][1]
        stem = "".join(self.stems)
        name = stem if stem.endswith(suffix) else f"{stem}{suffix}"
        return f"{name}{self.number}" if self.number else name


def _classify(index: int, text: str) -> _FeatureGroup:
    lower = text.lower()
    command = _COMMAND_TOKEN_RE.search(text)
    if command or _COMMAND_WORD_RE.search(lower):
        kind = FileKind.COMMAND
    elif _LISTENER_RE.search(lower):
        kind = FileKind.LISTENER
    else:
        kind = FileKind.FEATURE

    if command:
        stem = _pascal(re.findall(r"[A-Za-z0-9]+", command.group(1).lower()))
    else:
        stem = _pascal(_significant_words(text)[:2])
    if not stem:
        stem = f"Feature{index + 1}"
    return _FeatureGroup(
        index=index,
        kind=kind,
        stems=[stem],
        features=[text],
        commands=[command.group(1).lower()] if command else [],
    )


def _group_path(group: _FeatureGroup, base_package: str) -> str:
    subdir = _KIND_LAYOUT[group.kind][0]
    return f"src/main/java/{base_package.replace('.', '/')}/{subdir}/{group.class_name}.java"


def _dedupe_class_names(groups: list[_FeatureGroup], plugin_class: str) -> None:
    """Number feature classes whose name is already taken by the main class or an earlier group."""
    taken = {plugin_class}
    for group in groups:
        original = group.class_name
        while group.class_name in taken:
            group.number = group.number + 1 if group.number else 2
        if group.number:
            logger.info("Renamed feature class %s to %s to avoid a clash", original, group.class_name)
        taken.add(group.class_name)


def _mentions(group: _FeatureGroup, other: _FeatureGroup) -> bool:
    """True when any feature text in *group* refers to *other* by command or class name."""
    for text in group.features:
        lower = text.lower()
        for cmd in other.commands:
            if re.search(rf"(?<![\w/])/{re.escape(cmd)}\b", lower):
                return True
        if re.search(rf"\b{re.escape(other.class_name.lower())}\b", lower):
            return True
    return False


# ---------------------------------------------------------------------------
# Cycle merging (Tarjan's strongly connected components)
# ---------------------------------------------------------------------------

def _strongly_connected(edges: dict[int, set[int]]) -> list[list[int]]:
    """Strongly connected components of *edges*, each sorted, listed by smallest member."""
    index_of: dict[int, int] = {}
    low: dict[int, int] = {}
    on_stack: set[int] = set()
    stack: list[int] = []
    components: list[list[int]] = []
    counter = 0

    def visit(node: int) -> None:
        nonlocal counter
        index_of[node] = low[node] = counter
        counter += 1
        stack.append(node)
        on_stack.add(node)
        for nxt in sorted(edges[node]):
            if nxt not in index_of:
                visit(nxt)
                low[node] = min(low[node], low[nxt])
            elif nxt in on_stack:
                low[node] = min(low[node], index_of[nxt])
        if low[node] == index_of[node]:
            component: list[int] = []
            while True:
                member = stack.pop()
                on_stack.discard(member)
                component.append(member)
                if member == node:
                    break
            components.append(sorted(component))

    for node in sorted(edges):
        if node not in index_of:
            visit(node)
    return sorted(components, key=lambda c: c[0])


def _merge_cycles(
    groups: list[_FeatureGroup],
    edges: dict[int, set[int]],
) -> tuple[list[_FeatureGroup], dict[int, set[int]]]:
    """Collapse every dependency cycle into a single combined group."""
    components = _strongly_connected(edges)
    component_of: dict[int, int] = {}
    merged: list[_FeatureGroup] = []
    for cid, members in enumerate(components):
        first = groups[members[0]]
        combined = _FeatureGroup(index=first.index, kind=first.kind, stems=[])
        for m in members:
            g = groups[m]
            combined.stems.extend(g.stems)
            combined.features.extend(g.features)
            combined.commands.extend(c for c in g.commands if c not in combined.commands)
            component_of[m] = cid
        if len(members) > 1:
            logger.info(
                "Merged mutually dependent features into %s: %s",
                combined.class_name, "; ".join(combined.features),
            )
        merged.append(combined)

    merged_edges: dict[int, set[int]] = {cid: set() for cid in range(len(merged))}
    for src, targets in edges.items():
        for dst in targets:
            a, b = component_of[src], component_of[dst]
            if a != b:
                merged_edges[a].add(b)
    return merged, merged_edges


# ---------------------------------------------------------------------------
# Ordering (Kahn's algorithm with a deterministic tie-break)
# ---------------------------------------------------------------------------

def order_tasks(tasks: list[FileTask]) -> list[FileTask]:
    """Topologically sort *tasks*; ready tasks pop by ``(declaration_index, path)``."""
    by_path = {t.path: t for t in tasks}
    remaining = {t.path: {d for d in t.dependencies if d in by_path} for t in tasks}
    dependents: dict[str, list[str]] = {t.path: [] for t in tasks}
    for path, deps in remaining.items():
        for dep in deps:
            dependents[dep].append(path)

    heap = [(by_path[p].declaration_index, p) for p, deps in remaining.items() if not deps]
    heapq.heapify(heap)
    ordered: list[FileTask] = []
    while heap:
        _, path = heapq.heappop(heap)
        ordered.append(by_path[path])
        for child in dependents[path]:
            remaining[child].discard(path)
            if not remaining[child]:
                heapq.heappush(heap, (by_path[child].declaration_index, child))

    if len(ordered) != len(tasks):
        stuck = sorted(set(by_path) - {t.path for t in ordered})
        raise PlanningError(f"Dependency cycle left after merging: {', '.join(stuck)}")
    for position, task in enumerate(ordered):
        task.order = position
    return ordered


# ---------------------------------------------------------------------------
# Plan builder
# ---------------------------------------------------------------------------

def build_plan(spec: ProjectSpec, *, include_build_file: bool = False) -> ProjectPlan:
    """Derive the ordered file plan for *spec*.

    Raises:
        PlanningError: if the spec has no name or no prompt.
    """
    missing = [f for f in ("name", "prompt") if not getattr(spec, f).strip()]
    if missing:
        raise PlanningError(f"Project spec is missing required field(s): {', '.join(missing)}")

    plugin_class, base_package = plugin_identity(spec.name)

    # Classify features; features that derive the same file share one group
    groups: list[_FeatureGroup] = []
    by_path: dict[str, _FeatureGroup] = {}
    for index, text in enumerate(spec.features):
        group = _classify(index, text)
        path = _group_path(group, base_package)
        if path in by_path:
            existing = by_path[path]
            existing.features.extend(group.features)
            existing.commands.extend(c for c in group.commands if c not in existing.commands)
            continue
        by_path[path] = group
        groups.append(group)

    edges: dict[int, set[int]] = {i: set() for i in range(len(groups))}
    for i, a in enumerate(groups):
        for j, b in enumerate(groups):
            if i != j and _mentions(a, b):
                edges[i].add(j)
    groups, edges = _merge_cycles(groups, edges)
    _dedupe_class_names(groups, plugin_class)

    manifest_path = MANIFEST_PATH
    main_path = f"src/main/java/{base_package.replace('.', '/')}/{plugin_class}.java"
    commands = sorted({c for g in groups for c in g.commands})

    tasks: list[FileTask] = []
    if include_build_file:
        tasks.append(FileTask(
            path=BUILD_PATH,
            kind=FileKind.BUILD_CONFIG,
            description=f"Maven build file for {spec.name} targeting the Spigot API",
            declaration_index=-2,
        ))
    tasks.append(FileTask(
        path=manifest_path,
        kind=FileKind.PLUGIN_DESCRIPTOR,
        description="plugin.yml descriptor declaring name, version, main class and commands",
        provides=[f"{COMMAND_PREFIX}{c}" for c in commands],
        declaration_index=-1,
    ))
    tasks.append(FileTask(
        path=main_path,
        kind=FileKind.MAIN_CLASS,
        description=f"Main plugin class {plugin_class} extending JavaPlugin; registers commands and listeners",
        dependencies=[manifest_path],
        provides=[f"{CLASS_PREFIX}{plugin_class}"],
        declaration_index=-1,
    ))

    group_paths = [_group_path(g, base_package) for g in groups]
    for cid, group in enumerate(groups):
        deps = [main_path] + sorted(group_paths[d] for d in edges[cid])
        tasks.append(FileTask(
            path=group_paths[cid],
            kind=group.kind,
            description="; ".join(group.features),
            features=list(group.features),
            dependencies=deps,
            provides=[f"{CLASS_PREFIX}{group.class_name}"],
            declaration_index=group.index,
        ))

    consumers = [cid for cid, g in enumerate(groups) if any(_CONFIG_RE.search(f.lower()) for f in g.features)]
    if consumers:
        tasks.append(FileTask(
            path=CONFIG_PATH,
            kind=FileKind.CONFIG,
            description="config.yml with every configurable value the features read",
            features=[f for cid in consumers for f in groups[cid].features],
            dependencies=sorted(group_paths[cid] for cid in consumers),
            provides=[CONFIG_WILDCARD],
            declaration_index=min(groups[cid].index for cid in consumers),
        ))

    ordered = order_tasks(tasks)
    plan = ProjectPlan(
        plugin_name=spec.name,
        plugin_class=plugin_class,
        base_package=base_package,
        tasks=ordered,
    )
    logger.info("Planned %d file(s) for %s", len(ordered), spec.name)
    for task in ordered:
        logger.debug("  %d. %s (%s) <- %s", task.order + 1, task.path, task.kind.value, task.dependencies)
    return plan
