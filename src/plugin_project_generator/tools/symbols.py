"""Symbol extraction for generated plugin files.

Symbols are namespaced strings: ``class:Name``, ``command:name`` and
``config:dotted.key``. Every function here is pure so that validation stays
deterministic for identical inputs.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

import yaml

from ..models import JAVA_KINDS, FileKind

CLASS_PREFIX = "class:"
COMMAND_PREFIX = "command:"
CONFIG_PREFIX = "config:"

# Classes that always resolve: java.lang / java.util and the common server API.
PLATFORM_CLASSES = frozenset({
    # java.lang / java.util / java.io / java.time
    "Object", "String", "StringBuilder", "Integer", "Long", "Double", "Float", "Boolean",
    "Character", "Byte", "Short", "Math", "System", "Thread", "Runnable", "Iterable",
    "Exception", "RuntimeException", "IllegalArgumentException", "IllegalStateException",
    "NullPointerException", "NumberFormatException", "IOException", "File",
    "List", "ArrayList", "LinkedList", "Map", "HashMap", "LinkedHashMap", "TreeMap",
    "ConcurrentHashMap", "Set", "HashSet", "LinkedHashSet", "TreeSet", "Collection",
    "Collections", "Arrays", "Iterator", "Optional", "Objects", "UUID", "Random",
    "Instant", "Duration", "TimeUnit", "Logger", "Level", "Override", "Deprecated",
    # Bukkit / Spigot API
    "Bukkit", "Server", "Plugin", "JavaPlugin", "PluginManager", "PluginDescriptionFile",
    "Player", "OfflinePlayer", "Entity", "LivingEntity", "World", "Location", "Block",
    "Chunk", "Material", "ItemStack", "ItemMeta", "Inventory", "PlayerInventory",
    "GameMode", "Sound", "Effect", "Particle", "Vector", "ChatColor",
    "Command", "CommandSender", "CommandExecutor", "TabCompleter", "TabExecutor",
    "ConsoleCommandSender", "PluginCommand",
    "Event", "Listener", "EventHandler", "EventPriority", "Cancellable",
    "PlayerJoinEvent", "PlayerQuitEvent", "PlayerDeathEvent", "PlayerMoveEvent",
    "PlayerInteractEvent", "PlayerRespawnEvent", "AsyncPlayerChatEvent",
    "BlockBreakEvent", "BlockPlaceEvent", "EntityDamageEvent", "EntityDamageByEntityEvent",
    "Configuration", "ConfigurationSection", "FileConfiguration", "YamlConfiguration",
    "BukkitRunnable", "BukkitTask", "BukkitScheduler",
    "PotionEffect", "PotionEffectType", "Attribute",
})

_NOISE_RE = re.compile(
    r"//[^\n]*|/\*.*?\*/|\"(?:\\.|[^\"\\\n])*\"|'(?:\\.|[^'\\\n])*'",
    re.DOTALL,
)

_PACKAGE_RE = re.compile(r"^\s*package\s+([\w.]+)\s*;", re.MULTILINE)
_IMPORT_RE = re.compile(r"^\s*import\s+(static\s+)?([\w.]+?)(\.\*)?\s*;", re.MULTILINE)
_TYPE_DECL_RE = re.compile(r"\b(?:class|interface|enum|record)\s+([A-Z]\w*)")
_PUBLIC_TYPE_RE = re.compile(
    r"\bpublic\s+(?:(?:abstract|final|sealed|static|strictfp)\s+)*(?:class|interface|enum|record)\s+([A-Z]\w*)"
)
_NEW_RE = re.compile(r"\bnew\s+([A-Z]\w*)")
_INHERIT_RE = re.compile(r"\b(?:extends|implements)\s+([^{;]+)")
_STATIC_CALL_RE = re.compile(r"(?<![\w.])([A-Z]\w*)\s*\.\s*[a-zA-Z_]\w*\s*\(")
_VAR_DECL_RE = re.compile(r"(?<![\w.@])([A-Z]\w*)(?:<[^;(){}]*>)?(?:\[\])?\s+[a-z_]\w*\s*[;=,)]")
_CAPITALISED_RE = re.compile(r"\b[A-Z]\w*")
_GET_COMMAND_RE = re.compile(r'getCommand\s*\(\s*"([\w:-]+)"\s*\)')
_CONFIG_KEY_RE = re.compile(
    r'getConfig\s*\(\s*\)\s*\.\s*(?:get\w*|contains|isSet|set)\s*\(\s*"([\w.\-]+)"'
)
_EXTENDS_PLUGIN_RE = re.compile(r"\bextends\s+(?:[\w.]*\.)?JavaPlugin\b")


def strip_java_noise(content: str) -> str:
    """Blank out comments and string/char literals, keeping line structure."""
    def _replace(m: re.Match) -> str:
        text = m.group(0)
        if text.startswith("/"):
            return "\n" * text.count("\n") or " "
        return '""'
    return _NOISE_RE.sub(_replace, content)


def _strip_comments(content: str) -> str:
    def _replace(m: re.Match) -> str:
        text = m.group(0)
        if text.startswith("/"):
            return "\n" * text.count("\n") or " "
        return text
    return _NOISE_RE.sub(_replace, content)


# ---------------------------------------------------------------------------
# Java
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class JavaSourceInfo:
    """What a Java file declares and what it needs from the rest of the project."""
    package: str | None
    declared_types: tuple[str, ...]
    public_types: tuple[str, ...]
    class_refs: tuple[str, ...]
    command_refs: tuple[str, ...]
    config_refs: tuple[str, ...]
    extends_java_plugin: bool


def _is_candidate(name: str) -> bool:
    return len(name) > 1 and not name.isupper()


def scan_java(content: str, base_package: str = "") -> JavaSourceInfo:
    """Extract declarations and cross-file references from Java source.

    Class references exclude platform classes, names imported from packages
    outside *base_package*, and types declared in the file itself. A wildcard
    import from a foreign package makes every remaining unknown name external.
    """
    without_comments = _strip_comments(content)
    code = strip_java_noise(content)

    pkg_match = _PACKAGE_RE.search(code)
    package = pkg_match.group(1) if pkg_match else None

    declared = tuple(dict.fromkeys(_TYPE_DECL_RE.findall(code)))
    public = tuple(dict.fromkeys(_PUBLIC_TYPE_RE.findall(code)))

    external: set[str] = set()
    project_imports: set[str] = set()
    foreign_wildcard = False
    for m in _IMPORT_RE.finditer(code):
        is_static, target, wildcard = m.group(1), m.group(2), m.group(3)
        in_project = bool(base_package) and (target == base_package or target.startswith(base_package + "."))
        if wildcard:
            if not in_project:
                foreign_wildcard = True
            continue
        if is_static:
            continue
        simple = target.rsplit(".", 1)[-1]
        if in_project:
            project_imports.add(simple)
        else:
            external.add(simple)

    body = _IMPORT_RE.sub("", _PACKAGE_RE.sub("", code))
    candidates: set[str] = set(project_imports)
    candidates.update(_NEW_RE.findall(body))
    candidates.update(_STATIC_CALL_RE.findall(body))
    candidates.update(_VAR_DECL_RE.findall(body))
    for segment in _INHERIT_RE.findall(body):
        candidates.update(_CAPITALISED_RE.findall(segment))

    refs = []
    for name in sorted(candidates):
        if not _is_candidate(name) or name in declared or name in PLATFORM_CLASSES:
            continue
        if name in external and name not in project_imports:
            continue
        if foreign_wildcard and name not in project_imports:
            continue
        refs.append(name)

    return JavaSourceInfo(
        package=package,
        declared_types=declared,
        public_types=public,
        class_refs=tuple(refs),
        command_refs=tuple(sorted(set(_GET_COMMAND_RE.findall(without_comments)))),
        config_refs=tuple(sorted(set(_CONFIG_KEY_RE.findall(without_comments)))),
        extends_java_plugin=bool(_EXTENDS_PLUGIN_RE.search(code)),
    )


def bracket_issues(content: str) -> list[str]:
    """Report unbalanced ``{}``, ``()`` and ``[]`` outside comments and literals."""
    pairs = {")": "(", "]": "[", "}": "{"}
    stack: list[tuple[str, int]] = []
    issues: list[str] = []
    for lineno, line in enumerate(strip_java_noise(content).splitlines(), 1):
        for ch in line:
            if ch in "([{":
                stack.append((ch, lineno))
            elif ch in pairs:
                if not stack or stack[-1][0] != pairs[ch]:
                    issues.append(f"Unexpected '{ch}' on line {lineno}")
                    return issues
                stack.pop()
    for ch, lineno in stack:
        issues.append(f"Unclosed '{ch}' opened on line {lineno}")
    return issues


# ---------------------------------------------------------------------------
# YAML
# ---------------------------------------------------------------------------

def load_yaml_mapping(content: str) -> tuple[dict[str, Any] | None, str | None]:
    """Parse YAML content that must be a mapping. Returns ``(data, error)``."""
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        return None, f"Invalid YAML: {e}".splitlines()[0]
    if not isinstance(data, dict):
        return None, f"Expected a YAML mapping at top level, got {type(data).__name__}"
    return data, None


def flatten_keys(mapping: dict[str, Any], prefix: str = "") -> list[str]:
    """Dotted key paths for every key in a nested mapping, parents included."""
    keys: list[str] = []
    for key, value in mapping.items():
        path = f"{prefix}{key}"
        keys.append(path)
        if isinstance(value, dict):
            keys.extend(flatten_keys(value, prefix=f"{path}."))
    return keys


def manifest_commands(data: dict[str, Any]) -> list[str]:
    commands = data.get("commands") or {}
    if not isinstance(commands, dict):
        return []
    return [str(name) for name in commands]


# ---------------------------------------------------------------------------
# Per-kind symbol tables
# ---------------------------------------------------------------------------

def provided_symbols(kind: FileKind, content: str, base_package: str = "") -> set[str]:
    """Symbols a file of *kind* makes available to the rest of the project."""
    if kind in JAVA_KINDS:
        info = scan_java(content, base_package)
        return {f"{CLASS_PREFIX}{name}" for name in info.declared_types}
    if kind == FileKind.PLUGIN_DESCRIPTOR:
        data, _ = load_yaml_mapping(content)
        return {f"{COMMAND_PREFIX}{c}" for c in manifest_commands(data or {})}
    if kind == FileKind.CONFIG:
        data, _ = load_yaml_mapping(content)
        return {f"{CONFIG_PREFIX}{k}" for k in flatten_keys(data or {})}
    return set()


def referenced_symbols(kind: FileKind, content: str, base_package: str = "") -> set[str]:
    """Symbols a file of *kind* expects some project file to provide."""
    if kind in JAVA_KINDS:
        info = scan_java(content, base_package)
        refs = {f"{CLASS_PREFIX}{name}" for name in info.class_refs}
        refs.update(f"{COMMAND_PREFIX}{c}" for c in info.command_refs)
        refs.update(f"{CONFIG_PREFIX}{k}" for k in info.config_refs)
        return refs
    if kind == FileKind.PLUGIN_DESCRIPTOR:
        data, _ = load_yaml_mapping(content)
        main = str((data or {}).get("main") or "").strip()
        if main:
            return {f"{CLASS_PREFIX}{main.rsplit('.', 1)[-1]}"}
    return set()
