"""Cross-file validation rules.

Each rule is an independent function registered under a check name and
returns a :class:`CheckResult`. ``validate_file`` runs every enabled rule;
``validate_project`` re-runs dependency satisfaction and duplicate detection
over the whole current file set and names the files to blame.
"""

from __future__ import annotations

import difflib
import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Callable

from ..context import ContextEntry, ContextSnapshot
from ..models import (
    JAVA_KINDS,
    YAML_KINDS,
    CheckResult,
    FileKind,
    FileValidation,
    GeneratedFile,
    ProjectPlan,
    ProjectValidation,
)
from .symbols import (
    CLASS_PREFIX,
    COMMAND_PREFIX,
    CONFIG_PREFIX,
    bracket_issues,
    load_yaml_mapping,
    manifest_commands,
    provided_symbols,
    referenced_symbols,
    scan_java,
)

logger = logging.getLogger(__name__)

SYNTAX = "syntax"
DEPENDENCY_SATISFACTION = "dependency_satisfaction"
NAMING_CONSISTENCY = "naming_consistency"
DUPLICATE_DEFINITIONS = "duplicate_definitions"
PROJECT_DEPENDENCY_SATISFACTION = "project_dependency_satisfaction"
PROJECT_DUPLICATE_DEFINITIONS = "project_duplicate_definitions"

_REQUIRED_MANIFEST_KEYS = ("name", "version", "main")
_CONFIG_WILDCARD = f"{CONFIG_PREFIX}*"


# ---------------------------------------------------------------------------
# Project view
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ProjectView:
    """Everything a rule may look at besides the file itself.

    ``context`` never contains the file under validation.
    """
    base_package: str = ""
    plugin_name: str | None = None
    main_class_fqn: str | None = None
    owners: dict[str, str] = field(default_factory=dict)
    expected: dict[str, tuple[str, ...]] = field(default_factory=dict)
    order: dict[str, int] = field(default_factory=dict)
    context: ContextSnapshot = field(default_factory=ContextSnapshot)

    @classmethod
    def from_plan(cls, plan: ProjectPlan, context: ContextSnapshot) -> ProjectView:
        return cls(
            base_package=plan.base_package,
            plugin_name=plan.plugin_name,
            main_class_fqn=plan.main_class_fqn,
            owners=plan.symbol_owners(),
            expected={t.path: tuple(t.provides) for t in plan.tasks},
            order={t.path: t.order for t in plan.tasks},
            context=context,
        )

    def excluding(self, path: str) -> ProjectView:
        return ProjectView(
            base_package=self.base_package,
            plugin_name=self.plugin_name,
            main_class_fqn=self.main_class_fqn,
            owners=self.owners,
            expected=self.expected,
            order=self.order,
            context=self.context.without(path),
        )

    def owner_of(self, symbol: str) -> str | None:
        owner = self.owners.get(symbol)
        if owner is None and symbol.startswith(CONFIG_PREFIX):
            owner = self.owners.get(_CONFIG_WILDCARD)
        return owner

    def rank(self, path: str) -> tuple[int, str]:
        return (self.order.get(path, len(self.order)), path)


Rule = Callable[[GeneratedFile, ProjectView], CheckResult]

_RULES: dict[str, Rule] = {}


def register_rule(name: str) -> Callable[[Rule], Rule]:
    """Register *func* as the rule for check *name*."""
    def decorator(func: Rule) -> Rule:
        _RULES[name] = func
        return func
    return decorator


def registered_rules() -> list[str]:
    return list(_RULES)


def _result(name: str, issues: list[str], ok_message: str, fail_message: str | None = None) -> CheckResult:
    if issues:
        return CheckResult(
            name=name,
            passed=False,
            message=fail_message or f"{len(issues)} issue(s) found",
            issues=issues,
        )
    return CheckResult(name=name, passed=True, message=ok_message)


def _package_from_path(path: str) -> str | None:
    parts = PurePosixPath(path).parts
    for i in range(len(parts) - 1):
        if parts[i] == "java" and i > 0 and parts[i - 1] == "main":
            return ".".join(parts[i + 1:-1])
    return None


def _normalise(name: str) -> str:
    return re.sub(r"[^a-z0-9]", "", name.lower())


def _available_symbols(entries: list[ContextEntry] | ContextSnapshot, base_package: str) -> dict[str, list[str]]:
    """Symbol -> paths providing it, across *entries*."""
    providers: dict[str, list[str]] = {}
    for entry in entries:
        for symbol in provided_symbols(entry.kind, entry.content, base_package):
            providers.setdefault(symbol, []).append(entry.path)
    return providers


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

@register_rule(SYNTAX)
def check_syntax(file: GeneratedFile, view: ProjectView) -> CheckResult:
    """Well-formedness for the file's declared kind."""
    issues: list[str] = []
    if not file.content.strip():
        return _result(SYNTAX, ["File is empty"], "")

    if file.kind in JAVA_KINDS:
        issues.extend(bracket_issues(file.content))
        info = scan_java(file.content, view.base_package)
        if not info.package:
            issues.append("Missing package declaration")
        if not info.declared_types:
            issues.append("No class, interface, enum or record declaration found")
        if file.kind == FileKind.MAIN_CLASS and not info.extends_java_plugin:
            issues.append("Main class does not extend JavaPlugin")
    elif file.kind in YAML_KINDS:
        data, error = load_yaml_mapping(file.content)
        if error:
            issues.append(error)
        elif file.kind == FileKind.PLUGIN_DESCRIPTOR:
            for key in _REQUIRED_MANIFEST_KEYS:
                if not data.get(key):
                    issues.append(f"plugin.yml is missing required key '{key}'")
    elif file.kind == FileKind.BUILD_CONFIG:
        try:
            root = ET.fromstring(file.content)
        except ET.ParseError as e:
            issues.append(f"Invalid XML: {e}")
        else:
            if root.tag.rsplit("}", 1)[-1] != "project":
                issues.append(f"Expected <project> root element, found <{root.tag}>")

    return _result(SYNTAX, issues, f"Well-formed {file.kind.value}", f"{len(issues)} syntax issue(s)")


def similar_class_name(name: str, symbols: set[str]) -> str | None:
    """Closest known class name to *name*, ignoring case; None if nothing is close."""
    classes = {s[len(CLASS_PREFIX):] for s in symbols if s.startswith(CLASS_PREFIX)}
    classes.discard(name)
    by_lower = {c.lower(): c for c in sorted(classes)}
    target = name.lower()
    for lower, original in by_lower.items():
        if lower == target or (min(len(lower), len(target)) >= 4 and (target in lower or lower in target)):
            return original
    matches = difflib.get_close_matches(target, list(by_lower), n=1, cutoff=0.7)
    return by_lower[matches[0]] if matches else None


@register_rule(DEPENDENCY_SATISFACTION)
def check_dependency_satisfaction(file: GeneratedFile, view: ProjectView) -> CheckResult:
    """Every cross-file reference resolves against the context plus this file.

    References to symbols that a planned, not yet generated file is expected
    to provide are deferred to the whole-project pass.
    """
    refs = referenced_symbols(file.kind, file.content, view.base_package)
    available = set(provided_symbols(file.kind, file.content, view.base_package))
    available.update(_available_symbols(view.context, view.base_package))

    issues: list[str] = []
    deferred: list[str] = []
    for ref in sorted(refs):
        if ref in available:
            continue
        owner = view.owner_of(ref)
        if owner is not None and owner != file.path and owner not in view.context:
            deferred.append(ref)
            continue
        issue = f"Undefined symbol '{ref}': not provided by this file or any generated file"
        if ref.startswith(CLASS_PREFIX):
            similar = similar_class_name(ref[len(CLASS_PREFIX):], set(available) | set(view.owners))
            if similar:
                issue += f". Did you mean '{similar}'?"
        issues.append(issue)

    message = f"All {len(refs) - len(deferred)} reference(s) resolved"
    if deferred:
        message += f"; deferred until generated: {', '.join(deferred)}"
    return _result(DEPENDENCY_SATISFACTION, issues, message, f"{len(issues)} unresolved reference(s)")


@register_rule(NAMING_CONSISTENCY)
def check_naming_consistency(file: GeneratedFile, view: ProjectView) -> CheckResult:
    """Self-declared identifiers match what the plan and dependents expect."""
    issues: list[str] = []
    expected = view.expected.get(file.path, ())

    if file.kind in JAVA_KINDS:
        info = scan_java(file.content, view.base_package)
        stem = PurePosixPath(file.path).stem
        expected_package = _package_from_path(file.path)
        if expected_package and info.package and info.package != expected_package:
            issues.append(f"Package '{info.package}' does not match path (expected '{expected_package}')")
        if stem not in info.declared_types:
            issues.append(f"File declares no type named '{stem}'")
        for public in info.public_types:
            if public != stem:
                issues.append(f"Public type '{public}' must be declared in {public}.java")
        for symbol in expected:
            if symbol.startswith(CLASS_PREFIX) and symbol[len(CLASS_PREFIX):] not in info.declared_types:
                issues.append(f"Expected class '{symbol[len(CLASS_PREFIX):]}' is not declared")
    elif file.kind == FileKind.PLUGIN_DESCRIPTOR:
        data, error = load_yaml_mapping(file.content)
        if error:
            issues.append("Cannot check identifiers: plugin.yml is not a valid mapping")
        else:
            name = str(data.get("name") or "")
            main = str(data.get("main") or "")
            if view.plugin_name and _normalise(name) != _normalise(view.plugin_name):
                issues.append(f"Plugin name '{name}' does not match project name '{view.plugin_name}'")
            if view.main_class_fqn and main != view.main_class_fqn:
                issues.append(f"Main class '{main}' does not match expected '{view.main_class_fqn}'")
            declared = set(manifest_commands(data))
            for symbol in expected:
                command = symbol[len(COMMAND_PREFIX):]
                if symbol.startswith(COMMAND_PREFIX) and command not in declared:
                    issues.append(f"Command '/{command}' expected by the command classes is not declared")
    else:
        return CheckResult(name=NAMING_CONSISTENCY, passed=True, message="No identifiers to check")

    return _result(NAMING_CONSISTENCY, issues, "Identifiers match expectations", f"{len(issues)} naming issue(s)")


@register_rule(DUPLICATE_DEFINITIONS)
def check_duplicate_definitions(file: GeneratedFile, view: ProjectView) -> CheckResult:
    """No class or command defined here is already defined by another generated file."""
    mine = {
        s for s in provided_symbols(file.kind, file.content, view.base_package)
        if s.startswith((CLASS_PREFIX, COMMAND_PREFIX))
    }
    issues: list[str] = []
    for entry in view.context:
        if entry.path == file.path:
            continue
        theirs = provided_symbols(entry.kind, entry.content, view.base_package)
        for symbol in sorted(mine & theirs):
            issues.append(f"'{symbol}' is already defined in {entry.path}")
    return _result(DUPLICATE_DEFINITIONS, issues, "No duplicate definitions", f"{len(issues)} duplicate definition(s)")


# ---------------------------------------------------------------------------
# Runners
# ---------------------------------------------------------------------------

def validate_file(
    file: GeneratedFile,
    view: ProjectView,
    enabled: dict[str, bool] | None = None,
) -> FileValidation:
    """Run every enabled rule on *file*; all failures are collected."""
    scoped = view.excluding(file.path)
    checks: list[CheckResult] = []
    for name, rule in _RULES.items():
        if enabled is not None and not enabled.get(name, True):
            continue
        checks.append(rule(file, scoped))
    validation = FileValidation(path=file.path, checks=checks)
    if not validation.passed:
        logger.debug("Validation failed for %s: %s", file.path, validation.issues)
    return validation


def validate_project(
    entries: list[ContextEntry],
    view: ProjectView,
    *,
    defer_pending: bool = True,
) -> ProjectValidation:
    """Re-check references and duplicates across the full current file set.

    Unresolved references implicate the referencing file. Duplicate symbols
    implicate every defining file except the earliest in plan order. With
    *defer_pending*, references to symbols owned by planned files that are not
    in *entries* are not counted.
    """
    present = {e.path for e in entries}
    providers = _available_symbols(entries, view.base_package)
    implicated: dict[str, list[str]] = {}

    ref_issues: list[str] = []
    for entry in sorted(entries, key=lambda e: view.rank(e.path)):
        for ref in sorted(referenced_symbols(entry.kind, entry.content, view.base_package)):
            if ref in providers:
                continue
            owner = view.owner_of(ref)
            if defer_pending and owner is not None and owner not in present:
                continue
            issue = f"Undefined symbol '{ref}' referenced in {entry.path}"
            implicated.setdefault(entry.path, []).append(issue)
            ref_issues.append(f"{entry.path}: {issue}")

    dup_issues: list[str] = []
    for symbol in sorted(providers):
        if not symbol.startswith((CLASS_PREFIX, COMMAND_PREFIX)):
            continue
        definers = sorted(set(providers[symbol]), key=view.rank)
        if len(definers) < 2:
            continue
        first = definers[0]
        for path in definers[1:]:
            issue = f"'{symbol}' is also defined in {first}"
            implicated.setdefault(path, []).append(issue)
            dup_issues.append(f"{path}: {issue}")

    checks = [
        _result(
            PROJECT_DEPENDENCY_SATISFACTION, ref_issues,
            f"All references resolve across {len(entries)} file(s)",
            f"{len(ref_issues)} unresolved reference(s) across the project",
        ),
        _result(
            PROJECT_DUPLICATE_DEFINITIONS, dup_issues,
            "No symbol is defined twice",
            f"{len(dup_issues)} duplicate definition(s) across the project",
        ),
    ]
    return ProjectValidation(checks=checks, implicated=implicated)
