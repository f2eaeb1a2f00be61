"""Deterministic tools for symbol extraction, validation, prompting and output."""

from .content_cleaner import clean_generated_content
from .symbols import provided_symbols, referenced_symbols, scan_java
from .validators import ProjectView, register_rule, registered_rules, validate_file, validate_project

__all__ = [
    "ProjectView",
    "clean_generated_content",
    "provided_symbols",
    "referenced_symbols",
    "register_rule",
    "registered_rules",
    "scan_java",
    "validate_file",
    "validate_project",
]
