"""Incremental multi-file generation and validation engine for server plugin projects."""

__version__ = "0.1.0"
