"""Strip chat formatting from raw model output so it can be written as a file."""

from __future__ import annotations

import re
from typing import Any

from ..models import JAVA_KINDS, FileKind

_FENCE_RE = re.compile(r"^\s*```[\w.+-]*\s*$", re.MULTILINE)

# First line of real content, per kind
_START_MARKERS: dict[str, re.Pattern[str]] = {
    "java": re.compile(r"^\s*(package|import|public|final|abstract|class|interface|enum|@)"),
    "yaml": re.compile(r"^\s*[\w.-]+\s*:"),
    "xml": re.compile(r"^\s*<(\?xml|project)"),
}


def response_text(response: Any) -> str:
    """Extract the reply text from an AG2 chat response."""
    if hasattr(response, "summary") and response.summary:
        return str(response.summary)
    if hasattr(response, "chat_history") and response.chat_history:
        last = response.chat_history[-1]
        return last.get("content", "") if isinstance(last, dict) else str(last)
    if response is None:
        return ""
    return str(response)


def _family(kind: FileKind) -> str | None:
    if kind in JAVA_KINDS:
        return "java"
    if kind in (FileKind.PLUGIN_DESCRIPTOR, FileKind.CONFIG):
        return "yaml"
    if kind == FileKind.BUILD_CONFIG:
        return "xml"
    return None


def clean_generated_content(text: str, kind: FileKind) -> str:
    """Remove markdown fences and leading explanation from generated *text*.

    When the reply holds more than one fenced block, the first one is taken.
    Leading prose is dropped up to the first line that looks like the start
    of a *kind* file; if no such line exists the text is kept as is.
    """
    blocks = re.findall(r"```[\w.+-]*[ \t]*\n(.*?)```", text, re.DOTALL)
    if blocks:
        text = blocks[0]
    else:
        text = _FENCE_RE.sub("", text)

    lines = text.strip("\n").splitlines()
    family = _family(kind)
    if family is not None:
        marker = _START_MARKERS[family]
        for i, line in enumerate(lines):
            if marker.match(line):
                lines = lines[i:]
                break

    return "\n".join(lines).strip() + "\n" if any(line.strip() for line in lines) else ""
