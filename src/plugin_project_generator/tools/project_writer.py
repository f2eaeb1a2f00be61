"""Write a finished session to disk."""

from __future__ import annotations

import json
import logging
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..session import Session

logger = logging.getLogger(__name__)

SESSION_FILE = "session.json"


def _safe_target(root: Path, rel: str) -> Path:
    """Resolve *rel* under *root*, rejecting absolute paths and ``..`` segments."""
    posix = PurePosixPath(rel)
    if posix.is_absolute() or ".." in posix.parts:
        raise ValueError(f"Refusing to write outside the project directory: {rel}")
    return root.joinpath(*posix.parts)


def write_project(session: Session, output_dir: str | Path) -> Path:
    """Write every completed file plus ``session.json`` under *output_dir*.

    The project lands in ``<output_dir>/<plugin class name>/``; that directory
    is returned.
    """
    if session.response is None:
        raise RuntimeError("Session has not finished; nothing to write")

    root = Path(output_dir) / session.plan.plugin_class
    root.mkdir(parents=True, exist_ok=True)

    for file in session.files:
        target = _safe_target(root, file.path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(file.content, encoding="utf-8")
        logger.debug("Wrote %s (%d chars)", target, file.size)

    (root / SESSION_FILE).write_text(
        json.dumps(session.response.model_dump(mode="json", by_alias=True), indent=2),
        encoding="utf-8",
    )
    logger.info("Wrote %d file(s) to %s", len(session.files), root)
    return root
