"""Session-scoped accumulator of completed file contents."""

from __future__ import annotations

import threading
from dataclasses import dataclass

from .models import FileKind, FileTask, GeneratedFile


@dataclass(frozen=True)
class ContextEntry:
    """One completed file as seen by later generation steps."""
    path: str
    kind: FileKind
    description: str
    content: str
    revision: int = 1


@dataclass(frozen=True)
class ContextSnapshot:
    """Read-only view of the accumulator at one point in time, in generation order."""
    entries: tuple[ContextEntry, ...] = ()

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    def __contains__(self, path: object) -> bool:
        return any(e.path == path for e in self.entries)

    @property
    def paths(self) -> list[str]:
        return [e.path for e in self.entries]

    def get(self, path: str) -> ContextEntry | None:
        for entry in self.entries:
            if entry.path == path:
                return entry
        return None

    def without(self, path: str) -> ContextSnapshot:
        """The same snapshot minus *path* (used when re-validating a file against everything else)."""
        return ContextSnapshot(tuple(e for e in self.entries if e.path != path))

    @classmethod
    def empty(cls) -> ContextSnapshot:
        return cls()


class ContextAccumulator:
    """Append-only log of completed files for one session.

    A path completed more than once (a completed file re-opened by the
    whole-project check and regenerated) keeps its original position and
    shows its latest revision. Nothing is ever removed.
    """

    def __init__(self) -> None:
        self._log: list[ContextEntry] = []
        self._lock = threading.Lock()

    def append(self, task: FileTask, file: GeneratedFile) -> ContextEntry:
        with self._lock:
            revision = sum(1 for e in self._log if e.path == file.path) + 1
            entry = ContextEntry(
                path=file.path,
                kind=file.kind,
                description=task.description,
                content=file.content,
                revision=revision,
            )
            self._log.append(entry)
            return entry

    def snapshot(self) -> ContextSnapshot:
        with self._lock:
            latest: dict[str, ContextEntry] = {}
            for entry in self._log:
                latest[entry.path] = entry
            # dict keeps first-insertion order, values are the latest revision
            return ContextSnapshot(tuple(latest.values()))

    def __len__(self) -> int:
        with self._lock:
            return len(self._log)
