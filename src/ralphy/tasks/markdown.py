"""Markdown checklist task source.

Tasks are lines of the form ``- [ ] Do something`` (incomplete) or
``- [x] Did something`` (complete). The 1-based line number is the task id.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Optional

from ..errors import TaskSourceError
from ..io_utils import FileLock, atomic_write_text, lock_path_for
from ..runtime.domain.models import Task
from .base import TaskSourceType

_INCOMPLETE_RE = re.compile(r"^- \[ \] (.+)$")
_INCOMPLETE_PREFIX_RE = re.compile(r"^- \[ \] ")
_COMPLETED_RE = re.compile(r"^- \[x\] ", re.IGNORECASE)


class MarkdownTaskSource:
    """Read and complete checklist items in a markdown document."""

    type: TaskSourceType = "markdown"

    def __init__(self, file_path: Path | str) -> None:
        self.file_path = Path(file_path)
        self._lock = FileLock(lock_path_for(self.file_path))

    def _read_lines(self) -> list[str]:
        try:
            return self.file_path.read_text(encoding="utf-8").split("\n")
        except FileNotFoundError as exc:
            raise TaskSourceError(f"Task file not found: {self.file_path}") from exc

    def get_all_tasks(self) -> list[Task]:
        tasks: list[Task] = []
        for index, line in enumerate(self._read_lines()):
            match = _INCOMPLETE_RE.match(line.rstrip("\r"))
            if match:
                tasks.append(Task(id=str(index + 1), title=match.group(1).strip()))
        return tasks

    def get_next_task(self) -> Optional[Task]:
        tasks = self.get_all_tasks()
        return tasks[0] if tasks else None

    def mark_complete(self, task_id: str) -> None:
        """Flip the checkbox on line ``task_id``; already-checked or unknown lines are left alone."""
        try:
            line_index = int(task_id) - 1
        except (TypeError, ValueError):
            return
        with self._lock:
            lines = self._read_lines()
            if line_index < 0 or line_index >= len(lines):
                return
            updated = _INCOMPLETE_PREFIX_RE.sub("- [x] ", lines[line_index], count=1)
            if updated == lines[line_index]:
                return
            lines[line_index] = updated
            atomic_write_text(self.file_path, "\n".join(lines))

    def count_remaining(self) -> int:
        return sum(1 for line in self._read_lines() if _INCOMPLETE_PREFIX_RE.match(line))

    def count_completed(self) -> int:
        return sum(1 for line in self._read_lines() if _COMPLETED_RE.match(line))
