"""Append-only task progress log at ``.ralphy/progress.txt``."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Literal, Optional

from ...config import get_progress_path
from ...io_utils import FileLock, lock_path_for

ProgressStatus = Literal["completed", "failed"]


class ProgressLog:
    """Record task outcomes as ``- [✓] YYYY-MM-DD HH:MM - title`` lines.

    Entries are only written when the progress file already exists, so a
    project opts in by creating it.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._lock = FileLock(lock_path_for(self.path))

    @classmethod
    def for_project(cls, work_dir: Path | str) -> "ProgressLog":
        return cls(get_progress_path(work_dir))

    def log_task(self, title: str, status: ProgressStatus, *, when: Optional[datetime] = None) -> bool:
        """Append one entry; returns ``False`` when the log file is absent."""
        if not self.path.exists():
            return False
        stamp = (when or datetime.now(timezone.utc)).strftime("%Y-%m-%d %H:%M")
        icon = "✓" if status == "completed" else "✗"
        with self._lock:
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(f"- [{icon}] {stamp} - {title}\n")
        return True
