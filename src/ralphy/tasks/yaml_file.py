"""YAML task source with parallel-group support.

Expected layout::

    tasks:
      - title: "Add login form"
        completed: false
        parallel_group: 1
        description: "Optional details passed to the agent"
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

import yaml

from ..errors import TaskSourceError
from ..io_utils import FileLock, atomic_write_text, lock_path_for
from ..runtime.domain.models import Task
from .base import TaskSourceType


def _coerce_group(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


class YamlTaskSource:
    """Task list stored in a YAML document; the task title doubles as its id."""

    type: TaskSourceType = "yaml"

    def __init__(self, file_path: Path | str) -> None:
        self.file_path = Path(file_path)
        self._lock = FileLock(lock_path_for(self.file_path))

    def _load(self) -> dict[str, Any]:
        try:
            raw = yaml.safe_load(self.file_path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise TaskSourceError(f"Task file not found: {self.file_path}") from exc
        except yaml.YAMLError as exc:
            raise TaskSourceError(f"Invalid YAML in {self.file_path}: {exc}") from exc
        if not isinstance(raw, dict):
            return {"tasks": []}
        if not isinstance(raw.get("tasks"), list):
            raw["tasks"] = []
        return raw

    def _save(self, data: dict[str, Any]) -> None:
        atomic_write_text(self.file_path, yaml.safe_dump(data, sort_keys=False, allow_unicode=True))

    @staticmethod
    def _entries(data: dict[str, Any]) -> list[dict[str, Any]]:
        return [item for item in data.get("tasks", []) if isinstance(item, dict) and item.get("title")]

    @staticmethod
    def _to_task(item: dict[str, Any]) -> Task:
        title = str(item.get("title"))
        group = item.get("parallel_group")
        return Task(
            id=title,
            title=title,
            body=str(item["description"]) if item.get("description") else None,
            parallel_group=_coerce_group(group) if group is not None else None,
            completed=bool(item.get("completed")),
        )

    def get_all_tasks(self) -> list[Task]:
        return [self._to_task(item) for item in self._entries(self._load()) if not item.get("completed")]

    def get_next_task(self) -> Optional[Task]:
        tasks = self.get_all_tasks()
        return tasks[0] if tasks else None

    def mark_complete(self, task_id: str) -> None:
        with self._lock:
            data = self._load()
            for item in self._entries(data):
                if str(item.get("title")) == task_id:
                    if item.get("completed"):
                        return
                    item["completed"] = True
                    self._save(data)
                    return

    def count_remaining(self) -> int:
        return sum(1 for item in self._entries(self._load()) if not item.get("completed"))

    def count_completed(self) -> int:
        return sum(1 for item in self._entries(self._load()) if item.get("completed"))

    def get_tasks_in_group(self, group: int) -> list[Task]:
        """Return incomplete tasks whose ``parallel_group`` equals ``group``."""
        return [
            self._to_task(item)
            for item in self._entries(self._load())
            if not item.get("completed") and _coerce_group(item.get("parallel_group")) == group
        ]

    def get_parallel_group(self, title: str) -> int:
        for item in self._entries(self._load()):
            if str(item.get("title")) == title:
                return _coerce_group(item.get("parallel_group"))
        return 0
