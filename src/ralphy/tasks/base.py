"""Task source contracts shared by every backlog format."""

from __future__ import annotations

from typing import Literal, Optional, Protocol, runtime_checkable

from ..runtime.domain.models import Task

TaskSourceType = Literal["markdown", "yaml", "github"]


@runtime_checkable
class TaskSource(Protocol):
    """Backlog of work items; the only way the orchestrator reads or mutates task state."""

    type: TaskSourceType

    def get_all_tasks(self) -> list[Task]:
        """Return every incomplete task in backing-store order."""
        ...

    def get_next_task(self) -> Optional[Task]:
        """Return the first incomplete task, or ``None`` when the backlog is empty."""
        ...

    def mark_complete(self, task_id: str) -> None:
        """Flag one task as done. Calling it twice for the same id is a no-op."""
        ...

    def count_remaining(self) -> int:
        ...

    def count_completed(self) -> int:
        ...


@runtime_checkable
class GroupedTaskSource(TaskSource, Protocol):
    """Task source that tags tasks with parallel groups.

    Group ``0`` means the task must run on its own and is never batched.
    """

    def get_tasks_in_group(self, group: int) -> list[Task]:
        ...

    def get_parallel_group(self, title: str) -> int:
        ...


def supports_grouping(source: TaskSource) -> bool:
    """Return whether ``source`` exposes parallel-group lookups."""
    return callable(getattr(source, "get_tasks_in_group", None)) and callable(
        getattr(source, "get_parallel_group", None)
    )
