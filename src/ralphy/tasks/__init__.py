"""Task sources: markdown checklists, YAML task files, and GitHub issues."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from ..errors import TaskSourceError
from .base import GroupedTaskSource, TaskSource, TaskSourceType, supports_grouping
from .github import GitHubTaskSource
from .markdown import MarkdownTaskSource
from .yaml_file import YamlTaskSource


def create_task_source(
    source_type: TaskSourceType,
    *,
    file_path: Optional[Path | str] = None,
    repo: Optional[str] = None,
    label: Optional[str] = None,
) -> TaskSource:
    """Build the task source for ``source_type``.

    Raises:
        TaskSourceError: If the type is unknown or its required argument is missing.
    """
    if source_type == "markdown":
        if not file_path:
            raise TaskSourceError("file_path is required for markdown task source")
        return MarkdownTaskSource(file_path)
    if source_type == "yaml":
        if not file_path:
            raise TaskSourceError("file_path is required for yaml task source")
        return YamlTaskSource(file_path)
    if source_type == "github":
        if not repo:
            raise TaskSourceError("repo is required for github task source")
        return GitHubTaskSource(repo, label)
    raise TaskSourceError(f"Unknown task source type: {source_type}")


__all__ = [
    "GitHubTaskSource",
    "GroupedTaskSource",
    "MarkdownTaskSource",
    "TaskSource",
    "TaskSourceType",
    "YamlTaskSource",
    "create_task_source",
    "supports_grouping",
]
