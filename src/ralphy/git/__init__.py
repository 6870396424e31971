"""Git primitives consumed by the orchestration core."""

from .branch import (
    agent_branch_name,
    branch_exists,
    create_task_branch,
    get_current_branch,
    get_default_base_branch,
    return_to_base_branch,
    slugify,
    task_branch_name,
)
from .commands import git_available, has_uncommitted_changes, is_git_repository, run_git
from .merge import (
    abort_merge,
    complete_merge,
    delete_local_branch,
    get_conflicted_files,
    is_merge_in_progress,
    is_merged_into_head,
    merge_agent_branch,
)
from .pr import create_pull_request

__all__ = [
    "abort_merge",
    "agent_branch_name",
    "branch_exists",
    "complete_merge",
    "create_pull_request",
    "create_task_branch",
    "delete_local_branch",
    "get_conflicted_files",
    "get_current_branch",
    "get_default_base_branch",
    "git_available",
    "has_uncommitted_changes",
    "is_git_repository",
    "is_merge_in_progress",
    "is_merged_into_head",
    "merge_agent_branch",
    "return_to_base_branch",
    "run_git",
    "slugify",
    "task_branch_name",
]
