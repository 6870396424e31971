"""Merge primitives used during branch reconciliation."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from ..errors import GitCommandError
from ..runtime.domain.models import MergeResult
from .commands import git_output, run_git

logger = logging.getLogger(__name__)

CONFLICT_MARKERS = ("<<<<<<< ", ">>>>>>> ")


def get_conflicted_files(repo: Path | str) -> list[str]:
    """Return paths that still have unmerged index entries."""
    try:
        output = git_output(["diff", "--name-only", "--diff-filter=U"], repo)
    except GitCommandError:
        return []
    return [line for line in output.splitlines() if line.strip()]


def files_with_conflict_markers(repo: Path | str, files: list[str]) -> list[str]:
    """Return the subset of ``files`` whose content still holds conflict markers."""
    base = Path(repo)
    remaining: list[str] = []
    for rel_path in files:
        path = base / rel_path
        if not path.is_file():
            continue
        for line in path.read_text(encoding="utf-8", errors="replace").splitlines():
            if line.startswith(CONFLICT_MARKERS) or line == "=======":
                remaining.append(rel_path)
                break
    return remaining


def is_merge_in_progress(repo: Path | str) -> bool:
    result = run_git(["rev-parse", "-q", "--verify", "MERGE_HEAD"], repo, check=False)
    return result.returncode == 0


def is_merged_into_head(branch_name: str, repo: Path | str) -> bool:
    """Return whether every commit of ``branch_name`` is reachable from HEAD."""
    result = run_git(["merge-base", "--is-ancestor", branch_name, "HEAD"], repo, check=False)
    return result.returncode == 0


def merge_agent_branch(branch_name: str, target_branch: str, repo: Path | str) -> MergeResult:
    """Check out ``target_branch`` and merge ``branch_name`` with ``--no-ff``.

    Conflicts are reported in the result instead of raised; any other git
    failure becomes a failed result carrying git's message.
    """
    try:
        run_git(["checkout", target_branch], repo)
        merged = run_git(
            ["merge", branch_name, "--no-ff", "-m", f"Merge {branch_name} into {target_branch}"],
            repo,
            check=False,
        )
        if merged.returncode == 0:
            return MergeResult.merged()
        conflicted = get_conflicted_files(repo)
        if conflicted:
            return MergeResult.conflicted(conflicted)
        raise GitCommandError(["merge", branch_name], merged.returncode, merged.stderr, merged.stdout)
    except GitCommandError as exc:
        return MergeResult.failed(str(exc))


def abort_merge(repo: Path | str) -> None:
    """Abort an in-progress merge; does nothing when no merge is running."""
    result = run_git(["merge", "--abort"], repo, check=False)
    if result.returncode != 0:
        logger.debug("merge --abort: %s", result.stderr.strip())


def complete_merge(repo: Path | str, resolved_files: Optional[list[str]] = None) -> bool:
    """Stage resolved files and commit with git's prepared merge message.

    Returns ``False`` when conflicts remain or the commit fails (for example
    because the agent already committed the merge).
    """
    if get_conflicted_files(repo):
        return False
    try:
        if resolved_files:
            run_git(["add", "-A", "--", *resolved_files], repo)
        else:
            staged = git_output(["diff", "--cached", "--name-only"], repo)
            if not staged:
                run_git(["add", "-A"], repo)
        run_git(["commit", "--no-edit"], repo)
        return True
    except GitCommandError as exc:
        logger.debug("complete_merge failed: %s", exc)
        return False


def delete_local_branch(branch_name: str, repo: Path | str, *, force: bool = False) -> bool:
    result = run_git(["branch", "-D" if force else "-d", branch_name], repo, check=False)
    return result.returncode == 0
