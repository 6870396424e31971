"""Branch naming and checkout helpers for sequential task branches."""

from __future__ import annotations

import logging
import re
from pathlib import Path

from ..errors import GitCommandError
from .commands import git_output, run_git, status_porcelain

logger = logging.getLogger(__name__)

BRANCH_PREFIX = "ralphy"
_SLUG_MAX_LEN = 50
_NON_SLUG_RE = re.compile(r"[^a-z0-9]+")


def slugify(text: str) -> str:
    """Turn free text into a branch-safe slug of at most 50 characters."""
    slug = _NON_SLUG_RE.sub("-", str(text or "").lower()).strip("-")
    return slug[:_SLUG_MAX_LEN]


def task_branch_name(task_title: str) -> str:
    return f"{BRANCH_PREFIX}/{slugify(task_title)}"


def agent_branch_name(task_title: str, agent_number: int) -> str:
    return f"{BRANCH_PREFIX}/agent-{agent_number}-{slugify(task_title)}"


def get_current_branch(repo: Path | str) -> str:
    try:
        return git_output(["rev-parse", "--abbrev-ref", "HEAD"], repo)
    except GitCommandError:
        return ""


def list_local_branches(repo: Path | str) -> list[str]:
    output = git_output(["branch", "--format=%(refname:short)"], repo)
    return [line.strip() for line in output.splitlines() if line.strip()]


def branch_exists(branch_name: str, repo: Path | str) -> bool:
    result = run_git(["rev-parse", "--verify", "--quiet", f"refs/heads/{branch_name}"], repo, check=False)
    return result.returncode == 0


def get_default_base_branch(repo: Path | str) -> str:
    """Prefer ``main``, then ``master``, then whatever is checked out."""
    branches = list_local_branches(repo)
    for candidate in ("main", "master"):
        if candidate in branches:
            return candidate
    return get_current_branch(repo)


def _stash_head(repo: Path | str) -> str:
    return run_git(["rev-parse", "-q", "--verify", "refs/stash"], repo, check=False).stdout.strip()


def create_task_branch(task_title: str, base_branch: str, repo: Path | str) -> str:
    """Check out a fresh ``ralphy/<slug>`` branch from ``base_branch``.

    Local changes are stashed around the switch and restored afterwards; a
    failed pull of the base branch is ignored.

    Returns:
        str: Name of the checked-out task branch.
    """
    branch_name = task_branch_name(task_title)
    stashed = False
    if status_porcelain(repo):
        before = _stash_head(repo)
        run_git(["stash", "push", "-m", "ralphy-autostash"], repo)
        # Untracked-only changes leave the stash untouched.
        stashed = _stash_head(repo) != before
    try:
        run_git(["checkout", base_branch], repo)
        pulled = run_git(["pull", "origin", base_branch], repo, check=False)
        if pulled.returncode != 0:
            logger.debug("Pull of %s skipped: %s", base_branch, pulled.stderr.strip())
        if branch_exists(branch_name, repo):
            run_git(["checkout", branch_name], repo)
        else:
            run_git(["checkout", "-b", branch_name], repo)
    finally:
        if stashed:
            popped = run_git(["stash", "pop"], repo, check=False)
            if popped.returncode != 0:
                logger.warning("Could not restore stashed changes: %s", popped.stderr.strip())
    return branch_name


def return_to_base_branch(base_branch: str, repo: Path | str) -> None:
    result = run_git(["checkout", base_branch], repo, check=False)
    if result.returncode != 0:
        logger.warning("Could not return to %s: %s", base_branch, result.stderr.strip())
