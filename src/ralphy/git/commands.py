"""Thin subprocess wrapper around the git CLI."""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path

from ..errors import GitCommandError

logger = logging.getLogger(__name__)


def run_git(args: list[str], cwd: Path | str, *, check: bool = True) -> subprocess.CompletedProcess[str]:
    """Run ``git <args>`` in ``cwd`` and capture text output.

    Args:
        args: Git arguments, without the leading ``git``.
        cwd: Repository or worktree directory.
        check: Raise :class:`GitCommandError` on a non-zero exit.

    Returns:
        subprocess.CompletedProcess[str]: Completed process with stdout/stderr.
    """
    logger.debug("git %s (cwd=%s)", " ".join(args), cwd)
    result = subprocess.run(
        ["git", *args],
        cwd=str(cwd),
        capture_output=True,
        text=True,
    )
    if check and result.returncode != 0:
        raise GitCommandError(args, result.returncode, result.stderr, result.stdout)
    return result


def git_output(args: list[str], cwd: Path | str) -> str:
    """Run a git command and return its stripped stdout."""
    return run_git(args, cwd).stdout.strip()


def git_available() -> bool:
    return shutil.which("git") is not None


def is_git_repository(path: Path | str) -> bool:
    result = run_git(["rev-parse", "--is-inside-work-tree"], path, check=False)
    return result.returncode == 0 and result.stdout.strip() == "true"


def status_porcelain(cwd: Path | str) -> list[str]:
    """Return non-empty ``git status --porcelain`` lines for ``cwd``."""
    output = run_git(["status", "--porcelain"], cwd).stdout
    return [line for line in output.splitlines() if line.strip()]


def has_uncommitted_changes(cwd: Path | str) -> bool:
    """Return whether git reports staged, unstaged, or untracked changes.

    A failing status call counts as dirty so callers never discard work.
    """
    try:
        return bool(status_porcelain(cwd))
    except GitCommandError:
        return True
