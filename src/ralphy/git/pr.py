"""Best-effort pull-request creation through the ``gh`` CLI."""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Optional

from .commands import run_git

logger = logging.getLogger(__name__)


def push_branch(branch: str, repo: Path | str) -> bool:
    result = run_git(["push", "--set-upstream", "origin", branch], repo, check=False)
    if result.returncode != 0:
        logger.warning("Failed to push %s: %s", branch, result.stderr.strip())
        return False
    return True


def is_gh_available(repo: Path | str = ".") -> bool:
    """Return whether ``gh`` is installed and authenticated."""
    if shutil.which("gh") is None:
        return False
    result = subprocess.run(["gh", "auth", "status"], cwd=str(repo), capture_output=True, text=True)
    return result.returncode == 0


def create_pull_request(
    branch: str,
    base_branch: str,
    title: str,
    body: str,
    *,
    draft: bool = False,
    repo: Path | str = ".",
) -> Optional[str]:
    """Push ``branch`` and open a PR against ``base_branch``.

    Returns:
        Optional[str]: The PR URL printed by ``gh``, or ``None`` on any failure.
    """
    if not push_branch(branch, repo):
        return None
    args = ["gh", "pr", "create", "--base", base_branch, "--head", branch, "--title", title, "--body", body]
    if draft:
        args.append("--draft")
    try:
        result = subprocess.run(args, cwd=str(repo), capture_output=True, text=True)
    except OSError as exc:
        logger.warning("gh CLI unavailable: %s", exc)
        return None
    if result.returncode != 0:
        logger.warning("gh pr create failed: %s", result.stderr.strip())
        return None
    return result.stdout.strip() or None
