"""Git worktree lifecycle for parallel agents."""

from __future__ import annotations

import logging
import shutil
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ...errors import GitCommandError
from ...git.branch import agent_branch_name, branch_exists
from ...git.commands import has_uncommitted_changes, run_git

logger = logging.getLogger(__name__)

WORKTREE_DIR_NAME = ".ralphy-worktrees"


@dataclass(frozen=True)
class WorktreeHandle:
    """Isolated checkout assigned to one agent."""

    worktree_dir: Path
    branch_name: str


@dataclass(frozen=True)
class CleanupResult:
    left_in_place: bool


class WorktreeManager:
    """Create and remove per-agent worktrees under one root directory.

    Each agent gets ``<root>/agent-<n>`` checked out on its own
    ``ralphy/agent-<n>-<slug>`` branch created from the base branch. Creation
    and removal may be called concurrently from worker threads; the manager
    tracks which worktrees are live so callers can observe concurrency.
    """

    def __init__(self, main_dir: Path | str, worktree_root: Optional[Path | str] = None) -> None:
        self.main_dir = Path(main_dir)
        self._root = Path(worktree_root) if worktree_root else self.main_dir / WORKTREE_DIR_NAME
        self._lock = threading.Lock()
        self._active: set[Path] = set()
        self.max_active = 0

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._active)

    def worktree_base(self) -> Path:
        """Return the worktree root, creating it on first use."""
        self._root.mkdir(parents=True, exist_ok=True)
        return self._root

    def create_agent_worktree(self, task_title: str, agent_number: int, base_branch: str) -> WorktreeHandle:
        """Create a fresh worktree and agent branch from ``base_branch``.

        A leftover branch or directory from an earlier run with the same agent
        number is removed first.

        Raises:
            GitCommandError: If git cannot create the branch or worktree.
        """
        branch_name = agent_branch_name(task_title, agent_number)
        worktree_dir = self.worktree_base() / f"agent-{agent_number}"

        # Git serializes writes to the shared repository metadata.
        with self._lock:
            run_git(["worktree", "prune"], self.main_dir)
            if worktree_dir.exists():
                run_git(["worktree", "remove", "-f", str(worktree_dir)], self.main_dir, check=False)
                if worktree_dir.exists():
                    shutil.rmtree(worktree_dir, ignore_errors=True)
                run_git(["worktree", "prune"], self.main_dir)
            if branch_exists(branch_name, self.main_dir):
                run_git(["branch", "-D", branch_name], self.main_dir)
            run_git(["branch", branch_name, base_branch], self.main_dir)
            run_git(["worktree", "add", str(worktree_dir), branch_name], self.main_dir)
            self._active.add(worktree_dir)
            self.max_active = max(self.max_active, len(self._active))

        logger.debug("Created worktree %s on %s", worktree_dir, branch_name)
        return WorktreeHandle(worktree_dir=worktree_dir, branch_name=branch_name)

    def cleanup_agent_worktree(self, worktree_dir: Path | str, branch_name: str) -> CleanupResult:
        """Remove a worktree unless it still holds uncommitted work.

        The agent branch is always kept; reconciliation decides its fate.
        """
        path = Path(worktree_dir)
        with self._lock:
            self._active.discard(path)
        if not path.exists():
            return CleanupResult(left_in_place=False)
        if has_uncommitted_changes(path):
            logger.warning("Worktree %s has uncommitted changes; leaving it in place (branch %s)", path, branch_name)
            return CleanupResult(left_in_place=True)
        with self._lock:
            try:
                run_git(["worktree", "remove", "-f", str(path)], self.main_dir)
            except GitCommandError as exc:
                logger.warning("Could not remove worktree %s: %s", path, exc)
                return CleanupResult(left_in_place=True)
        return CleanupResult(left_in_place=False)

    def list_worktrees(self) -> list[Path]:
        """Return worktree directories registered under the root."""
        output = run_git(["worktree", "list", "--porcelain"], self.main_dir).stdout
        root = self._root.resolve()
        paths: list[Path] = []
        for line in output.splitlines():
            if not line.startswith("worktree "):
                continue
            path = Path(line[len("worktree "):].strip())
            if path.resolve().parent == root:
                paths.append(path)
        return paths

    def cleanup_all_worktrees(self) -> None:
        """Force-remove every worktree under the root, then prune metadata."""
        with self._lock:
            for path in self.list_worktrees():
                result = run_git(["worktree", "remove", "-f", str(path)], self.main_dir, check=False)
                if result.returncode != 0:
                    logger.warning("Could not remove worktree %s: %s", path, result.stderr.strip())
            run_git(["worktree", "prune"], self.main_dir, check=False)
            self._active.clear()
