"""Agent-assisted resolution of an in-progress merge."""

from __future__ import annotations

import logging
from pathlib import Path

from ...git.merge import (
    complete_merge,
    files_with_conflict_markers,
    get_conflicted_files,
    is_merge_in_progress,
    is_merged_into_head,
)
from ...prompts import build_conflict_resolution_prompt
from .worker_adapter import AgentEngine

logger = logging.getLogger(__name__)


class ConflictResolver:
    """Ask an engine to fix conflicted files, then verify and finish the merge."""

    def __init__(self, engine: AgentEngine) -> None:
        self.engine = engine

    def resolve(self, conflicted_files: list[str], branch_name: str, repo: Path | str) -> bool:
        """Resolve the merge of ``branch_name`` currently stopped in ``repo``.

        Returns ``True`` only when no unmerged paths and no conflict markers
        remain and the merge is committed (by us or by the agent). The caller
        aborts the merge on ``False``.
        """
        if not conflicted_files:
            return True

        logger.info("Attempting AI-assisted conflict resolution for %s file(s)...", len(conflicted_files))
        logger.debug("Conflicted files: %s", ", ".join(conflicted_files))
        prompt = build_conflict_resolution_prompt(conflicted_files, branch_name)
        try:
            result = self.engine.execute(prompt, repo)
        except Exception:
            logger.exception("AI conflict resolution error for %s", branch_name)
            return False

        if not result.success:
            logger.error("AI conflict resolution failed: %s", result.error)
            return False

        remaining = get_conflicted_files(repo)
        if remaining:
            logger.error("AI did not resolve all conflicts. Remaining: %s", ", ".join(remaining))
            return False
        marked = files_with_conflict_markers(repo, conflicted_files)
        if marked:
            logger.error("Conflict markers remain in: %s", ", ".join(marked))
            return False

        if complete_merge(repo, conflicted_files):
            logger.info("AI successfully resolved merge conflicts")
            return True
        if is_merge_in_progress(repo):
            logger.error("Merge of %s could not be committed", branch_name)
            return False
        if not is_merged_into_head(branch_name, repo):
            logger.error("Agent reported success but %s is not merged into HEAD", branch_name)
            return False
        logger.debug("Merge appears to be already completed by AI")
        return True
