"""Reconcile completed agent branches into the target branch."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from ...git.merge import abort_merge, delete_local_branch, is_merge_in_progress, merge_agent_branch
from ..domain.models import ReconciliationReport
from .conflict_resolver import ConflictResolver
from .worker_adapter import AgentEngine

logger = logging.getLogger(__name__)


class MergeCoordinator:
    """Merge agent branches one at a time in the main working copy.

    Every branch ends either merged (and deleted) or preserved with the
    working copy restored, so the repository is never left mid-merge.
    """

    def __init__(self, repo: Path | str, engine: AgentEngine, resolver: Optional[ConflictResolver] = None) -> None:
        self.repo = Path(repo)
        self.engine = engine
        self.resolver = resolver or ConflictResolver(engine)

    def _merge_one(self, branch: str, target_branch: str) -> bool:
        result = merge_agent_branch(branch, target_branch, self.repo)
        if result.success:
            logger.info("Merged %s", branch)
            return True

        if result.has_conflicts:
            logger.warning("Merge conflict in %s: %s", branch, ", ".join(result.conflicted_files))
            if self.resolver.resolve(result.conflicted_files, branch, self.repo):
                logger.info("Resolved conflicts and merged %s", branch)
                return True
            abort_merge(self.repo)
            logger.error("Failed to resolve conflicts for %s", branch)
            return False

        logger.error("Failed to merge %s: %s", branch, result.error)
        if is_merge_in_progress(self.repo):
            abort_merge(self.repo)
        return False

    def reconcile(self, branches: list[str], target_branch: str) -> ReconciliationReport:
        """Merge ``branches`` into ``target_branch`` in the given order.

        Merged branches are force-deleted afterwards; failed branches are kept
        for manual review.
        """
        report = ReconciliationReport(target_branch=target_branch)
        if not branches:
            return report

        logger.info("Merging %s branch(es) into %s...", len(branches), target_branch)
        for branch in branches:
            try:
                merged = self._merge_one(branch, target_branch)
            except Exception:
                logger.exception("Unexpected error while merging %s", branch)
                if is_merge_in_progress(self.repo):
                    abort_merge(self.repo)
                merged = False
            (report.merged if merged else report.failed).append(branch)

        for branch in report.merged:
            if not delete_local_branch(branch, self.repo, force=True):
                logger.warning("Could not delete merged branch %s", branch)

        if report.failed:
            logger.warning("Failed to merge %s branch(es):", len(report.failed))
            for branch in report.failed:
                logger.warning("  - %s", branch)
            logger.info("These branches have been preserved for manual review.")
        else:
            logger.info("Successfully merged all %s branch(es)", len(report.merged))
        return report
