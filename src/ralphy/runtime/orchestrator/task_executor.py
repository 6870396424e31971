"""Per-task execution for sequential runs and parallel agents."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Optional

from ...config import PROGRESS_FILE, RALPHY_DIR
from ...errors import GitCommandError, TaskSourceError
from ...git.branch import create_task_branch, return_to_base_branch
from ...git.commands import run_git
from ...git.pr import create_pull_request, is_gh_available
from ...prompts import build_parallel_prompt, build_prompt
from ..domain.models import AgentRun, AIResult, Task
from .retry import raise_if_retryable, with_retry
from .worker_adapter import supports_streaming

if TYPE_CHECKING:
    from .service import ExecutionOrchestrator

logger = logging.getLogger(__name__)


class TaskExecutor:
    """Run one task through the engine while the orchestrator keeps the loop."""

    def __init__(self, orchestrator: ExecutionOrchestrator) -> None:
        self._orch = orchestrator

    def invoke_engine(self, prompt: str, work_dir: Path, *, on_retry_label: str = "") -> AIResult:
        """Call the engine under the retry policy.

        Transient failures reported as results are raised so the policy retries
        them; the final exception propagates once attempts are exhausted.
        """
        orch = self._orch
        engine = orch.engine
        log = orch.log

        def attempt() -> AIResult:
            if supports_streaming(engine) and log.isEnabledFor(logging.DEBUG):
                result = engine.execute_streaming(  # type: ignore[attr-defined]
                    prompt, work_dir, lambda step: log.debug("%s: %s", on_retry_label, step)
                )
            else:
                result = engine.execute(prompt, work_dir)
            return raise_if_retryable(result)

        return with_retry(attempt, orch.retry_options(on_retry_label))

    def run_sequential_task(self, task: Task) -> AIResult:
        """Execute ``task`` in the main working copy, on a task branch when configured.

        Returns:
            AIResult: The engine outcome; exceptions from the engine are folded
            into a failed result so the run continues with the next task.
        """
        orch = self._orch
        opts = orch.options
        log = orch.log
        branch: Optional[str] = None

        if opts.branch_per_task and orch.base_branch:
            try:
                branch = create_task_branch(task.title, orch.base_branch, orch.work_dir)
                log.debug("Created branch: %s", branch)
            except GitCommandError as exc:
                log.error("Failed to create branch for %s: %s", task.title, exc)

        try:
            prompt = build_prompt(
                task.body or task.title,
                orch.work_dir,
                auto_commit=opts.auto_commit,
                skip_tests=opts.skip_tests,
                skip_lint=opts.skip_lint,
            )
            try:
                result = self.invoke_engine(prompt, orch.work_dir, on_retry_label=task.title)
            except Exception as exc:
                result = AIResult.failure(str(exc) or exc.__class__.__name__)

            if result.success:
                try:
                    orch.task_source.mark_complete(task.id)
                except TaskSourceError as exc:
                    log.error("Could not mark %s complete: %s", task.title, exc)
                    return AIResult.failure(f"Could not mark task complete: {exc}", response=result.response)
                if opts.create_pr and branch and orch.base_branch:
                    self._open_pull_request(task, branch, result)
            return result
        finally:
            if branch is not None:
                return_to_base_branch(orch.base_branch, orch.work_dir)

    def _open_pull_request(self, task: Task, branch: str, result: AIResult) -> None:
        orch = self._orch
        if not is_gh_available(orch.work_dir):
            orch.log.warning("gh CLI missing or not authenticated; no PR for %s", task.title)
            return
        url = create_pull_request(
            branch,
            orch.base_branch,
            task.title,
            f"Automated PR created by Ralphy\n\n{result.response}",
            draft=orch.options.draft_pr,
            repo=orch.work_dir,
        )
        if url:
            orch.log.info("PR created: %s", url)

    def _copy_prd_file(self, worktree_dir: Path) -> Optional[Callable[[], None]]:
        """Give the agent the current task file; returns a callback that undoes the copy."""
        orch = self._orch
        prd_file = orch.options.prd_file
        if not prd_file or orch.task_source.type not in ("markdown", "yaml"):
            return None
        source = orch.work_dir / prd_file
        if not source.is_file():
            return None
        target = worktree_dir / prd_file
        tracked = target.exists()
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, target)
        logger.debug("Copied %s into %s", prd_file, worktree_dir)

        def restore() -> None:
            if tracked:
                run_git(["checkout", "--", prd_file], worktree_dir, check=False)
            else:
                target.unlink(missing_ok=True)

        return restore

    def run_agent(self, task: Task, agent_number: int, base_branch: str) -> AgentRun:
        """Run one parallel agent: worktree, prompt, retried engine call, completion.

        Runs on a worker thread. Every failure is captured in the returned
        :class:`AgentRun` so sibling agents in the batch are unaffected.
        """
        orch = self._orch
        run = AgentRun(task=task, agent_number=agent_number)
        try:
            handle = orch.worktrees.create_agent_worktree(task.title, agent_number, base_branch)
            run.work_dir = str(handle.worktree_dir)
            run.branch_name = handle.branch_name
            orch.log.debug("Agent %s: created worktree at %s", agent_number, handle.worktree_dir)

            restore_prd = self._copy_prd_file(handle.worktree_dir)
            (handle.worktree_dir / RALPHY_DIR).mkdir(parents=True, exist_ok=True)

            prompt = build_parallel_prompt(
                task.body or task.title,
                f"{RALPHY_DIR}/{PROGRESS_FILE}",
                skip_tests=orch.options.skip_tests,
            )
            try:
                run.result = self.invoke_engine(prompt, handle.worktree_dir, on_retry_label=f"agent {agent_number}")
            finally:
                if restore_prd is not None:
                    restore_prd()
            if run.result.success:
                orch.task_source.mark_complete(task.id)
        except Exception as exc:
            orch.log.debug("Agent %s failed", agent_number, exc_info=True)
            run.error = str(exc) or exc.__class__.__name__
        return run
