"""Top-level control loop that drives the backlog through coding agents."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Collection, Literal, Optional

from ...errors import EnvironmentCheckError, TaskSourceError
from ...git.branch import get_current_branch, return_to_base_branch
from ...git.commands import git_available, is_git_repository
from ...tasks.base import TaskSource, supports_grouping
from ..domain.models import AgentRun, ExecutionResult, ReconciliationReport, Task
from ..storage.progress_log import ProgressLog
from .merge_coordinator import MergeCoordinator
from .retry import RetryOptions
from .task_executor import TaskExecutor
from .worker_adapter import AgentEngine
from .worktree_manager import WorktreeManager

module_logger = logging.getLogger(__name__)

ExecutionMode = Literal["sequential", "parallel"]
OrchestratorState = Literal["idle", "fetching_batch", "dispatching", "collecting", "reconciling", "done"]


@dataclass
class ExecutionOptions:
    """Knobs for one orchestration run.

    Attributes:
        mode: ``sequential`` runs one task at a time in the main working copy;
            ``parallel`` runs batches of agents in separate worktrees.
        max_parallel: Upper bound on agents per batch.
        max_iterations: Batch cap; ``0`` means run until the backlog is empty.
        max_retries: Attempts per engine call, including the first.
        retry_delay_seconds: Fixed wait between attempts.
        dry_run: Log the planned batches without invoking the engine.
        branch_per_task: Sequential mode only; work on ``ralphy/<slug>`` per task.
        base_branch: Branch tasks start from and merges target; empty means current.
        create_pr: Sequential mode only; open a PR for each task branch.
        draft_pr: Open PRs as drafts.
        auto_commit: Ask the agent to commit its work.
        skip_tests: Tell the agent not to write or run tests.
        skip_lint: Tell the agent not to run linters.
        skip_merge: Leave completed agent branches unmerged.
        prd_file: Task file copied into each worktree for file-based sources.
        model_override: Model passed to engines that accept one.
    """

    mode: ExecutionMode = "sequential"
    max_parallel: int = 3
    max_iterations: int = 0
    max_retries: int = 3
    retry_delay_seconds: float = 5
    dry_run: bool = False
    branch_per_task: bool = False
    base_branch: str = ""
    create_pr: bool = False
    draft_pr: bool = False
    auto_commit: bool = True
    skip_tests: bool = False
    skip_lint: bool = False
    skip_merge: bool = False
    prd_file: str = ""
    model_override: Optional[str] = None


class ExecutionOrchestrator:
    """Run the backlog in sequential or parallel mode and report aggregate counts.

    Per-task failures are counted and logged; only environment problems found
    before any batch starts abort a run. In parallel mode every successful agent
    branch is recorded (batch by batch, in task order) and reconciled into the
    base branch once the iteration loop ends.
    """

    def __init__(
        self,
        engine: AgentEngine,
        task_source: TaskSource,
        options: ExecutionOptions,
        *,
        work_dir: Path | str,
        logger: Optional[logging.Logger] = None,
        progress_log: Optional[ProgressLog] = None,
        worktrees: Optional[WorktreeManager] = None,
        merge_coordinator: Optional[MergeCoordinator] = None,
    ) -> None:
        self.work_dir = Path(work_dir)
        self.options = options
        self.log = logger or module_logger
        self.task_source = task_source
        if options.model_override and callable(getattr(engine, "with_model", None)):
            engine = engine.with_model(options.model_override)  # type: ignore[attr-defined]
        self.engine = engine
        self.progress_log = progress_log or ProgressLog.for_project(self.work_dir)
        self.worktrees = worktrees or WorktreeManager(self.work_dir)
        self.merge_coordinator = merge_coordinator or MergeCoordinator(self.work_dir, engine)
        self.state: OrchestratorState = "idle"
        self.base_branch = options.base_branch
        self.completed_branches: list[str] = []
        self.reconciliation: Optional[ReconciliationReport] = None
        self._executor = TaskExecutor(self)
        self._agent_lock = threading.Lock()
        self._agent_counter = 0

    def retry_options(self, label: str = "") -> RetryOptions:
        def on_retry(attempt: int, message: str) -> None:
            self.log.info("Retry %s for %s", attempt, label or "task")

        return RetryOptions(
            max_retries=self.options.max_retries,
            retry_delay_seconds=self.options.retry_delay_seconds,
            on_retry=on_retry,
        )

    def next_agent_number(self) -> int:
        """Return a run-wide unique agent number; numbers are never reused."""
        with self._agent_lock:
            self._agent_counter += 1
            return self._agent_counter

    def check_environment(self) -> None:
        """Fail fast on missing tools before any batch work.

        Raises:
            EnvironmentCheckError: If the engine CLI is missing, or git/a
                repository is missing where the mode needs one.
        """
        is_available = getattr(self.engine, "is_available", None)
        if not self.options.dry_run and callable(is_available) and not is_available():
            raise EnvironmentCheckError(f"{self.engine.name} CLI not found. Make sure it is installed and on PATH.")
        needs_git = self.options.mode == "parallel" or self.options.branch_per_task
        if needs_git:
            if not git_available():
                raise EnvironmentCheckError("git is not installed")
            if not is_git_repository(self.work_dir):
                raise EnvironmentCheckError(f"{self.work_dir} is not a git repository")

    def run(self) -> ExecutionResult:
        self.check_environment()
        if self.options.mode == "parallel":
            return self.run_parallel()
        return self.run_sequential()

    def _remaining(self) -> str:
        try:
            return str(self.task_source.count_remaining())
        except TaskSourceError as exc:
            self.log.debug("Could not count remaining tasks: %s", exc)
            return "?"

    def _record(self, task: Task, ok: bool) -> None:
        self.progress_log.log_task(task.title, "completed" if ok else "failed")

    def fetch_batch(self, exclude: Collection[str] = (), *, limit: Optional[int] = None) -> list[Task]:
        """Select the next batch of incomplete tasks.

        Grouping sources batch every task sharing the next task's group (group
        ``0`` runs alone); other sources offer every remaining task. Ids in
        ``exclude`` are never selected. The batch is capped at ``limit``
        (``max_parallel`` by default).
        """
        cap = max(int(limit if limit is not None else self.options.max_parallel), 1)
        candidates = [task for task in self.task_source.get_all_tasks() if task.id not in exclude]
        if not candidates:
            return []
        if supports_grouping(self.task_source):
            first = candidates[0]
            group = self.task_source.get_parallel_group(first.title)  # type: ignore[attr-defined]
            if group > 0:
                grouped = self.task_source.get_tasks_in_group(group)  # type: ignore[attr-defined]
                batch = [task for task in grouped if task.id not in exclude]
                if first.id not in {task.id for task in batch}:
                    batch.insert(0, first)
            else:
                batch = [first]
        else:
            batch = candidates
        return batch[:cap]

    def run_sequential(self) -> ExecutionResult:
        """Run tasks one at a time in the main working copy.

        A task that fails is not picked up again in the same run.
        """
        opts = self.options
        result = ExecutionResult()
        attempted: set[str] = set()
        iteration = 0
        if opts.branch_per_task and not self.base_branch:
            self.base_branch = get_current_branch(self.work_dir)

        while True:
            if opts.max_iterations > 0 and iteration >= opts.max_iterations:
                self.log.info("Reached max iterations (%s)", opts.max_iterations)
                break

            self.state = "fetching_batch"
            batch = self.fetch_batch(attempted, limit=1)
            if not batch:
                self.log.info("All tasks completed!")
                break
            task = batch[0]
            attempted.add(task.id)
            iteration += 1
            self.log.info("Task %s: %s (%s remaining)", iteration, task.title, self._remaining())

            if opts.dry_run:
                self.log.info("(dry run) Skipped %s", task.title)
                continue

            self.state = "dispatching"
            ai_result = self._executor.run_sequential_task(task)
            self.state = "collecting"
            if ai_result.success:
                result.record_success(ai_result)
                self.log.info("Task completed: %s", task.title)
            else:
                result.record_failure()
                self.log.error("Task failed: %s: %s", task.title, ai_result.error)
            self._record(task, ai_result.success)

        self.state = "done"
        return result

    def _collect(self, run: AgentRun, result: ExecutionResult) -> None:
        task = run.task
        if run.succeeded:
            assert run.result is not None
            result.record_success(run.result)
            self.log.info('Task "%s" completed', task.title)
            if run.branch_name:
                self.completed_branches.append(run.branch_name)
        else:
            result.record_failure()
            self.log.error('Task "%s" failed: %s', task.title, run.failure_reason())
        self._record(task, run.succeeded)

        if run.work_dir:
            cleanup = self.worktrees.cleanup_agent_worktree(run.work_dir, run.branch_name)
            if cleanup.left_in_place:
                self.log.warning("Worktree left in place (uncommitted changes): %s", run.work_dir)

    def run_parallel(self) -> ExecutionResult:
        """Run batches of agents in isolated worktrees, then reconcile their branches."""
        opts = self.options
        result = ExecutionResult()
        starting_branch = get_current_branch(self.work_dir)
        self.base_branch = opts.base_branch or starting_branch
        self.log.debug("Worktree base: %s", self.worktrees.worktree_base() if not opts.dry_run else "(dry run)")

        previewed: set[str] = set()
        failed_ids: set[str] = set()
        iteration = 0

        while True:
            if opts.max_iterations > 0 and iteration >= opts.max_iterations:
                self.log.info("Reached max iterations (%s)", opts.max_iterations)
                break

            self.state = "fetching_batch"
            batch = self.fetch_batch(previewed | failed_ids)
            if not batch:
                self.log.info("All tasks completed!")
                break
            iteration += 1
            self.log.info("Batch %s: %s tasks in parallel", iteration, len(batch))

            if opts.dry_run:
                for task in batch:
                    self.log.info("(dry run) Would run: %s", task.title)
                    previewed.add(task.id)
                continue

            self.state = "dispatching"
            futures: list[Future[AgentRun]] = []
            with ThreadPoolExecutor(max_workers=len(batch), thread_name_prefix="ralphy-agent") as pool:
                for task in batch:
                    futures.append(pool.submit(self._executor.run_agent, task, self.next_agent_number(), self.base_branch))
                self.state = "collecting"
                runs = [future.result() for future in futures]

            for run in runs:
                self._collect(run, result)
                if not run.succeeded:
                    failed_ids.add(run.task.id)

        if not opts.dry_run and not opts.skip_merge and self.completed_branches:
            self.state = "reconciling"
            self.reconciliation = self.merge_coordinator.reconcile(list(self.completed_branches), self.base_branch)
            if starting_branch and get_current_branch(self.work_dir) != starting_branch:
                self.log.debug("Restoring starting branch: %s", starting_branch)
                return_to_base_branch(starting_branch, self.work_dir)

        self.state = "done"
        return result
