"""Command line entry point for ralphy."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

import yaml

from .config import RuntimeOptions, add_rule, get_config_path, load_config
from .errors import RalphyError
from .prompts import build_prompt
from .runtime.domain.models import AIResult, ExecutionResult
from .runtime.orchestrator.retry import RetryOptions, raise_if_retryable, with_retry
from .runtime.orchestrator.service import ExecutionOptions, ExecutionOrchestrator
from .runtime.storage import ProgressLog, ensure_state_dir
from .tasks import create_task_source
from .workers import ENGINE_KINDS, CliEngine, create_engine

logger = logging.getLogger("ralphy")

_ENGINE_HELP = {
    "claude": "Use Claude Code (default)",
    "opencode": "Use OpenCode",
    "cursor": "Use Cursor Agent",
    "codex": "Use Codex",
    "qwen": "Use Qwen-Code",
    "droid": "Use Factory Droid",
}


def configure_logging(verbose: bool = False) -> None:
    """Install one stderr handler on the ``ralphy`` logger."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    root = logging.getLogger("ralphy")
    root.handlers[:] = [handler]
    root.setLevel(logging.DEBUG if verbose else logging.INFO)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ralphy",
        description="Autonomous coding-agent loop over a task backlog",
    )
    parser.add_argument("task", nargs="?", default=None, help="Single task to execute (brownfield mode)")
    parser.add_argument("--config", dest="show_config", action="store_true", help="Show current configuration")
    parser.add_argument("--add-rule", type=str, default=None, help="Add a rule to config")
    parser.add_argument("--skip-tests", "--no-tests", action="store_true", help="Skip running tests")
    parser.add_argument("--skip-lint", "--no-lint", action="store_true", help="Skip running lint")
    parser.add_argument("--fast", action="store_true", help="Skip both tests and lint")

    engines = parser.add_mutually_exclusive_group()
    for kind in ENGINE_KINDS:
        engines.add_argument(f"--{kind}", dest="engine", action="store_const", const=kind, help=_ENGINE_HELP[kind])
    parser.add_argument("--model", type=str, default=None, help="Model override passed to the engine")

    parser.add_argument("--dry-run", action="store_true", help="Show what would be done without executing")
    parser.add_argument("--max-iterations", type=int, default=0, help="Maximum iterations (0 = unlimited)")
    parser.add_argument("--max-retries", type=int, default=3, help="Maximum retries per task (default: 3)")
    parser.add_argument("--retry-delay", type=float, default=5, help="Delay between retries in seconds (default: 5)")
    parser.add_argument("--parallel", action="store_true", help="Run tasks in parallel using worktrees")
    parser.add_argument("--max-parallel", type=int, default=3, help="Maximum parallel agents (default: 3)")
    parser.add_argument("--skip-merge", action="store_true", help="Leave completed agent branches unmerged")
    parser.add_argument("--branch-per-task", action="store_true", help="Create a branch for each task")
    parser.add_argument("--base-branch", type=str, default="", help="Base branch for task branches and merges")
    parser.add_argument("--create-pr", action="store_true", help="Create pull request after each task")
    parser.add_argument("--draft-pr", action="store_true", help="Create PRs as draft")

    sources = parser.add_mutually_exclusive_group()
    sources.add_argument("--prd", type=str, default=None, help="PRD file (markdown, default: PRD.md)")
    sources.add_argument("--yaml", type=str, default=None, help="YAML task file")
    sources.add_argument("--github", type=str, default=None, help="GitHub repo for issues (owner/repo)")
    parser.add_argument("--github-label", type=str, default="", help="Filter GitHub issues by label")

    parser.add_argument("--no-commit", action="store_true", help="Don't auto-commit changes")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    return parser


def options_from_args(args: argparse.Namespace) -> RuntimeOptions:
    """Translate parsed arguments into :class:`RuntimeOptions`."""
    opts = RuntimeOptions(
        engine=args.engine or "claude",
        model=args.model,
        skip_tests=args.skip_tests or args.fast,
        skip_lint=args.skip_lint or args.fast,
        dry_run=args.dry_run,
        max_iterations=max(args.max_iterations, 0),
        max_retries=max(args.max_retries, 1),
        retry_delay_seconds=max(args.retry_delay, 0),
        verbose=args.verbose,
        branch_per_task=args.branch_per_task,
        base_branch=args.base_branch,
        create_pr=args.create_pr,
        draft_pr=args.draft_pr,
        parallel=args.parallel,
        max_parallel=max(args.max_parallel, 1),
        skip_merge=args.skip_merge,
        github_label=args.github_label,
        auto_commit=not args.no_commit,
    )
    if args.yaml:
        opts.prd_source, opts.prd_file = "yaml", args.yaml
    elif args.github:
        opts.prd_source, opts.github_repo = "github", args.github
    elif args.prd:
        opts.prd_file = args.prd
    return opts


def execution_options(opts: RuntimeOptions) -> ExecutionOptions:
    return ExecutionOptions(
        mode="parallel" if opts.parallel else "sequential",
        max_parallel=opts.max_parallel,
        max_iterations=opts.max_iterations,
        max_retries=opts.max_retries,
        retry_delay_seconds=opts.retry_delay_seconds,
        dry_run=opts.dry_run,
        branch_per_task=opts.branch_per_task,
        base_branch=opts.base_branch,
        create_pr=opts.create_pr,
        draft_pr=opts.draft_pr,
        auto_commit=opts.auto_commit,
        skip_tests=opts.skip_tests,
        skip_lint=opts.skip_lint,
        skip_merge=opts.skip_merge,
        prd_file=opts.prd_file if opts.prd_source != "github" else "",
        model_override=opts.model,
    )


def run_single_task(task: str, engine: CliEngine, opts: RuntimeOptions, work_dir: Path) -> bool:
    """Run one ad-hoc task in the current working copy; returns success."""
    if not opts.dry_run and not engine.is_available():
        raise RalphyError(f"{engine.name} CLI not found. Make sure '{engine.cli_command}' is in your PATH.")
    prompt = build_prompt(
        task,
        work_dir,
        auto_commit=opts.auto_commit,
        skip_tests=opts.skip_tests,
        skip_lint=opts.skip_lint,
    )
    if opts.dry_run:
        logger.info("(dry run) Would execute task with %s", engine.name)
        print(prompt)
        return True

    logger.info("Running task with %s...", engine.name)

    def attempt() -> AIResult:
        return raise_if_retryable(engine.execute_streaming(prompt, work_dir, lambda step: logger.debug("%s", step)))

    try:
        result = with_retry(attempt, RetryOptions(max_retries=opts.max_retries, retry_delay_seconds=opts.retry_delay_seconds))
    except Exception as exc:
        result = AIResult.failure(str(exc) or exc.__class__.__name__)

    progress = ProgressLog.for_project(work_dir)
    if result.success:
        progress.log_task(task, "completed")
        logger.info("Done (tokens: %s in / %s out)", result.input_tokens, result.output_tokens)
        if result.response:
            print(result.response)
        return True
    progress.log_task(task, "failed")
    logger.error("Task failed: %s", result.error)
    return False


def run_backlog(engine: CliEngine, opts: RuntimeOptions, work_dir: Path) -> ExecutionResult:
    source = create_task_source(
        opts.prd_source,  # type: ignore[arg-type]
        file_path=work_dir / opts.prd_file if opts.prd_source != "github" else None,
        repo=opts.github_repo or None,
        label=opts.github_label or None,
    )
    if not opts.dry_run:
        ensure_state_dir(work_dir)
    orchestrator = ExecutionOrchestrator(
        engine,
        source,
        execution_options(opts),
        work_dir=work_dir,
        logger=logger,
    )
    logger.info("Using %s (%s mode)", engine.name, orchestrator.options.mode)
    result = orchestrator.run()
    logger.info(
        "Completed %s task(s), %s failed (tokens: %s in / %s out)",
        result.tasks_completed,
        result.tasks_failed,
        result.total_input_tokens,
        result.total_output_tokens,
    )
    return result


def main(argv: Optional[Sequence[str]] = None, *, work_dir: Optional[Path] = None) -> int:
    """Entry point for the ``ralphy`` console script.

    Returns:
        int: ``0`` when every task succeeded, ``1`` on any task failure or
        when the run could not start.
    """
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)
    cwd = Path(work_dir) if work_dir is not None else Path.cwd()
    opts = options_from_args(args)

    try:
        if args.show_config:
            config = load_config(cwd)
            if config is None:
                logger.warning("No config found at %s", get_config_path(cwd))
                return 1
            print(yaml.safe_dump(config.model_dump(), sort_keys=False), end="")
            return 0
        if args.add_rule:
            add_rule(args.add_rule, cwd)
            logger.info("Added rule: %s", args.add_rule)
            return 0

        engine = create_engine(opts.engine, model=opts.model)
        if args.task:
            return 0 if run_single_task(args.task, engine, opts, cwd) else 1
        result = run_backlog(engine, opts, cwd)
    except RalphyError as exc:
        logger.error("%s", exc)
        return 1
    return 1 if result.has_failures else 0


if __name__ == "__main__":
    sys.exit(main())
