"""Prompt builders for task execution and merge-conflict resolution."""

from __future__ import annotations

from pathlib import Path

from ..config import load_boundaries, load_project_context, load_rules

_FOCUS_NOTE = "Keep changes focused and minimal. Do not refactor unrelated code."


def build_prompt(
    task: str,
    work_dir: Path | str,
    *,
    auto_commit: bool = True,
    skip_tests: bool = False,
    skip_lint: bool = False,
) -> str:
    """Build the full task prompt with project context, rules, and boundaries.

    Args:
        task: Task text (body when available, otherwise the title).
        work_dir: Project directory whose ``.ralphy/config.yaml`` supplies context.
        auto_commit: Ask the agent to commit its changes.
        skip_tests: Tell the agent not to write or run tests.
        skip_lint: Tell the agent not to run linters.

    Returns:
        str: Markdown prompt sections joined by blank lines.
    """
    parts: list[str] = []

    context = load_project_context(work_dir)
    if context:
        parts.append(f"## Project Context\n{context}")

    rules = load_rules(work_dir)
    if rules:
        parts.append("## Rules (you MUST follow these)\n" + "\n".join(rules))

    boundaries = load_boundaries(work_dir)
    if boundaries:
        parts.append("## Boundaries\nDo NOT modify these files/directories:\n" + "\n".join(boundaries))

    parts.append(f"## Task\n{task}")

    steps = ["Implement the task described above"]
    if skip_tests:
        steps.append("Do not write or run tests")
    else:
        steps.append("Write tests if appropriate")
    if skip_lint:
        steps.append("Do not run linters or formatters")
    steps.append("Ensure the code works correctly")
    if auto_commit:
        steps.append("Commit your changes with a descriptive message")
    parts.append("## Instructions\n" + "\n".join(f"{i}. {step}" for i, step in enumerate(steps, start=1)))

    parts.append(_FOCUS_NOTE)
    return "\n\n".join(parts)


def build_parallel_prompt(task: str, progress_file: str, *, skip_tests: bool = False) -> str:
    """Build the narrower prompt given to one agent working in its own worktree."""
    tests_step = "Do not write or run tests" if skip_tests else "Write tests if appropriate"
    return (
        "You are working on a specific task. Focus ONLY on this task:\n\n"
        f"TASK: {task}\n\n"
        "Instructions:\n"
        "1. Implement this specific task completely\n"
        f"2. {tests_step}\n"
        f"3. Update {progress_file} with what you did\n"
        "4. Commit your changes with a descriptive message\n\n"
        "Do NOT modify PRD.md or mark tasks complete - that will be handled separately.\n"
        f"Focus only on implementing: {task}"
    )


def build_conflict_resolution_prompt(conflicted_files: list[str], branch_name: str) -> str:
    file_list = "\n".join(f"  - {path}" for path in conflicted_files)
    return (
        "You are resolving a git merge conflict. The following files have conflicts "
        f'after merging branch "{branch_name}":\n\n'
        f"{file_list}\n\n"
        "For each conflicted file:\n"
        "1. Read the file to see the conflict markers (<<<<<<<, =======, >>>>>>>)\n"
        "2. Understand what both versions are trying to do\n"
        "3. Edit the file to resolve the conflict by combining both changes appropriately\n"
        "4. Remove ALL conflict markers; the file must be valid code with no markers remaining\n"
        "5. Make sure the resulting code is syntactically valid and logically correct\n\n"
        "After resolving all conflicts in all files:\n"
        "1. Run 'git add' on each resolved file to stage it\n"
        "2. Run 'git commit --no-edit' to complete the merge\n\n"
        "Important: Do not create new commits for individual file resolutions. Only run "
        "'git commit --no-edit' once at the very end after ALL files are resolved and staged."
    )


__all__ = ["build_conflict_resolution_prompt", "build_parallel_prompt", "build_prompt"]
