from __future__ import annotations

from pathlib import Path

from ...config import PROGRESS_FILE, RALPHY_DIR
from ..orchestrator.worktree_manager import WORKTREE_DIR_NAME

IGNORE_HEADER = "# Ralphy runtime data"

# Agent worktrees, plus the sidecar lock files written next to task files.
IGNORED_PATTERNS = (f"{WORKTREE_DIR_NAME}/", ".*.lock")


def missing_ignore_patterns(gitignore_text: str) -> list[str]:
    """Return the runtime patterns not yet listed in ``gitignore_text``."""
    listed = {line.strip().rstrip("/") for line in gitignore_text.splitlines()}
    return [pattern for pattern in IGNORED_PATTERNS if pattern.rstrip("/") not in listed]


def _ensure_gitignored(project_dir: Path) -> None:
    gitignore = project_dir / ".gitignore"
    current = gitignore.read_text(encoding="utf-8") if gitignore.exists() else ""
    missing = missing_ignore_patterns(current)
    if not missing:
        return
    lines = [current.rstrip("\n")] if current.strip() else []
    if IGNORE_HEADER not in current:
        lines.append(("\n" if lines else "") + IGNORE_HEADER)
    lines.extend(missing)
    gitignore.write_text("\n".join(lines) + "\n", encoding="utf-8")


def ensure_state_dir(project_dir: Path | str, *, create_progress: bool = False) -> Path:
    """Create ``.ralphy/`` under ``project_dir`` and keep ralphy's scratch files out of git.

    Args:
        project_dir: Repository root.
        create_progress: Also create an empty progress log so runs record entries.
    """
    base = Path(project_dir)
    state_dir = base / RALPHY_DIR
    state_dir.mkdir(parents=True, exist_ok=True)
    _ensure_gitignored(base)
    if create_progress:
        (state_dir / PROGRESS_FILE).touch()
    return state_dir
