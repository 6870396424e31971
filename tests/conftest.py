from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from ralphy.runtime.storage import ensure_state_dir

_EXCLUDES = ["PRD.md", "tasks.yaml", ".ralphy/"]


def git(cwd: Path, *args: str) -> str:
    result = subprocess.run(["git", *args], cwd=cwd, check=True, capture_output=True, text=True)
    return result.stdout.strip()


def commit_file(repo: Path, rel_path: str, content: str, message: str) -> None:
    path = repo / rel_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    git(repo, "add", "--", rel_path)
    git(repo, "commit", "-m", message)


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    """A repository on ``main`` with one commit that includes ralphy's .gitignore entries."""
    repo = tmp_path / "repo"
    repo.mkdir()
    git(repo, "init", "-b", "main")
    git(repo, "config", "user.email", "test@example.com")
    git(repo, "config", "user.name", "Test")
    git(repo, "config", "commit.gpgsign", "false")
    exclude = repo / ".git" / "info" / "exclude"
    exclude.parent.mkdir(parents=True, exist_ok=True)
    exclude.write_text("\n".join(_EXCLUDES) + "\n", encoding="utf-8")
    ensure_state_dir(repo)
    git(repo, "add", ".gitignore")
    commit_file(repo, "README.md", "# demo\n", "initial")
    return repo
