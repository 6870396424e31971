from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from ralphy.config import (
    RalphyConfig,
    add_rule,
    get_progress_path,
    load_boundaries,
    load_config,
    load_project_context,
    load_rules,
)
from ralphy.errors import ConfigError
from ralphy.prompts import build_conflict_resolution_prompt, build_parallel_prompt, build_prompt
from ralphy.runtime.storage import ensure_state_dir


def _write_config(project: Path, payload) -> Path:
    path = project / ".ralphy" / "config.yaml"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(payload if isinstance(payload, str) else yaml.safe_dump(payload), encoding="utf-8")
    return path


def test_missing_config_means_no_context(tmp_path: Path) -> None:
    assert load_config(tmp_path) is None
    assert load_rules(tmp_path) == []
    assert load_boundaries(tmp_path) == []
    assert load_project_context(tmp_path) == ""
    assert get_progress_path(tmp_path) == tmp_path / ".ralphy" / "progress.txt"


def test_config_sections_are_loaded(tmp_path: Path) -> None:
    _write_config(
        tmp_path,
        {
            "project": {"name": "shop", "language": "Python", "framework": "Django"},
            "rules": ["Use type hints"],
            "boundaries": {"never_touch": ["migrations/"]},
        },
    )

    config = load_config(tmp_path)

    assert isinstance(config, RalphyConfig)
    assert config.commands.test == ""
    assert load_rules(tmp_path) == ["Use type hints"]
    assert load_boundaries(tmp_path) == ["migrations/"]
    assert load_project_context(tmp_path) == "Project: shop\nLanguage: Python\nFramework: Django"


@pytest.mark.parametrize("payload", ["rules: [unclosed\n", {"rules": "not-a-list"}])
def test_invalid_config_falls_back_to_defaults(tmp_path: Path, payload, caplog) -> None:
    _write_config(tmp_path, payload)

    config = load_config(tmp_path)

    assert config == RalphyConfig()
    assert "Invalid config" in caplog.text


def test_add_rule_appends_and_requires_config(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        add_rule("No globals", tmp_path)

    _write_config(tmp_path, {"project": {"name": "shop"}})
    add_rule("No globals", tmp_path)
    add_rule("Small commits", tmp_path)

    assert load_rules(tmp_path) == ["No globals", "Small commits"]
    assert load_config(tmp_path).project.name == "shop"


def test_build_prompt_includes_context_rules_and_boundaries(tmp_path: Path) -> None:
    _write_config(
        tmp_path,
        {"project": {"name": "shop"}, "rules": ["Use type hints"], "boundaries": {"never_touch": ["secrets/"]}},
    )

    prompt = build_prompt("Add a cart", tmp_path)

    sections = prompt.split("\n\n")
    assert sections[0] == "## Project Context\nProject: shop"
    assert sections[1] == "## Rules (you MUST follow these)\nUse type hints"
    assert sections[2].startswith("## Boundaries\nDo NOT modify")
    assert sections[3] == "## Task\nAdd a cart"
    assert "4. Commit your changes" in prompt
    assert prompt.endswith("Do not refactor unrelated code.")


def test_build_prompt_flags(tmp_path: Path) -> None:
    prompt = build_prompt("Add a cart", tmp_path, auto_commit=False, skip_tests=True, skip_lint=True)

    assert "## Project Context" not in prompt
    assert "Do not write or run tests" in prompt
    assert "Do not run linters" in prompt
    assert "Commit your changes" not in prompt


def test_parallel_and_conflict_prompts() -> None:
    parallel = build_parallel_prompt("Add search", ".ralphy/progress.txt")
    assert "TASK: Add search" in parallel
    assert "Update .ralphy/progress.txt" in parallel
    assert parallel.endswith("Focus only on implementing: Add search")

    conflict = build_conflict_resolution_prompt(["a.py", "b/c.py"], "ralphy/agent-2-x")
    assert '"ralphy/agent-2-x"' in conflict
    assert "  - a.py\n  - b/c.py" in conflict
    assert "git commit --no-edit" in conflict
    assert "Do not create new commits for individual file resolutions" in conflict


def test_ensure_state_dir_updates_gitignore_once(tmp_path: Path) -> None:
    (tmp_path / ".gitignore").write_text("node_modules/", encoding="utf-8")

    ensure_state_dir(tmp_path)
    ensure_state_dir(tmp_path)

    content = (tmp_path / ".gitignore").read_text(encoding="utf-8")
    assert content.count(".ralphy-worktrees/") == 1
    assert content.count(".*.lock") == 1
    assert content.startswith("node_modules/\n")
    assert (tmp_path / ".ralphy").is_dir()
    assert not (tmp_path / ".ralphy" / "progress.txt").exists()


def test_ensure_state_dir_creates_gitignore(tmp_path: Path) -> None:
    ensure_state_dir(tmp_path, create_progress=True)

    assert (tmp_path / ".gitignore").read_text(encoding="utf-8") == "# Ralphy runtime data\n.ralphy-worktrees/\n.*.lock\n"
    assert (tmp_path / ".ralphy" / "progress.txt").exists()
