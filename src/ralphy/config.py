"""Project configuration (``.ralphy/config.yaml``) and CLI runtime options."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from .errors import ConfigError
from .io_utils import FileLock, atomic_write_text, lock_path_for

logger = logging.getLogger(__name__)

RALPHY_DIR = ".ralphy"
CONFIG_FILE = "config.yaml"
PROGRESS_FILE = "progress.txt"


class ProjectInfo(BaseModel):
    name: str = ""
    language: str = ""
    framework: str = ""
    description: str = ""


class ProjectCommands(BaseModel):
    test: str = ""
    lint: str = ""
    build: str = ""


class Boundaries(BaseModel):
    never_touch: list[str] = Field(default_factory=list)


class RalphyConfig(BaseModel):
    """Validated contents of ``.ralphy/config.yaml``; every section is optional."""

    project: ProjectInfo = Field(default_factory=ProjectInfo)
    commands: ProjectCommands = Field(default_factory=ProjectCommands)
    rules: list[str] = Field(default_factory=list)
    boundaries: Boundaries = Field(default_factory=Boundaries)


def get_ralphy_dir(work_dir: Path | str) -> Path:
    return Path(work_dir) / RALPHY_DIR


def get_config_path(work_dir: Path | str) -> Path:
    return get_ralphy_dir(work_dir) / CONFIG_FILE


def get_progress_path(work_dir: Path | str) -> Path:
    return get_ralphy_dir(work_dir) / PROGRESS_FILE


def load_config(work_dir: Path | str) -> Optional[RalphyConfig]:
    """Load the project config for ``work_dir``.

    Returns:
        Optional[RalphyConfig]: ``None`` when the project has no config file.
        A file that cannot be parsed or validated yields the default config.
    """
    path = get_config_path(work_dir)
    if not path.exists():
        return None
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        return RalphyConfig.model_validate(raw)
    except (yaml.YAMLError, ValidationError, OSError) as exc:
        logger.warning("Invalid config %s, using defaults: %s", path, exc)
        return RalphyConfig()


def load_rules(work_dir: Path | str) -> list[str]:
    config = load_config(work_dir)
    return list(config.rules) if config else []


def load_boundaries(work_dir: Path | str) -> list[str]:
    config = load_config(work_dir)
    return list(config.boundaries.never_touch) if config else []


def load_project_context(work_dir: Path | str) -> str:
    """Render the ``project`` section as ``Key: value`` lines for prompts."""
    config = load_config(work_dir)
    if config is None:
        return ""
    project = config.project
    parts: list[str] = []
    if project.name:
        parts.append(f"Project: {project.name}")
    if project.language:
        parts.append(f"Language: {project.language}")
    if project.framework:
        parts.append(f"Framework: {project.framework}")
    if project.description:
        parts.append(f"Description: {project.description}")
    return "\n".join(parts)


@dataclass
class RuntimeOptions:
    """Options collected from the command line before a run starts."""

    engine: str = "claude"
    model: Optional[str] = None
    skip_tests: bool = False
    skip_lint: bool = False
    dry_run: bool = False
    max_iterations: int = 0
    max_retries: int = 3
    retry_delay_seconds: float = 5
    verbose: bool = False
    branch_per_task: bool = False
    base_branch: str = ""
    create_pr: bool = False
    draft_pr: bool = False
    parallel: bool = False
    max_parallel: int = 3
    skip_merge: bool = False
    prd_source: str = "markdown"
    prd_file: str = "PRD.md"
    github_repo: str = ""
    github_label: str = ""
    auto_commit: bool = True


def add_rule(rule: str, work_dir: Path | str) -> None:
    """Append ``rule`` to the ``rules`` list of an existing config file.

    Raises:
        ConfigError: If the project has no config file or it is not a mapping.
    """
    path = get_config_path(work_dir)
    if not path.exists():
        raise ConfigError(f"No config found at {path}")
    with FileLock(lock_path_for(path)):
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        if not isinstance(raw, dict):
            raise ConfigError(f"Config {path} is not a mapping")
        rules = raw.get("rules")
        raw["rules"] = [*rules, rule] if isinstance(rules, list) else [rule]
        atomic_write_text(path, yaml.safe_dump(raw, sort_keys=False))
