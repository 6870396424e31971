"""Coding-agent engine variants and their subprocess runner."""

from .config import ENGINE_KINDS, EngineKind, EngineSpec, resolve_engine_spec
from .run import CliEngine, command_exists


def create_engine(kind: str, *, command: str | None = None, model: str | None = None) -> CliEngine:
    """Build the CLI engine for ``kind`` (``claude``, ``codex``, ...)."""
    return CliEngine(resolve_engine_spec(kind, command=command, model=model))


__all__ = [
    "CliEngine",
    "ENGINE_KINDS",
    "EngineKind",
    "EngineSpec",
    "command_exists",
    "create_engine",
    "resolve_engine_spec",
]
