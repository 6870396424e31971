"""Resolve which coding-agent CLI runs tasks and how it is invoked."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional, cast

from ..errors import ConfigError

EngineKind = Literal["claude", "opencode", "cursor", "codex", "qwen", "droid"]

ENGINE_KINDS: tuple[EngineKind, ...] = ("claude", "opencode", "cursor", "codex", "qwen", "droid")

_DEFAULT_COMMANDS: dict[EngineKind, str] = {
    "claude": "claude",
    "opencode": "opencode",
    "cursor": "agent",
    "codex": "codex",
    "qwen": "qwen",
    "droid": "droid",
}

_DISPLAY_NAMES: dict[EngineKind, str] = {
    "claude": "Claude Code",
    "opencode": "OpenCode",
    "cursor": "Cursor Agent",
    "codex": "Codex",
    "qwen": "Qwen-Code",
    "droid": "Factory Droid",
}


@dataclass(frozen=True)
class EngineSpec:
    """Normalized settings for one coding-agent engine.

    Attributes:
        kind: Engine variant; selects the argv layout and the output decoder.
        command: Executable invoked for this engine.
        display_name: Human-readable engine name used in logs.
        model: Optional model override passed to engines that accept one.
        env: Extra environment variables for the subprocess.
    """

    kind: EngineKind
    command: str
    display_name: str
    model: Optional[str] = None
    env: tuple[tuple[str, str], ...] = ()

    @property
    def name(self) -> str:
        return self.display_name


def resolve_engine_spec(
    kind: str,
    *,
    command: Optional[str] = None,
    model: Optional[str] = None,
) -> EngineSpec:
    """Build the :class:`EngineSpec` for ``kind``.

    Args:
        kind: Engine name as given on the command line or in config.
        command: Optional executable override.
        model: Optional model override.

    Raises:
        ConfigError: If ``kind`` is not a supported engine.
    """
    normalized = str(kind or "").strip().lower()
    if normalized not in ENGINE_KINDS:
        available = ", ".join(ENGINE_KINDS)
        raise ConfigError(f"Unknown AI engine '{kind}' (available: {available})")
    engine_kind = cast(EngineKind, normalized)
    env: tuple[tuple[str, str], ...] = ()
    if engine_kind == "opencode":
        env = (("OPENCODE_PERMISSION", '{"*":"allow"}'),)
    return EngineSpec(
        kind=engine_kind,
        command=(command or "").strip() or _DEFAULT_COMMANDS[engine_kind],
        display_name=_DISPLAY_NAMES[engine_kind],
        model=(model or "").strip() or None,
        env=env,
    )
