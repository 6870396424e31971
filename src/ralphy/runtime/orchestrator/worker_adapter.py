"""Agent engine protocol and a deterministic scripted engine."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Callable, Optional, Protocol, Union, runtime_checkable

from ...git.commands import run_git, status_porcelain
from ..domain.models import AIResult

ScriptStep = Union[AIResult, Exception]
PromptHandler = Callable[[str, Path], Optional[AIResult]]


@runtime_checkable
class AgentEngine(Protocol):
    """Contract the orchestrator uses to delegate a prompt to a coding agent."""

    @property
    def name(self) -> str:
        ...

    def execute(self, prompt: str, work_dir: Path | str) -> AIResult:
        """Run the agent on ``prompt`` with ``work_dir`` as its working directory.

        Args:
            prompt (str): Full instruction text for the agent.
            work_dir (Path | str): Repository or worktree directory the agent edits.

        Returns:
            AIResult: Normalized outcome. Transport-level failures are reported
            as ``success=False`` results rather than raised.
        """
        ...


def supports_streaming(engine: AgentEngine) -> bool:
    return callable(getattr(engine, "execute_streaming", None))


class ScriptedEngine:
    """Deterministic engine used in tests and dry local runs.

    Behavior is keyed by substrings of the prompt. ``script`` maps a key to the
    sequence of results (or exceptions to raise) returned by successive calls
    whose prompt contains that key; the last entry repeats. ``files`` maps a key
    to ``{relative_path: content}`` written into the working directory before a
    successful result, committed when ``commit`` is true. ``handler`` runs first
    and may return a result to short-circuit the script.
    """

    def __init__(
        self,
        script: Optional[dict[str, list[ScriptStep]]] = None,
        *,
        files: Optional[dict[str, dict[str, str]]] = None,
        commit: bool = True,
        handler: Optional[PromptHandler] = None,
        name: str = "Scripted",
    ) -> None:
        self._script = {key: list(steps) for key, steps in (script or {}).items()}
        self._files = dict(files or {})
        self._commit = commit
        self._handler = handler
        self._name = name
        self._lock = threading.Lock()
        self._positions: dict[str, int] = {}
        self._active = 0
        self.max_active = 0
        self.calls: list[tuple[str, Path]] = []

    @property
    def name(self) -> str:
        return self._name

    def calls_matching(self, key: str) -> int:
        with self._lock:
            return sum(1 for prompt, _ in self.calls if key in prompt)

    def _next_step(self, prompt: str) -> Optional[ScriptStep]:
        for key, steps in self._script.items():
            if key in prompt and steps:
                position = self._positions.get(key, 0)
                self._positions[key] = position + 1
                return steps[min(position, len(steps) - 1)]
        return None

    def _write_files(self, prompt: str, work_dir: Path) -> None:
        for key, files in self._files.items():
            if key not in prompt:
                continue
            for rel_path, content in files.items():
                path = work_dir / rel_path
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_text(str(content), encoding="utf-8")
            if not self._commit or not status_porcelain(work_dir):
                continue
            run_git(["add", "-A", "--", *files], work_dir)
            if run_git(["diff", "--cached", "--name-only"], work_dir).stdout.strip():
                run_git(["commit", "-m", f"scripted: {key[:60]}"], work_dir)

    def execute(self, prompt: str, work_dir: Path | str) -> AIResult:
        cwd = Path(work_dir)
        with self._lock:
            self.calls.append((prompt, cwd))
            self._active += 1
            self.max_active = max(self.max_active, self._active)
            step = self._next_step(prompt)
        try:
            if self._handler is not None:
                handled = self._handler(prompt, cwd)
                if handled is not None:
                    return handled
            if isinstance(step, Exception):
                raise step
            result = step if step is not None else AIResult.ok("Task completed", input_tokens=10, output_tokens=5)
            if result.success:
                self._write_files(prompt, cwd)
            return result
        finally:
            with self._lock:
                self._active -= 1
