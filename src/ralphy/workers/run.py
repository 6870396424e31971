"""Run a coding-agent CLI as a subprocess and normalize its result."""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
import threading
import uuid
from dataclasses import replace
from pathlib import Path
from typing import Callable, Optional

from ..errors import DecodeError
from ..runtime.domain.models import AIResult
from .config import EngineSpec
from .decoders import DECODERS, DecodedOutput, decode_codex, detect_step_from_output

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]

_STDERR_TAIL_CHARS = 500


def command_exists(command: str) -> bool:
    """Return whether the first word of ``command`` resolves on ``PATH``."""
    parts = shlex.split(command) if command else []
    return bool(parts) and shutil.which(parts[0]) is not None


def _tail(text: str) -> str:
    text = (text or "").strip()
    return text[-_STDERR_TAIL_CHARS:]


class CliEngine:
    """Uniform execute capability over the supported coding-agent CLIs.

    The engine variant in ``spec.kind`` selects both the argv layout and the
    output decoder. Instances hold no per-run state, so one engine can serve
    concurrent calls from different working directories.
    """

    def __init__(self, spec: EngineSpec, *, timeout_seconds: Optional[float] = None) -> None:
        self.spec = spec
        self.timeout_seconds = timeout_seconds

    @property
    def name(self) -> str:
        return self.spec.display_name

    @property
    def cli_command(self) -> str:
        return self.spec.command

    def is_available(self) -> bool:
        return command_exists(self.spec.command)

    def with_model(self, model: str) -> "CliEngine":
        """Return a copy of this engine that passes ``model`` to the CLI."""
        return CliEngine(replace(self.spec, model=model or None), timeout_seconds=self.timeout_seconds)

    def build_argv(self, prompt: str, *, last_message_file: Optional[Path] = None) -> list[str]:
        """Build the full argv for ``prompt`` according to the engine kind."""
        base = shlex.split(self.spec.command)
        model = ["--model", self.spec.model] if self.spec.model else []
        kind = self.spec.kind
        if kind == "claude":
            return [*base, "--dangerously-skip-permissions", "--verbose", "--output-format", "stream-json", *model, "-p", prompt]
        if kind == "qwen":
            return [*base, "--output-format", "stream-json", "--approval-mode", "yolo", *model, "-p", prompt]
        if kind == "opencode":
            return [*base, "run", "--format", "json", *model, prompt]
        if kind == "cursor":
            return [*base, "--print", "--force", "--output-format", "stream-json", *model, prompt]
        if kind == "droid":
            return [*base, "exec", "--output-format", "stream-json", "--auto", "medium", *model, prompt]
        if kind == "codex":
            if last_message_file is None:
                raise ValueError("codex requires a last-message file")
            return [*base, "exec", "--full-auto", "--json", "--output-last-message", str(last_message_file), *model, prompt]
        raise ValueError(f"Unsupported engine kind '{kind}'")

    def _env(self) -> dict[str, str]:
        env = dict(os.environ)
        env.update(dict(self.spec.env))
        return env

    def _last_message_file(self, work_dir: Path) -> Optional[Path]:
        if self.spec.kind != "codex":
            return None
        return work_dir / f".codex-last-message-{os.getpid()}-{uuid.uuid4().hex[:8]}.txt"

    def execute(self, prompt: str, work_dir: Path | str) -> AIResult:
        """Run the engine on ``prompt`` inside ``work_dir`` and wait for it to exit."""
        cwd = Path(work_dir)
        last_message_file = self._last_message_file(cwd)
        argv = self.build_argv(prompt, last_message_file=last_message_file)
        try:
            completed = subprocess.run(
                argv,
                cwd=str(cwd),
                capture_output=True,
                text=True,
                env=self._env(),
                timeout=self.timeout_seconds,
            )
        except FileNotFoundError:
            return AIResult.failure(f"{self.name} CLI not found: '{argv[0]}' is not on PATH")
        except subprocess.TimeoutExpired:
            return AIResult.failure(f"{self.name} timeout after {self.timeout_seconds}s")
        finally:
            last_message = self._consume_last_message(last_message_file)
        output = (completed.stdout or "") + (completed.stderr or "")
        return self._finalize(output, completed.returncode, _tail(completed.stderr), last_message)

    def execute_streaming(self, prompt: str, work_dir: Path | str, on_progress: ProgressCallback) -> AIResult:
        """Like :meth:`execute`, reporting coarse progress labels while output streams.

        The process is killed once ``timeout_seconds`` elapses.
        """
        cwd = Path(work_dir)
        last_message_file = self._last_message_file(cwd)
        argv = self.build_argv(prompt, last_message_file=last_message_file)
        lines: list[str] = []
        last_step: Optional[str] = None
        timed_out = threading.Event()
        try:
            with subprocess.Popen(
                argv,
                cwd=str(cwd),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                env=self._env(),
            ) as proc:
                timer: Optional[threading.Timer] = None
                if self.timeout_seconds is not None:

                    def kill() -> None:
                        timed_out.set()
                        proc.kill()

                    timer = threading.Timer(self.timeout_seconds, kill)
                    timer.daemon = True
                    timer.start()
                try:
                    assert proc.stdout is not None
                    for line in proc.stdout:
                        lines.append(line.rstrip("\n"))
                        step = detect_step_from_output(line)
                        if step and step != last_step:
                            last_step = step
                            on_progress(step)
                    exit_code = proc.wait()
                finally:
                    if timer is not None:
                        timer.cancel()
        except FileNotFoundError:
            return AIResult.failure(f"{self.name} CLI not found: '{argv[0]}' is not on PATH")
        finally:
            last_message = self._consume_last_message(last_message_file)
        if timed_out.is_set():
            return AIResult.failure(f"{self.name} timeout after {self.timeout_seconds}s")
        output = "\n".join(lines)
        return self._finalize(output, exit_code, _tail(output), last_message)

    @staticmethod
    def _consume_last_message(path: Optional[Path]) -> Optional[str]:
        if path is None or not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        finally:
            path.unlink(missing_ok=True)

    def _decode(self, output: str, last_message: Optional[str]) -> DecodedOutput:
        if self.spec.kind == "codex":
            return decode_codex(output, last_message)
        return DECODERS[self.spec.kind](output)

    def _finalize(self, output: str, exit_code: int, stderr_tail: str, last_message: Optional[str]) -> AIResult:
        try:
            decoded = self._decode(output, last_message)
        except DecodeError as exc:
            logger.warning("%s output could not be decoded: %s", self.name, exc)
            if exit_code != 0:
                return AIResult.failure(
                    f"{self.name} exited with status {exit_code}: {stderr_tail or 'no output'} ({exc})"
                )
            return AIResult.failure(f"Could not decode {self.name} output: {exc}")
        if decoded.error:
            return AIResult.failure(decoded.error)
        if exit_code != 0:
            return AIResult.failure(f"{self.name} exited with status {exit_code}: {stderr_tail or 'no output'}")
        return AIResult.ok(
            decoded.response,
            input_tokens=decoded.input_tokens,
            output_tokens=decoded.output_tokens,
            cost=decoded.cost,
        )
