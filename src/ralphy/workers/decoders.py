"""Strict per-engine decoders for coding-agent CLI output.

Each engine prints newline-delimited JSON events, interleaved with plain log
lines. Plain lines are skipped; a line that looks like a JSON object but does
not parse, or a known event with the wrong shape, raises :class:`DecodeError`
so a garbled stream is never mistaken for a clean run.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Optional

from ..errors import DecodeError
from .config import EngineKind

DEFAULT_RESPONSE = "Task completed"
_CODEX_DONE_PREFIX = "task completed successfully."


@dataclass
class DecodedOutput:
    """Typed view of one engine run's output stream."""

    response: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    error: Optional[str] = None
    cost: Optional[str] = None


def iter_events(output: str) -> Iterator[dict[str, Any]]:
    """Yield JSON object events from ``output``, skipping non-JSON lines."""
    for raw_line in output.splitlines():
        line = raw_line.strip()
        if not line.startswith("{"):
            continue
        try:
            event = json.loads(line)
        except json.JSONDecodeError as exc:
            raise DecodeError(f"Malformed JSON event: {line[:200]}") from exc
        if not isinstance(event, dict):
            raise DecodeError(f"Unexpected event payload: {line[:200]}")
        yield event


def _expect_dict(event: dict[str, Any], key: str) -> dict[str, Any]:
    value = event.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise DecodeError(f"'{event.get('type')}' event has non-object '{key}'")
    return value


def _expect_text(event: dict[str, Any], key: str) -> Optional[str]:
    value = event.get(key)
    if value is None or isinstance(value, str):
        return value
    raise DecodeError(f"'{event.get('type')}' event has non-string '{key}'")


def _expect_count(container: dict[str, Any], key: str) -> int:
    value = container.get(key, 0)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise DecodeError(f"Token count '{key}' is not a number")
    return int(value)


def _error_message(event: dict[str, Any]) -> str:
    error = event.get("error")
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if isinstance(error, str) and error:
        return error
    return str(event.get("message") or "Unknown error")


def decode_stream_json(output: str) -> DecodedOutput:
    """Decode Claude Code / Qwen-Code ``stream-json`` output."""
    decoded = DecodedOutput()
    for event in iter_events(output):
        kind = event.get("type")
        if kind == "error":
            decoded.error = _error_message(event)
            return decoded
        if kind == "result":
            text = _expect_text(event, "result")
            usage = _expect_dict(event, "usage")
            decoded.input_tokens = _expect_count(usage, "input_tokens")
            decoded.output_tokens = _expect_count(usage, "output_tokens")
            if event.get("is_error"):
                decoded.error = text or str(event.get("subtype") or "Engine reported an error")
                return decoded
            decoded.response = text or DEFAULT_RESPONSE
    decoded.response = decoded.response or DEFAULT_RESPONSE
    return decoded


def decode_opencode(output: str) -> DecodedOutput:
    decoded = DecodedOutput()
    text_parts: list[str] = []
    for event in iter_events(output):
        kind = event.get("type")
        if kind == "error":
            decoded.error = _error_message(event)
            return decoded
        if kind == "step_finish":
            part = _expect_dict(event, "part")
            tokens = _expect_dict(part, "tokens")
            decoded.input_tokens = _expect_count(tokens, "input")
            decoded.output_tokens = _expect_count(tokens, "output")
            if part.get("cost"):
                decoded.cost = str(part["cost"])
        elif kind == "text":
            text = _expect_text(_expect_dict(event, "part"), "text")
            if text:
                text_parts.append(text)
    decoded.response = "".join(text_parts) or DEFAULT_RESPONSE
    return decoded


def _duration_cost(value: Any) -> Optional[str]:
    if isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0:
        return f"duration:{int(value)}"
    return None


def decode_cursor(output: str) -> DecodedOutput:
    decoded = DecodedOutput()
    fallback = ""
    for event in iter_events(output):
        kind = event.get("type")
        if kind == "error":
            decoded.error = _error_message(event)
            return decoded
        if kind == "result":
            decoded.response = _expect_text(event, "result") or DEFAULT_RESPONSE
            decoded.cost = _duration_cost(event.get("duration_ms")) or decoded.cost
        elif kind == "assistant" and not fallback:
            content = _expect_dict(event, "message").get("content")
            if isinstance(content, list) and content and isinstance(content[0], dict):
                fallback = str(content[0].get("text") or "")
            elif isinstance(content, str):
                fallback = content
    decoded.response = decoded.response or fallback or DEFAULT_RESPONSE
    return decoded


def decode_droid(output: str) -> DecodedOutput:
    decoded = DecodedOutput()
    for event in iter_events(output):
        kind = event.get("type")
        if kind == "error":
            decoded.error = _error_message(event)
            return decoded
        if kind == "completion":
            decoded.response = _expect_text(event, "finalText") or DEFAULT_RESPONSE
            decoded.cost = _duration_cost(event.get("durationMs")) or decoded.cost
    decoded.response = decoded.response or DEFAULT_RESPONSE
    return decoded


def decode_codex(output: str, last_message: Optional[str] = None) -> DecodedOutput:
    """Decode Codex ``--json`` events plus the ``--output-last-message`` file text.

    Codex does not report token usage.
    """
    decoded = DecodedOutput()
    for event in iter_events(output):
        if event.get("type") == "error":
            decoded.error = _error_message(event)
            return decoded
    response = (last_message or "").strip()
    if response.lower().startswith(_CODEX_DONE_PREFIX):
        response = response[len(_CODEX_DONE_PREFIX):].strip()
    decoded.response = response or DEFAULT_RESPONSE
    return decoded


DECODERS: dict[EngineKind, Callable[[str], DecodedOutput]] = {
    "claude": decode_stream_json,
    "qwen": decode_stream_json,
    "opencode": decode_opencode,
    "cursor": decode_cursor,
    "droid": decode_droid,
    "codex": decode_codex,
}


def _is_test_file(path: str) -> bool:
    lower = path.lower()
    return ".test." in lower or ".spec." in lower or "__tests__" in lower or "_test.go" in lower or "/test_" in lower


def detect_step_from_output(line: str) -> Optional[str]:
    """Map one streamed JSON line to a coarse progress label, if any."""
    text = line.strip()
    if not text.startswith("{"):
        return None
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, dict):
        return None

    tool = str(parsed.get("tool") or parsed.get("name") or parsed.get("tool_name") or "").lower()
    command = str(parsed.get("command") or "").lower()
    file_path = str(parsed.get("file_path") or parsed.get("filePath") or parsed.get("path") or "").lower()
    description = str(parsed.get("description") or "").lower()

    if tool in {"read", "glob", "grep"}:
        return "Reading code"
    if "git commit" in command or "git commit" in description:
        return "Committing"
    if "git add" in command or "git add" in description:
        return "Staging"
    if any(word in command for word in ("lint", "eslint", "biome", "prettier", "ruff")):
        return "Linting"
    if any(word in command for word in ("vitest", "jest", "bun test", "npm test", "pytest", "go test")):
        return "Testing"
    if tool in {"write", "edit"}:
        return "Writing tests" if _is_test_file(file_path) else "Implementing"
    return None
