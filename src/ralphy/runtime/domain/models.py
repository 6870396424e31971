"""Domain model dataclasses shared by task sources, engines, and the orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

_UNKNOWN_ERROR = "Unknown error"


@dataclass
class Task:
    """One unit of backlog work read from a task source.

    Attributes:
        id: Source-specific identifier (line number, title, or issue key).
        title: Short task description used for prompts and branch names.
        body: Optional long-form description (issue body, YAML description).
        parallel_group: Optional batching group; ``0`` or ``None`` never batches.
        completed: Whether the backing store already marks the task done.
    """

    id: str
    title: str
    body: Optional[str] = None
    parallel_group: Optional[int] = None
    completed: bool = False


@dataclass
class AIResult:
    """Normalized outcome of one engine invocation.

    A failed result always carries a non-empty ``error``; token counts stay at
    zero when the engine does not report usage.
    """

    success: bool
    response: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    error: Optional[str] = None
    cost: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.success and not (self.error or "").strip():
            self.error = _UNKNOWN_ERROR
        self.input_tokens = max(int(self.input_tokens or 0), 0)
        self.output_tokens = max(int(self.output_tokens or 0), 0)

    @classmethod
    def ok(
        cls,
        response: str,
        *,
        input_tokens: int = 0,
        output_tokens: int = 0,
        cost: Optional[str] = None,
    ) -> "AIResult":
        return cls(
            success=True,
            response=response,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost=cost,
        )

    @classmethod
    def failure(cls, error: str, *, response: str = "") -> "AIResult":
        return cls(success=False, response=response, error=error)


@dataclass
class AgentRun:
    """Ephemeral record of one task execution attempt inside the orchestrator."""

    task: Task
    agent_number: int = 0
    work_dir: str = ""
    branch_name: str = ""
    result: Optional[AIResult] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.result is not None and self.result.success

    def failure_reason(self) -> str:
        """Return the diagnostic text for a failed run."""
        if self.error:
            return self.error
        if self.result is not None and self.result.error:
            return self.result.error
        return _UNKNOWN_ERROR


@dataclass
class MergeResult:
    """Terminal state of one branch merge attempt.

    Exactly one of ``success``, ``has_conflicts`` or ``error`` describes the
    outcome; use the named constructors to keep that invariant.
    """

    success: bool
    has_conflicts: bool = False
    conflicted_files: list[str] = field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def merged(cls) -> "MergeResult":
        return cls(success=True)

    @classmethod
    def conflicted(cls, files: list[str]) -> "MergeResult":
        return cls(success=False, has_conflicts=True, conflicted_files=list(files))

    @classmethod
    def failed(cls, error: str) -> "MergeResult":
        return cls(success=False, error=error or _UNKNOWN_ERROR)


@dataclass
class ReconciliationReport:
    """Branches merged into the target and branches preserved for manual review."""

    target_branch: str = ""
    merged: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


@dataclass
class ExecutionResult:
    """Aggregate counters surfaced to the caller at the end of a run."""

    tasks_completed: int = 0
    tasks_failed: int = 0
    total_input_tokens: int = 0
    total_output_tokens: int = 0

    def record_success(self, result: AIResult) -> None:
        self.tasks_completed += 1
        self.total_input_tokens += result.input_tokens
        self.total_output_tokens += result.output_tokens

    def record_failure(self) -> None:
        self.tasks_failed += 1

    @property
    def has_failures(self) -> bool:
        return self.tasks_failed > 0
