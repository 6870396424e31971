"""Domain models shared across the runtime."""

from .models import AgentRun, AIResult, ExecutionResult, MergeResult, ReconciliationReport, Task

__all__ = [
    "AIResult",
    "AgentRun",
    "ExecutionResult",
    "MergeResult",
    "ReconciliationReport",
    "Task",
]
