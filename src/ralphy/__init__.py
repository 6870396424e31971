"""Autonomous coding-agent loop with parallel git worktree execution."""

__version__ = "4.0.0"
