"""Shared error types for the ralphy package."""

from __future__ import annotations


class RalphyError(Exception):
    """Base exception for user-facing ralphy errors."""


class ConfigError(RalphyError):
    """Raised when runtime options or configuration are unusable."""


class EnvironmentCheckError(RalphyError):
    """Raised before any batch work when a required tool or repository is missing."""


class TaskSourceError(RalphyError):
    """Raised when a task source cannot be built or addressed."""


class GitCommandError(RalphyError):
    """Raised when a git subprocess exits non-zero.

    Attributes:
        args_list: The git arguments that were executed.
        returncode: Process exit status.
        stderr: Captured standard error, stripped.
    """

    def __init__(self, args_list: list[str], returncode: int, stderr: str = "", stdout: str = "") -> None:
        self.args_list = list(args_list)
        self.returncode = returncode
        self.stderr = (stderr or "").strip()
        self.stdout = (stdout or "").strip()
        detail = self.stderr or self.stdout or f"exit status {returncode}"
        super().__init__(f"git {' '.join(self.args_list)} failed: {detail}")


class RetryableEngineError(RalphyError):
    """Raised inside a retry loop when an engine reports a transient failure."""


class DecodeError(RalphyError):
    """Raised when engine output does not match the expected event shape."""
