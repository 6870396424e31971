"""File locking and atomic write helpers for on-disk task state."""

from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import IO, Any, Optional

if os.name == "nt":  # pragma: no cover - exercised on Windows only
    import msvcrt
else:
    import fcntl


class FileLock:
    """Best-effort cross-platform exclusive file lock.

    The lock is also re-entrant per thread so nested read-modify-write helpers
    can share one instance.
    """

    def __init__(self, lock_path: Path):
        self.lock_path = lock_path
        self.handle: Optional[IO[Any]] = None
        self._thread_lock = threading.RLock()
        self._depth = 0

    def __enter__(self) -> "FileLock":
        self._thread_lock.acquire()
        self._depth += 1
        if self._depth > 1:
            return self
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        self.handle = open(self.lock_path, "w")
        if os.name == "nt":  # pragma: no cover
            msvcrt.locking(self.handle.fileno(), msvcrt.LK_LOCK, 1)
        else:
            fcntl.flock(self.handle, fcntl.LOCK_EX)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            self._depth -= 1
            if self._depth > 0 or not self.handle:
                return
            if os.name == "nt":  # pragma: no cover
                msvcrt.locking(self.handle.fileno(), msvcrt.LK_UNLCK, 1)
            else:
                fcntl.flock(self.handle, fcntl.LOCK_UN)
            self.handle.close()
            self.handle = None
        finally:
            self._thread_lock.release()


def atomic_write_text(path: Path, content: str) -> None:
    """Write ``content`` to ``path`` through a temp file and rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    with open(tmp_path, "w", encoding="utf-8", newline="") as handle:
        handle.write(content)
        handle.flush()
        os.fsync(handle.fileno())
    os.replace(tmp_path, path)


def lock_path_for(path: Path) -> Path:
    """Sidecar lock file used to serialize writers of ``path``."""
    return path.with_name(f".{path.name}.lock")
