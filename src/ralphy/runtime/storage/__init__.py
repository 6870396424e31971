"""Files ralphy keeps inside the project directory."""

from .bootstrap import ensure_state_dir
from .progress_log import ProgressLog

__all__ = ["ProgressLog", "ensure_state_dir"]
