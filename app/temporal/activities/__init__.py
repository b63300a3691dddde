"""Temporal activities for file lifecycle maintenance."""

from .file_cleanup import run_file_lifecycle_cleanup

__all__ = [
    "run_file_lifecycle_cleanup",
]
