"""Temporal workflows for file lifecycle maintenance."""

from .file_cleanup import FileLifecycleCleanupWorkflow

__all__ = [
    "FileLifecycleCleanupWorkflow",
]
