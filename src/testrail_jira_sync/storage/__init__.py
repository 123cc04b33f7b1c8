"""Checkpoint persistence."""

from testrail_jira_sync.storage.checkpoint import (
    CheckpointError,
    CheckpointLockedError,
    CheckpointState,
    CheckpointStore,
)

__all__ = [
    "CheckpointError",
    "CheckpointLockedError",
    "CheckpointState",
    "CheckpointStore",
]
