"""Sync job orchestration."""

from testrail_jira_sync.sync.orchestrator import (
    InvocationResult,
    SyncError,
    SyncResult,
    process_project,
    run_scheduled,
    run_sync,
)

__all__ = [
    "InvocationResult",
    "SyncError",
    "SyncResult",
    "process_project",
    "run_scheduled",
    "run_sync",
]
