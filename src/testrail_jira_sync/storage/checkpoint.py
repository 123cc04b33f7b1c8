"""Checkpoint storage for the resumable sync job.

The checkpoint is a small JSON document holding the project cursor and
the per-issue percentage history of the current cycle::

    {
      "lastIndex": 3,
      "jiraPercentages": {"ABC-1": [{"coverage": 80, "passRate": 90}]},
      "updatedAt": "2026-01-01T00:00:00+00:00"
    }

Writes are atomic (temp file + rename) and a whole state is written at
once, so a reader never sees a cursor without its matching history. An
exclusive lock file keeps two job invocations off the same checkpoint.
"""

import fcntl
import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from testrail_jira_sync.coverage.averaging import PercentageHistory
from testrail_jira_sync.coverage.metrics import PercentagePair

logger = logging.getLogger(__name__)


class CheckpointError(Exception):
    """Raised when the checkpoint cannot be read."""


class CheckpointLockedError(CheckpointError):
    """Raised when another invocation holds the checkpoint lock."""


@dataclass
class CheckpointState:
    """Persisted cursor and percentage history."""

    last_index: int = 0
    jira_percentages: PercentageHistory = field(default_factory=dict)
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "lastIndex": self.last_index,
            "jiraPercentages": {
                key: [pair.to_dict() for pair in pairs]
                for key, pairs in self.jira_percentages.items()
            },
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CheckpointState":
        """Create from dictionary. Missing keys take their defaults."""
        last_index = int(data.get("lastIndex") or 0)
        if last_index < 0:
            msg = f"lastIndex must be >= 0, got {last_index}"
            raise ValueError(msg)
        raw_percentages = data.get("jiraPercentages") or {}
        updated_at = data.get("updatedAt")
        return cls(
            last_index=last_index,
            jira_percentages={
                key: [PercentagePair.from_dict(pair) for pair in pairs]
                for key, pairs in raw_percentages.items()
            },
            updated_at=datetime.fromisoformat(updated_at) if updated_at else None,
        )


class CheckpointStore:
    """Reads and writes the checkpoint file.

    Provides:
    - Atomic checkpoint writes via temp file + rename
    - An exclusive, non-blocking lock for the duration of an invocation
    """

    def __init__(self, checkpoint_path: Path, lock_path: Path | None = None) -> None:
        """Initialize checkpoint store.

        Args:
            checkpoint_path: Path to checkpoint JSON file.
            lock_path: Path to lock file. Defaults to checkpoint_path + '.lock'.
        """
        self.checkpoint_path = checkpoint_path
        self.lock_path = lock_path or Path(str(checkpoint_path) + ".lock")
        self._lock_file: Any = None

    def exists(self) -> bool:
        """Check if checkpoint file exists."""
        return self.checkpoint_path.exists()

    def load(self) -> CheckpointState:
        """Load the checkpoint, or a fresh state if none was saved yet.

        Raises:
            CheckpointError: If the checkpoint file is corrupted.
        """
        if not self.exists():
            logger.info("No checkpoint at %s, starting a new cycle", self.checkpoint_path)
            return CheckpointState()

        try:
            with self.checkpoint_path.open() as f:
                data = json.load(f)
            state = CheckpointState.from_dict(data)
        except (json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError) as e:
            msg = f"Corrupted checkpoint at {self.checkpoint_path}: {e}"
            raise CheckpointError(msg) from e

        logger.info(
            "Loaded checkpoint from %s (lastIndex=%d, %d issues)",
            self.checkpoint_path,
            state.last_index,
            len(state.jira_percentages),
        )
        return state

    def save(self, state: CheckpointState) -> None:
        """Save the checkpoint atomically and stamp ``updated_at``."""
        self.checkpoint_path.parent.mkdir(parents=True, exist_ok=True)
        state.updated_at = datetime.now(UTC)

        fd, temp_path = tempfile.mkstemp(
            dir=self.checkpoint_path.parent,
            prefix=".checkpoint_",
            suffix=".tmp",
        )

        try:
            with os.fdopen(fd, "w") as f:
                json.dump(state.to_dict(), f, indent=2)

            Path(temp_path).replace(self.checkpoint_path)
            logger.debug("Saved checkpoint to %s", self.checkpoint_path)

        except Exception:
            Path(temp_path).unlink(missing_ok=True)
            raise

    def delete_if_exists(self) -> None:
        """Delete the checkpoint file if it exists."""
        self.checkpoint_path.unlink(missing_ok=True)
        logger.info("Deleted checkpoint at %s", self.checkpoint_path)

    # Context manager support

    def __enter__(self) -> "CheckpointStore":
        """Acquire the checkpoint lock without waiting.

        Raises:
            CheckpointLockedError: If another process holds the lock.
        """
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        lock_file = self.lock_path.open("w")
        try:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as e:
            lock_file.close()
            msg = f"Checkpoint {self.checkpoint_path} is locked by another run"
            raise CheckpointLockedError(msg) from e

        self._lock_file = lock_file
        logger.debug("Acquired checkpoint lock")
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Release the checkpoint lock."""
        if self._lock_file:
            fcntl.flock(self._lock_file.fileno(), fcntl.LOCK_UN)
            self._lock_file.close()
            self._lock_file = None
            logger.debug("Released checkpoint lock")
