"""Execution Result — outcome from the Change Executor."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel


class ExecutionState(str, Enum):
    PENDING = "PENDING"
    SNAPSHOT_TAKEN = "SNAPSHOT_TAKEN"
    APPLIED = "APPLIED"
    TEST_RUNNING = "TEST_RUNNING"
    COMMITTED = "COMMITTED"
    REVERTED = "REVERTED"
    REVERT_FAILED = "REVERT_FAILED"


class FailureKind(str, Enum):
    VALIDATION = "VALIDATION"       # Malformed change, rejected before side effects
    RATE_LIMITED = "RATE_LIMITED"   # Window full, rejected before side effects
    UNSAFE = "UNSAFE"               # Critical or blocked change, manual review only
    EXECUTION = "EXECUTION"         # Tests or apply/commit I/O failed, tree restored
    REVERT = "REVERT"               # Restore failed; working tree may be inconsistent


class CommandResult(BaseModel):
    """Outcome of one external process invocation."""

    argv: List[str]
    returncode: Optional[int] = None        # None when the process never finished
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    error: Optional[str] = None             # Spawn failure (binary missing, ...)
    duration_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out and self.error is None

    def summary(self) -> str:
        if self.timed_out:
            return "timed out"
        if self.error:
            return self.error
        return f"exit code {self.returncode}"


class RestoreResult(BaseModel):
    """Outcome of restoring a snapshot. Partial failures are listed, not raised."""

    snapshot_id: str
    success: bool
    restored_paths: List[str] = []
    removed_paths: List[str] = []           # Files created by the change, deleted again
    missing_paths: List[str] = []           # Targets that vanished before restore
    failed_paths: List[str] = []
    error: Optional[str] = None


class ExecutionResult(BaseModel):
    """Outcome of running an approved change through the state machine."""

    change_id: str
    success: bool
    state: ExecutionState
    reason: str = ""
    failure: Optional[FailureKind] = None
    snapshot_id: Optional[str] = None
    safety_branch: Optional[str] = None
    starting_branch: Optional[str] = None    # Checked out before the safety branch
    commit_message: Optional[str] = None
    test_command: Optional[str] = None
    test_result: Optional[CommandResult] = None
    restore: Optional[RestoreResult] = None
    transitions: List[ExecutionState] = []
    executed_at: datetime
    duration_seconds: float = 0.0
