"""
Change Executor — applies an approved change with verifiable rollback.

States:
  PENDING → SNAPSHOT_TAKEN → APPLIED → TEST_RUNNING → (COMMITTED | REVERTED | REVERT_FAILED)

Behavioral Contract:
- Accepts only changes whose Decision is one of the EXECUTE* actions
- Takes a snapshot and creates the safety branch before touching any file;
  if either fails, nothing is mutated
- Verifies with the resolved test command under a timeout; non-zero exit,
  timeout or no resolvable command all count as test failure
- Test failure, apply error or commit error restores the snapshot
- Commits land on the safety branch only, with the change id in the message
- Unexpected exceptions trigger a best-effort restore before propagating
"""

import logging
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

from change_safety.errors import ExecutionError, SnapshotError
from change_safety.models.change import Change
from change_safety.models.config import ProtocolConfig
from change_safety.models.decision import Decision
from change_safety.models.execution import (
    CommandResult,
    ExecutionResult,
    ExecutionState,
    FailureKind,
    RestoreResult,
)
from change_safety.process.runner import ProcessRunner, SubprocessRunner, parse_command
from change_safety.repository.gate import RepositoryGate
from change_safety.snapshots.store import SnapshotStore, write_exact
from change_safety.verification.resolver import TestCommandResolver

logger = logging.getLogger(__name__)

OUTPUT_TAIL_LINES = 20


def _output_tail(result: CommandResult) -> str:
    combined = "\n".join(part for part in (result.stdout, result.stderr) if part)
    lines = combined.strip().splitlines()
    return "\n".join(lines[-OUTPUT_TAIL_LINES:])


class _Run:
    """Mutable bookkeeping for one execution."""

    def __init__(self, change_id: str):
        self.change_id = change_id
        self.started = time.monotonic()
        self.transitions: List[ExecutionState] = [ExecutionState.PENDING]
        self.snapshot_id: Optional[str] = None
        self.safety_branch: Optional[str] = None
        self.starting_branch: Optional[str] = None
        self.commit_message: Optional[str] = None
        self.test_command: Optional[str] = None
        self.test_result: Optional[CommandResult] = None
        self.restore: Optional[RestoreResult] = None

    @property
    def state(self) -> ExecutionState:
        return self.transitions[-1]

    def advance(self, state: ExecutionState) -> None:
        logger.debug("%s: %s → %s", self.change_id, self.state.value, state.value)
        self.transitions.append(state)

    def result(
        self,
        success: bool,
        reason: str,
        failure: Optional[FailureKind] = None,
    ) -> ExecutionResult:
        return ExecutionResult(
            change_id=self.change_id,
            success=success,
            state=self.state,
            reason=reason,
            failure=failure,
            snapshot_id=self.snapshot_id,
            safety_branch=self.safety_branch,
            starting_branch=self.starting_branch,
            commit_message=self.commit_message,
            test_command=self.test_command,
            test_result=self.test_result,
            restore=self.restore,
            transitions=list(self.transitions),
            executed_at=datetime.now(timezone.utc),
            duration_seconds=round(time.monotonic() - self.started, 3),
        )


class ChangeExecutor:
    """Runs snapshot → apply → verify → commit/revert for one change at a time."""

    def __init__(
        self,
        project_path: Path,
        config: Optional[ProtocolConfig] = None,
        snapshot_store: Optional[SnapshotStore] = None,
        gate: Optional[RepositoryGate] = None,
        runner: Optional[ProcessRunner] = None,
        resolver: Optional[TestCommandResolver] = None,
    ):
        self.project_path = Path(project_path).resolve()
        self.config = config or ProtocolConfig()
        self.runner = runner or SubprocessRunner()
        self.snapshots = snapshot_store or SnapshotStore(
            self.project_path,
            snapshot_dir=self.config.snapshot_dir,
            ttl=timedelta(days=self.config.snapshot_ttl_days),
        )
        self.gate = gate or RepositoryGate(self.project_path, runner=self.runner)
        self.resolver = resolver or TestCommandResolver(
            self.project_path, configured_command=self.config.test_command
        )

    def execute(self, change_id: str, change: Change, decision: Decision) -> ExecutionResult:
        """
        Execute an approved change.

        GUARD: Never execute a decision that is not an EXECUTE* action.
        """
        if not decision.action.executes:
            raise ExecutionError(
                f"Cannot execute change {change_id}: "
                f"decision is {decision.action.value}, not an execute action."
            )

        run = _Run(change_id)

        if self.config.require_clean_tree and not self.gate.is_clean():
            logger.warning("%s: working tree is not clean, not executing", change_id)
            return run.result(False, "working tree is not clean", FailureKind.EXECUTION)

        # 1. Snapshot every touched file
        try:
            run.snapshot_id = self.snapshots.take([change.file_path], snapshot_id=change_id)
        except SnapshotError as e:
            logger.warning("%s: snapshot failed: %s", change_id, e)
            return run.result(False, f"snapshot failed: {e}", FailureKind.EXECUTION)
        run.advance(ExecutionState.SNAPSHOT_TAKEN)

        # 2. Safety branch, before anything is applied
        run.starting_branch = self.gate.current_branch()
        branch_name = f"{self.config.branch_prefix}-{change_id}"
        branch = self.gate.create_branch(branch_name)
        if not branch.ok:
            return run.result(
                False,
                f"could not create safety branch {branch_name}: {branch.error}",
                FailureKind.EXECUTION,
            )
        run.safety_branch = branch_name

        try:
            return self._apply_verify_commit(run, change)
        except Exception:
            logger.exception("%s: unexpected error, restoring snapshot", change_id)
            self._revert(run)
            raise

    def _apply_verify_commit(self, run: _Run, change: Change) -> ExecutionResult:
        # 3. Apply
        try:
            write_exact(self.snapshots.resolve(change.file_path), change.new_content)
        except (OSError, SnapshotError) as e:
            return self._fail_and_revert(run, f"apply failed: {e}")
        run.advance(ExecutionState.APPLIED)

        # 4. Verify
        run.test_command = self.resolver.resolve(change.file_path)
        if run.test_command is None:
            return self._fail_and_revert(run, "tests failed: no test command could be resolved")

        try:
            argv = parse_command(run.test_command)
        except ValueError as e:
            return self._fail_and_revert(run, f"tests failed: cannot parse test command: {e}")

        run.advance(ExecutionState.TEST_RUNNING)
        run.test_result = self.runner.run(
            argv,
            cwd=str(self.project_path),
            timeout=self.config.test_timeout_seconds,
        )
        if not run.test_result.ok:
            detail = _output_tail(run.test_result)
            reason = f"tests failed ({run.test_result.summary()})"
            if detail:
                reason = f"{reason}: {detail}"
            return self._fail_and_revert(run, reason)

        # 5. Commit on the safety branch
        try:
            run.commit_message = self.config.commit_message_template.format(
                description=change.description or change.type.value,
                change_id=run.change_id,
            )
        except (KeyError, IndexError, ValueError) as e:
            return self._fail_and_revert(run, f"commit failed: bad commit message template: {e!r}")
        committed = self.gate.commit([change.file_path], run.commit_message)
        if not committed.ok:
            return self._fail_and_revert(run, f"commit failed: {committed.error}")

        run.advance(ExecutionState.COMMITTED)
        logger.info("%s: applied and committed on %s", run.change_id, run.safety_branch)
        return run.result(True, "change applied, tests passed, committed")

    def _fail_and_revert(self, run: _Run, reason: str) -> ExecutionResult:
        logger.warning("%s: %s; reverting", run.change_id, reason.splitlines()[0])
        if self._revert(run):
            return run.result(False, reason, FailureKind.EXECUTION)
        return run.result(
            False,
            f"{reason}; revert failed: {run.restore.error if run.restore else 'no snapshot'}",
            FailureKind.REVERT,
        )

    def _revert(self, run: _Run) -> bool:
        if run.snapshot_id is None:
            run.advance(ExecutionState.REVERT_FAILED)
            return False
        try:
            run.restore = self.snapshots.restore(run.snapshot_id)
        except Exception as e:
            logger.error("%s: restore raised: %s", run.change_id, e)
            run.restore = RestoreResult(
                snapshot_id=run.snapshot_id, success=False, error=str(e)
            )
        if run.restore.success:
            run.advance(ExecutionState.REVERTED)
            return True
        logger.error(
            "%s: REVERT FAILED, working tree may be inconsistent: %s",
            run.change_id,
            run.restore.error,
        )
        run.advance(ExecutionState.REVERT_FAILED)
        return False
