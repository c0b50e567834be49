"""
Change Safety Protocol — the façade every caller goes through.

Per call, in order:
  validate → rate-limit check → risk scoring → decision → (conditional) execution → history append

Behavioral Contract:
- Always returns a ChangeRecord carrying evaluation, decision and (when the
  change ran) execution result; callers never read status from exceptions
- A rate-limited or invalid change is rejected before any side effect, but
  still carries a full evaluation
- Decisions that require approval only run when the call is pre-approved or
  the injected approver confirms
- History is a fixed-capacity ring; the oldest record is evicted first
- Not safe for concurrent use on one working tree; callers run one
  protocol instance per repository and serialize calls
"""

import logging
import threading
from collections import deque
from datetime import datetime, timedelta, timezone
from pathlib import Path, PurePosixPath, PureWindowsPath
from typing import Callable, Deque, Dict, List, Optional, Union

from change_safety.errors import InvalidChangeError
from change_safety.execution.executor import ChangeExecutor
from change_safety.governance.decider import WorkflowDecider, rejection
from change_safety.ids import new_id
from change_safety.models.change import Change, EvaluationContext
from change_safety.models.config import ProtocolConfig
from change_safety.models.decision import AutonomyLevel, Decision, DecisionAction
from change_safety.models.evaluation import RiskLevel, SafetyEvaluation
from change_safety.models.execution import ExecutionResult, FailureKind, RestoreResult
from change_safety.models.history import ChangeRecord
from change_safety.process.runner import ProcessRunner
from change_safety.ratelimit.limiter import RateLimiter
from change_safety.scoring.scorer import RiskScorer

logger = logging.getLogger(__name__)

# Called for decisions that need a human yes/no before execution
Approver = Callable[[Change, SafetyEvaluation, Decision], bool]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def validate_change(change: Change, protected_dirs: List[str]) -> None:
    """Structural checks only; raises InvalidChangeError."""
    path = change.file_path
    if not path or not path.strip():
        raise InvalidChangeError("file_path is empty")
    if PurePosixPath(path).is_absolute() or PureWindowsPath(path).is_absolute():
        raise InvalidChangeError(f"file_path must be relative to the project: {path}")

    parts = PurePosixPath(path.replace("\\", "/")).parts
    if ".." in parts:
        raise InvalidChangeError(f"file_path escapes the project root: {path}")
    for protected in protected_dirs:
        protected_parts = PurePosixPath(protected).parts
        if tuple(parts[: len(protected_parts)]) == protected_parts:
            raise InvalidChangeError(f"file_path is inside protected directory {protected}: {path}")


class ChangeSafetyProtocol:
    """Coordinates scoring, decisions, rate limiting and execution for one project."""

    def __init__(
        self,
        project_path: Path,
        config: Optional[ProtocolConfig] = None,
        scorer: Optional[RiskScorer] = None,
        decider: Optional[WorkflowDecider] = None,
        rate_limiter: Optional[RateLimiter] = None,
        executor: Optional[ChangeExecutor] = None,
        runner: Optional[ProcessRunner] = None,
        approver: Optional[Approver] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.project_path = Path(project_path).resolve()
        self.config = config or ProtocolConfig()
        self.scorer = scorer or RiskScorer()
        self.decider = decider or WorkflowDecider()
        self.rate_limiter = rate_limiter or RateLimiter(
            max_changes=self.config.max_changes_per_hour,
            window=timedelta(seconds=self.config.rate_limit_window_seconds),
            policy=self.config.rate_limit_policy,
            clock=clock,
        )
        self.executor = executor or ChangeExecutor(
            self.project_path, config=self.config, runner=runner
        )
        self.approver = approver
        self._clock = clock

        self._autonomy_level = self.config.autonomy_level
        self._history: Deque[ChangeRecord] = deque(maxlen=self.config.history_capacity)
        self._lock = threading.Lock()
        self._protected_dirs = [".git", self.config.snapshot_dir.split("/")[0]]

    # --- Autonomy ---

    @property
    def autonomy_level(self) -> AutonomyLevel:
        return self._autonomy_level

    def set_autonomy_level(self, level: Union[AutonomyLevel, str]) -> AutonomyLevel:
        """Change the default autonomy level. Waits for any in-flight evaluation."""
        try:
            new_level = AutonomyLevel(level)
        except ValueError:
            raise ValueError(f"Invalid autonomy level: {level!r}") from None
        with self._lock:
            self._autonomy_level = new_level
        logger.info("Autonomy level set to %s", new_level.value)
        return new_level

    # --- Evaluation ---

    def evaluate_change(
        self,
        change: Change,
        context: Optional[EvaluationContext] = None,
        autonomy_level: Optional[AutonomyLevel] = None,
        approved: bool = False,
    ) -> ChangeRecord:
        """
        Evaluate a proposed change and, when the decision allows it, execute it.

        ``autonomy_level`` overrides the protocol default for this call only.
        ``approved`` pre-approves decisions that require a confirmation.
        """
        with self._lock:
            return self._evaluate(change, context or EvaluationContext(), autonomy_level, approved)

    def _evaluate(
        self,
        change: Change,
        context: EvaluationContext,
        autonomy_level: Optional[AutonomyLevel],
        approved: bool,
    ) -> ChangeRecord:
        now = self._clock()
        record_id = new_id("chg")
        autonomy = autonomy_level or self._autonomy_level
        failure: Optional[FailureKind] = None
        execution: Optional[ExecutionResult] = None

        invalid_reason = None
        try:
            validate_change(change, self._protected_dirs)
        except InvalidChangeError as e:
            invalid_reason = str(e)

        allowed = invalid_reason is None and self.rate_limiter.allow(now)
        evaluation = self.scorer.score(change, context, now=now)

        if invalid_reason is not None:
            decision = rejection(f"Invalid change: {invalid_reason}")
            failure = FailureKind.VALIDATION
        elif not allowed:
            decision = rejection(
                f"Rate limit exceeded (max {self.rate_limiter.max_changes} changes "
                f"per {int(self.rate_limiter.window.total_seconds() // 60)} minutes)"
            )
            failure = FailureKind.RATE_LIMITED
        else:
            decision = self.decider.decide(evaluation, autonomy)
            if decision.action == DecisionAction.MANUAL_REVIEW and (
                evaluation.level == RiskLevel.CRITICAL or evaluation.blocked
            ):
                failure = FailureKind.UNSAFE
            if decision.action.executes and self._is_approved(change, evaluation, decision, approved):
                execution = self.executor.execute(record_id, change, decision)
                self.rate_limiter.record(execution.success, self._clock())
                failure = execution.failure

        record = ChangeRecord(
            id=record_id,
            timestamp=now,
            change=change,
            context=context,
            evaluation=evaluation,
            decision=decision,
            autonomy_level=autonomy,
            execution_result=execution,
            failure=failure,
        )
        self._history.append(record)

        log = logger.warning if failure else logger.info
        log(
            "%s %s: score=%.1f level=%s action=%s%s",
            record_id,
            change.file_path,
            evaluation.score,
            evaluation.level.value,
            decision.action.value,
            f" executed success={execution.success}" if execution else "",
        )
        return record

    def _is_approved(
        self,
        change: Change,
        evaluation: SafetyEvaluation,
        decision: Decision,
        approved: bool,
    ) -> bool:
        if not decision.requires_approval or approved:
            return True
        if self.approver is None:
            logger.info("%s needs approval; no approver configured", decision.action.value)
            return False
        return bool(self.approver(change, evaluation, decision))

    # --- History & statistics ---

    def get_change_history(self, limit: int = 10) -> List[ChangeRecord]:
        """The most recent ``limit`` records, oldest first."""
        if limit <= 0:
            return []
        return list(self._history)[-limit:]

    def get_record(self, record_id: str) -> Optional[ChangeRecord]:
        return next((r for r in self._history if r.id == record_id), None)

    def get_safety_statistics(self) -> dict:
        records = list(self._history)
        total = len(records)
        executed = sum(1 for r in records if r.executed)
        successful = sum(1 for r in records if r.succeeded)

        risk_levels: Dict[str, int] = {}
        for r in records:
            key = r.evaluation.level.value
            risk_levels[key] = risk_levels.get(key, 0) + 1

        return {
            "total": total,
            "executed": executed,
            "successful": successful,
            "success_rate": (successful / executed) * 100 if executed > 0 else 0.0,
            "risk_levels": risk_levels,
            "autonomy_level": self._autonomy_level.value,
            "max_changes_per_hour": self.rate_limiter.max_changes,
            "changes_in_window": self.rate_limiter.count_in_window(),
        }

    # --- Snapshots ---

    def restore_snapshot(self, snapshot_id: str) -> RestoreResult:
        """Manually roll a file set back to a stored snapshot."""
        with self._lock:
            return self.executor.snapshots.restore(snapshot_id)
