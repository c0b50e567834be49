"""Change Record — one bounded-history entry per evaluate call."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from change_safety.models.change import Change, EvaluationContext
from change_safety.models.decision import AutonomyLevel, Decision
from change_safety.models.evaluation import SafetyEvaluation
from change_safety.models.execution import ExecutionResult, FailureKind


class ChangeRecord(BaseModel):
    """
    The structured answer to one ``evaluate_change`` call.

    Every field answers: what was proposed, how risky it looked, what the
    protocol decided under which autonomy level, and what happened.
    """

    id: str
    timestamp: datetime

    # WHAT WAS PROPOSED
    change: Change
    context: EvaluationContext

    # HOW IT WAS JUDGED
    evaluation: SafetyEvaluation
    decision: Decision
    autonomy_level: AutonomyLevel

    # WHAT HAPPENED
    execution_result: Optional[ExecutionResult] = None
    failure: Optional[FailureKind] = None

    @property
    def executed(self) -> bool:
        return self.execution_result is not None

    @property
    def succeeded(self) -> bool:
        return self.execution_result is not None and self.execution_result.success
