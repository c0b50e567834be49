"""Change Safety Protocol data models."""

from change_safety.models.change import Change, ChangeType, EvaluationContext
from change_safety.models.config import ProtocolConfig, RateLimitPolicy
from change_safety.models.decision import AutonomyLevel, Decision, DecisionAction
from change_safety.models.evaluation import (
    RiskFactor,
    RiskLevel,
    SafetyEvaluation,
    risk_level_for,
)
from change_safety.models.execution import (
    CommandResult,
    ExecutionResult,
    ExecutionState,
    FailureKind,
    RestoreResult,
)
from change_safety.models.history import ChangeRecord
from change_safety.models.snapshot import Snapshot

__all__ = [
    "AutonomyLevel",
    "Change",
    "ChangeRecord",
    "ChangeType",
    "CommandResult",
    "Decision",
    "DecisionAction",
    "EvaluationContext",
    "ExecutionResult",
    "ExecutionState",
    "FailureKind",
    "ProtocolConfig",
    "RateLimitPolicy",
    "RestoreResult",
    "RiskFactor",
    "RiskLevel",
    "SafetyEvaluation",
    "Snapshot",
    "risk_level_for",
]
