"""
Workflow Decider — maps (autonomy level, risk level) to a Decision.

Behavioral Contract:
- Pure lookup; no state, no configuration can change the table
- CRITICAL risk, or any scorer blocker, is MANUAL_REVIEW at every autonomy level
- OBSERVER autonomy reports everything else and never executes
- Higher autonomy only ever unlocks execution one risk level at a time:
    LOW    → EXECUTE from PARTNER upward
    MEDIUM → EXECUTE_WITH_APPROVAL from PARTNER upward
    HIGH   → EXECUTE_WITH_CONFIRMATION at AUTONOMOUS only
"""

from typing import Dict, Tuple

from change_safety.models.decision import AutonomyLevel, Decision, DecisionAction
from change_safety.models.evaluation import RiskLevel, SafetyEvaluation


def _decision(action: DecisionAction, reason: str, **flags) -> Decision:
    return Decision(action=action, reason=reason, **flags)


MANUAL_REVIEW_CRITICAL = _decision(
    DecisionAction.MANUAL_REVIEW,
    "Critical risk detected - manual review required",
    requires_approval=True,
)

OBSERVER_REPORT = _decision(
    DecisionAction.REPORT,
    "Observer mode - only reporting issues",
)

# Keyed by (risk level, autonomy at or above this level)
_TABLE: Dict[Tuple[RiskLevel, bool], Decision] = {
    (RiskLevel.HIGH, True): _decision(
        DecisionAction.EXECUTE_WITH_CONFIRMATION,
        "High risk - showing diff and requiring confirmation",
        requires_approval=True,
        show_diff=True,
    ),
    (RiskLevel.HIGH, False): _decision(
        DecisionAction.MANUAL_REVIEW,
        "High risk - manual review required",
        requires_approval=True,
    ),
    (RiskLevel.MEDIUM, True): _decision(
        DecisionAction.EXECUTE_WITH_APPROVAL,
        "Medium risk - single confirmation required",
        requires_approval=True,
    ),
    (RiskLevel.MEDIUM, False): _decision(
        DecisionAction.SUGGEST,
        "Medium risk - suggesting fix for manual application",
    ),
    (RiskLevel.LOW, True): _decision(
        DecisionAction.EXECUTE,
        "Low risk - auto-applying with notification",
    ),
    (RiskLevel.LOW, False): _decision(
        DecisionAction.SUGGEST,
        "Low risk - suggesting fix for manual application",
    ),
}

# Minimum autonomy that unlocks execution for each risk level
_EXECUTION_FLOOR = {
    RiskLevel.LOW: AutonomyLevel.PARTNER,
    RiskLevel.MEDIUM: AutonomyLevel.PARTNER,
    RiskLevel.HIGH: AutonomyLevel.AUTONOMOUS,
}


def rejection(reason: str) -> Decision:
    """A REJECT decision; used for rate limiting and validation failures."""
    return _decision(DecisionAction.REJECT, reason)


class WorkflowDecider:
    """Chooses the workflow for an evaluated change."""

    def decide(
        self,
        evaluation: SafetyEvaluation,
        autonomy_level: AutonomyLevel,
    ) -> Decision:
        if evaluation.level == RiskLevel.CRITICAL:
            return MANUAL_REVIEW_CRITICAL

        if evaluation.blocked:
            return _decision(
                DecisionAction.MANUAL_REVIEW,
                f"Blocked by guardrail ({', '.join(evaluation.blockers)}) "
                f"- manual review required",
                requires_approval=True,
            )

        if autonomy_level == AutonomyLevel.OBSERVER:
            return OBSERVER_REPORT

        unlocked = autonomy_level.rank >= _EXECUTION_FLOOR[evaluation.level].rank
        return _TABLE[(evaluation.level, unlocked)]
