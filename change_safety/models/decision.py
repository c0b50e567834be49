"""Workflow Decision — what the protocol does with an evaluated change."""

from enum import Enum

from pydantic import BaseModel, ConfigDict


class AutonomyLevel(str, Enum):
    """Ceiling on how much the protocol may do without a human."""
    OBSERVER = "OBSERVER"       # Only reports issues
    ASSISTANT = "ASSISTANT"     # Suggests fixes, never applies them
    PARTNER = "PARTNER"         # Applies low-risk fixes, asks for medium risk
    AUTONOMOUS = "AUTONOMOUS"   # Applies up to high risk with confirmation

    @property
    def rank(self) -> int:
        return _AUTONOMY_ORDER.index(self)


_AUTONOMY_ORDER = [
    AutonomyLevel.OBSERVER,
    AutonomyLevel.ASSISTANT,
    AutonomyLevel.PARTNER,
    AutonomyLevel.AUTONOMOUS,
]


class DecisionAction(str, Enum):
    REPORT = "REPORT"
    SUGGEST = "SUGGEST"
    EXECUTE = "EXECUTE"
    EXECUTE_WITH_APPROVAL = "EXECUTE_WITH_APPROVAL"
    EXECUTE_WITH_CONFIRMATION = "EXECUTE_WITH_CONFIRMATION"
    MANUAL_REVIEW = "MANUAL_REVIEW"
    REJECT = "REJECT"

    @property
    def executes(self) -> bool:
        return self in (
            DecisionAction.EXECUTE,
            DecisionAction.EXECUTE_WITH_APPROVAL,
            DecisionAction.EXECUTE_WITH_CONFIRMATION,
        )


class Decision(BaseModel):
    """The workflow chosen for a (risk, autonomy) pair."""

    model_config = ConfigDict(frozen=True)

    action: DecisionAction
    reason: str
    requires_approval: bool = False
    show_diff: bool = False
