"""Safety Evaluation — output of the Risk Scorer."""

from enum import Enum
from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class RiskFactor(str, Enum):
    COMPLEXITY = "COMPLEXITY"
    TEST_COVERAGE = "TEST_COVERAGE"
    DEPENDENCIES = "DEPENDENCIES"
    CHANGE_SIZE = "CHANGE_SIZE"
    FILE_CRITICALITY = "FILE_CRITICALITY"
    RECENT_CHANGES = "RECENT_CHANGES"
    DEVELOPER_CONFIDENCE = "DEVELOPER_CONFIDENCE"


# Lower bound (inclusive) of each level, highest first.
RISK_LEVEL_THRESHOLDS = (
    (80.0, RiskLevel.LOW),
    (50.0, RiskLevel.MEDIUM),
    (20.0, RiskLevel.HIGH),
)


def risk_level_for(score: float) -> RiskLevel:
    """
    Map a safety score to its risk bucket.

      [80, 100] → LOW
      [50, 80)  → MEDIUM
      [20, 50)  → HIGH
      [0, 20)   → CRITICAL
    """
    for lower_bound, level in RISK_LEVEL_THRESHOLDS:
        if score >= lower_bound:
            return level
    return RiskLevel.CRITICAL


class SafetyEvaluation(BaseModel):
    """The scorer's verdict on one change. Higher score means safer."""

    model_config = ConfigDict(frozen=True)

    score: float = Field(ge=0.0, le=100.0)
    level: RiskLevel
    factor_scores: Dict[RiskFactor, float] = {}
    recommendations: List[str] = []
    blockers: List[str] = []                # Guardrails that force manual review

    @property
    def blocked(self) -> bool:
        return bool(self.blockers)
