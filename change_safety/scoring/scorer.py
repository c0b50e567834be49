"""
Risk Scorer — turns a proposed change plus repository signals into a safety score.

Behavioral Contract:
- Pure: no I/O, no state, identical inputs (including ``now``) give identical output
- Seven factors, each normalized to [0, 1] where 1 is safest
- Score = weighted sum x 100, clamped to [0, 100]
- Risk level is a fixed-threshold function of the score
- Unknown context signals score neutral (0.5) rather than safe or unsafe
"""

import re
from datetime import datetime, timezone
from fnmatch import fnmatch
from pathlib import PurePosixPath
from typing import Dict, List, Optional

from change_safety.models.change import Change, EvaluationContext
from change_safety.models.evaluation import (
    RiskFactor,
    SafetyEvaluation,
    risk_level_for,
)

NEUTRAL = 0.5

# Factor weights, summing to 1.0
FACTOR_WEIGHTS: Dict[RiskFactor, float] = {
    RiskFactor.COMPLEXITY: 0.25,
    RiskFactor.TEST_COVERAGE: 0.20,
    RiskFactor.DEPENDENCIES: 0.15,
    RiskFactor.CHANGE_SIZE: 0.15,
    RiskFactor.FILE_CRITICALITY: 0.10,
    RiskFactor.RECENT_CHANGES: 0.10,
    RiskFactor.DEVELOPER_CONFIDENCE: 0.05,
}

# Each complexity signal saturates at its ceiling
COMPLEXITY_CEILINGS = {
    "lines": 200,
    "branches": 20,
    "loops": 10,
    "nesting": 6,
}

DEFAULT_DEVELOPER_SUCCESS_RATE = 0.7
INDENT_WIDTH = 4

_BRANCH_RE = re.compile(
    r"\b(?:if|elif|else|switch|case|catch|except)\b|&&|\|\||\?\s"
)
_LOOP_RE = re.compile(r"\b(?:for|while|do)\b")

# Manifests, configuration and entrypoints: a mistake here breaks everything
CRITICAL_FILE_PATTERNS = [
    re.compile(r"^package\.json$"),
    re.compile(r"^pyproject\.toml$"),
    re.compile(r"^setup\.(py|cfg)$"),
    re.compile(r"^requirements.*\.txt$"),
    re.compile(r"^Dockerfile$"),
    re.compile(r"\.config\."),
    re.compile(r"^(index|main|app|server)\.(js|ts|py)$"),
    re.compile(r"^__main__\.py$"),
]

TEST_FILE_PATTERNS = [
    re.compile(r"\.(test|spec)\.(js|jsx|ts|tsx)$"),
    re.compile(r"^test_.*\.py$"),
    re.compile(r"_test\.py$"),
]


def _cap(value: float, ceiling: float) -> float:
    return min(1.0, value / ceiling)


def max_nesting(code: str) -> int:
    """Deepest nesting, by brace depth or indentation depth, whichever is larger."""
    brace_depth = 0
    max_brace = 0
    for char in code:
        if char == "{":
            brace_depth += 1
            max_brace = max(max_brace, brace_depth)
        elif char == "}":
            brace_depth = max(0, brace_depth - 1)

    max_indent = 0
    for line in code.splitlines():
        if not line.strip():
            continue
        expanded = line.expandtabs(INDENT_WIDTH)
        indent = len(expanded) - len(expanded.lstrip(" "))
        max_indent = max(max_indent, indent // INDENT_WIDTH)

    return max(max_brace, max_indent)


def is_critical_file(file_path: str, extra_patterns: Optional[List[str]] = None) -> bool:
    name = PurePosixPath(file_path).name
    if any(p.search(name) for p in CRITICAL_FILE_PATTERNS):
        return True
    return any(
        fnmatch(file_path, pattern) or fnmatch(name, pattern)
        for pattern in (extra_patterns or [])
    )


def is_test_file(file_path: str) -> bool:
    name = PurePosixPath(file_path).name
    return any(p.search(name) for p in TEST_FILE_PATTERNS)


# --- Factor assessments ---

def assess_complexity(change: Change) -> float:
    code = change.new_content
    signals = {
        "lines": len(code.split("\n")),
        "branches": len(_BRANCH_RE.findall(code)),
        "loops": len(_LOOP_RE.findall(code)),
        "nesting": max_nesting(code),
    }
    blend = sum(
        _cap(signals[name], ceiling) for name, ceiling in COMPLEXITY_CEILINGS.items()
    ) / len(COMPLEXITY_CEILINGS)
    return 1.0 - blend


def assess_test_coverage(context: EvaluationContext) -> float:
    if context.test_coverage is None:
        score = NEUTRAL
    else:
        # Safety is the covered share; 1 - coverage/100 is what stays untested.
        score = context.test_coverage / 100.0
    if context.has_tests is False:
        score = min(score, 0.2)
    return score


def assess_dependencies(context: EvaluationContext) -> float:
    if context.dependent_files is None and context.imported_by is None:
        return NEUTRAL
    total = (context.dependent_files or 0) + (context.imported_by or 0)
    if total == 0:
        return 0.9
    if total < 3:
        return 0.7
    if total < 10:
        return 0.5
    return 0.2


def assess_change_size(change: Change) -> float:
    total = change.total_lines_changed
    if total < 5:
        return 0.9
    if total < 20:
        return 0.7
    if total < 50:
        return 0.5
    return 0.2


def assess_file_criticality(change: Change, context: EvaluationContext) -> float:
    if is_critical_file(change.file_path, context.critical_patterns):
        return 0.3
    if is_test_file(change.file_path):
        return 0.8
    return 0.6


def assess_recent_changes(context: EvaluationContext, now: datetime) -> float:
    if context.last_modified is None:
        return NEUTRAL
    last_modified = context.last_modified
    if last_modified.tzinfo is None:
        last_modified = last_modified.replace(tzinfo=timezone.utc)
    days_untouched = (now - last_modified).total_seconds() / 86400.0
    if days_untouched >= 7:
        return 0.8
    if days_untouched > 3:
        return 0.6
    if days_untouched > 1:
        return 0.4
    return 0.2


def assess_developer_confidence(context: EvaluationContext) -> float:
    confidence = context.developer_success_rate
    if confidence is None:
        confidence = DEFAULT_DEVELOPER_SUCCESS_RATE
    if context.similar_changes >= 10:
        confidence += 0.1
    if context.similar_changes >= 50:
        confidence += 0.1
    return min(1.0, confidence)


def find_blockers(change: Change, context: EvaluationContext) -> List[str]:
    """Guardrails that force manual review whatever the numeric score says."""
    blockers = []
    if is_critical_file(change.file_path, context.critical_patterns):
        untested = context.has_tests is False or context.test_coverage == 0
        if untested:
            blockers.append("untested_critical_file")
    return blockers


def _recommendations(
    score: float,
    factors: Dict[RiskFactor, float],
    blockers: List[str],
) -> List[str]:
    recommendations = []
    if score < 50:
        recommendations.append("Consider manual review before applying changes")
    if factors[RiskFactor.TEST_COVERAGE] < 0.5:
        recommendations.append("Add tests before making changes")
    if factors[RiskFactor.DEPENDENCIES] < 0.5:
        recommendations.append("Review impact on dependent files")
    if factors[RiskFactor.COMPLEXITY] < 0.5:
        recommendations.append("Consider breaking down complex changes")
    if "untested_critical_file" in blockers:
        recommendations.append(
            "Critical file has no test coverage; review the change by hand"
        )
    return recommendations


class RiskScorer:
    """Computes a SafetyEvaluation for a change. Holds no state."""

    def __init__(self, weights: Optional[Dict[RiskFactor, float]] = None):
        self.weights = dict(weights or FACTOR_WEIGHTS)
        total = sum(self.weights.values())
        if abs(total - 1.0) > 1e-9:
            raise ValueError(f"Factor weights must sum to 1.0, got {total}")

    def score(
        self,
        change: Change,
        context: Optional[EvaluationContext] = None,
        now: Optional[datetime] = None,
    ) -> SafetyEvaluation:
        """Score a change. Pass ``now`` for fully reproducible recency scoring."""
        if context is None:
            context = EvaluationContext()
        if now is None:
            now = datetime.now(timezone.utc)
        elif now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)

        factors = {
            RiskFactor.COMPLEXITY: assess_complexity(change),
            RiskFactor.TEST_COVERAGE: assess_test_coverage(context),
            RiskFactor.DEPENDENCIES: assess_dependencies(context),
            RiskFactor.CHANGE_SIZE: assess_change_size(change),
            RiskFactor.FILE_CRITICALITY: assess_file_criticality(change, context),
            RiskFactor.RECENT_CHANGES: assess_recent_changes(context, now),
            RiskFactor.DEVELOPER_CONFIDENCE: assess_developer_confidence(context),
        }

        weighted_sum = sum(
            factors[factor] * weight for factor, weight in self.weights.items()
        )
        score = round(max(0.0, min(100.0, weighted_sum * 100)), 2)
        blockers = find_blockers(change, context)

        return SafetyEvaluation(
            score=score,
            level=risk_level_for(score),
            factor_scores={f: round(v, 4) for f, v in factors.items()},
            recommendations=_recommendations(score, factors, blockers),
            blockers=blockers,
        )
