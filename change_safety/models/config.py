"""Protocol configuration."""

import shlex
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from change_safety.models.decision import AutonomyLevel


class RateLimitPolicy(str, Enum):
    SUCCESSES = "successes"     # Only successful executions use up the window
    ATTEMPTS = "attempts"       # Every execution attempt uses up the window


class ProtocolConfig(BaseModel):
    """Configuration for the Change Safety Protocol."""

    autonomy_level: AutonomyLevel = AutonomyLevel.ASSISTANT
    max_changes_per_hour: int = Field(default=3, ge=0)
    rate_limit_window_seconds: int = Field(default=3600, gt=0)
    rate_limit_policy: RateLimitPolicy = RateLimitPolicy.SUCCESSES
    history_capacity: int = Field(default=100, gt=0)
    snapshot_dir: str = ".change-safety/snapshots"
    snapshot_ttl_days: int = Field(default=7, gt=0)
    test_command: Optional[str] = None      # May contain a {file} placeholder
    test_timeout_seconds: float = Field(default=300.0, gt=0)
    branch_prefix: str = "change-safety"
    commit_message_template: str = "auto-fix: {description} ({change_id})"
    require_clean_tree: bool = False

    @field_validator("test_command")
    @classmethod
    def _test_command_parses(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        try:
            argv = shlex.split(value)
        except ValueError as e:
            raise ValueError(f"test_command cannot be parsed: {e}") from e
        if not argv:
            raise ValueError("test_command is empty")
        return value

    @field_validator("commit_message_template")
    @classmethod
    def _template_formats(cls, value: str) -> str:
        try:
            value.format(description="", change_id="")
        except (KeyError, IndexError, ValueError) as e:
            raise ValueError(
                "commit_message_template may only use {description} and {change_id}: "
                f"{e!r}"
            ) from e
        return value
