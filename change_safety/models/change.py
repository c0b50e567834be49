"""Change and EvaluationContext — the inputs handed to the protocol."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ChangeType(str, Enum):
    SYNTAX_FIX = "SYNTAX_FIX"
    STYLE_FIX = "STYLE_FIX"
    SECURITY_FIX = "SECURITY_FIX"
    PERFORMANCE_FIX = "PERFORMANCE_FIX"
    REFACTOR = "REFACTOR"
    TEST_GENERATION = "TEST_GENERATION"
    DEPENDENCY_UPDATE = "DEPENDENCY_UPDATE"


class Change(BaseModel):
    """
    A proposed modification to a single file.

    Built by the assistant layer from a model suggestion. The protocol only
    checks structural metadata (path shape, line counts), never the content.
    """

    model_config = ConfigDict(frozen=True)

    file_path: str                          # Relative to the project root
    new_content: str
    lines_added: int = Field(ge=0, default=0)
    lines_removed: int = Field(ge=0, default=0)
    type: ChangeType = ChangeType.SYNTAX_FIX
    description: str = ""

    @property
    def total_lines_changed(self) -> int:
        return self.lines_added + self.lines_removed


class EvaluationContext(BaseModel):
    """
    Signals gathered by repository introspection.

    Every field is optional. Unknown values map to neutral factor scores
    in the risk scorer instead of being treated as safe or unsafe.
    """

    test_coverage: Optional[float] = Field(default=None, ge=0.0, le=100.0)
    has_tests: Optional[bool] = None
    dependent_files: Optional[int] = Field(default=None, ge=0)   # fan-out
    imported_by: Optional[int] = Field(default=None, ge=0)       # fan-in
    critical_patterns: List[str] = []       # Extra glob hints, e.g. "src/billing/*"
    last_modified: Optional[datetime] = None
    developer_success_rate: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    similar_changes: int = Field(default=0, ge=0)
