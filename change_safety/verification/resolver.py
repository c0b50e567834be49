"""
Test Command Resolver — decides which command verifies a change.

An explicitly configured command always wins. Otherwise the project is
probed for known test-runner markers; file-scoped commands are used where
the runner supports them, the full suite otherwise.
"""

import shlex
from pathlib import Path
from typing import Optional

from change_safety.scoring.scorer import is_test_file

FILE_PLACEHOLDER = "{file}"


class TestCommandResolver:
    """Resolves the test command string for a changed file."""

    __test__ = False  # not a pytest test class

    def __init__(self, project_path: Path, configured_command: Optional[str] = None):
        self.project_path = Path(project_path)
        self.configured_command = configured_command

    def _exists(self, *names: str) -> bool:
        return any((self.project_path / name).exists() for name in names)

    def _has_pytest_config(self) -> bool:
        if self._exists("pytest.ini", "conftest.py", "tox.ini"):
            return True
        pyproject = self.project_path / "pyproject.toml"
        if pyproject.exists():
            try:
                return "[tool.pytest" in pyproject.read_text(encoding="utf-8")
            except OSError:
                return False
        return False

    def resolve(self, file_path: str) -> Optional[str]:
        """Command string for ``file_path``, or None when no runner is known."""
        quoted = shlex.quote(file_path)

        if self.configured_command:
            return self.configured_command.replace(FILE_PLACEHOLDER, quoted)

        if self._exists("jest.config.js", "jest.config.ts"):
            return f"npm test -- --testPathPattern={quoted}"
        if self._exists("vitest.config.js", "vitest.config.ts"):
            return f"npm run test -- {quoted}"
        if self._has_pytest_config():
            if is_test_file(file_path):
                return f"python -m pytest -q {quoted}"
            return "python -m pytest -q"
        if self._exists("package.json"):
            return "npm test"
        return None
