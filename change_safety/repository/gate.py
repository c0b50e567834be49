"""
Repository Gate — the protocol's only door into version control.

Behavioral Contract:
- Two mutating operations: create-and-checkout a branch, stage + commit paths
- Read-only queries: working-tree cleanliness, current branch
- Every tool failure (non-zero exit, timeout, git missing) comes back as a
  GateResult with ok=False; nothing is raised
"""

import logging
from pathlib import Path
from typing import List, Optional, Sequence

from pydantic import BaseModel

from change_safety.models.execution import CommandResult
from change_safety.process.runner import ProcessRunner, SubprocessRunner

logger = logging.getLogger(__name__)

GIT_TIMEOUT_SECONDS = 30.0


class GateResult(BaseModel):
    """Outcome of one version-control operation."""

    ok: bool
    operation: str
    output: str = ""
    error: Optional[str] = None
    commands: List[CommandResult] = []


class RepositoryGate:
    """Wraps git for branch creation, commits and status checks."""

    def __init__(
        self,
        project_path: Path,
        runner: Optional[ProcessRunner] = None,
        git_binary: str = "git",
    ):
        self.project_path = Path(project_path)
        self.runner = runner or SubprocessRunner()
        self.git_binary = git_binary

    def _git(self, *args: str) -> CommandResult:
        return self.runner.run(
            [self.git_binary, *args],
            cwd=str(self.project_path),
            timeout=GIT_TIMEOUT_SECONDS,
        )

    def _failure(self, operation: str, results: List[CommandResult]) -> GateResult:
        last = results[-1]
        detail = (last.stderr or last.stdout).strip() or last.summary()
        logger.warning("git %s failed: %s", operation, detail)
        return GateResult(ok=False, operation=operation, error=detail, commands=results)

    def create_branch(self, branch_name: str) -> GateResult:
        """Create ``branch_name`` from HEAD and check it out."""
        result = self._git("checkout", "-b", branch_name)
        if not result.ok:
            return self._failure("create_branch", [result])
        logger.info("Created safety branch %s", branch_name)
        return GateResult(
            ok=True, operation="create_branch", output=branch_name, commands=[result]
        )

    def commit(self, paths: Sequence[str], message: str) -> GateResult:
        """Stage exactly ``paths`` and commit them with ``message``."""
        staged = self._git("add", "--", *paths)
        if not staged.ok:
            return self._failure("commit", [staged])

        committed = self._git("commit", "-m", message)
        if not committed.ok:
            return self._failure("commit", [staged, committed])

        logger.info("Committed %s", ", ".join(paths))
        return GateResult(
            ok=True,
            operation="commit",
            output=committed.stdout.strip(),
            commands=[staged, committed],
        )

    def is_clean(self) -> bool:
        """True when git reports no pending changes. Not a repository counts as unclean."""
        result = self._git("status", "--porcelain")
        return result.ok and result.stdout.strip() == ""

    def current_branch(self) -> Optional[str]:
        result = self._git("rev-parse", "--abbrev-ref", "HEAD")
        return result.stdout.strip() if result.ok else None
