"""Shared fixtures: a scripted process runner and a controllable clock."""

import shutil
import subprocess
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Sequence, Set

import pytest

from change_safety.models.execution import CommandResult


class FakeRunner:
    """Stands in for SubprocessRunner; git calls succeed unless told otherwise."""

    def __init__(self):
        self.calls: List[List[str]] = []
        self.git_failures: Set[str] = set()
        self.git_status = ""
        self.test_returncode = 0
        self.test_stdout = ""
        self.test_stderr = ""
        self.test_timed_out = False
        self.on_test: Optional[Callable[[List[str], str], None]] = None

    def run(self, argv: Sequence[str], cwd: str, timeout: Optional[float] = None) -> CommandResult:
        argv = list(argv)
        self.calls.append(argv)

        if argv[0] == "git":
            sub = argv[1]
            if sub in self.git_failures:
                return CommandResult(argv=argv, returncode=128, stderr=f"fatal: {sub} failed")
            if sub == "status":
                return CommandResult(argv=argv, returncode=0, stdout=self.git_status)
            if sub == "rev-parse":
                return CommandResult(argv=argv, returncode=0, stdout="main\n")
            return CommandResult(argv=argv, returncode=0)

        if self.on_test:
            self.on_test(argv, cwd)
        if self.test_timed_out:
            return CommandResult(argv=argv, timed_out=True)
        return CommandResult(
            argv=argv,
            returncode=self.test_returncode,
            stdout=self.test_stdout,
            stderr=self.test_stderr,
        )

    def git_calls(self, sub: str) -> List[List[str]]:
        return [c for c in self.calls if c[0] == "git" and c[1] == sub]

    @property
    def test_calls(self) -> List[List[str]]:
        return [c for c in self.calls if c[0] != "git"]


class FakeClock:
    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def project(tmp_path):
    """A project directory with one small source file."""
    src = tmp_path / "src"
    src.mkdir()
    (src / "utils.js").write_text("export const one = 1;\n", encoding="utf-8")
    return tmp_path


@pytest.fixture
def git_project(project):
    """``project`` as a committed git repository; skips when git is missing."""
    if shutil.which("git") is None:
        pytest.skip("git not installed")

    def git(*args):
        subprocess.run(["git", *args], cwd=project, check=True, capture_output=True)

    git("init", "-q")
    git("config", "user.email", "ci@example.com")
    git("config", "user.name", "CI")
    git("config", "commit.gpgsign", "false")
    git("add", "-A")
    git("commit", "-q", "-m", "initial")
    return project
