"""
Tests for the Change Executor.

Proves:
1. A passing change is committed on a safety branch named after the change
2. A failing test run restores the original bytes and never commits
3. Nothing is mutated when the snapshot or the branch cannot be created
4. The executor refuses decisions that are not execute actions
"""

import pytest

from change_safety.errors import ExecutionError
from change_safety.execution.executor import ChangeExecutor
from change_safety.governance.decider import rejection
from change_safety.models.change import Change, ChangeType
from change_safety.models.config import ProtocolConfig
from change_safety.models.decision import Decision, DecisionAction
from change_safety.models.execution import ExecutionState, FailureKind
from change_safety.snapshots.store import read_exact

ORIGINAL = "export const one = 1;\n"
FIXED = "export function add(a, b) {\n  return a + b;\n}\n"


def _make_change(file_path: str = "src/utils.js", new_content: str = FIXED) -> Change:
    return Change(
        file_path=file_path,
        new_content=new_content,
        lines_added=2,
        lines_removed=1,
        type=ChangeType.SYNTAX_FIX,
        description="add helper",
    )


def _make_decision(action: DecisionAction = DecisionAction.EXECUTE) -> Decision:
    return Decision(action=action, reason="test")


def _make_executor(project, runner, **config) -> ChangeExecutor:
    config.setdefault("test_command", "npm test")
    return ChangeExecutor(project, config=ProtocolConfig(**config), runner=runner)


class TestSuccessfulExecution:
    def test_commits_on_safety_branch(self, project, runner):
        executor = _make_executor(project, runner)
        result = executor.execute("chg_abc", _make_change(), _make_decision())

        assert result.success
        assert result.state == ExecutionState.COMMITTED
        assert result.failure is None
        assert result.safety_branch == "change-safety-chg_abc"
        assert runner.git_calls("checkout") == [["git", "checkout", "-b", "change-safety-chg_abc"]]
        assert runner.git_calls("add") == [["git", "add", "--", "src/utils.js"]]
        assert runner.git_calls("commit") == [
            ["git", "commit", "-m", "auto-fix: add helper (chg_abc)"]
        ]
        assert read_exact(project / "src" / "utils.js") == FIXED

    def test_state_transitions(self, project, runner):
        result = _make_executor(project, runner).execute("chg_1", _make_change(), _make_decision())
        assert result.transitions == [
            ExecutionState.PENDING,
            ExecutionState.SNAPSHOT_TAKEN,
            ExecutionState.APPLIED,
            ExecutionState.TEST_RUNNING,
            ExecutionState.COMMITTED,
        ]

    def test_branch_is_created_before_file_is_written(self, project, runner):
        seen = []
        runner.on_test = lambda argv, cwd: seen.append(read_exact(project / "src" / "utils.js"))
        _make_executor(project, runner).execute("chg_1", _make_change(), _make_decision())

        assert runner.calls[0] == ["git", "rev-parse", "--abbrev-ref", "HEAD"]
        assert runner.calls[1][:3] == ["git", "checkout", "-b"]
        assert runner.calls[2] == ["npm", "test"]
        assert seen == [FIXED]

    def test_starting_branch_is_recorded(self, project, runner):
        result = _make_executor(project, runner).execute("chg_1", _make_change(), _make_decision())
        assert result.starting_branch == "main"
        assert result.safety_branch == "change-safety-chg_1"

    def test_snapshot_id_is_change_id(self, project, runner):
        executor = _make_executor(project, runner)
        result = executor.execute("chg_snap", _make_change(), _make_decision())
        assert result.snapshot_id == "chg_snap"
        assert executor.snapshots.get("chg_snap").files == {"src/utils.js": ORIGINAL}

    def test_configured_command_gets_file_placeholder(self, project, runner):
        executor = _make_executor(project, runner, test_command="npx jest {file}")
        executor.execute("chg_1", _make_change(), _make_decision())
        assert runner.test_calls == [["npx", "jest", "src/utils.js"]]

    @pytest.mark.parametrize(
        "action",
        [DecisionAction.EXECUTE_WITH_APPROVAL, DecisionAction.EXECUTE_WITH_CONFIRMATION],
    )
    def test_all_execute_actions_are_accepted(self, project, runner, action):
        result = _make_executor(project, runner).execute("chg_1", _make_change(), _make_decision(action))
        assert result.success


class TestFailedVerification:
    def test_failing_tests_restore_original_and_skip_commit(self, project, runner):
        original_bytes = (project / "src" / "utils.js").read_bytes()
        runner.test_returncode = 1
        runner.test_stdout = "FAIL src/utils.test.js\n  expected 3, got 4"

        result = _make_executor(project, runner).execute("chg_1", _make_change(), _make_decision())

        assert not result.success
        assert result.state == ExecutionState.REVERTED
        assert result.failure == FailureKind.EXECUTION
        assert result.reason.startswith("tests failed")
        assert "expected 3, got 4" in result.reason
        assert result.restore.success
        assert (project / "src" / "utils.js").read_bytes() == original_bytes
        assert runner.git_calls("commit") == []

    def test_timeout_counts_as_failure(self, project, runner):
        runner.test_timed_out = True
        result = _make_executor(project, runner).execute("chg_1", _make_change(), _make_decision())

        assert not result.success
        assert result.reason.startswith("tests failed (timed out)")
        assert read_exact(project / "src" / "utils.js") == ORIGINAL

    def test_no_resolvable_test_command_reverts(self, project, runner):
        executor = ChangeExecutor(project, config=ProtocolConfig(), runner=runner)
        result = executor.execute("chg_1", _make_change(), _make_decision())

        assert not result.success
        assert result.reason == "tests failed: no test command could be resolved"
        assert runner.test_calls == []
        assert read_exact(project / "src" / "utils.js") == ORIGINAL

    def test_unparseable_test_command_reverts(self, project, runner):
        # model_construct skips validation, as a caller mutating config would
        config = ProtocolConfig.model_construct(test_command="npm test -- 'unterminated")
        executor = ChangeExecutor(project, config=config, runner=runner)
        result = executor.execute("chg_1", _make_change(), _make_decision())

        assert not result.success
        assert result.state == ExecutionState.REVERTED
        assert result.reason.startswith("tests failed: cannot parse test command")
        assert runner.test_calls == []
        assert read_exact(project / "src" / "utils.js") == ORIGINAL

    def test_bad_commit_template_reverts(self, project, runner):
        config = ProtocolConfig.model_construct(
            test_command="npm test", commit_message_template="auto-fix {ticket}"
        )
        executor = ChangeExecutor(project, config=config, runner=runner)
        result = executor.execute("chg_1", _make_change(), _make_decision())

        assert not result.success
        assert result.state == ExecutionState.REVERTED
        assert result.reason.startswith("commit failed: bad commit message template")
        assert runner.git_calls("commit") == []
        assert read_exact(project / "src" / "utils.js") == ORIGINAL

    def test_new_file_removed_after_failed_tests(self, project, runner):
        runner.test_returncode = 1
        change = _make_change(file_path="src/generated/helper.js")
        result = _make_executor(project, runner).execute("chg_1", change, _make_decision())

        assert result.state == ExecutionState.REVERTED
        assert result.restore.removed_paths == ["src/generated/helper.js"]
        assert not (project / "src" / "generated" / "helper.js").exists()

    def test_commit_failure_reverts(self, project, runner):
        runner.git_failures.add("commit")
        result = _make_executor(project, runner).execute("chg_1", _make_change(), _make_decision())

        assert not result.success
        assert result.state == ExecutionState.REVERTED
        assert result.reason.startswith("commit failed")
        assert read_exact(project / "src" / "utils.js") == ORIGINAL

    def test_revert_failure_is_reported(self, project, runner):
        runner.test_returncode = 1
        runner.on_test = lambda argv, cwd: (project / "src" / "utils.js").unlink()
        result = _make_executor(project, runner).execute("chg_1", _make_change(), _make_decision())

        assert not result.success
        assert result.state == ExecutionState.REVERT_FAILED
        assert result.failure == FailureKind.REVERT
        assert result.restore.missing_paths == ["src/utils.js"]
        assert "revert failed" in result.reason

    def test_unexpected_error_reverts_then_propagates(self, project, runner):
        def explode(argv, cwd):
            raise RuntimeError("runner crashed")

        runner.on_test = explode
        with pytest.raises(RuntimeError, match="runner crashed"):
            _make_executor(project, runner).execute("chg_1", _make_change(), _make_decision())
        assert read_exact(project / "src" / "utils.js") == ORIGINAL


class TestNoMutation:
    def test_branch_failure_leaves_tree_untouched(self, project, runner):
        runner.git_failures.add("checkout")
        result = _make_executor(project, runner).execute("chg_1", _make_change(), _make_decision())

        assert not result.success
        assert result.failure == FailureKind.EXECUTION
        assert "could not create safety branch" in result.reason
        assert result.state == ExecutionState.SNAPSHOT_TAKEN
        assert read_exact(project / "src" / "utils.js") == ORIGINAL
        assert runner.test_calls == []

    def test_snapshot_failure_leaves_tree_untouched(self, project, runner):
        (project / "src" / "utils.js").write_bytes(b"\xff\xfeinvalid")
        result = _make_executor(project, runner).execute("chg_1", _make_change(), _make_decision())

        assert not result.success
        assert result.reason.startswith("snapshot failed")
        assert result.state == ExecutionState.PENDING
        assert runner.calls == []
        assert (project / "src" / "utils.js").read_bytes() == b"\xff\xfeinvalid"

    def test_dirty_tree_is_refused_when_required(self, project, runner):
        runner.git_status = " M src/other.js\n"
        executor = _make_executor(project, runner, require_clean_tree=True)
        result = executor.execute("chg_1", _make_change(), _make_decision())

        assert not result.success
        assert result.reason == "working tree is not clean"
        assert read_exact(project / "src" / "utils.js") == ORIGINAL


class TestExecutionGuard:
    @pytest.mark.parametrize(
        "action",
        [DecisionAction.REPORT, DecisionAction.SUGGEST, DecisionAction.MANUAL_REVIEW],
    )
    def test_non_execute_decisions_raise(self, project, runner, action):
        with pytest.raises(ExecutionError, match="not an execute action"):
            _make_executor(project, runner).execute("chg_1", _make_change(), _make_decision(action))
        assert runner.calls == []

    def test_reject_raises(self, project, runner):
        with pytest.raises(ExecutionError):
            _make_executor(project, runner).execute("chg_1", _make_change(), rejection("no"))
        assert read_exact(project / "src" / "utils.js") == ORIGINAL
