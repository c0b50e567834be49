"""Tests for configuration loading and logging setup."""

import logging

import pytest
from pydantic import ValidationError

from change_safety.config.loader import load_config
from change_safety.errors import ConfigError
from change_safety.logging_utils import configure_logging
from change_safety.models.config import ProtocolConfig, RateLimitPolicy
from change_safety.models.decision import AutonomyLevel


class TestLoadConfig:
    def test_defaults_without_files(self, tmp_path):
        config = load_config(tmp_path)
        assert config.autonomy_level == AutonomyLevel.ASSISTANT
        assert config.test_command is None

    def test_dedicated_file(self, tmp_path):
        (tmp_path / "change-safety.toml").write_text(
            'autonomy-level = "PARTNER"\n'
            "max-changes-per-hour = 5\n"
            'rate-limit-policy = "attempts"\n'
            'test-command = "npm test -- {file}"\n'
        )
        config = load_config(tmp_path)
        assert config.autonomy_level == AutonomyLevel.PARTNER
        assert config.max_changes_per_hour == 5
        assert config.rate_limit_policy == RateLimitPolicy.ATTEMPTS
        assert config.test_command == "npm test -- {file}"

    def test_pyproject_table(self, tmp_path):
        (tmp_path / "pyproject.toml").write_text(
            '[project]\nname = "demo"\n\n'
            '[tool.change-safety]\nautonomy_level = "OBSERVER"\nhistory_capacity = 10\n'
        )
        config = load_config(tmp_path)
        assert config.autonomy_level == AutonomyLevel.OBSERVER
        assert config.history_capacity == 10

    def test_pyproject_without_table(self, tmp_path):
        (tmp_path / "pyproject.toml").write_text('[project]\nname = "demo"\n')
        assert load_config(tmp_path).max_changes_per_hour == 3

    def test_dedicated_file_wins(self, tmp_path):
        (tmp_path / "change-safety.toml").write_text("max_changes_per_hour = 1\n")
        (tmp_path / "pyproject.toml").write_text("[tool.change-safety]\nmax_changes_per_hour = 9\n")
        assert load_config(tmp_path).max_changes_per_hour == 1

    def test_invalid_value(self, tmp_path):
        (tmp_path / "change-safety.toml").write_text('autonomy_level = "GODMODE"\n')
        with pytest.raises(ConfigError, match="Invalid configuration"):
            load_config(tmp_path)

    def test_malformed_toml(self, tmp_path):
        (tmp_path / "change-safety.toml").write_text("autonomy_level = \n")
        with pytest.raises(ConfigError, match="Cannot read"):
            load_config(tmp_path)


@pytest.fixture
def fresh_logger():
    """Detach whatever an earlier import configured, and put it back afterwards."""
    logger = logging.getLogger("change_safety")
    saved_handlers = list(logger.handlers)
    saved_level = logger.level
    saved_flag = getattr(logger, "_change_safety_configured", False)
    for handler in saved_handlers:
        logger.removeHandler(handler)
    setattr(logger, "_change_safety_configured", False)
    yield logger
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    for handler in saved_handlers:
        logger.addHandler(handler)
    logger.setLevel(saved_level)
    setattr(logger, "_change_safety_configured", saved_flag)


class TestConfigureLogging:
    def test_installs_handlers_once(self, tmp_path, fresh_logger):
        log_path = tmp_path / "logs" / "protocol.log"
        logger = configure_logging("DEBUG", log_path=str(log_path), also_console=False)
        handlers = list(logger.handlers)

        again = configure_logging(logging.WARNING, log_path=str(log_path))
        assert again is logger
        assert logger.handlers == handlers
        assert logger.level == logging.WARNING

        logger.warning("snapshot restored")
        for handler in handlers:
            handler.flush()
        assert "snapshot restored" in log_path.read_text()


class TestConfigValidation:
    def test_unparseable_test_command(self):
        with pytest.raises(ValidationError, match="test_command cannot be parsed"):
            ProtocolConfig(test_command="npm test -- 'unterminated")

    def test_blank_test_command(self):
        with pytest.raises(ValidationError, match="test_command is empty"):
            ProtocolConfig(test_command="   ")

    def test_file_placeholder_is_allowed(self):
        assert ProtocolConfig(test_command="npx jest {file}").test_command == "npx jest {file}"

    @pytest.mark.parametrize("template", ["fix {ticket} ({change_id})", "fix {} now", "fix {description"])
    def test_bad_commit_template(self, template):
        with pytest.raises(ValidationError, match="commit_message_template"):
            ProtocolConfig(commit_message_template=template)

    def test_custom_commit_template(self):
        config = ProtocolConfig(commit_message_template="[{change_id}] {description}")
        assert config.commit_message_template == "[{change_id}] {description}"

    def test_loader_reports_bad_test_command(self, tmp_path):
        (tmp_path / "change-safety.toml").write_text(
            "test_command = \"npm test -- 'unterminated\"\n"
        )
        with pytest.raises(ConfigError, match="test_command cannot be parsed"):
            load_config(tmp_path)

    def test_loader_reports_bad_template(self, tmp_path):
        (tmp_path / "change-safety.toml").write_text(
            'commit_message_template = "auto-fix {branch}"\n'
        )
        with pytest.raises(ConfigError, match="commit_message_template"):
            load_config(tmp_path)
