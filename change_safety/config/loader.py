"""Configuration loading (change-safety.toml / pyproject.toml + defaults)."""

import logging
import tomllib
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from change_safety.errors import ConfigError
from change_safety.models.config import ProtocolConfig

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "change-safety.toml"
PYPROJECT_TABLE = "change-safety"


def _read_toml(path: Path) -> dict:
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e


def load_config(project_path: Optional[Path] = None) -> ProtocolConfig:
    """
    Load configuration for a project.

    ``change-safety.toml`` takes precedence over the ``[tool.change-safety]``
    table of ``pyproject.toml``. Without either, defaults are returned.
    """
    if project_path is None:
        project_path = Path.cwd()

    data = None
    source = None

    config_file = project_path / CONFIG_FILENAME
    pyproject = project_path / "pyproject.toml"
    if config_file.exists():
        data = _read_toml(config_file)
        source = config_file
    elif pyproject.exists():
        data = _read_toml(pyproject).get("tool", {}).get(PYPROJECT_TABLE)
        source = pyproject

    if not data:
        return ProtocolConfig()

    # TOML keys may use dashes
    normalized = {key.replace("-", "_"): value for key, value in data.items()}
    try:
        config = ProtocolConfig.model_validate(normalized)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {source}: {e}") from e

    logger.debug("Loaded configuration from %s", source)
    return config
