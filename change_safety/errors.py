"""Exceptions raised inside the protocol.

Component boundaries convert these into typed results; callers of the
façade never see them.
"""


class ChangeSafetyError(Exception):
    """Base class for protocol errors."""


class InvalidChangeError(ChangeSafetyError):
    """Raised when a change fails structural validation."""


class ExecutionError(ChangeSafetyError):
    """Raised when the executor is asked to run a change it must not run."""


class SnapshotError(ChangeSafetyError):
    """Raised when a snapshot cannot be written or read."""


class ConfigError(ChangeSafetyError):
    """Raised when a configuration file cannot be parsed."""
