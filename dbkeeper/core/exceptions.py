"""
dbkeeper Core Exceptions

Error taxonomy shared by the core modules and the CLI.
Every error carries a human readable message, optional details and, once the
lifecycle controller has seen it, the state transition that failed.
"""

from typing import Any, Dict, Optional, Tuple


class DBKeeperError(Exception):
    """Base class for all dbkeeper errors."""

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details
        self.transition: Optional[Tuple[str, str]] = None

    def with_transition(self, from_state, to_state) -> "DBKeeperError":
        """Attach the failing state pair and return self for re-raising."""
        self.transition = (_state_name(from_state), _state_name(to_state))
        return self

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'error': self.__class__.__name__,
            'message': self.message
        }
        if self.details:
            result['details'] = self.details
        if self.transition:
            result['transition'] = f"{self.transition[0]} -> {self.transition[1]}"
        return result


def _state_name(state) -> str:
    return getattr(state, 'value', str(state))


class ConfigError(DBKeeperError):
    """Missing or invalid configuration. Fatal, never retried."""

    def __init__(self, key: str, message: str, details: Optional[str] = None):
        super().__init__(message, details)
        self.key = key


class MissingConfigKey(ConfigError):
    """A required configuration key is absent from the source."""

    def __init__(self, key: str):
        super().__init__(key, f"Missing required configuration key '{key}'")


class InvalidConfigValue(ConfigError):
    """A configuration key is present but its value is unusable."""

    def __init__(self, key: str, reason: str):
        super().__init__(key, f"Invalid value for '{key}': {reason}")
        self.reason = reason


class ContainerRuntimeError(DBKeeperError):
    """The container runtime rejected a command (e.g. port already bound)."""


class RuntimeTimeout(ContainerRuntimeError):
    """A container runtime command did not finish within its timeout."""


class HealthCheckTimeout(DBKeeperError):
    """The service did not become ready within the retry budget."""

    def __init__(self, message: str, attempts: int, details: Optional[str] = None):
        super().__init__(message, details)
        self.attempts = attempts


class VolumeError(DBKeeperError):
    """The data volume could not be inspected or removed."""


class InvalidTransition(DBKeeperError):
    """The requested operation is not allowed from the current state."""


class ConfirmationRequired(DBKeeperError):
    """A data-destroying operation was requested without confirmation."""


class RollbackError(DBKeeperError):
    """Starting failed and releasing the partially started service failed too."""

    def __init__(self, original: DBKeeperError, rollback: DBKeeperError):
        super().__init__(
            f"{original.message}; rollback also failed: {rollback.message}",
            rollback.details or original.details
        )
        self.original = original
        self.rollback = rollback
