"""Tests for core exceptions."""

import pytest

from dbkeeper.core.exceptions import (
    ConfigError, ConfirmationRequired, ContainerRuntimeError, DBKeeperError,
    HealthCheckTimeout, InvalidConfigValue, InvalidTransition, MissingConfigKey,
    RollbackError, RuntimeTimeout, VolumeError
)
from dbkeeper.models import ServiceState


class TestDBKeeperError:
    """Test cases for the DBKeeperError base class."""

    def test_basic(self):
        error = DBKeeperError("Test error message")
        assert error.message == "Test error message"
        assert error.details is None
        assert error.transition is None
        assert str(error) == "Test error message"

    def test_to_dict_without_details(self):
        assert DBKeeperError("Test error message").to_dict() == {
            'error': 'DBKeeperError',
            'message': 'Test error message'
        }

    def test_to_dict_with_details_and_transition(self):
        error = DBKeeperError("Test error message", "Additional details")
        error.with_transition(ServiceState.STARTING, ServiceState.RUNNING)

        assert error.to_dict() == {
            'error': 'DBKeeperError',
            'message': 'Test error message',
            'details': 'Additional details',
            'transition': 'starting -> running'
        }

    def test_with_transition_returns_self(self):
        error = VolumeError("boom")
        assert error.with_transition(ServiceState.STOPPED, ServiceState.STARTING) is error
        assert error.transition == ("stopped", "starting")


class TestSpecificErrors:
    """Test cases for the specific error types."""

    def test_missing_key(self):
        error = MissingConfigKey("MYSQL_PASSWORD")
        assert isinstance(error, ConfigError)
        assert error.key == "MYSQL_PASSWORD"
        assert "MYSQL_PASSWORD" in error.message

    def test_invalid_value(self):
        error = InvalidConfigValue("MYSQL_PORT", "must be between 1 and 65535")
        assert isinstance(error, ConfigError)
        assert error.key == "MYSQL_PORT"
        assert error.reason == "must be between 1 and 65535"

    def test_health_check_timeout(self):
        error = HealthCheckTimeout("not ready", attempts=3)
        assert error.attempts == 3
        assert error.to_dict()['error'] == 'HealthCheckTimeout'

    @pytest.mark.parametrize("error_class", [
        ConfigError, ContainerRuntimeError, HealthCheckTimeout, VolumeError,
        InvalidTransition, ConfirmationRequired, RollbackError, RuntimeTimeout
    ])
    def test_inheritance(self, error_class):
        assert issubclass(error_class, DBKeeperError)

    def test_runtime_timeout_is_a_runtime_error(self):
        assert issubclass(RuntimeTimeout, ContainerRuntimeError)

    def test_container_runtime_error_does_not_shadow_builtin(self):
        assert not issubclass(ContainerRuntimeError, RuntimeError)

    def test_rollback_error(self):
        original = ContainerRuntimeError("port busy", "bind failed")
        rollback = ContainerRuntimeError("remove failed")

        error = RollbackError(original, rollback)

        assert error.original is original
        assert error.rollback is rollback
        assert error.message == "port busy; rollback also failed: remove failed"
        assert error.details == "bind failed"
