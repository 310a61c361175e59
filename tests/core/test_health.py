"""
Tests for the health probe. The database driver is mocked out.
"""
from unittest.mock import MagicMock, patch

from sqlalchemy.exc import OperationalError

from dbkeeper.core.health import HealthProbe


def _probe():
    return HealthProbe("127.0.0.1", 3307, "myuser", "app-secret", "app_db", timeout=2)


class TestHealthProbe:
    """Test HealthProbe.check()."""

    def test_url(self):
        url = _probe().url

        assert url.drivername == "mysql+pymysql"
        assert url.host == "127.0.0.1"
        assert url.port == 3307
        assert url.database == "app_db"
        assert "app-secret" not in str(url)

    def test_from_config(self, config):
        probe = HealthProbe.from_config(config)

        assert probe.url.port == 3307
        assert probe.url.username == "myuser"
        assert probe.timeout == 1

    @patch('dbkeeper.core.health.create_engine')
    def test_check_success(self, mock_create_engine):
        mock_engine = MagicMock()
        mock_create_engine.return_value = mock_engine

        assert _probe().check() is True

        _, kwargs = mock_create_engine.call_args
        assert kwargs["connect_args"] == {"connect_timeout": 2}
        mock_engine.connect.return_value.__enter__.return_value.execute.assert_called_once()
        mock_engine.dispose.assert_called_once()

    @patch('dbkeeper.core.health.create_engine')
    def test_check_connection_refused(self, mock_create_engine):
        mock_engine = MagicMock()
        mock_engine.connect.side_effect = OperationalError("connect", {}, Exception("refused"))
        mock_create_engine.return_value = mock_engine

        assert _probe().check() is False
        mock_engine.dispose.assert_called_once()

    @patch('dbkeeper.core.health.create_engine')
    def test_probe_is_callable(self, mock_create_engine):
        mock_create_engine.return_value = MagicMock()
        assert _probe()() is True
