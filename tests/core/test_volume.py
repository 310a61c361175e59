"""
Tests for the volume init gate.
"""
import os
from unittest.mock import patch

import pytest

from dbkeeper.core.exceptions import VolumeError
from dbkeeper.core.volume import VolumeInitGate
from dbkeeper.models import VolumeState


@pytest.fixture
def gate():
    return VolumeInitGate()


class TestVolumeInitGate:
    """Test EMPTY / INITIALIZED classification."""

    def test_missing_volume_is_empty(self, gate, tmp_path):
        volume = tmp_path / "data"

        assert gate.is_empty(str(volume)) is True
        assert not volume.exists()

    def test_directory_without_marker_is_empty(self, gate, tmp_path):
        (tmp_path / "data").mkdir()
        (tmp_path / "data" / "lost+found").mkdir()

        assert gate.classify(str(tmp_path / "data")) == VolumeState.EMPTY

    def test_marker_means_initialized(self, gate, tmp_path):
        (tmp_path / "data" / "mysql").mkdir(parents=True)

        assert gate.is_empty(str(tmp_path / "data")) is False
        assert gate.classify(str(tmp_path / "data")) == VolumeState.INITIALIZED

    def test_volume_path_is_a_file(self, gate, tmp_path):
        volume = tmp_path / "data"
        volume.write_text("not a directory")

        assert gate.is_empty(str(volume)) is True

    def test_repeated_calls_agree(self, gate, tmp_path):
        (tmp_path / "data" / "mysql").mkdir(parents=True)
        volume = str(tmp_path / "data")

        results = {gate.classify(volume) for _ in range(5)}

        assert results == {VolumeState.INITIALIZED}

    def test_inspection_does_not_write(self, gate, tmp_path):
        volume = tmp_path / "data"
        volume.mkdir()

        gate.classify(str(volume))

        assert os.listdir(volume) == []

    def test_unreadable_volume(self, gate, tmp_path):
        with patch('dbkeeper.core.volume.os.stat', side_effect=PermissionError("denied")):
            with pytest.raises(VolumeError) as exc_info:
                gate.is_empty(str(tmp_path))

        assert "denied" in exc_info.value.details

    def test_custom_marker(self, tmp_path):
        (tmp_path / "ibdata1").write_text("")
        gate = VolumeInitGate(marker="ibdata1")

        assert gate.marker_path(str(tmp_path)) == str(tmp_path / "ibdata1")
        assert gate.classify(str(tmp_path)) == VolumeState.INITIALIZED
