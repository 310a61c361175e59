"""
dbkeeper Volume Init Gate

Decides whether a data volume still needs first-time initialization by
looking for the system schema directory MySQL writes on its first boot.
The gate only inspects; it never creates or removes anything.
"""

import logging
import os

from dbkeeper.core.exceptions import VolumeError
from dbkeeper.models import VolumeState

logger = logging.getLogger(__name__)

MARKER_PATH = "mysql"


class VolumeInitGate:
    """Classifies a host data directory as EMPTY or INITIALIZED."""

    def __init__(self, marker: str = MARKER_PATH):
        self.marker = marker

    def marker_path(self, volume: str) -> str:
        return os.path.join(volume, self.marker)

    def is_empty(self, volume: str) -> bool:
        """Return True when the engine has not initialized ``volume`` yet.

        Raises:
            VolumeError: If the volume exists but cannot be inspected
        """
        marker = self.marker_path(volume)
        try:
            os.stat(marker)
        except (FileNotFoundError, NotADirectoryError):
            logger.debug("No marker at %s, volume is empty", marker)
            return True
        except OSError as e:
            raise VolumeError(f"Cannot inspect volume '{volume}'", str(e))
        return False

    def classify(self, volume: str) -> VolumeState:
        return VolumeState.EMPTY if self.is_empty(volume) else VolumeState.INITIALIZED
