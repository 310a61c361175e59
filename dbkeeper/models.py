import json
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from dbkeeper.core.utils import mask_secret

DATA_DIR_TARGET = "/var/lib/mysql"
INIT_DIR_TARGET = "/docker-entrypoint-initdb.d"
CONF_DIR_TARGET = "/etc/mysql/conf.d"
ENGINE_PORT = 3306


class ServiceState(Enum):
    """Lifecycle controller states."""
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    FAILED = "failed"


class VolumeState(Enum):
    """Classification of the data volume, derived on every inspection."""
    EMPTY = "empty"
    INITIALIZED = "initialized"


@dataclass(frozen=True)
class PortMapping:
    host_port: int
    container_port: int = ENGINE_PORT
    protocol: str = "tcp"

    def to_flag(self) -> str:
        return f"{self.host_port}:{self.container_port}/{self.protocol}"


@dataclass(frozen=True)
class VolumeMount:
    source: str
    target: str
    read_only: bool = False

    def to_flag(self) -> str:
        flag = f"{self.source}:{self.target}"
        return flag + ":ro" if self.read_only else flag


@dataclass(frozen=True)
class ServiceDefinition:
    """Immutable description of how to launch the database container."""
    image: str
    container_name: str
    network: str
    ports: Tuple[PortMapping, ...]
    volumes: Tuple[VolumeMount, ...]
    environment: Tuple[Tuple[str, str], ...] = field(repr=False)
    restart_policy: str = "always"
    init_script_path: Optional[str] = None
    memory_limit: Optional[str] = None
    cpus: Optional[float] = None

    def __post_init__(self):
        data_mounts = [v for v in self.volumes if v.target == DATA_DIR_TARGET]
        if len(data_mounts) != 1:
            raise ValueError(
                f"Service definition needs exactly one mount on {DATA_DIR_TARGET}, got {len(data_mounts)}"
            )

    @property
    def data_volume(self) -> VolumeMount:
        return next(v for v in self.volumes if v.target == DATA_DIR_TARGET)

    @property
    def init_mount(self) -> Optional[VolumeMount]:
        for volume in self.volumes:
            if volume.target.startswith(INIT_DIR_TARGET):
                return volume
        return None

    def for_volume_state(self, state: VolumeState) -> "ServiceDefinition":
        """Return the definition to launch against a volume in ``state``.

        The init script only travels with the definition when the volume is
        EMPTY; an INITIALIZED volume gets a copy without it.
        """
        if state == VolumeState.EMPTY or self.init_script_path is None:
            return self
        init_mount = self.init_mount
        volumes = tuple(v for v in self.volumes if v != init_mount)
        return replace(self, volumes=volumes, init_script_path=None)

    def to_dict(self, mask: bool = False) -> Dict[str, Any]:
        env = {
            key: (mask_secret(value) if mask and "PASSWORD" in key else value)
            for key, value in self.environment
        }
        return {
            "image": self.image,
            "container_name": self.container_name,
            "network": self.network,
            "ports": [p.to_flag() for p in self.ports],
            "volumes": [v.to_flag() for v in self.volumes],
            "environment": env,
            "restart_policy": self.restart_policy,
            "init_script_path": self.init_script_path,
            "memory_limit": self.memory_limit,
            "cpus": self.cpus,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)


@dataclass(frozen=True)
class ServiceHandle:
    """Reference to a created container."""
    name: str
    container_id: str


@dataclass(frozen=True)
class RuntimeStatus:
    """What the runtime reports about a container."""
    exists: bool
    running: bool = False
    exit_code: Optional[int] = None


@dataclass(frozen=True)
class TransitionRecord:
    from_state: ServiceState
    to_state: ServiceState
    timestamp: datetime
    reason: str = ""


@dataclass
class TransitionResult:
    """Result of a lifecycle operation."""
    name: str
    success: bool
    state: ServiceState
    message: str
    elapsed: float = 0.0


@dataclass
class ServiceStatus:
    """Snapshot reported by ``status``."""
    name: str
    state: ServiceState
    container_id: Optional[str]
    volume: str
    volume_state: VolumeState
    host_port: int
