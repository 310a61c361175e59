import logging
import os
import platform
import shutil
import subprocess
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

from dbkeeper.core.exceptions import ContainerRuntimeError, RuntimeTimeout, VolumeError
from dbkeeper.models import RuntimeStatus, ServiceDefinition, ServiceHandle

logger = logging.getLogger(__name__)

INSPECT_FORMAT = "{{.Id}} {{.State.Running}} {{.State.ExitCode}}"
TIMED_OUT = "timed out after"
# files written by mysqld belong to the container's mysql user, so the
# volume is emptied from inside a throwaway container running as root
CLEAR_VOLUME_SCRIPT = "rm -rf /data/* /data/.[!.]* /data/..?*"

INSTALL_HINTS = {
    "linux": (
        "Docker is not installed. Install the docker engine with your package manager\n"
        "(e.g. 'apt install docker.io' or 'dnf install docker'), enable the service with\n"
        "'systemctl enable --now docker' and add yourself to the docker group."
    ),
    "darwin": "Docker is not installed. Install Docker Desktop from https://www.docker.com/products/docker-desktop",
    "windows": "Docker is not installed. Install Docker Desktop from https://www.docker.com/products/docker-desktop",
}


class ContainerRuntime(ABC):
    """Process-execution interface the lifecycle controller drives."""

    @abstractmethod
    def start(self, definition: ServiceDefinition) -> ServiceHandle:
        """Create and start a container for ``definition``."""

    @abstractmethod
    def stop(self, handle: ServiceHandle) -> None:
        """Stop the container; returns once the runtime accepted the request."""

    @abstractmethod
    def remove(self, handle: ServiceHandle) -> None:
        """Remove a stopped container (the data volume is kept)."""

    @abstractmethod
    def inspect(self, handle: ServiceHandle) -> RuntimeStatus:
        """Report whether the container exists and runs."""

    @abstractmethod
    def find(self, name: str) -> Optional[ServiceHandle]:
        """Look up an existing container by name."""

    @abstractmethod
    def remove_volume(self, volume: str) -> None:
        """Delete the data volume. Irreversible."""

    @abstractmethod
    def logs(self, handle: ServiceHandle, tail: int = 100) -> str:
        """Return the last ``tail`` log lines of the container."""


class DockerRuntime(ContainerRuntime):
    """ContainerRuntime backed by the docker CLI."""

    def __init__(self, timeout: int = 120, docker_bin: str = "docker", cleanup_image: str = "mysql:8.0"):
        self.default_timeout = timeout
        self.docker_bin = docker_bin
        self.cleanup_image = cleanup_image

    @staticmethod
    def run_command(cmd: List[str], timeout: int = 120, env: Optional[Dict[str, str]] = None) -> Tuple[bool, str, str]:
        """Run a Docker command and return success, stdout, stderr."""
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout,
                env=env
            )
            return result.returncode == 0, result.stdout, result.stderr
        except (subprocess.TimeoutExpired, FileNotFoundError) as e:
            return False, "", str(e)

    def _docker(self, *args: str, timeout: Optional[int] = None, env: Optional[Dict[str, str]] = None) -> Tuple[bool, str, str]:
        cmd = [self.docker_bin, *args]
        logger.debug("Running %s", " ".join(cmd))
        return self.run_command(cmd, timeout=timeout or self.default_timeout, env=env)

    @staticmethod
    def _failure(message: str, stderr: str) -> ContainerRuntimeError:
        if TIMED_OUT in stderr:
            return RuntimeTimeout(message, stderr.strip())
        return ContainerRuntimeError(message, stderr.strip())

    def check_installation(self) -> Tuple[bool, str]:
        """Return whether docker can be used, with a hint when it cannot."""
        installed, _, _ = self._docker("--version", timeout=5)
        if not installed:
            system = platform.system().lower()
            return False, INSTALL_HINTS.get(system, INSTALL_HINTS["linux"])

        reachable, _, stderr = self._docker("info", timeout=10)
        if reachable:
            return True, "Docker is available and running"

        reason = stderr.lower()
        if "permission denied" in reason:
            return False, "Docker is installed but permission denied; add your user to the docker group."
        if "cannot connect" in reason or "daemon" in reason:
            return False, "Docker is installed but the daemon is not running; start the docker service."
        return False, f"Docker daemon issue: {stderr.strip()}"

    def pull(self, image: str) -> None:
        """Pull a Docker image."""
        success, _, stderr = self._docker("pull", image)
        if not success:
            raise self._failure(f"Failed to pull image {image}", stderr)

    def ensure_network(self, network: str) -> None:
        success, _, _ = self._docker("network", "inspect", network, timeout=10)
        if success:
            return
        success, _, stderr = self._docker("network", "create", network)
        if not success and "already exists" not in stderr:
            raise self._failure(f"Failed to create network {network}", stderr)

    def run_args(self, definition: ServiceDefinition) -> List[str]:
        """Build ``docker run`` arguments. Environment values are not included."""
        args = [
            "run", "-d",
            "--name", definition.container_name,
            "--network", definition.network,
            "--restart", definition.restart_policy,
        ]
        for port in definition.ports:
            args.extend(["-p", port.to_flag()])
        for volume in definition.volumes:
            args.extend(["-v", volume.to_flag()])
        # bare -e KEY makes docker read the value from our environment
        for key, _ in definition.environment:
            args.extend(["-e", key])
        if definition.memory_limit:
            args.extend(["--memory", definition.memory_limit])
        if definition.cpus:
            args.extend(["--cpus", str(definition.cpus)])
        args.append(definition.image)
        return args

    def start(self, definition: ServiceDefinition) -> ServiceHandle:
        self.ensure_network(definition.network)
        os.makedirs(definition.data_volume.source, exist_ok=True)

        env = dict(os.environ)
        env.update(dict(definition.environment))
        success, stdout, stderr = self._docker(*self.run_args(definition), env=env)
        if not success:
            raise self._failure(f"Failed to create container {definition.container_name}", stderr)
        return ServiceHandle(definition.container_name, stdout.strip())

    def stop(self, handle: ServiceHandle) -> None:
        success, _, stderr = self._docker("stop", handle.name)
        if not success and "No such container" not in stderr:
            raise self._failure(f"Failed to stop container {handle.name}", stderr)

    def remove(self, handle: ServiceHandle) -> None:
        success, _, stderr = self._docker("rm", "-f", handle.name)
        if not success and "No such container" not in stderr:
            raise self._failure(f"Failed to remove container {handle.name}", stderr)

    def inspect(self, handle: ServiceHandle) -> RuntimeStatus:
        success, stdout, stderr = self._docker("inspect", "--format", INSPECT_FORMAT, handle.name, timeout=15)
        if not success:
            if "No such object" in stderr or "No such container" in stderr:
                return RuntimeStatus(exists=False)
            raise self._failure(f"Failed to inspect container {handle.name}", stderr)

        _, running, exit_code = stdout.split()
        is_running = running == "true"
        return RuntimeStatus(
            exists=True,
            running=is_running,
            exit_code=None if is_running else int(exit_code)
        )

    def find(self, name: str) -> Optional[ServiceHandle]:
        success, stdout, stderr = self._docker(
            "ps", "-a", "--filter", f"name=^{name}$", "--format", "{{.ID}}", timeout=15
        )
        if not success:
            raise self._failure("Failed to list containers", stderr)
        container_id = stdout.strip()
        return ServiceHandle(name, container_id) if container_id else None

    def remove_volume(self, volume: str) -> None:
        """Empty ``volume`` through a throwaway container, then delete it on the host."""
        if not os.path.exists(volume):
            return
        success, _, stderr = self._docker(
            "run", "--rm",
            "-v", f"{volume}:/data",
            "--entrypoint", "sh",
            self.cleanup_image,
            "-c", CLEAR_VOLUME_SCRIPT
        )
        if not success:
            raise VolumeError(f"Failed to clear volume '{volume}'", stderr.strip())
        try:
            shutil.rmtree(volume)
        except OSError as e:
            raise VolumeError(f"Failed to remove volume '{volume}'", str(e))

    def logs(self, handle: ServiceHandle, tail: int = 100) -> str:
        success, stdout, stderr = self._docker("logs", "--tail", str(tail), handle.name, timeout=30)
        if not success:
            raise self._failure(f"Failed to read logs of {handle.name}", stderr)
        # mysqld writes most of its log to stderr
        return stdout + stderr
