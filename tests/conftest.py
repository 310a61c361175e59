import os
import shutil
import threading

import pytest

from dbkeeper.core.config import resolve
from dbkeeper.core.exceptions import ContainerRuntimeError
from dbkeeper.core.lifecycle import LifecycleController
from dbkeeper.dbkeeper_utils.docker_runtime import ContainerRuntime
from dbkeeper.models import RuntimeStatus, ServiceHandle


class FakeRuntime(ContainerRuntime):
    """In-memory container runtime.

    ``start`` plays the engine too: unless ``write_marker`` is False it
    creates the system schema directory in the data volume on first boot.
    """

    def __init__(self, write_marker=True, start_error=None, remove_error=None,
                 die_on_start=False, ignore_stop=False, inspect_errors=()):
        self.write_marker = write_marker
        self.start_error = start_error
        self.remove_error = remove_error
        self.die_on_start = die_on_start
        self.ignore_stop = ignore_stop
        self.inspect_errors = list(inspect_errors)
        self.containers = {}
        self.started_definitions = []
        self.removed_volumes = []
        self.running_at_volume_removal = []
        self._counter = 0
        self._lock = threading.Lock()

    def start(self, definition):
        with self._lock:
            self.started_definitions.append(definition)
            if self.start_error:
                # docker run leaves a created container behind on a port conflict
                self.containers[definition.container_name] = {"id": "created", "running": False, "exit_code": 128}
                raise self.start_error
            if self.write_marker:
                os.makedirs(os.path.join(definition.data_volume.source, "mysql"), exist_ok=True)
            self._counter += 1
            container_id = f"c{self._counter}"
            self.containers[definition.container_name] = {
                "id": container_id,
                "running": not self.die_on_start,
                "exit_code": 1 if self.die_on_start else None,
            }
            return ServiceHandle(definition.container_name, container_id)

    def stop(self, handle):
        with self._lock:
            if handle.name in self.containers and not self.ignore_stop:
                self.containers[handle.name]["running"] = False
                self.containers[handle.name]["exit_code"] = 0

    def remove(self, handle):
        with self._lock:
            if self.remove_error:
                raise self.remove_error
            self.containers.pop(handle.name, None)

    def inspect(self, handle):
        with self._lock:
            if self.inspect_errors:
                raise self.inspect_errors.pop(0)
            container = self.containers.get(handle.name)
            if container is None:
                return RuntimeStatus(exists=False)
            return RuntimeStatus(exists=True, running=container["running"], exit_code=container["exit_code"])

    def find(self, name):
        with self._lock:
            container = self.containers.get(name)
            return ServiceHandle(name, container["id"]) if container else None

    def remove_volume(self, volume):
        with self._lock:
            self.running_at_volume_removal.append(any(c["running"] for c in self.containers.values()))
            self.removed_volumes.append(volume)
        if os.path.exists(volume):
            shutil.rmtree(volume)

    def logs(self, handle, tail=100):
        return "mysqld: ready for connections.\n"

    def add_running(self, name, container_id="external"):
        self.containers[name] = {"id": container_id, "running": True, "exit_code": None}


@pytest.fixture
def init_script(tmp_path):
    script = tmp_path / "init.sql"
    script.write_text("CREATE TABLE t (id INT);\n")
    return str(script)


@pytest.fixture
def base_source(tmp_path, init_script):
    """A complete, valid configuration source."""
    return {
        "MYSQL_ROOT_PASSWORD": "root-secret",
        "MYSQL_DATABASE": "app_db",
        "MYSQL_USER": "myuser",
        "MYSQL_PASSWORD": "app-secret",
        "MYSQL_PORT": "3307",
        "DBKEEPER_DATA_DIR": str(tmp_path / "data"),
        "DBKEEPER_INIT_SCRIPT": init_script,
        "DBKEEPER_HEALTH_RETRIES": "3",
        "DBKEEPER_HEALTH_INITIAL_DELAY": "0.01",
        "DBKEEPER_HEALTH_MAX_DELAY": "0.05",
        "DBKEEPER_HEALTH_TIMEOUT": "1",
        "DBKEEPER_RUNTIME_TIMEOUT": "1",
    }


@pytest.fixture
def config(base_source):
    return resolve(base_source)


@pytest.fixture
def runtime():
    return FakeRuntime()


@pytest.fixture
def make_controller(base_source):
    """Build a controller over a FakeRuntime; keyword args override config keys."""
    def _make(probe=lambda: True, runtime=None, probe_timeout=None, **overrides):
        source = dict(base_source)
        source.update(overrides)
        return LifecycleController(
            resolve(source),
            runtime=runtime or FakeRuntime(),
            probe=probe,
            probe_timeout=probe_timeout
        )
    return _make


@pytest.fixture
def port_conflict():
    return ContainerRuntimeError(
        "Failed to create container mysql",
        "Bind for 0.0.0.0:3307 failed: port is already allocated"
    )


@pytest.fixture
def fake_runtime_cls():
    """The FakeRuntime class, for tests that need a customised runtime."""
    return FakeRuntime
