"""
dbkeeper Lifecycle Controller

State machine that brings the database container up, tears it down,
restarts it and purges its data volume:

    STOPPED --start--> STARTING --ready--> RUNNING
    RUNNING/STARTING --stop--> STOPPING --confirmed exit--> STOPPED
    RUNNING/STARTING --restart--> STOPPING --> STARTING (init script only on an empty volume)
    any --destroy(confirm=True)--> STOPPED, data volume removed
    STARTING --failure, rolled back--> FAILED

One lock serializes every transition. Stop, restart and destroy raise a
preemption event before queueing on the lock so a start stuck in health
polling gives way instead of running out its retry budget.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from datetime import datetime, timezone
from typing import Callable, List, Optional

from dbkeeper.core.config import Configuration
from dbkeeper.core.definition import build
from dbkeeper.core.exceptions import (
    ConfirmationRequired, ContainerRuntimeError, DBKeeperError, HealthCheckTimeout,
    InvalidTransition, RollbackError, RuntimeTimeout, VolumeError
)
from dbkeeper.core.volume import VolumeInitGate
from dbkeeper.dbkeeper_utils.docker_runtime import ContainerRuntime
from dbkeeper.models import (
    ServiceHandle, ServiceState, ServiceStatus, TransitionRecord, TransitionResult, VolumeState
)

logger = logging.getLogger(__name__)

STOP_POLL_INTERVAL = 0.5


class LifecycleController:
    """Drives one database service through its lifecycle."""

    def __init__(
        self,
        config: Configuration,
        runtime: ContainerRuntime,
        probe: Callable[[], bool],
        gate: Optional[VolumeInitGate] = None,
        probe_timeout: Optional[float] = None
    ):
        self.config = config
        self.definition = build(config)
        self.runtime = runtime
        self.probe = probe
        self.gate = gate or VolumeInitGate()
        self.probe_timeout = probe_timeout or config.health_timeout * 2
        self.state = ServiceState.STOPPED
        self.handle: Optional[ServiceHandle] = None
        self.history: List[TransitionRecord] = []
        self._lock = threading.Lock()
        self._preempt = threading.Event()

    @property
    def name(self) -> str:
        return self.definition.container_name

    @property
    def volume(self) -> str:
        return self.definition.data_volume.source

    # Transitions

    def _transition(self, to_state: ServiceState, reason: str = "") -> None:
        record = TransitionRecord(self.state, to_state, datetime.now(timezone.utc), reason)
        self.history.append(record)
        logger.info(
            "%s: %s -> %s at %s%s",
            self.name, record.from_state.value, to_state.value,
            record.timestamp.isoformat(), f" ({reason})" if reason else ""
        )
        self.state = to_state

    def _result(self, started: float, message: str, success: bool = True) -> TransitionResult:
        return TransitionResult(
            name=self.name,
            success=success,
            state=self.state,
            message=message,
            elapsed=time.monotonic() - started
        )

    def _reconcile(self) -> None:
        """Align a stable state with what the runtime reports."""
        if self.state not in (ServiceState.STOPPED, ServiceState.RUNNING, ServiceState.FAILED):
            return
        existing = self.runtime.find(self.name)
        running = existing is not None and self.runtime.inspect(existing).running
        if running and self.state != ServiceState.RUNNING:
            self.handle = existing
            self._transition(ServiceState.RUNNING, "found running container")
        elif running:
            self.handle = self.handle or existing
        elif self.state == ServiceState.RUNNING:
            self.handle = None
            self._transition(ServiceState.STOPPED, "container no longer running")

    # Start path

    def start(self) -> TransitionResult:
        """Bring the service up.

        Raises:
            VolumeError: If the data volume cannot be classified
            ContainerRuntimeError: If docker refuses to create the container
            HealthCheckTimeout: If the service never becomes ready
            RollbackError: If a failed start could not be cleaned up
        """
        started = time.monotonic()
        with self._lock:
            self._reconcile()
            if self.state == ServiceState.RUNNING:
                return self._result(started, "Service already running")
            if self.state not in (ServiceState.STOPPED, ServiceState.FAILED):
                raise InvalidTransition(
                    f"Cannot start {self.name} while {self.state.value}"
                ).with_transition(self.state, ServiceState.STARTING)

            try:
                volume_state = self.gate.classify(self.volume)
            except VolumeError as e:
                raise e.with_transition(self.state, ServiceState.STARTING)
            return self._launch(volume_state, started)

    def _launch(self, volume_state: VolumeState, started: float) -> TransitionResult:
        definition = self.definition.for_volume_state(volume_state)
        self._transition(ServiceState.STARTING, f"volume {volume_state.value}")
        if definition.init_script_path:
            logger.info("%s: empty volume, init script %s will run", self.name, definition.init_script_path)

        try:
            leftover = self.runtime.find(self.name)
            if leftover is not None:
                self.runtime.remove(leftover)
            self.handle = self.runtime.start(definition)
        except DBKeeperError as e:
            self._rollback(e)

        ready = self._wait_until_ready()
        if ready is None:
            return self._result(started, "Start preempted by a stop request", success=False)
        if not ready:
            self._rollback(HealthCheckTimeout(
                f"{self.name} did not become ready after {self.config.health_retries} attempts",
                attempts=self.config.health_retries
            ))

        self._transition(ServiceState.RUNNING, "health check passed")
        return self._result(started, "Service is running")

    def _probe_once(self, executor: ThreadPoolExecutor) -> bool:
        future = executor.submit(self.probe)
        try:
            return bool(future.result(timeout=self.probe_timeout))
        except FutureTimeout:
            logger.warning("%s: health probe timed out after %ss", self.name, self.probe_timeout)
            return False
        except Exception as e:
            logger.warning("%s: health probe raised %s: %s", self.name, e.__class__.__name__, e)
            return False

    def _wait_until_ready(self) -> Optional[bool]:
        """Poll readiness with exponential backoff.

        Returns True when ready, False when the retry budget is spent and
        None when a stop request preempted the poll.
        """
        retries = self.config.health_retries
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"{self.name}-probe")
        try:
            for attempt in range(retries):
                if self._preempt.is_set():
                    return None

                if self._attempt(executor):
                    return True

                logger.debug("%s: not ready (attempt %d/%d)", self.name, attempt + 1, retries)
                if attempt < retries - 1:
                    delay = min(self.config.health_initial_delay * 2 ** attempt, self.config.health_max_delay)
                    if self._preempt.wait(delay):
                        return None
            return False
        finally:
            executor.shutdown(wait=False)

    def _attempt(self, executor: ThreadPoolExecutor) -> bool:
        """One readiness attempt; a runtime timeout counts as a failed attempt."""
        try:
            status = self.runtime.inspect(self.handle)
        except RuntimeTimeout as e:
            logger.warning("%s: %s", self.name, e.message)
            return False
        except DBKeeperError as e:
            self._rollback(e)
        if not status.running:
            self._rollback(ContainerRuntimeError(
                f"{self.name} exited during startup",
                f"exit code {status.exit_code}" if status.exists else "container disappeared"
            ))
        return self._probe_once(executor)

    def _rollback(self, error: DBKeeperError) -> None:
        """Release whatever a failed start left behind, then raise."""
        error.with_transition(ServiceState.STARTING, ServiceState.RUNNING)
        try:
            handle = self.handle or self.runtime.find(self.name)
            if handle is not None:
                self.runtime.remove(handle)
        except DBKeeperError as rollback_error:
            self._transition(ServiceState.FAILED, f"rollback failed: {rollback_error.message}")
            raise RollbackError(error, rollback_error).with_transition(
                ServiceState.STARTING, ServiceState.RUNNING
            ) from error
        self.handle = None
        self._transition(ServiceState.FAILED, f"rolled back: {error.message}")
        raise error

    # Stop path

    def _halt(self, reason: str) -> None:
        """STARTING/RUNNING -> STOPPING -> STOPPED, container removed."""
        self._transition(ServiceState.STOPPING, reason)
        handle = self.handle or self.runtime.find(self.name)
        try:
            if handle is not None:
                self.runtime.stop(handle)
                self._confirm_exit(handle)
                self.runtime.remove(handle)
        except DBKeeperError as e:
            self._transition(ServiceState.FAILED, f"stop failed: {e.message}")
            raise e.with_transition(ServiceState.STOPPING, ServiceState.STOPPED)
        self.handle = None
        self._transition(ServiceState.STOPPED, "exit confirmed")

    def _confirm_exit(self, handle: ServiceHandle) -> None:
        deadline = time.monotonic() + self.config.runtime_timeout
        while self.runtime.inspect(handle).running:
            if time.monotonic() >= deadline:
                raise ContainerRuntimeError(
                    f"{handle.name} still running {self.config.runtime_timeout}s after stop"
                )
            time.sleep(STOP_POLL_INTERVAL)

    def _clear_failed(self) -> None:
        leftover = self.runtime.find(self.name)
        if leftover is not None:
            self.runtime.remove(leftover)
        self.handle = None
        self._transition(ServiceState.STOPPED, "cleared failed start")

    def stop(self) -> TransitionResult:
        """Stop the service and remove its container; the volume is kept."""
        started = time.monotonic()
        self._preempt.set()
        with self._lock:
            self._preempt.clear()
            self._reconcile()
            if self.state == ServiceState.STOPPED:
                return self._result(started, "Service already stopped")
            if self.state == ServiceState.FAILED:
                self._clear_failed()
            else:
                self._halt("stop requested")
            return self._result(started, "Service stopped")

    def restart(self) -> TransitionResult:
        """Stop and start again.

        An initialized volume is started as is. A volume the engine never
        finished initializing, e.g. after a preempted first start, still
        gets the init script.
        """
        started = time.monotonic()
        self._preempt.set()
        with self._lock:
            self._preempt.clear()
            self._reconcile()
            if self.state not in (ServiceState.RUNNING, ServiceState.STARTING):
                raise InvalidTransition(
                    f"Cannot restart {self.name} while {self.state.value}"
                ).with_transition(self.state, ServiceState.STOPPING)
            self._halt("restart requested")
            try:
                volume_state = self.gate.classify(self.volume)
            except VolumeError as e:
                raise e.with_transition(self.state, ServiceState.STARTING)
            return self._launch(volume_state, started)

    def destroy(self, confirm: bool = False) -> TransitionResult:
        """Stop the service and delete its data volume.

        Raises:
            ConfirmationRequired: Unless ``confirm`` is True
            VolumeError: If the container is still running or removal fails
        """
        if not confirm:
            raise ConfirmationRequired(
                f"Purging {self.name} deletes {self.volume}; pass confirm=True"
            ).with_transition(self.state, ServiceState.STOPPED)

        started = time.monotonic()
        self._preempt.set()
        with self._lock:
            self._preempt.clear()
            self._reconcile()
            if self.state in (ServiceState.RUNNING, ServiceState.STARTING):
                self._halt("purge requested")
            elif self.state == ServiceState.FAILED:
                self._clear_failed()

            leftover = self.runtime.find(self.name)
            if leftover is not None:
                if self.runtime.inspect(leftover).running:
                    raise VolumeError(
                        f"Refusing to purge {self.volume}: {self.name} is still running"
                    ).with_transition(self.state, ServiceState.STOPPED)
                self.runtime.remove(leftover)

            try:
                self.runtime.remove_volume(self.volume)
            except DBKeeperError as e:
                raise e.with_transition(self.state, ServiceState.STOPPED)
            self._transition(ServiceState.STOPPED, f"volume {self.volume} purged")
            return self._result(started, "Service stopped and data volume removed")

    # Queries

    def status(self) -> ServiceStatus:
        with self._lock:
            self._reconcile()
            return ServiceStatus(
                name=self.name,
                state=self.state,
                container_id=self.handle.container_id if self.handle else None,
                volume=self.volume,
                volume_state=self.gate.classify(self.volume),
                host_port=self.config.host_port
            )

    def logs(self, tail: int = 100) -> str:
        handle = self.handle or self.runtime.find(self.name)
        if handle is None:
            raise InvalidTransition(f"No container named {self.name}")
        return self.runtime.logs(handle, tail)
