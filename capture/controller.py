# -- coding: utf-8 --
"""CaptureController: session state machine over ProcessRunner and DropMonitor."""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Sequence
from dataclasses import dataclass

from capture.artifacts import ArtifactLayout, ArtifactStore, build_artifact_layout
from capture.drivers import DriverRegistrar, create_registrar_from_loaded_config
from capture.drop_monitor import DEFAULT_CHECK_INTERVAL_MS, DropMonitor
from capture.process import ProcessRunner
from capture.sweep import stop_processes_by_name
from core.contracts import FrameDropped, LineReceived, ProcessExited, SessionState
from core.errors import (
    CaptureStateError,
    MissingArtifactError,
    ProcessNotRunningError,
)
from core.events import EventChannel

L = logging.getLogger("capture_runtime.controller")

STOP_TOKEN = "q"
DROP_SIGNATURE = "FRAME DROPPED!"


@dataclass
class ControllerConfig:
    stop_token: str = STOP_TOKEN
    drop_signature: str = DROP_SIGNATURE
    check_interval_ms: int = DEFAULT_CHECK_INTERVAL_MS
    line_queue_capacity: int = 1024
    stop_timeout_s: float = 10.0
    kill_timeout_s: float = 5.0
    strict_start: bool = False
    sweep_same_name: bool = False
    sweep_timeout_s: float = 5.0


def build_controller_config(cfg) -> ControllerConfig:
    """Build from a LoadedConfig (`process` and `monitor` sections)."""
    return ControllerConfig(
        stop_token=str(cfg.process.stop_token),
        drop_signature=str(cfg.monitor.drop_signature),
        check_interval_ms=int(cfg.monitor.check_interval_ms),
        line_queue_capacity=int(cfg.process.line_queue_capacity),
        stop_timeout_s=float(cfg.process.stop_timeout_s),
        kill_timeout_s=float(cfg.process.kill_timeout_s),
        strict_start=bool(cfg.process.strict_start),
        sweep_same_name=bool(cfg.process.sweep_same_name),
        sweep_timeout_s=float(cfg.process.sweep_timeout_s),
    )


class CaptureController:
    def __init__(
        self,
        config: ControllerConfig | None = None,
        *,
        artifacts: ArtifactStore | None = None,
        drivers: DriverRegistrar | None = None,
        runner: ProcessRunner | None = None,
        monitor: DropMonitor | None = None,
    ):
        self.cfg = config or ControllerConfig()
        self.artifacts = artifacts or ArtifactStore(ArtifactLayout())
        self.drivers = drivers
        self.runner = runner or ProcessRunner(
            line_queue_capacity=self.cfg.line_queue_capacity
        )
        self.monitor = monitor or DropMonitor(self.cfg.check_interval_ms)
        self.line_received: EventChannel[LineReceived] = EventChannel("line_received")
        self.frame_dropped: EventChannel[FrameDropped] = EventChannel("frame_dropped")
        self._signature = self.cfg.drop_signature.upper()
        self._lock = threading.RLock()
        self._state = SessionState.UNREADY
        self._unsubscribers = [
            self.runner.line_received.subscribe(self._on_line),
            self.runner.exited.subscribe(self._on_process_exited),
            self.monitor.frame_dropped.subscribe(self._on_frame_dropped),
        ]

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    def initialize(self) -> bool:
        """Provision missing artifacts if a bundle is configured; True when all are present."""
        self._ensure_not_disposed("initialize")
        self.artifacts.provision()
        present = self.is_required_files_present()
        with self._lock:
            if present and self._state == SessionState.UNREADY:
                self._set_state(SessionState.READY)
        if not present:
            L.warning("Required artifacts missing: %s", ", ".join(self.artifacts.missing()))
        return present

    def is_required_files_present(self) -> bool:
        return self.artifacts.is_present()

    def register(self) -> bool:
        if self.drivers is None:
            L.debug("No driver registrar configured; register skipped")
            return False
        return self.drivers.register()

    def unregister(self) -> bool:
        if self.drivers is None:
            L.debug("No driver registrar configured; unregister skipped")
            return False
        return self.drivers.unregister()

    def start(
        self,
        working_dir: str,
        executable: str,
        arguments: str | Sequence[str] | None = None,
        show_window: bool = False,
    ) -> bool:
        """Launch a capture session; returns False if prerequisites are missing."""
        with self._lock:
            if self._state == SessionState.DISPOSED:
                raise CaptureStateError("start() called on a disposed controller")
            if self._state == SessionState.RECORDING:
                raise CaptureStateError("start() called while already recording")
            missing = self.artifacts.missing()
            if missing:
                if self.cfg.strict_start:
                    raise MissingArtifactError(missing)
                L.warning(
                    "Capture not started; missing artifacts: %s", ", ".join(missing)
                )
                return False
            if self._state == SessionState.UNREADY:
                self._set_state(SessionState.READY)

            self.monitor.reset()
            self.runner.start(working_dir, executable, arguments, show_window)
            self.monitor.arm(self.cfg.check_interval_ms)
            self._set_state(SessionState.RECORDING)
            return True

    def stop(self):
        """Send the stop token, wait `stop_timeout_s`, then kill; sweep same-name processes if enabled.

        No-op unless recording. Safe to call from a line or drop subscriber.
        """
        with self._lock:
            if self._state != SessionState.RECORDING:
                L.debug("stop() ignored in state=%s", self._state.value)
                return
            # Leaving RECORDING first keeps the exit callback from racing us.
            self._set_state(SessionState.STOPPED)
            own_pid = self.runner.pid

        try:
            self.runner.write_line(self.cfg.stop_token)
        except ProcessNotRunningError as e:
            L.debug("Stop token not delivered: %s", e)
        self.monitor.disarm()

        if not self.runner.wait(self.cfg.stop_timeout_s):
            L.warning(
                "Process pid=%s ignored stop token for %.1fs; terminating",
                own_pid,
                self.cfg.stop_timeout_s,
            )
        self.runner.terminate(self.cfg.kill_timeout_s)

        if self.cfg.sweep_same_name:
            stop_processes_by_name(
                os.path.basename(self.artifacts.encoder_path),
                exclude_pids=[own_pid] if own_pid else [],
                timeout=self.cfg.sweep_timeout_s,
            )
        L.info("Capture stopped pid=%s returncode=%s", own_pid, self.runner.returncode)

    def force_stop(self):
        """Kill the encoder immediately and disarm the monitor; no token, no sweep."""
        with self._lock:
            if self._state == SessionState.DISPOSED:
                return
            if self._state == SessionState.RECORDING:
                self._set_state(SessionState.STOPPED)
        self.runner.terminate(self.cfg.kill_timeout_s)
        self.monitor.disarm()

    def is_process_exited(self) -> bool:
        return self.runner.has_exited()

    @property
    def drop_count(self) -> int:
        return self.monitor.count

    def dispose(self):
        """Release the runner and monitor; idempotent, never raises."""
        with self._lock:
            if self._state == SessionState.DISPOSED:
                return
            self._set_state(SessionState.DISPOSED)
            unsubscribers, self._unsubscribers = self._unsubscribers, []

        for unsubscribe in unsubscribers:
            try:
                unsubscribe()
            except Exception:
                L.exception("Unsubscribe failed during dispose")
        for name, fn in (("runner", self.runner.dispose), ("monitor", self.monitor.dispose)):
            try:
                fn()
            except Exception:
                L.exception("%s dispose failed", name)
        self.line_received.clear()
        self.frame_dropped.clear()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.dispose()

    def _on_line(self, event: LineReceived):
        if self._signature and self._signature in event.text.upper():
            self.monitor.record_drop()
        L.debug("encoder: %s", event.text)
        self.line_received.publish(event)

    def _on_frame_dropped(self, event: FrameDropped):
        self.frame_dropped.publish(event)

    def _on_process_exited(self, event: ProcessExited):
        with self._lock:
            if self._state != SessionState.RECORDING:
                return
            self._set_state(SessionState.STOPPED)
        L.warning(
            "Encoder exited on its own pid=%s returncode=%s", event.pid, event.returncode
        )
        self.monitor.disarm()

    def _set_state(self, state: SessionState):
        if state != self._state:
            L.info("Session state %s -> %s", self._state.value, state.value)
        self._state = state

    def _ensure_not_disposed(self, op: str):
        with self._lock:
            if self._state == SessionState.DISPOSED:
                raise CaptureStateError(f"{op}() called on a disposed controller")


def create_controller_from_loaded_config(cfg) -> CaptureController:
    artifacts = ArtifactStore(build_artifact_layout(cfg))
    drivers = (
        create_registrar_from_loaded_config(cfg, artifacts)
        if cfg.drivers.enabled
        else None
    )
    return CaptureController(
        build_controller_config(cfg), artifacts=artifacts, drivers=drivers
    )


__all__ = [
    "CaptureController",
    "ControllerConfig",
    "create_controller_from_loaded_config",
    "DROP_SIGNATURE",
    "STOP_TOKEN",
    "build_controller_config",
]
