# -- coding: utf-8 --
"""ProcessRunner: launch the encoder and stream its merged output as events."""

from __future__ import annotations

import logging
import os
import queue
import shlex
import shutil
import subprocess
import threading
from collections.abc import Sequence

from core.contracts import LineReceived, ProcessExited
from core.errors import LaunchError, ProcessNotRunningError
from core.events import EventChannel
from core.queue_utils import drain_queue_nowait, put_drop_oldest
from core.worker import BaseWorker

L = logging.getLogger("capture_runtime.process")

_END_OF_STREAM = object()


def resolve_executable(working_dir: str, executable: str) -> str | None:
    """Find `executable` as given, under `working_dir`, then on PATH."""
    if not executable:
        return None
    candidates = [executable]
    if working_dir and not os.path.isabs(executable):
        candidates.insert(0, os.path.join(working_dir, executable))
    for path in candidates:
        if os.path.isfile(path):
            return os.path.abspath(path)
    found = shutil.which(executable, path=_search_path(working_dir))
    return os.path.abspath(found) if found else None


def _search_path(working_dir: str) -> str | None:
    env_path = os.environ.get("PATH", "")
    if not working_dir:
        return env_path or None
    return os.pathsep.join(p for p in (working_dir, env_path) if p)


def build_argv(executable_path: str, arguments: str | Sequence[str] | None):
    if arguments is None:
        arguments = ()
    if isinstance(arguments, str):
        if os.name == "nt":
            # CreateProcess takes the raw command line; keep ffmpeg quoting intact.
            return f"{subprocess.list2cmdline([executable_path])} {arguments}".strip()
        return [executable_path, *shlex.split(arguments)]
    return [executable_path, *[str(a) for a in arguments]]


class _LineReader(BaseWorker):
    def __init__(self, runner: "ProcessRunner", stream):
        super().__init__("ProcessLineReader")
        self._runner = runner
        self._stream = stream

    def run(self):
        try:
            for raw in self._stream:
                line = raw.rstrip("\r\n")
                if not line.strip():
                    continue
                self._runner._enqueue_line(line)
        except (OSError, ValueError):
            # Stream closed underneath us during terminate().
            L.debug("Output stream closed while reading")
        finally:
            self._runner._enqueue_end()


class _LineDispatcher(BaseWorker):
    """Deliver queued lines, then publish ProcessExited exactly once."""

    def __init__(self, runner: "ProcessRunner", lines: queue.Queue, proc):
        super().__init__("ProcessLineDispatcher")
        self._runner = runner
        self._lines = lines
        self._proc = proc

    def run(self):
        try:
            self._deliver()
        finally:
            self._runner._publish_exit(self._proc)

    def _deliver(self):
        while True:
            try:
                item = self._lines.get(timeout=0.1)
            except queue.Empty:
                if self._stop_evt.is_set():
                    return
                continue
            try:
                if item is _END_OF_STREAM:
                    return
                self._runner.line_received.publish(LineReceived(text=item))
            finally:
                self._lines.task_done()


class ProcessRunner:
    """Own one external process at a time.

    Output is read on a reader thread and handed to a dispatcher thread through
    a bounded queue; when subscribers fall behind, the oldest queued lines are
    dropped (counted in `dropped_lines`) so reading never blocks on delivery.
    """

    def __init__(self, *, line_queue_capacity: int = 1024, join_timeout_s: float = 2.0):
        self.line_received: EventChannel[LineReceived] = EventChannel("line_received")
        self.exited: EventChannel[ProcessExited] = EventChannel("process_exited")
        self._capacity = max(int(line_queue_capacity), 1)
        self._join_timeout_s = float(join_timeout_s)
        self._lock = threading.RLock()
        self._stdin_lock = threading.Lock()
        self._proc: subprocess.Popen | None = None
        self._lines: queue.Queue | None = None
        self._reader: _LineReader | None = None
        self._dispatcher: _LineDispatcher | None = None
        self._disposed = False
        self.lines_read = 0
        self.dropped_lines = 0
        self.returncode: int | None = None
        self.pid: int | None = None

    def start(
        self,
        working_dir: str,
        executable: str,
        arguments: str | Sequence[str] | None = None,
        show_window: bool = False,
    ) -> int:
        with self._lock:
            if self._disposed:
                raise LaunchError("ProcessRunner is disposed")
            if self._proc is not None and self._proc.poll() is None:
                raise LaunchError(f"Process already running (pid={self._proc.pid})")
            self._release_locked()

            cwd = working_dir or None
            if cwd and not os.path.isdir(cwd):
                raise LaunchError(f"Working directory not found: {cwd}")
            exe_path = resolve_executable(working_dir, executable)
            if exe_path is None:
                raise LaunchError(f"Executable not found: {executable}")
            argv = build_argv(exe_path, arguments)

            creationflags = 0
            if os.name == "nt" and not show_window:
                creationflags = subprocess.CREATE_NO_WINDOW
            try:
                proc = subprocess.Popen(
                    argv,
                    cwd=cwd,
                    stdin=subprocess.PIPE,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    # Universal newlines split ffmpeg's '\r' progress updates.
                    text=True,
                    encoding="utf-8",
                    errors="replace",
                    bufsize=1,
                    creationflags=creationflags,
                )
            except OSError as e:
                raise LaunchError(f"Failed to start {exe_path}: {e}") from e

            self._proc = proc
            self.pid = proc.pid
            self.returncode = None
            self.lines_read = 0
            self.dropped_lines = 0
            self._lines = queue.Queue(maxsize=self._capacity)
            self._dispatcher = _LineDispatcher(self, self._lines, proc)
            self._reader = _LineReader(self, proc.stdout)
            self._dispatcher.start()
            self._reader.start()
            L.info("Process started pid=%d exe=%s cwd=%s", proc.pid, exe_path, cwd)
            return proc.pid

    def write_line(self, text: str):
        proc = self._proc
        if proc is None or proc.poll() is not None or proc.stdin is None:
            raise ProcessNotRunningError("No running process to write to")
        with self._stdin_lock:
            try:
                proc.stdin.write(f"{text}\n")
                proc.stdin.flush()
            except (BrokenPipeError, OSError, ValueError) as e:
                raise ProcessNotRunningError(
                    f"Process input closed (pid={proc.pid})"
                ) from e

    def has_exited(self) -> bool:
        proc = self._proc
        if proc is None:
            return True
        return proc.poll() is not None

    def wait(self, timeout: float | None = None) -> bool:
        proc = self._proc
        if proc is None:
            return True
        try:
            proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            return False
        return True

    @property
    def is_running(self) -> bool:
        return not self.has_exited()

    def terminate(self, timeout: float = 5.0):
        with self._lock:
            proc = self._proc
            if proc is None:
                return
            if proc.poll() is None:
                L.info("Killing process pid=%d", proc.pid)
                try:
                    proc.kill()
                except OSError as e:
                    L.debug("kill pid=%d failed: %s", proc.pid, e)
                try:
                    proc.wait(timeout=timeout)
                except subprocess.TimeoutExpired:
                    L.warning("Process pid=%d did not exit after kill", proc.pid)
            self._release_locked()

    def dispose(self):
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
        try:
            self.terminate()
        except Exception:
            L.exception("ProcessRunner terminate during dispose failed")
        self.line_received.clear()
        self.exited.clear()

    def _release_locked(self):
        proc = self._proc
        if proc is None:
            return
        if proc.poll() is not None:
            self.returncode = proc.returncode
        # Reader ends at EOF once the process is gone; dispatcher after draining.
        if self._reader is not None:
            self._reader.join(self._join_timeout_s)
        if self._dispatcher is not None:
            # join() returns at once when called from a subscriber on the
            # dispatcher thread; the stop request ends its loop after the
            # callback returns.
            self._dispatcher.join(self._join_timeout_s)
            self._dispatcher.request_stop()
        for stream in (proc.stdin, proc.stdout):
            if stream is None:
                continue
            try:
                stream.close()
            except (OSError, ValueError):
                pass
        if self._lines is not None:
            drain_queue_nowait(self._lines)
        self._proc = None
        self._reader = None
        self._dispatcher = None
        self._lines = None

    def _enqueue_line(self, line: str):
        lines = self._lines
        if lines is None:
            return
        self.lines_read += 1
        if not put_drop_oldest(lines, line, on_drop=self._on_line_dropped):
            self._on_line_dropped(line)

    def _enqueue_end(self):
        lines = self._lines
        if lines is None:
            return
        put_drop_oldest(lines, _END_OF_STREAM, on_drop=self._on_line_dropped)

    def _on_line_dropped(self, line):
        if line is _END_OF_STREAM:
            return
        self.dropped_lines += 1
        L.warning(
            "Line queue full: drop_oldest dropped=%d capacity=%d",
            self.dropped_lines,
            self._capacity,
        )

    def _publish_exit(self, proc: subprocess.Popen):
        try:
            returncode = proc.wait(timeout=self._join_timeout_s)
        except subprocess.TimeoutExpired:
            returncode = proc.poll()
        pid = proc.pid
        if self._proc is proc or self._proc is None:
            self.returncode = returncode
        L.info("Process exited pid=%s returncode=%s", pid, returncode)
        self.exited.publish(ProcessExited(returncode=returncode, pid=pid))


__all__ = ["ProcessRunner", "build_argv", "resolve_executable"]
