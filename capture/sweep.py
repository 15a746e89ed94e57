"""Stop every other process sharing the encoder's name.

On POSIX the request is SIGTERM, which ffmpeg treats like its stop token. On
Windows psutil's terminate() is TerminateProcess, a hard kill, so a console
CTRL_BREAK is sent instead and TerminateProcess is only the fallback when the
target does not share a console with us. The sweep is off by default.
"""

import logging
import os
import signal
from typing import Iterable, List

import psutil

L = logging.getLogger("capture_runtime.sweep")

_ON_WINDOWS = psutil.WINDOWS
_WINDOWS_BREAK = getattr(signal, "CTRL_BREAK_EVENT", None)


def _normalize_name(name: str) -> str:
    base = os.path.basename(str(name or "")).strip().lower()
    if base.endswith(".exe"):
        base = base[:-4]
    return base


def find_processes_by_name(
    name: str, exclude_pids: Iterable[int] = ()
) -> List[psutil.Process]:
    """List processes whose executable name matches `name` (case-insensitive, .exe optional)."""
    target = _normalize_name(name)
    if not target:
        return []
    skip = {os.getpid(), *exclude_pids}
    matches = []
    for proc in psutil.process_iter(["pid", "name"]):
        try:
            if proc.pid in skip:
                continue
            if _normalize_name(proc.info.get("name") or "") == target:
                matches.append(proc)
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            continue
    return matches


def request_exit(proc: psutil.Process):
    """Ask one process to exit; raises psutil errors if it is gone or protected."""
    if _ON_WINDOWS and _WINDOWS_BREAK is not None:
        try:
            proc.send_signal(_WINDOWS_BREAK)
            return
        except OSError as e:
            L.warning("CTRL_BREAK to pid=%s failed (%s); forcing TerminateProcess", proc.pid, e)
    proc.terminate()


def stop_processes_by_name(
    name: str,
    *,
    exclude_pids: Iterable[int] = (),
    timeout: float = 5.0,
) -> tuple[int, int]:
    """Ask matching processes to exit and wait up to `timeout` in total.

    Survivors are reported, never killed. Returns (stopped, still_alive).
    """
    procs = find_processes_by_name(name, exclude_pids)
    if not procs:
        return 0, 0

    L.info("Stopping %d process(es) named %s", len(procs), name)
    signalled = []
    for proc in procs:
        try:
            request_exit(proc)
            signalled.append(proc)
        except (psutil.NoSuchProcess, psutil.AccessDenied) as e:
            L.debug("Cannot signal pid=%s: %s", proc.pid, e)

    if not signalled:
        return 0, 0
    gone, alive = psutil.wait_procs(signalled, timeout=timeout)
    for proc in alive:
        L.warning("Process pid=%d named %s did not exit within %.1fs", proc.pid, name, timeout)
    return len(gone), len(alive)


__all__ = ["find_processes_by_name", "request_exit", "stop_processes_by_name"]
