import logging
import threading

L = logging.getLogger("capture_runtime.workers")


class BaseWorker:
    """Single-use background thread with a stop event and bounded join."""

    def __init__(self, name: str = ""):
        self.name = name or self.__class__.__name__
        self._stop_evt = threading.Event()
        self._thread: threading.Thread | None = None
        self._last_error: Exception | None = None

    def start(self):
        if self._thread is not None:
            raise RuntimeError(
                f"{self.name} is single-use; start() may only be called once"
            )
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()

    def request_stop(self):
        self._stop_evt.set()

    def stop(self, timeout: float = 2.0) -> bool:
        """Signal stop and wait; returns False if the thread is still alive."""
        self._stop_evt.set()
        return self.join(timeout)

    def join(self, timeout: float = 2.0) -> bool:
        thread = self._thread
        if thread is None:
            return True
        if thread is threading.current_thread():
            # Stopping from inside the worker's own callbacks; the loop exits on
            # its next stop-event check.
            return True
        thread.join(timeout=timeout)
        if thread.is_alive():
            L.warning("%s worker thread did not exit within %.2fs", self.name, timeout)
            return False
        return True

    def _run(self):
        try:
            self.run()
        except Exception as e:
            self._last_error = e
            L.exception("%s worker error", self.name)

    @property
    def stop_requested(self) -> bool:
        return self._stop_evt.is_set()

    @property
    def is_alive(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    @property
    def has_started(self) -> bool:
        return self._thread is not None

    @property
    def last_error(self) -> Exception | None:
        return self._last_error

    def run(self):
        raise NotImplementedError


class PeriodicWorker(BaseWorker):
    """Call `tick()` every `interval_s` until stopped."""

    def __init__(self, interval_s: float, tick, name: str = ""):
        super().__init__(name or "PeriodicWorker")
        self.interval_s = max(float(interval_s), 0.001)
        self._tick = tick

    def run(self):
        while not self._stop_evt.wait(self.interval_s):
            try:
                self._tick()
            except Exception:
                L.exception("%s tick failed", self.name)


__all__ = ["BaseWorker", "PeriodicWorker"]
