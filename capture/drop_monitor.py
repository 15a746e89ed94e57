# -- coding: utf-8 --
"""DropMonitor: count dropped-frame signatures and report them on a fixed cadence."""

import logging
import threading
from datetime import datetime, timezone

from core.contracts import FrameDropped
from core.events import EventChannel
from core.worker import PeriodicWorker

L = logging.getLogger("capture_runtime.drop_monitor")

DEFAULT_CHECK_INTERVAL_MS = 1000


class DropMonitor:
    """Sample the drop counter each tick and emit once per increasing window.

    `record_drop()` is called from the line dispatcher thread while ticks run
    on the monitor's own thread; the counter and the sampling baseline share
    one lock so no increment is lost or reported twice.
    """

    def __init__(self, check_interval_ms: int = DEFAULT_CHECK_INTERVAL_MS):
        self.frame_dropped: EventChannel[FrameDropped] = EventChannel("frame_dropped")
        self.check_interval_ms = int(check_interval_ms)
        self._lock = threading.Lock()
        self._count = 0
        self._last_seen = 0
        self._ticker: PeriodicWorker | None = None

    @property
    def count(self) -> int:
        with self._lock:
            return self._count

    @property
    def armed(self) -> bool:
        with self._lock:
            return self._ticker is not None

    def arm(self, check_interval_ms: int | None = None):
        with self._lock:
            if self._ticker is not None:
                return
            if check_interval_ms is not None:
                self.check_interval_ms = int(check_interval_ms)
            self._ticker = PeriodicWorker(
                self.check_interval_ms / 1000.0, self.poll, name="DropMonitorTicker"
            )
            ticker = self._ticker
        ticker.start()
        L.debug("Drop monitor armed interval=%dms", self.check_interval_ms)

    def disarm(self):
        with self._lock:
            ticker = self._ticker
            self._ticker = None
        if ticker is None:
            return
        ticker.stop(timeout=max(self.check_interval_ms / 1000.0, 1.0))
        L.debug("Drop monitor disarmed count=%d", self.count)

    def record_drop(self) -> int:
        with self._lock:
            self._count += 1
            return self._count

    def poll(self) -> bool:
        """Run one tick; returns True if a FrameDropped event was emitted."""
        with self._lock:
            total = self._count
            new_drops = total - self._last_seen
            self._last_seen = total
        if new_drops <= 0:
            return False
        L.warning("Frame dropped: new=%d total=%d", new_drops, total)
        self.frame_dropped.publish(
            FrameDropped(
                total=total,
                new_drops=new_drops,
                detected_at=datetime.now(timezone.utc),
            )
        )
        return True

    def reset(self):
        with self._lock:
            self._count = 0
            self._last_seen = 0

    def dispose(self):
        self.disarm()
        self.frame_dropped.clear()


__all__ = ["DropMonitor", "DEFAULT_CHECK_INTERVAL_MS"]
