"""Shared queue helpers for bounded hand-off and non-blocking cleanup."""

from __future__ import annotations

import contextlib
import queue
from collections.abc import Callable
from typing import Any


def put_drop_oldest(
    q: queue.Queue,
    item: Any,
    *,
    on_drop: Callable[[Any], None] | None = None,
) -> bool:
    """Put without blocking; when full, evict the oldest item to make room.

    Returns False only if the queue is still full after one eviction, which
    can happen when another producer races for the freed slot.
    """
    try:
        q.put_nowait(item)
        return True
    except queue.Full:
        dropped = None
        with contextlib.suppress(queue.Empty):
            dropped = q.get_nowait()
            q.task_done()
        if dropped is not None and on_drop is not None:
            on_drop(dropped)
        try:
            q.put_nowait(item)
            return True
        except queue.Full:
            return False


def drain_queue_nowait(
    q: queue.Queue,
    *,
    on_item: Callable[[Any], None] | None = None,
) -> int:
    """Drain all currently queued items without blocking.

    Calls `task_done()` for each popped item, which keeps queue counters
    consistent during shutdown cleanup.
    """
    drained = 0
    while True:
        try:
            item = q.get_nowait()
        except queue.Empty:
            return drained
        try:
            if on_item is not None:
                on_item(item)
        finally:
            q.task_done()
        drained += 1


__all__ = ["put_drop_oldest", "drain_queue_nowait"]
