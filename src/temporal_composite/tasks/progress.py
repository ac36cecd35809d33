"""
Progress Channel
================

Fire-and-forget progress/status publishing for long-running tasks.

Processing loops publish after every unit of work; a supervising task
list drains the channel at its own pace. Publishing never blocks the
loop, whatever the consumer does.

Design Rules:
    - The pending queue is bounded (drops oldest on overflow), so a
      channel nobody drains holds at most ``max_pending`` events
    - latest() always reflects the newest event, dropped or not
"""

import logging
import queue
import threading
from collections import deque
from typing import Deque, Dict, List, Optional

from temporal_composite.models.task import ProgressEvent


logger = logging.getLogger(__name__)


class ProgressChannel:
    """
    Non-blocking multi-producer progress channel.

    Attributes:
        history_size: Number of recent events kept for inspection
        max_pending: Undrained events kept before the oldest are dropped

    Example:
        channel = ProgressChannel()
        task = VideoProcessingTask(context, source, channel=channel)
        ...
        for event in channel.drain():
            print(event.progress, event.status)
    """

    def __init__(self, history_size: int = 256, max_pending: int = 1024) -> None:
        if max_pending <= 0:
            raise ValueError(f"max_pending must be positive, got {max_pending}")
        self.history_size = history_size
        self.max_pending = max_pending
        self._queue: "queue.Queue[ProgressEvent]" = queue.Queue(maxsize=max_pending)
        self._lock = threading.Lock()
        self._latest: Dict[str, ProgressEvent] = {}
        self._history: Deque[ProgressEvent] = deque(maxlen=history_size)
        self._published = 0
        self._dropped = 0

    def publish(self, event: ProgressEvent) -> None:
        """Enqueue an event, dropping the oldest pending one if full. Never blocks."""
        with self._lock:
            while True:
                try:
                    self._queue.put_nowait(event)
                    break
                except queue.Full:
                    try:
                        self._queue.get_nowait()
                    except queue.Empty:
                        continue
                    self._dropped += 1
                    if self._dropped == 1 or self._dropped % self.max_pending == 0:
                        logger.debug(f"Progress channel full, dropped {self._dropped} events")
            self._latest[event.task_id] = event
            self._history.append(event)
            self._published += 1

    def drain(self) -> List[ProgressEvent]:
        """Return every pending event published since the last drain, oldest first."""
        events = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                break
        return events

    def latest(self, task_id: str) -> Optional[ProgressEvent]:
        """Most recent event for ``task_id``."""
        with self._lock:
            return self._latest.get(task_id)

    @property
    def history(self) -> List[ProgressEvent]:
        with self._lock:
            return list(self._history)

    @property
    def pending_count(self) -> int:
        return self._queue.qsize()

    def metrics(self) -> dict:
        with self._lock:
            return {
                "published": self._published,
                "dropped": self._dropped,
                "pending": self._queue.qsize(),
                "tasks": len(self._latest),
                "history": len(self._history),
            }
