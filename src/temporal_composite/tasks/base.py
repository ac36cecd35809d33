"""
Processing Task Base
====================

Common lifecycle for the extraction and compositing tasks.

Design Rules:
    - cancel() sets a terminal flag; a cancelled task never resumes and
      must be recreated to run again
    - pause()/resume() are cooperative: the loop parks at its next
      iteration and keeps checking for cancellation while parked
    - Every state/progress/status change is published to the channel
"""

import logging
import threading
import uuid
from abc import ABC, abstractmethod
from typing import Any, Optional

from temporal_composite.models.task import ProgressEvent, TaskState
from temporal_composite.tasks.progress import ProgressChannel


logger = logging.getLogger(__name__)


CANCELLED_STATUS = "Cancelled"


class ProcessingTask(ABC):
    """
    Long-running unit of work observed by a supervising task list.

    Attributes:
        id: Unique task identifier
        title: Display title
        state: Current lifecycle state
        progress: Fraction complete in [0, 1]
        status_message: Human-readable status
        channel: Progress channel receiving every update
    """

    title: str = "Processing Task"

    def __init__(
        self,
        channel: Optional[ProgressChannel] = None,
        title: Optional[str] = None,
    ) -> None:
        self.id = str(uuid.uuid4())
        if title is not None:
            self.title = title
        self.channel = channel or ProgressChannel()

        self.state = TaskState.PENDING
        self.progress = 0.0
        self.status_message = "Pending"

        self._lock = threading.Lock()
        self._cancel_event = threading.Event()
        self._resume_event = threading.Event()
        self._resume_event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def _publish(
        self,
        state: Optional[TaskState] = None,
        progress: Optional[float] = None,
        status: Optional[str] = None,
    ) -> None:
        with self._lock:
            if state is not None:
                self.state = state
            if progress is not None:
                self.progress = min(max(progress, 0.0), 1.0)
            if status is not None:
                self.status_message = status
            event = ProgressEvent(
                task_id=self.id,
                state=self.state,
                progress=self.progress,
                status=self.status_message,
            )
        self.channel.publish(event)

    def _report_progress(self, progress: float, status: str) -> None:
        """Progress callback for worker loops (state unchanged)."""
        self._publish(progress=progress, status=status)

    def _finish_cancelled(self) -> None:
        self._publish(state=TaskState.FAILED, status=CANCELLED_STATUS)
        logger.info(f"{self.title} [{self.id[:8]}] cancelled at {self.progress:.1%}")

    def _fail(self, status: str) -> None:
        self._publish(state=TaskState.FAILED, status=status)
        logger.error(f"{self.title} [{self.id[:8]}] failed: {status}")

    def _can_start(self) -> bool:
        if self.state != TaskState.PENDING:
            logger.warning(f"{self.title} [{self.id[:8]}] cannot start from {self.state.value}")
            return False
        if self.is_cancelled:
            self._finish_cancelled()
            return False
        return True

    def cancel(self) -> None:
        """Request cancellation. Terminal; ignored once the task has finished."""
        if self.state.is_terminal:
            logger.debug(f"{self.title} [{self.id[:8]}] already {self.state.value}, cancel ignored")
            return
        self._cancel_event.set()
        self._resume_event.set()
        if self.state == TaskState.PENDING:
            self._finish_cancelled()

    def pause(self) -> None:
        if self.state == TaskState.RUNNING:
            self._resume_event.clear()
            self._publish(state=TaskState.PAUSED, status="Paused")

    def resume(self) -> None:
        if self.state == TaskState.PAUSED:
            self._resume_event.set()
            self._publish(state=TaskState.RUNNING, status="Resumed")

    @abstractmethod
    async def start(self) -> Any:
        """Run the task to a terminal state."""
        ...
