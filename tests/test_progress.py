"""
Progress Channel Tests
======================

Tests for the bounded, non-blocking progress channel.
"""

import pytest

from temporal_composite.models.task import ProgressEvent, TaskState
from temporal_composite.tasks import ProgressChannel


def _event(i: int, task_id: str = "t1") -> ProgressEvent:
    return ProgressEvent(task_id=task_id, state=TaskState.RUNNING, progress=i / 100, status=f"step {i}")


class TestProgressChannel:
    """Publishing and draining."""

    def test_drain_returns_pending_in_order(self):
        """Verify drain yields events oldest first and empties the queue."""
        channel = ProgressChannel()
        for i in range(3):
            channel.publish(_event(i))

        assert [e.status for e in channel.drain()] == ["step 0", "step 1", "step 2"]
        assert channel.drain() == []

    def test_latest_per_task(self):
        """Verify latest() tracks the newest event of each task."""
        channel = ProgressChannel()
        channel.publish(_event(1, "a"))
        channel.publish(_event(2, "b"))
        channel.publish(_event(3, "a"))

        assert channel.latest("a").status == "step 3"
        assert channel.latest("b").status == "step 2"
        assert channel.latest("missing") is None

    def test_undrained_queue_is_bounded(self):
        """Verify an undrained channel keeps only the newest max_pending events."""
        channel = ProgressChannel(history_size=4, max_pending=5)
        for i in range(50):
            channel.publish(_event(i))

        assert channel.pending_count == 5
        assert [e.status for e in channel.drain()] == [f"step {i}" for i in range(45, 50)]
        assert channel.latest("t1").status == "step 49"
        assert len(channel.history) == 4

        metrics = channel.metrics()
        assert metrics["published"] == 50
        assert metrics["dropped"] == 45
        assert metrics["pending"] == 0

    def test_invalid_max_pending(self):
        """Verify a non-positive bound is rejected."""
        with pytest.raises(ValueError):
            ProgressChannel(max_pending=0)
