"""
Tasks Module
============

Long-running task wrappers around the two pipelines.

This module provides:
    - ProcessingTask: Lifecycle, cancellation and pause/resume
    - ProgressChannel: Fire-and-forget progress/status events
    - VideoProcessingTask: Frame extraction into a project
    - CompositeRenderingTask: Composite overlay video render

The two tasks are independent; rendering reads what extraction persisted.
"""

from temporal_composite.tasks.base import CANCELLED_STATUS, ProcessingTask
from temporal_composite.tasks.composite_task import CompositeRenderResult, CompositeRenderingTask
from temporal_composite.tasks.extraction_task import VideoProcessingTask
from temporal_composite.tasks.progress import ProgressChannel


__all__ = [
    "CANCELLED_STATUS",
    "ProcessingTask",
    "CompositeRenderResult",
    "CompositeRenderingTask",
    "VideoProcessingTask",
    "ProgressChannel",
]
