"""
Data Models
===========

Data models for temporal-composite.

This module re-exports all data models for convenient access.

Models:
    Frame:
        - FrameSample: Sampling position in the source video
        - BufferedImage: Decoded frame resident in the FrameBuffer
        - PersistedFrame: Metadata record of a frame written to disk

    Composite:
        - CompositeWindowSpec: Window parameters for one output frame
        - RingImage: Merged +/- distance pair
        - CompositeFrame: Final blend for one output frame

    Task:
        - TaskState: Lifecycle states
        - ProgressEvent: Progress/status notification
        - ProjectContext: Immutable project identity
"""

from temporal_composite.models.frame import BufferedImage, FrameSample, PersistedFrame
from temporal_composite.models.composite import CompositeFrame, CompositeWindowSpec, RingImage
from temporal_composite.models.task import ProgressEvent, ProjectContext, TaskState

__all__ = [
    # Frame
    "FrameSample",
    "BufferedImage",
    "PersistedFrame",
    # Composite
    "CompositeWindowSpec",
    "RingImage",
    "CompositeFrame",
    # Task
    "TaskState",
    "ProgressEvent",
    "ProjectContext",
]
