"""
Task Models
===========

Lifecycle, progress and project context types shared by both pipelines.

Core Concepts:
    - TaskState: Coarse lifecycle state observed by the supervising task list
    - ProgressEvent: One fire-and-forget progress/status notification
    - ProjectContext: Immutable project identity passed into every pipeline

Transitions:
    PENDING -> RUNNING -> COMPLETED
    PENDING -> RUNNING -> FAILED      (error, or status "Cancelled")
    RUNNING <-> PAUSED
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field


class TaskState(str, Enum):
    """
    Coarse lifecycle state of a processing task.

    Attributes:
        PENDING: Created, not started
        RUNNING: Processing loop active
        PAUSED: Loop parked until resumed or cancelled
        COMPLETED: Finished successfully
        FAILED: Finished with an error or cancelled
    """

    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskState.COMPLETED, TaskState.FAILED)


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    """
    Progress notification emitted after each unit of work.

    Attributes:
        task_id: Identifier of the emitting task
        state: Lifecycle state at emission time
        progress: Fraction complete in [0, 1]
        status: Human-readable status string
        emitted_at: UNIX timestamp of emission
    """

    task_id: str
    state: TaskState
    progress: float
    status: str
    emitted_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        """Export as dictionary for logging/serialization."""
        return {
            "task_id": self.task_id,
            "state": self.state.value,
            "progress": round(self.progress, 4),
            "status": self.status,
            "emitted_at": round(self.emitted_at, 3),
        }


class ProjectContext(BaseModel):
    """
    Immutable project identity passed by value into each pipeline.

    Attributes:
        project_id: Stable project identifier
        project_name: Directory name of the project under the storage root
        storage_root: Sandboxed root all persisted paths are relative to
        frame_rate: Project frame rate, used as the composite output rate
            when the compositing config does not set one
    """

    project_id: str = Field(..., min_length=1, description="Stable project identifier")
    project_name: str = Field(..., min_length=1, description="Project directory name")
    storage_root: Path = Field(..., description="Storage root directory")
    frame_rate: float = Field(default=60.0, gt=0, description="Project frame rate")

    class Config:
        """Contexts are passed by value and never mutated."""

        frozen = True

    @property
    def project_dir(self) -> Path:
        """Absolute project directory."""
        return self.storage_root / self.project_name
