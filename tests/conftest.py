"""
Test Configuration
==================

Pytest fixtures and test configuration for temporal-composite.
"""

from fractions import Fraction
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional, Tuple

import numpy as np
import pytest

from temporal_composite.errors import FrameExtractionError
from temporal_composite.extraction.source import frame_rate_fraction
from temporal_composite.models.task import ProjectContext
from temporal_composite.storage import JsonFrameStore, ProjectStorage


class FakeVideoSource:
    """
    In-memory VideoSource producing a distinct synthetic image per frame.

    Attributes:
        duplicates: frame index -> frame index whose image it repeats
        fail_at: frame indexes whose extraction raises
        on_read: hook called with the frame index before each read
    """

    def __init__(
        self,
        frame_rate: float = 30.0,
        duration: float = 10.0,
        size: Tuple[int, int] = (32, 24),
        duplicates: Optional[Dict[int, int]] = None,
        fail_at: Iterable[int] = (),
        on_read: Optional[Callable[[int], None]] = None,
    ) -> None:
        self.uri = "memory://fake.mov"
        self.duration = duration
        self.nominal_frame_rate = frame_rate
        self.natural_size = size
        self.rotation = 0
        self.duplicates = duplicates or {}
        self.fail_at = set(fail_at)
        self.on_read = on_read
        self.reads = []
        self.closed = False

    def frame_at(self, timestamp: Fraction) -> np.ndarray:
        index = round(Fraction(timestamp) * frame_rate_fraction(self.nominal_frame_rate))
        self.reads.append(index)
        if self.on_read is not None:
            self.on_read(index)
        if index in self.fail_at:
            raise FrameExtractionError(f"synthetic failure at frame {index}")
        return synthetic_frame(self.duplicates.get(index, index), self.natural_size)

    def close(self) -> None:
        self.closed = True


def synthetic_frame(index: int, size: Tuple[int, int] = (32, 24)) -> np.ndarray:
    """Deterministic BGR frame that differs for every index."""
    width, height = size
    image = np.zeros((height, width, 3), dtype=np.uint8)
    image[..., 0] = index % 256
    image[..., 1] = (index // 256) % 256
    image[:, : index % width + 1, 2] = 200
    return image


@pytest.fixture
def fake_source_factory():
    """Build FakeVideoSource instances with custom parameters."""
    return FakeVideoSource


@pytest.fixture
def project_context(tmp_path: Path) -> ProjectContext:
    """Project 'demo' rooted in a temporary storage directory."""
    return ProjectContext(
        project_id="project-1",
        project_name="demo",
        storage_root=tmp_path,
        frame_rate=30.0,
    )


@pytest.fixture
def storage(project_context: ProjectContext) -> ProjectStorage:
    """ProjectStorage for the demo project."""
    return ProjectStorage(project_context.storage_root, project_context.project_name)


@pytest.fixture
def frame_store(storage: ProjectStorage) -> JsonFrameStore:
    """Empty JSON frame store for the demo project."""
    return JsonFrameStore(storage.frames_index_path)


class FakeWriter:
    """cv2.VideoWriter stand-in that records frames and writes a file on release."""

    def __init__(self, path: str, opened: bool = True, fail_after: Optional[int] = None) -> None:
        self.path = path
        self.opened = opened
        self.fail_after = fail_after
        self.frames = []
        self.released = False

    def isOpened(self) -> bool:
        return self.opened

    def write(self, frame: np.ndarray) -> None:
        if self.fail_after is not None and len(self.frames) >= self.fail_after:
            raise RuntimeError("disk full")
        self.frames.append(frame.copy())

    def release(self) -> None:
        if not self.released and self.opened:
            Path(self.path).write_bytes(b"\x00" * (16 + len(self.frames)))
        self.released = True


@pytest.fixture
def fake_writer_factory():
    """
    Factory of writer factories.

    Returns (factory, writers); every writer built by ``factory`` is
    appended to ``writers``.
    """

    def make(opened: bool = True, fail_after: Optional[int] = None):
        writers = []

        def factory(path, fourcc, fps, size):
            writer = FakeWriter(path, opened=opened, fail_after=fail_after)
            writers.append(writer)
            return writer

        return factory, writers

    return make


@pytest.fixture
def make_frame():
    """Build distinct synthetic BGR frames: make_frame(index, size=(w, h))."""
    return synthetic_frame
