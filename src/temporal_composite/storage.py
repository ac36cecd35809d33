"""
Project Storage
===============

Directory layout, sandboxed path handling and the frame metadata store.

Layout (relative to the storage root):
    <project>/frame_00001.jpg
    <project>/thumbnails/frame_00001_thumbnail.jpg
    <project>/frames.json
    <project>/compositeOverlay.<container>

Design Rules:
    - Paths persisted in metadata are ALWAYS relative to the storage root,
      so the root can move between runs or machines
    - resolve() refuses absolute paths and paths escaping the root
    - Files are written atomically (temp file + rename)
    - The frame index is rewritten in batches, never once per insert
"""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Union

from temporal_composite.errors import StorageError
from temporal_composite.models.frame import PersistedFrame


logger = logging.getLogger(__name__)


COMPOSITE_OUTPUT_STEM = "compositeOverlay"


def atomic_write(path: Path, data: bytes) -> None:
    """
    Write ``data`` to ``path`` atomically.

    Raises:
        OSError: If the write or rename fails
    """
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


class ProjectStorage:
    """
    Per-project directory layout under a sandboxed storage root.

    Attributes:
        root: Storage root (absolute)
        project_dir: Project directory (absolute)
        thumbnails_dir: Thumbnail directory (absolute)

    Example:
        storage = ProjectStorage("/data/projects", "rally")
        path = storage.image_path(0)          # .../rally/frame_00001.jpg
        rel = storage.relative_path(path)     # "rally/frame_00001.jpg"
        assert storage.resolve(rel) == path
    """

    def __init__(
        self,
        root: Union[str, Path],
        project_name: str,
        thumbnails_dir: str = "thumbnails",
        frames_index: str = "frames.json",
        container: str = "mp4",
    ) -> None:
        """
        Initialize project storage and create its directories.

        Args:
            root: Storage root directory
            project_name: Project directory name under the root
            thumbnails_dir: Thumbnail sub-directory name
            frames_index: Frame metadata index file name
            container: Composite output container extension
        """
        if not project_name or Path(project_name).name != project_name or project_name in (".", ".."):
            raise StorageError(f"Invalid project name: {project_name!r}")

        self.root = Path(root).resolve()
        self.project_name = project_name
        self.project_dir = self.root / project_name
        self.thumbnails_dir = self.project_dir / thumbnails_dir
        self.frames_index_path = self.project_dir / frames_index
        self.container = container.lstrip(".")

        self.thumbnails_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"ProjectStorage initialized: {self.project_dir}")

    # -------------------------------------------------------------------------
    # Naming
    # -------------------------------------------------------------------------

    @staticmethod
    def frame_name(ordinal_index: int) -> str:
        """Full-resolution file name for a frame (1-based numbering)."""
        return f"frame_{ordinal_index + 1:05d}.jpg"

    @staticmethod
    def thumbnail_name(ordinal_index: int) -> str:
        """Thumbnail file name for a frame (1-based numbering)."""
        return f"frame_{ordinal_index + 1:05d}_thumbnail.jpg"

    def image_path(self, ordinal_index: int) -> Path:
        return self.project_dir / self.frame_name(ordinal_index)

    def thumbnail_path(self, ordinal_index: int) -> Path:
        return self.thumbnails_dir / self.thumbnail_name(ordinal_index)

    @property
    def composite_output_path(self) -> Path:
        """Composite video path inside the project directory."""
        return self.project_dir / f"{COMPOSITE_OUTPUT_STEM}.{self.container}"

    # -------------------------------------------------------------------------
    # Sandboxed paths
    # -------------------------------------------------------------------------

    def relative_path(self, path: Union[str, Path]) -> str:
        """
        Express an absolute path relative to the storage root.

        Raises:
            StorageError: If the path is outside the root
        """
        resolved = Path(path).resolve()
        try:
            return resolved.relative_to(self.root).as_posix()
        except ValueError:
            raise StorageError(f"Path {resolved} is outside storage root {self.root}")

    def resolve(self, relative: str) -> Path:
        """
        Resolve a stored relative path against the storage root.

        Raises:
            StorageError: If the path is absolute or escapes the root
        """
        candidate = Path(relative)
        if candidate.is_absolute():
            raise StorageError(f"Stored path must be relative: {relative}")
        resolved = (self.root / candidate).resolve()
        if resolved != self.root and self.root not in resolved.parents:
            raise StorageError(f"Stored path escapes storage root: {relative}")
        return resolved


# =============================================================================
# Frame metadata store
# =============================================================================

class FrameMetadataStore(Protocol):
    """
    Protocol for frame metadata stores.

    The extraction writer inserts one record per accepted sample; the
    compositor reads all records ordered by ordinal index.
    """

    def insert(self, frame: PersistedFrame) -> None:
        ...

    def frames(self) -> List[PersistedFrame]:
        """All records ordered by ordinal index."""
        ...

    def count(self) -> int:
        ...

    def clear(self) -> None:
        ...

    def flush(self) -> None:
        """Persist any records not yet written."""
        ...


class JsonFrameStore:
    """
    JSON index of PersistedFrame records with batched writes.

    The index file is rewritten once every ``flush_interval`` inserts and
    on flush()/clear(). Thread-safe: the persistence writer inserts from
    its worker thread while the task may read counts from another.

    Example:
        store = JsonFrameStore(storage.frames_index_path)
        store.insert(frame)
        store.flush()
        ordered = store.frames()
    """

    def __init__(self, path: Union[str, Path], flush_interval: int = 50) -> None:
        """
        Initialize the store, loading any existing index file.

        Args:
            path: Index file location
            flush_interval: Inserts between index rewrites
        """
        if flush_interval <= 0:
            raise ValueError(f"flush_interval must be positive, got {flush_interval}")
        self.path = Path(path)
        self.flush_interval = flush_interval
        self._lock = threading.Lock()
        self._frames: Dict[int, PersistedFrame] = {}
        self._unflushed = 0
        self._index_writes = 0
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Unreadable frame index {self.path}: {e}") from e
        for item in payload.get("frames", []):
            frame = PersistedFrame.model_validate(item)
            self._frames[frame.ordinal_index] = frame
        logger.info(f"Loaded {len(self._frames)} frames from {self.path}")

    def _flush(self) -> None:
        """Rewrite the index file. Caller holds the lock."""
        payload = {
            "frames": [
                frame.model_dump(mode="json")
                for _, frame in sorted(self._frames.items())
            ]
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            atomic_write(self.path, json.dumps(payload, indent=2).encode("utf-8"))
        except OSError as e:
            raise StorageError(f"Error writing frame index {self.path}: {e}") from e
        self._unflushed = 0
        self._index_writes += 1

    def insert(self, frame: PersistedFrame) -> None:
        """
        Insert a record, rewriting the index when a batch is full.

        Raises:
            StorageError: If a record with the same ordinal index exists,
                or the index rewrite fails (the record is not kept)
        """
        index = frame.ordinal_index
        with self._lock:
            if index in self._frames:
                raise StorageError(f"Frame with ordinal index {index} already stored")
            self._frames[index] = frame
            self._unflushed += 1
            if self._unflushed < self.flush_interval:
                return
            try:
                self._flush()
            except StorageError:
                del self._frames[index]
                self._unflushed -= 1
                raise

    def flush(self) -> None:
        """
        Write pending records to the index file.

        Raises:
            StorageError: If the index cannot be written
        """
        with self._lock:
            if self._unflushed:
                self._flush()

    def frames(self) -> List[PersistedFrame]:
        with self._lock:
            return [frame for _, frame in sorted(self._frames.items())]

    def get(self, ordinal_index: int) -> Optional[PersistedFrame]:
        with self._lock:
            return self._frames.get(ordinal_index)

    def count(self) -> int:
        with self._lock:
            return len(self._frames)

    def clear(self) -> None:
        with self._lock:
            self._frames.clear()
            self._flush()

    def metrics(self) -> dict:
        """Get store metrics for observability."""
        with self._lock:
            return {
                "frames": len(self._frames),
                "unflushed": self._unflushed,
                "index_writes": self._index_writes,
            }
