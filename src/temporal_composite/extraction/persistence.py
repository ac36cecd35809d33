"""
Persistence Writer
==================

Drains the FrameBuffer to disk on a dedicated background thread.

For each accepted sample the writer:
    1. Encodes the buffered image to JPEG and writes it atomically
    2. Generates and writes an aspect-preserving thumbnail
    3. Frees the buffer slot (always, even on failure)
    4. Inserts a PersistedFrame with root-relative paths into the store

The store batches index rewrites; drain() and close() flush it.

Failure Policy:
    - Full-image failure: logged, no PersistedFrame (frame is dropped).
      There is no retry; callers wanting completeness compare the store
      count against the number of accepted samples.
    - Thumbnail failure: logged, the frame is persisted without a
      thumbnail path.
    - Index write failure: logged, the record is rolled back and the
      frame is dropped like a full-image failure.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import List, Optional

from temporal_composite.errors import FrameWriteError, ImageCodecError, StorageError
from temporal_composite.extraction.buffer import FrameBuffer
from temporal_composite.extraction.image_codec import encode_jpeg, make_thumbnail
from temporal_composite.models.frame import FrameSample, PersistedFrame
from temporal_composite.storage import FrameMetadataStore, ProjectStorage, atomic_write


logger = logging.getLogger(__name__)


class PersistenceWriter:
    """
    Background writer for buffered frames.

    Disk I/O runs on a single-worker executor isolated from the
    extraction loop, so write latency never blocks sampling beyond the
    FrameBuffer's own backpressure.

    Example:
        writer = PersistenceWriter(storage, buffer, store)
        buffer.set(sample.ordinal_index, image)
        writer.submit(sample)
        ...
        persisted = writer.drain()
        writer.close()
    """

    def __init__(
        self,
        storage: ProjectStorage,
        buffer: FrameBuffer,
        store: FrameMetadataStore,
        jpeg_quality: int = 80,
        thumbnail_max_dimension: int = 128,
    ) -> None:
        """
        Initialize persistence writer.

        Args:
            storage: Project layout to write into
            buffer: Buffer the images are drained from
            store: Metadata store receiving PersistedFrame records
            jpeg_quality: JPEG quality for image and thumbnail
            thumbnail_max_dimension: Longest side of the thumbnail
        """
        self.storage = storage
        self.buffer = buffer
        self.store = store
        self.jpeg_quality = jpeg_quality
        self.thumbnail_max_dimension = thumbnail_max_dimension

        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="frame-writer")
        self._pending: List[Future] = []
        self._lock = threading.Lock()

        self._submitted = 0
        self._written = 0
        self._failed = 0
        self._thumbnails_failed = 0

        logger.info(
            f"PersistenceWriter initialized: project={storage.project_dir}, "
            f"quality={jpeg_quality}, thumbnail={thumbnail_max_dimension}px"
        )

    def submit(self, sample: FrameSample) -> "Future[Optional[PersistedFrame]]":
        """
        Schedule the buffered image for ``sample`` to be written.

        The image must already be in the buffer under the sample's
        ordinal index. Returns immediately.
        """
        future = self._executor.submit(self._write, sample)
        with self._lock:
            self._submitted += 1
            self._pending.append(future)
        return future

    def _write(self, sample: FrameSample) -> Optional[PersistedFrame]:
        index = sample.ordinal_index
        try:
            buffered = self.buffer.get(index)
            if buffered is None:
                raise FrameWriteError(f"Frame {index} not resident in buffer")
            image = buffered.pixels

            image_path = self.storage.image_path(index)
            try:
                atomic_write(image_path, encode_jpeg(image, self.jpeg_quality))
            except (ImageCodecError, OSError) as e:
                raise FrameWriteError(f"Error writing full image {image_path}: {e}") from e
            logger.debug(f"Saved full image to {image_path}")

            thumbnail_rel = self._write_thumbnail(index, image)

            frame = PersistedFrame(
                ordinal_index=index,
                frame_name=self.storage.frame_name(index),
                image_relative_path=self.storage.relative_path(image_path),
                thumbnail_relative_path=thumbnail_rel,
                timestamp_seconds=sample.seconds,
            )
            self.store.insert(frame)
        except (FrameWriteError, StorageError) as e:
            logger.error(f"Dropping frame {index}: {e}")
            with self._lock:
                self._failed += 1
            return None
        finally:
            self.buffer.remove(index)

        with self._lock:
            self._written += 1
        return frame

    def _write_thumbnail(self, index: int, image) -> Optional[str]:
        thumbnail_path = self.storage.thumbnail_path(index)
        try:
            thumbnail = make_thumbnail(image, self.thumbnail_max_dimension)
            atomic_write(thumbnail_path, encode_jpeg(thumbnail, self.jpeg_quality))
        except (ImageCodecError, OSError) as e:
            logger.warning(f"Thumbnail generation failed for frame {index}: {e}")
            with self._lock:
                self._thumbnails_failed += 1
            return None
        return self.storage.relative_path(thumbnail_path)

    def drain(self) -> List[PersistedFrame]:
        """
        Wait for every submitted write to finish and flush the store.

        Returns:
            Frames persisted by the drained writes, ordered by ordinal index

        Raises:
            StorageError: If the metadata index cannot be written
        """
        with self._lock:
            pending, self._pending = self._pending, []
        persisted = [f.result() for f in pending]
        self.store.flush()
        return sorted(
            (frame for frame in persisted if frame is not None),
            key=lambda frame: frame.ordinal_index,
        )

    def close(self) -> None:
        """Drain and shut down the worker thread."""
        self.drain()
        self._executor.shutdown(wait=True)

    def metrics(self) -> dict:
        """Get writer metrics for observability."""
        with self._lock:
            return {
                "submitted": self._submitted,
                "written": self._written,
                "failed": self._failed,
                "thumbnails_failed": self._thumbnails_failed,
                "pending": sum(1 for f in self._pending if not f.done()),
            }
