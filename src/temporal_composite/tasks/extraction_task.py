"""
Video Processing Task
=====================

Frame-extraction pipeline as a long-running task.

    source --FrameExtractor--> FrameBuffer --PersistenceWriter--> disk + store

Outcomes:
    COMPLETED  "Processing complete at HH:MM"
    FAILED     "No frames to process."          (configuration error)
    FAILED     "Could not open video: <uri>"    (no usable video track)
    FAILED     "Cancelled"                      (user cancellation)
    FAILED     "Processing failed: <error>"     (unexpected error)

Per-frame extraction and write failures do not fail the task; those
frames are skipped and logged.
"""

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union

from temporal_composite.config import ExtractionConfig, StorageConfig
from temporal_composite.errors import ConfigurationError
from temporal_composite.extraction.buffer import FrameBuffer
from temporal_composite.extraction.persistence import PersistenceWriter
from temporal_composite.extraction.sampler import ExtractionResult, FrameExtractor, build_samples
from temporal_composite.extraction.source import OpenCVVideoSource, VideoSource, display_size
from temporal_composite.models.frame import FrameSample
from temporal_composite.models.task import ProjectContext, TaskState
from temporal_composite.storage import FrameMetadataStore, JsonFrameStore, ProjectStorage
from temporal_composite.tasks.base import ProcessingTask
from temporal_composite.tasks.progress import ProgressChannel


logger = logging.getLogger(__name__)


class VideoProcessingTask(ProcessingTask):
    """
    Extract, deduplicate and persist frames of one video into a project.

    A run always starts from scratch: the project's frame store is
    cleared before sampling begins. When given a path, the task opens
    the video itself on start() and closes it when the run ends.

    Example:
        task = VideoProcessingTask(context, "match.mov", config=ExtractionConfig(frame_skip=2))
        result = asyncio.run(task.start())
        print(task.state, task.status_message, len(result.persisted))
    """

    title = "Video Processing"

    def __init__(
        self,
        context: ProjectContext,
        source: Union[VideoSource, str, Path],
        store: Optional[FrameMetadataStore] = None,
        config: Optional[ExtractionConfig] = None,
        channel: Optional[ProgressChannel] = None,
        storage: Optional[ProjectStorage] = None,
        storage_config: Optional[StorageConfig] = None,
    ) -> None:
        """
        Initialize the task.

        Args:
            context: Project identity and storage root
            source: Video to sample, or a path opened on start()
            store: Frame metadata store (defaults to the project's JSON index)
            config: Extraction settings
            channel: Progress channel
            storage: Project layout (built from context when omitted)
            storage_config: Layout names used when building storage
        """
        super().__init__(channel=channel)
        self.context = context
        self.source: Optional[VideoSource] = None
        self._source_path: Optional[Path] = None
        if isinstance(source, (str, Path)):
            self._source_path = Path(source)
        else:
            self.source = source
        self.config = config or ExtractionConfig()

        storage_config = storage_config or StorageConfig()
        if storage is None:
            storage = ProjectStorage(
                context.storage_root,
                context.project_name,
                thumbnails_dir=storage_config.thumbnails_dir,
                frames_index=storage_config.frames_index,
            )
        self.storage = storage
        if store is None:
            store = JsonFrameStore(
                storage.frames_index_path,
                flush_interval=storage_config.index_flush_interval,
            )
        self.store = store
        self.result: Optional[ExtractionResult] = None

    async def start(self) -> Optional[ExtractionResult]:
        """
        Run extraction to a terminal state.

        Returns:
            ExtractionResult, or None if the run failed before sampling
        """
        if not self._can_start():
            return None

        self._publish(state=TaskState.RUNNING, progress=0.0, status="Starting processing...")

        try:
            if self._source_path is not None:
                self.source = OpenCVVideoSource(self._source_path)
            width, height = display_size(self.source)
            logger.info(
                f"Starting extraction: project={self.context.project_name}, "
                f"source={self.source.uri} ({width}x{height}), skip={self.config.frame_skip}"
            )
            samples = build_samples(self.source, self.config.frame_skip)
        except ConfigurationError as e:
            self._close_owned_source()
            self._fail(str(e))
            return None

        try:
            result = await asyncio.to_thread(self._run, samples)
        except Exception as e:
            logger.exception("Error in VideoProcessingTask")
            self._fail(f"Processing failed: {e}")
            return None
        finally:
            self._close_owned_source()

        self.result = result
        if result.cancelled:
            self._finish_cancelled()
        else:
            finished_at = datetime.now().strftime("%H:%M")
            self._publish(
                state=TaskState.COMPLETED,
                progress=1.0,
                status=f"Processing complete at {finished_at}",
            )
        return result

    def _close_owned_source(self) -> None:
        if self._source_path is not None and self.source is not None:
            self.source.close()
            self.source = None

    def _run(self, samples: List[FrameSample]) -> ExtractionResult:
        self.store.clear()

        buffer = FrameBuffer(capacity=self.config.buffer_capacity)
        writer = PersistenceWriter(
            self.storage,
            buffer,
            self.store,
            jpeg_quality=self.config.jpeg_quality,
            thumbnail_max_dimension=self.config.thumbnail_max_dimension,
        )
        extractor = FrameExtractor(
            self.source,
            buffer,
            writer,
            config=self.config,
            cancel_event=self._cancel_event,
            resume_event=self._resume_event,
            on_progress=self._report_progress,
        )
        try:
            return extractor.run(samples)
        finally:
            writer.close()
            logger.info(f"Writer metrics: {writer.metrics()}, buffer metrics: {buffer.metrics()}")
