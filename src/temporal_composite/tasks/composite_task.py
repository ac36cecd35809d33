"""
Composite Video Rendering Task
==============================

Temporal-composite render as a long-running task.

    store --FrameLoader--> RingCompositor --> ToneMapper --> VideoEncoderSink

For every position i in the ordinal-ordered frame sequence, one output
frame is rendered with i as the center. The canvas size is taken from the
first frame; the output is <project>/compositeOverlay.<container>,
overwritten when a new render starts.

Outcomes:
    COMPLETED  "Video rendering complete."
    FAILED     "No frames available for processing."
    FAILED     "Failed to load first image."
    FAILED     "Cancelled"
    FAILED     "Video rendering failed: <error>"

All-or-nothing: any per-frame failure aborts the render and deletes the
partial output, since a video with dropped frames desyncs timing.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from temporal_composite.compositing.encoder import VideoEncoderSink, WriterFactory
from temporal_composite.compositing.loader import FrameLoader
from temporal_composite.compositing.ring import RingCompositor
from temporal_composite.compositing.tonemap import ToneMapper
from temporal_composite.config import CompositingConfig, StorageConfig
from temporal_composite.errors import CompositeRenderError, NoFramesError
from temporal_composite.models.composite import CompositeWindowSpec
from temporal_composite.models.frame import PersistedFrame
from temporal_composite.models.task import ProjectContext, TaskState
from temporal_composite.storage import FrameMetadataStore, JsonFrameStore, ProjectStorage
from temporal_composite.tasks.base import ProcessingTask
from temporal_composite.tasks.progress import ProgressChannel


logger = logging.getLogger(__name__)


@dataclass
class CompositeRenderResult:
    """
    Outcome of one composite render.

    Attributes:
        output_path: Rendered video (absent when cancelled)
        frames_written: Output frames appended
        fps: Output frame rate
        clamped_frames: Frames the tone mapper had to rescale
        cancelled: Whether the render was cancelled
    """

    output_path: Path
    frames_written: int
    fps: float
    clamped_frames: int = 0
    cancelled: bool = False

    @property
    def duration_seconds(self) -> float:
        return self.frames_written / self.fps


class CompositeRenderingTask(ProcessingTask):
    """
    Render the composite overlay video for a project.

    Example:
        task = CompositeRenderingTask(context, store, config=CompositingConfig(ring_count=4))
        result = asyncio.run(task.start())
    """

    title = "Composite Video Rendering"

    def __init__(
        self,
        context: ProjectContext,
        store: Optional[FrameMetadataStore] = None,
        config: Optional[CompositingConfig] = None,
        channel: Optional[ProgressChannel] = None,
        storage: Optional[ProjectStorage] = None,
        storage_config: Optional[StorageConfig] = None,
        writer_factory: Optional[WriterFactory] = None,
    ) -> None:
        """
        Initialize the task.

        Args:
            context: Project identity, storage root and frame rate
            store: Frame metadata store (defaults to the project's JSON index)
            config: Compositing settings
            channel: Progress channel
            storage: Project layout (built from context when omitted)
            storage_config: Layout names used when building storage
            writer_factory: Override for cv2.VideoWriter construction
        """
        super().__init__(channel=channel)
        self.context = context
        self.config = config or CompositingConfig()
        self.writer_factory = writer_factory

        if storage is None:
            storage_config = storage_config or StorageConfig()
            storage = ProjectStorage(
                context.storage_root,
                context.project_name,
                thumbnails_dir=storage_config.thumbnails_dir,
                frames_index=storage_config.frames_index,
                container=self.config.container,
            )
        self.storage = storage
        self.store = store if store is not None else JsonFrameStore(storage.frames_index_path)
        self.result: Optional[CompositeRenderResult] = None

    @property
    def fps(self) -> float:
        """Output rate: configured fps, else the project frame rate."""
        return self.config.fps or self.context.frame_rate

    async def start(self) -> Optional[CompositeRenderResult]:
        """
        Render to a terminal state.

        Returns:
            CompositeRenderResult, or None if the render failed
        """
        if not self._can_start():
            return None

        self._publish(state=TaskState.RUNNING, progress=0.0, status="Starting video rendering...")

        frames = self.store.frames()
        if not frames:
            self._fail("No frames available for processing.")
            return None

        try:
            result = await asyncio.to_thread(self._render, frames)
        except NoFramesError as e:
            self._fail(str(e))
            return None
        except Exception as e:
            logger.exception("Composite render aborted")
            self._fail(f"Video rendering failed: {e}")
            return None

        self.result = result
        if result.cancelled:
            self._finish_cancelled()
        else:
            self._publish(state=TaskState.COMPLETED, progress=1.0, status="Video rendering complete.")
            logger.info(f"Composite video stored at {result.output_path}")
        return result

    def _render(self, frames: List[PersistedFrame]) -> CompositeRenderResult:
        config = self.config
        total = len(frames)

        loader = FrameLoader(frames, self.storage, cache_size=2 * config.ring_count + 1)
        first = loader.load_native(0)
        if first is None:
            raise NoFramesError("Failed to load first image.")
        canvas_size = (first.shape[1], first.shape[0])
        loader.canvas_size = canvas_size

        compositor = RingCompositor(loader)
        tone_mapper = ToneMapper(config.target_peak)
        output_path = self.storage.composite_output_path

        logger.info(
            f"Rendering {total} composite frames: canvas={canvas_size[0]}x{canvas_size[1]}, "
            f"rings={config.ring_count}, gamma={config.gamma}, fps={self.fps}"
        )

        with VideoEncoderSink(
            output_path,
            fps=self.fps,
            codec=config.codec,
            queue_depth=config.writer_queue_depth,
            poll_interval=config.poll_interval_seconds,
            writer_factory=self.writer_factory,
        ) as sink:
            sink.start(canvas_size)

            for center in range(total):
                self._wait_if_paused()
                if self.is_cancelled:
                    sink.abort()
                    return CompositeRenderResult(
                        output_path=output_path,
                        frames_written=sink.frames_appended,
                        fps=self.fps,
                        clamped_frames=tone_mapper.metrics()["frames_clamped"],
                        cancelled=True,
                    )

                spec = CompositeWindowSpec(
                    center_index=center,
                    ring_count=config.ring_count,
                    gamma=config.gamma,
                    target_peak=config.target_peak,
                )
                composite = compositor.compose(spec)
                if composite is None:
                    raise CompositeRenderError(f"No frames could be loaded around position {center}")

                composite = tone_mapper.apply_frame(composite)
                sink.append(composite.pixels)

                done = center + 1
                self._report_progress(done / total, f"Rendered frame {done} of {total}")
                if done % config.log_every_n_frames == 0:
                    logger.info(f"Render progress: {done}/{total}, sink={sink.metrics()}")

            sink.finish()

        return CompositeRenderResult(
            output_path=output_path,
            frames_written=sink.frames_appended,
            fps=self.fps,
            clamped_frames=tone_mapper.metrics()["frames_clamped"],
        )

    def _wait_if_paused(self) -> None:
        while not self._resume_event.wait(self.config.poll_interval_seconds):
            if self.is_cancelled:
                return
