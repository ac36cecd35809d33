"""
temporal-composite
==================

Frame extraction and temporal-composite rendering pipeline.

This package turns a source video into a deduplicated, disk-persisted
sequence of frame images, and turns that sequence back into a composite
video where every output frame blends a decaying window of neighbours.

Components:
    - extraction: Frame buffer, sampler/extractor, async persistence writer
    - compositing: Frame loader, ring compositor, tone mapper, encoder sink
    - tasks: Long-running task wrappers with progress/status publishing
    - storage: Project directory layout and frame metadata store

Example:
    from temporal_composite.models import ProjectContext
    from temporal_composite.storage import JsonFrameStore, ProjectStorage
    from temporal_composite.tasks import VideoProcessingTask

    context = ProjectContext(project_id="p1", project_name="rally", storage_root=root)
    storage = ProjectStorage(context.storage_root, context.project_name)
    store = JsonFrameStore(storage.frames_index_path)

    task = VideoProcessingTask(context, "match.mov", store)
    asyncio.run(task.start())
"""

__version__ = "0.1.0"

__all__ = [
    "__version__",
]
