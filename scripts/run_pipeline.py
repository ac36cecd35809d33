#!/usr/bin/env python3
"""
Pipeline Runner Script
======================

Standalone script to run the extraction and compositing pipelines
against a project on disk.

This script:
    1. Loads settings (config.yaml + TEMPORAL_COMPOSITE_* env vars)
    2. Runs the requested pipeline as a task
    3. Logs progress events as they arrive
    4. Reports a final summary

Usage:
    python scripts/run_pipeline.py extract clip.mp4 --project demo --skip 2
    python scripts/run_pipeline.py render --project demo --rings 8 --gamma 1.0
"""

import argparse
import asyncio
import logging
import os
import sys
import uuid
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from temporal_composite.config import load_config, setup_logging
from temporal_composite.models import ProjectContext, TaskState
from temporal_composite.tasks import CompositeRenderingTask, ProcessingTask, VideoProcessingTask


logger = logging.getLogger(__name__)


async def run_task(task: ProcessingTask, report_interval: float) -> TaskState:
    """
    Run a task while forwarding its progress events to the log.

    Args:
        task: Task to run
        report_interval: Seconds between progress reports

    Returns:
        Terminal task state
    """
    runner = asyncio.create_task(task.start())
    try:
        while not runner.done():
            await asyncio.sleep(report_interval)
            events = task.channel.drain()
            if events:
                latest = events[-1]
                logger.info(f"[{latest.progress:6.1%}] {latest.status}")
        await runner
    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.info("Interrupted by user, cancelling task")
        task.cancel()
        await runner

    logger.info("=" * 60)
    logger.info(f"{task.title}: {task.state.value} - {task.status_message}")
    logger.info("=" * 60)
    return task.state


def main():
    settings = load_config()

    parser = argparse.ArgumentParser(description="Temporal composite pipeline runner")
    parser.add_argument("--config", type=str, default=None, help="Path to config.yaml")
    parser.add_argument(
        "--root",
        type=str,
        default=settings.storage.root,
        help=f"Storage root (default: {settings.storage.root})",
    )
    parser.add_argument("--project", type=str, required=True, help="Project name")
    parser.add_argument(
        "--report-interval",
        type=float,
        default=1.0,
        help="Seconds between progress reports (default: 1.0)",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    extract = commands.add_parser("extract", help="Extract frames from a video")
    extract.add_argument("video", type=str, help="Source video file")
    extract.add_argument("--skip", type=int, default=None, help="Sampling stride")

    render = commands.add_parser("render", help="Render the composite overlay video")
    render.add_argument("--rings", type=int, default=None, help="Ring count R")
    render.add_argument("--gamma", type=float, default=None, help="Ring weight exponent")
    render.add_argument("--fps", type=float, default=None, help="Output frame rate")

    args = parser.parse_args()
    if args.config:
        settings = load_config(args.config)
    setup_logging(settings)

    context = ProjectContext(
        project_id=str(uuid.uuid4()),
        project_name=args.project,
        storage_root=Path(args.root),
    )

    if args.command == "extract":
        config = settings.extraction
        if args.skip is not None:
            config = config.model_copy(update={"frame_skip": args.skip})
        task = VideoProcessingTask(
            context,
            Path(args.video),
            config=config,
            storage_config=settings.storage,
        )
        state = asyncio.run(run_task(task, args.report_interval))
        if task.result is not None:
            logger.info(f"Extraction summary: {task.result.to_dict()}")
    else:
        overrides = {
            key: value
            for key, value in (("ring_count", args.rings), ("gamma", args.gamma), ("fps", args.fps))
            if value is not None
        }
        config = settings.compositing.model_copy(update=overrides)
        task = CompositeRenderingTask(context, config=config, storage_config=settings.storage)
        state = asyncio.run(run_task(task, args.report_interval))
        if task.result is not None:
            logger.info(
                f"Rendered {task.result.frames_written} frames "
                f"({task.result.duration_seconds:.2f}s) to {task.result.output_path}"
            )

    # Exit with appropriate code
    sys.exit(0 if state == TaskState.COMPLETED else 1)


if __name__ == "__main__":
    main()
