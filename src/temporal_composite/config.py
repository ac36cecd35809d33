"""
temporal-composite Configuration
================================

This module handles configuration loading for the extraction and
compositing pipelines.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    TEMPORAL_COMPOSITE_STORAGE_ROOT     -> storage.root
    TEMPORAL_COMPOSITE_FRAME_SKIP       -> extraction.frame_skip
    TEMPORAL_COMPOSITE_BUFFER_CAPACITY  -> extraction.buffer_capacity
    TEMPORAL_COMPOSITE_RING_COUNT       -> compositing.ring_count
    TEMPORAL_COMPOSITE_GAMMA            -> compositing.gamma
    TEMPORAL_COMPOSITE_LOG_LEVEL        -> logging.level

Pipelines never read the global ``settings`` object. The surrounding
application passes the relevant sub-config into each task explicitly.

Example:
    from temporal_composite.config import settings

    print(settings.extraction.buffer_capacity)
    print(settings.compositing.ring_count)
"""

import os
import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class ExtractionConfig(BaseModel):
    """Frame sampling, buffering and persistence configuration."""

    frame_skip: int = Field(
        default=1,
        ge=1,
        description="Sampling stride: keep every Nth source frame",
    )
    buffer_capacity: int = Field(
        default=10,
        ge=1,
        description="Maximum decoded frames resident in the FrameBuffer",
    )
    poll_interval_seconds: float = Field(
        default=0.01,
        gt=0,
        description="Backpressure wait slice between cancellation checks",
    )
    jpeg_quality: int = Field(
        default=80,
        ge=1,
        le=100,
        description="JPEG quality for full-resolution frames and thumbnails",
    )
    thumbnail_max_dimension: int = Field(
        default=128,
        ge=1,
        description="Longest side of generated thumbnails in pixels",
    )
    deduplicate: bool = Field(
        default=True,
        description="Drop frames byte-identical to the previously accepted frame",
    )
    log_every_n_frames: int = Field(
        default=30,
        ge=1,
        description="Log extraction progress every N samples",
    )


class CompositingConfig(BaseModel):
    """Ring compositor, tone mapper and encoder configuration."""

    ring_count: int = Field(
        default=8,
        ge=0,
        description="Number of rings on each side of the center frame",
    )
    gamma: float = Field(
        default=1.0,
        gt=0,
        description="Ring weight falloff exponent: weight(d) = 1 / (d+1)^gamma",
    )
    target_peak: float = Field(
        default=1.0,
        gt=0,
        description="Light budget / peak channel value in normalized units",
    )
    fps: Optional[float] = Field(
        default=None,
        gt=0,
        description="Output frame rate (defaults to the project frame rate)",
    )
    codec: str = Field(
        default="mp4v",
        min_length=4,
        max_length=4,
        description="FourCC of the output codec",
    )
    container: str = Field(
        default="mp4",
        description="Output container extension",
    )
    writer_queue_depth: int = Field(
        default=4,
        ge=1,
        description="Frames queued for the encoder before backpressure applies",
    )
    poll_interval_seconds: float = Field(
        default=0.01,
        gt=0,
        description="Sleep between encoder readiness polls",
    )
    log_every_n_frames: int = Field(
        default=30,
        ge=1,
        description="Log render progress every N frames",
    )


class StorageConfig(BaseModel):
    """Project storage configuration."""

    root: str = Field(
        default="./projects",
        description="Storage root; every persisted path is relative to it",
    )
    thumbnails_dir: str = Field(
        default="thumbnails",
        description="Thumbnail sub-directory inside each project",
    )
    frames_index: str = Field(
        default="frames.json",
        description="Frame metadata index file inside each project",
    )
    index_flush_interval: int = Field(
        default=50,
        gt=0,
        description="Frame records inserted between rewrites of the index file",
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for temporal-composite.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    compositing: CompositingConfig = Field(default_factory=CompositingConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to config.yaml. If None, searches common locations.

    Returns:
        Settings: Loaded configuration
    """
    if config_path is None:
        search_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path(__file__).parent.parent.parent / "config.yaml",
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.debug("No config file found, using defaults and environment variables")

    _apply_env_overrides(config_data)

    return Settings.model_validate(config_data)


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    if env_root := os.environ.get("TEMPORAL_COMPOSITE_STORAGE_ROOT"):
        config_data.setdefault("storage", {})["root"] = env_root

    if env_skip := os.environ.get("TEMPORAL_COMPOSITE_FRAME_SKIP"):
        config_data.setdefault("extraction", {})["frame_skip"] = int(env_skip)
    if env_capacity := os.environ.get("TEMPORAL_COMPOSITE_BUFFER_CAPACITY"):
        config_data.setdefault("extraction", {})["buffer_capacity"] = int(env_capacity)

    if env_rings := os.environ.get("TEMPORAL_COMPOSITE_RING_COUNT"):
        config_data.setdefault("compositing", {})["ring_count"] = int(env_rings)
    if env_gamma := os.environ.get("TEMPORAL_COMPOSITE_GAMMA"):
        config_data.setdefault("compositing", {})["gamma"] = float(env_gamma)

    if env_log := os.environ.get("TEMPORAL_COMPOSITE_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


# =============================================================================
# Global Settings Instance
# =============================================================================

# Loaded on import; the runner script calls setup_logging(settings)
settings = load_config()
