"""
Frame Data Models
=================

Frame representations for the extraction pipeline.

    FrameSample    -> produced by the sampler, consumed once by the writer
    BufferedImage  -> decoded raster owned by the FrameBuffer while resident
    PersistedFrame -> immutable metadata record for a frame written to disk

Design Rules:
    - PersistedFrame paths are ALWAYS relative to the storage root
    - Ordinal indexes are strictly increasing; deduplicated samples leave
      gaps, an index is never reused
"""

import uuid
from dataclasses import dataclass
from fractions import Fraction
from typing import Optional

import numpy as np
from pydantic import BaseModel, Field


@dataclass(frozen=True, slots=True)
class FrameSample:
    """
    One sampling position in the source video.

    Attributes:
        ordinal_index: Position in the sampled sequence (0-based)
        timestamp: Rational presentation time in seconds
        source_ref: Identifier of the source asset (path or URI)
    """

    ordinal_index: int
    timestamp: Fraction
    source_ref: str

    @property
    def seconds(self) -> float:
        """Timestamp as float seconds."""
        return float(self.timestamp)

    def __repr__(self) -> str:
        return (
            f"FrameSample(ordinal_index={self.ordinal_index}, "
            f"t={self.seconds:.3f}s)"
        )


@dataclass(frozen=True, slots=True)
class BufferedImage:
    """
    Decoded frame held in the FrameBuffer until it is durably written.

    Attributes:
        ordinal_index: Ordinal index of the originating sample
        pixels: BGR image (H, W, 3), dtype=uint8
    """

    ordinal_index: int
    pixels: np.ndarray

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the raster."""
        return (
            f"BufferedImage(ordinal_index={self.ordinal_index}, "
            f"shape={self.pixels.shape})"
        )


class PersistedFrame(BaseModel):
    """
    Metadata record for a frame written to project storage.

    Created once per non-duplicate sample and never modified afterwards.

    Attributes:
        frame_id: Stable identifier of the record
        ordinal_index: Position in the sampled sequence
        frame_name: File name of the full-resolution image
        image_relative_path: Image path relative to the storage root
        thumbnail_relative_path: Thumbnail path relative to the storage root,
            None when thumbnail generation failed
        timestamp_seconds: Source timestamp of the sample
    """

    frame_id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        description="Stable identifier of the record",
    )
    ordinal_index: int = Field(..., ge=0, description="Position in the sampled sequence")
    frame_name: str = Field(..., description="File name of the full-resolution image")
    image_relative_path: str = Field(..., description="Image path relative to the storage root")
    thumbnail_relative_path: Optional[str] = Field(
        default=None,
        description="Thumbnail path relative to the storage root",
    )
    timestamp_seconds: float = Field(default=0.0, ge=0.0, description="Source timestamp")

    class Config:
        """Records are immutable after creation."""

        frozen = True
