"""
Composite Data Models
=====================

Transient types for the temporal-composite render.

A CompositeWindowSpec describes one output frame. The RingCompositor turns
it into RingImages (one per distance from the center) and blends those into
a CompositeFrame, which is handed straight to the encoder sink and discarded.
"""

from dataclasses import dataclass
from typing import Tuple

import numpy as np
from pydantic import BaseModel, Field


class CompositeWindowSpec(BaseModel):
    """
    Window parameters for a single composite output frame.

    Attributes:
        center_index: Sequence position of the center frame
        ring_count: Rings on each side of the center
        gamma: Weight falloff exponent
        target_peak: Light budget in normalized channel units
    """

    center_index: int = Field(..., ge=0, description="Sequence position of the center frame")
    ring_count: int = Field(default=8, ge=0, description="Rings on each side of the center")
    gamma: float = Field(default=1.0, gt=0, description="Weight falloff exponent")
    target_peak: float = Field(default=1.0, gt=0, description="Light budget")

    class Config:
        """Specs are value objects."""

        frozen = True


@dataclass(frozen=True, slots=True)
class RingImage:
    """
    Additive merge of the frames at +/- distance from the center.

    Attributes:
        distance: Distance from the center in sequence positions
        blended_pixels: Sum of the present frames, float32 in [0, frame_count]
        frame_count: Frames merged into this ring (1 for d=0, 1-2 otherwise)
    """

    distance: int
    blended_pixels: np.ndarray
    frame_count: int

    def __repr__(self) -> str:
        return f"RingImage(distance={self.distance}, frame_count={self.frame_count})"


@dataclass(frozen=True, slots=True)
class CompositeFrame:
    """
    Final blend for one output video frame.

    Attributes:
        ordinal_index: Output frame position (equals the center index)
        pixels: Blended image, float32, channel values in [0, target_peak]
        ring_weights: Pre-budget weight per ring distance, index = distance
        budget_scale: Static light-budget scale applied to every ring
        clamp_scale: Tone-mapper scale (1.0 when passed through)
    """

    ordinal_index: int
    pixels: np.ndarray
    ring_weights: Tuple[float, ...]
    budget_scale: float
    clamp_scale: float = 1.0

    def __repr__(self) -> str:
        return (
            f"CompositeFrame(ordinal_index={self.ordinal_index}, "
            f"rings={len(self.ring_weights)}, "
            f"budget_scale={self.budget_scale:.4f}, "
            f"clamp_scale={self.clamp_scale:.4f})"
        )
